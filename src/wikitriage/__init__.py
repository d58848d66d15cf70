"""Recent-changes moderation triage."""

__version__ = "0.1.0"
