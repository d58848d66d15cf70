"""Exceptions raised inside the triage core.

Most failures never leave the core: the ingestion pipeline and the
enrichment orchestrator absorb them and degrade to defaults. These types
mark the boundaries where that absorption happens.
"""

from __future__ import annotations


class TriageError(Exception):
    """Base class for triage core errors."""

    pass


class FeedUnavailableError(TriageError):
    """Raised when the change feed itself cannot be reached.

    This is the only failure that affects the poll cadence: the poll loop
    catches it and backs off instead of admitting anything.

    Example:
        The MediaWiki API times out while listing recent changes.
    """

    pass


class ClassifierError(TriageError):
    """Raised when the scoring endpoint fails to produce a response.

    Covers transport errors, non-2xx status codes and empty bodies. The
    enrichment orchestrator converts it into a degraded result.
    """

    pass
