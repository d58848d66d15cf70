"""Moderation triage core: ingestion, prioritised queue and AI enrichment."""

from .context import TriageContext
from .control_scripts import (
    CommandAction,
    ConditionalAction,
    ControlScript,
    ControlScriptInterpreter,
)
from .enrichment import AIEnrichmentOrchestrator, CancellationToken
from .events import FeedStatus, ListenerSet, TriageListener
from .exceptions import ClassifierError, FeedUnavailableError, TriageError
from .ingestion import IngestionFilterPipeline
from .models import (
    AuthorInfo,
    EnrichmentResult,
    FeedEntry,
    NameVerdict,
    PageInfo,
    WarningLevel,
    WarningRecord,
    WorkItem,
)
from .queue import TriageQueue
from .retry_policy import PollBackoff
from .spotlight import AuthorSpotlight
from .warning_levels import WarningLevelParser

__all__ = [
    "AIEnrichmentOrchestrator",
    "AuthorInfo",
    "AuthorSpotlight",
    "CancellationToken",
    "ClassifierError",
    "CommandAction",
    "ConditionalAction",
    "ControlScript",
    "ControlScriptInterpreter",
    "EnrichmentResult",
    "FeedEntry",
    "FeedStatus",
    "FeedUnavailableError",
    "IngestionFilterPipeline",
    "ListenerSet",
    "NameVerdict",
    "PageInfo",
    "PollBackoff",
    "TriageContext",
    "TriageError",
    "TriageListener",
    "TriageQueue",
    "WarningLevel",
    "WarningLevelParser",
    "WarningRecord",
    "WorkItem",
]
