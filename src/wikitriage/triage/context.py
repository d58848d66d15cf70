"""Explicit dependency bundle shared by the triage components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Set

from .events import ListenerSet, TriageListener
from .models import TriageStatistics
from .spotlight import AuthorSpotlight

if TYPE_CHECKING:
    from ..clients.base import ClassifierClient, FeedClient
    from ..configuration.settings import TriageSettings


@dataclass
class TriageContext:
    """Everything the pipeline, queue and orchestrator need, passed in explicitly.

    Attributes:
        feed: Wiki data collaborator
        settings: Validated configuration
        classifier: Optional scoring endpoint; None disables AI enrichment
        spotlight: Operator-boosted authors
        excluded_authors: Runtime exclusion list, merged with the configured one
        statistics: Session counters
        listeners: Presentation callbacks
    """

    feed: "FeedClient"
    settings: "TriageSettings"
    classifier: Optional["ClassifierClient"] = None
    spotlight: AuthorSpotlight = field(default_factory=AuthorSpotlight)
    excluded_authors: Set[str] = field(default_factory=set)
    statistics: TriageStatistics = field(default_factory=TriageStatistics)
    listeners: ListenerSet = field(default_factory=ListenerSet)

    @classmethod
    def create(
        cls,
        feed: "FeedClient",
        settings: "TriageSettings",
        classifier: Optional["ClassifierClient"] = None,
        *listeners: TriageListener,
    ) -> "TriageContext":
        return cls(
            feed=feed,
            settings=settings,
            classifier=classifier,
            spotlight=AuthorSpotlight(settings.queue.spotlight_seconds),
            listeners=ListenerSet(listeners),
        )

    def is_excluded(self, author: str) -> bool:
        return author in self.excluded_authors or author in self.settings.filters.excluded_authors

    def exclude(self, author: str) -> None:
        self.excluded_authors.add(author)


__all__ = ["TriageContext"]
