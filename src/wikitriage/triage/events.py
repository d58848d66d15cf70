"""Notifications from the triage core to the presentation layer.

Listeners subclass ``TriageListener`` and override what they need. The
core talks to a ``ListenerSet`` which fans each notification out and
logs, rather than propagates, listener failures.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from .models import EnrichmentResult, NameVerdict, WorkItem

logger = logging.getLogger(__name__)


class FeedStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class TriageListener:
    """Base listener; every callback is a no-op."""

    def on_queue_changed(self, active: Sequence["WorkItem"], cursor: Optional["WorkItem"]) -> None:
        pass

    def on_item_removed(self, revision_id: int) -> None:
        pass

    def on_enrichment_updated(self, revision_id: int, result: "EnrichmentResult") -> None:
        pass

    def on_name_verdict(self, revision_id: int, verdict: "NameVerdict") -> None:
        pass

    def on_item_left(self, item: "WorkItem") -> None:
        """The cursor moved away from ``item`` (advance or retreat)."""

    def on_feed_status(self, status: FeedStatus) -> None:
        pass


class ListenerSet(TriageListener):
    """Dispatches every callback to each registered listener."""

    def __init__(self, listeners: Optional[Sequence[TriageListener]] = None) -> None:
        self._listeners: List[TriageListener] = list(listeners or [])

    def add(self, listener: TriageListener) -> None:
        self._listeners.append(listener)

    def remove(self, listener: TriageListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._listeners)

    def _emit(self, name: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, name)(*args)
            except Exception as e:
                logger.error(f"Listener {name} error: {e}", exc_info=True)

    def on_queue_changed(self, active, cursor) -> None:
        self._emit("on_queue_changed", active, cursor)

    def on_item_removed(self, revision_id) -> None:
        self._emit("on_item_removed", revision_id)

    def on_enrichment_updated(self, revision_id, result) -> None:
        self._emit("on_enrichment_updated", revision_id, result)

    def on_name_verdict(self, revision_id, verdict) -> None:
        self._emit("on_name_verdict", revision_id, verdict)

    def on_item_left(self, item) -> None:
        self._emit("on_item_left", item)

    def on_feed_status(self, status) -> None:
        self._emit("on_feed_status", status)


__all__ = ["FeedStatus", "ListenerSet", "TriageListener"]
