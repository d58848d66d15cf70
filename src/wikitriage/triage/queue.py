"""Prioritised, deduplicated working set with a navigation cursor.

The active queue keeps its head (index 0) in place and orders everything
behind it by ``priority_score`` plus the spotlight bonus, ties broken by
admission order. Items the operator moves past go to a bounded
dismissed-history so they can be revisited and are never re-admitted.
"""

from __future__ import annotations

import logging
from collections import deque
from itertools import count
from typing import TYPE_CHECKING, Callable, Deque, Dict, List, Optional, Tuple

from .models import ConsecutiveEdits, EnrichmentResult, NameVerdict, WarningLevel, WorkItem

if TYPE_CHECKING:
    from .context import TriageContext
    from .enrichment import AIEnrichmentOrchestrator

logger = logging.getLogger(__name__)


class TriageQueue:
    """Active queue, dismissed-history and cursor.

    All commands are total: on an empty queue they do nothing.

    Example:
        queue = TriageQueue(context, orchestrator)
        queue.admit(item)    # the first admission takes the cursor
        queue.advance()      # move past it
        queue.retreat()      # bring it back
    """

    def __init__(
        self,
        context: "TriageContext",
        orchestrator: Optional["AIEnrichmentOrchestrator"] = None,
    ) -> None:
        self._context = context
        self._orchestrator = orchestrator
        self._settings = context.settings.queue
        self._active: List[WorkItem] = []
        self._dismissed: Deque[WorkItem] = deque(maxlen=self._settings.history_size)
        self._cursor: Optional[int] = None
        self._sequence = count(1)
        self.on_restore: Optional[Callable[[WorkItem], None]] = None

    # ------------------------------------------------------------------ queries

    @property
    def active(self) -> Tuple[WorkItem, ...]:
        return tuple(self._active)

    @property
    def dismissed(self) -> Tuple[WorkItem, ...]:
        """Dismissed items, oldest first."""
        return tuple(self._dismissed)

    @property
    def cursor(self) -> Optional[WorkItem]:
        if self._cursor is None:
            return None
        return self.get(self._cursor)

    @property
    def cursor_index(self) -> Optional[int]:
        if self._cursor is None:
            return None
        return self._index_of(self._cursor)

    @property
    def is_full(self) -> bool:
        return len(self._active) >= self._settings.max_queue_size

    def __len__(self) -> int:
        return len(self._active)

    def contains(self, revision_id: int) -> bool:
        return self.get(revision_id) is not None

    def get(self, revision_id: int) -> Optional[WorkItem]:
        for item in self._active:
            if item.revision_id == revision_id:
                return item
        for item in self._dismissed:
            if item.revision_id == revision_id:
                return item
        return None

    def titles(self) -> List[str]:
        return sorted({item.page.title for item in self._active})

    # ----------------------------------------------------------------- commands

    def admit(self, item: WorkItem) -> bool:
        """Append ``item`` and re-sort; returns False if it was refused.

        Refused when the revision is already known or the queue is at its
        soft capacity. "Known" covers dismissed-history, which holds at most
        ``history_size`` items; a revision evicted from it is only kept out
        by the feed's ``last_seen`` cursor, which never moves backwards.
        """
        if self.contains(item.revision_id):
            logger.debug(f"Revision {item.revision_id} already queued")
            return False
        if self.is_full:
            logger.debug(f"Queue full, refusing revision {item.revision_id}")
            return False

        item.sequence = next(self._sequence)
        item.boosted = item.boosted or self._context.spotlight.is_boosted(item.author.name)
        self._active.append(item)
        if self._cursor is None:
            self._cursor = item.revision_id
        self._resort()
        self._context.statistics.admitted += 1
        logger.info(f"Admitted revision {item.revision_id} on {item.page.title!r} by {item.author.name}")
        self._notify()
        return True

    def advance(self) -> Optional[WorkItem]:
        """Move past the cursor item and return the new cursor item."""
        if not self._active:
            return None
        index = self.cursor_index
        if index is None:
            self._cursor = self._active[0].revision_id
            self._notify()
            return self.cursor

        item = self._active.pop(index)
        self._cancel(item)
        if index == 0 and not item.reviewed:
            item.reviewed = True
            self._context.statistics.reviewed += 1
        self._dismiss(item)
        self._reposition(index)
        self._context.listeners.on_item_removed(item.revision_id)
        self._context.listeners.on_item_left(item)
        self._notify()
        return self.cursor

    def retreat(self) -> Optional[WorkItem]:
        """Step back one slot, restoring the last dismissed item at the head."""
        index = self.cursor_index
        leaving = self.cursor

        if (index is None or index == 0) and self._dismissed:
            restored = self._dismissed.pop()
            self._active.insert(0, restored)
            self._cursor = restored.revision_id
            self._resort()
            if self.on_restore is not None:
                self.on_restore(restored)
        elif index is not None and index > 0:
            self._cursor = self._active[index - 1].revision_id
        else:
            return self.cursor

        if leaving is not None:
            self._cancel(leaving)
            self._context.listeners.on_item_left(leaving)
        self._notify()
        return self.cursor

    def discard(self, revision_id: int) -> bool:
        """Remove an item wherever it is, without marking it reviewed."""
        index = self._index_of(revision_id)
        if index is not None:
            item = self._active.pop(index)
            self._cancel(item)
            self._dismiss(item)
            if self._cursor == revision_id:
                self._reposition(index)
        else:
            item = self._find_dismissed(revision_id)
            if item is None:
                return False
            self._dismissed.remove(item)
            self._cancel(item)

        logger.debug(f"Discarded revision {revision_id}")
        self._context.listeners.on_item_removed(revision_id)
        self._notify()
        return True

    def clear(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.cancel_all()
        self._active.clear()
        self._dismissed.clear()
        self._cursor = None
        logger.info("Queue cleared")
        self._notify()

    # ---------------------------------------------------------------- staleness

    def remove_superseded(self, title: str, revision_id: int) -> List[int]:
        """Drop active items on ``title`` older than ``revision_id``."""
        return self._remove_where(
            lambda item: item.page.title == title and item.revision_id < revision_id
        )

    def remove_stale(self, latest: Dict[str, int]) -> List[int]:
        """Drop active items that are no longer the newest revision of their page."""
        return self._remove_where(
            lambda item: latest.get(item.page.title, item.revision_id) > item.revision_id
        )

    def _remove_where(self, predicate: Callable[[WorkItem], bool]) -> List[int]:
        removed = [
            item for item in self._active
            if item.revision_id != self._cursor and predicate(item)
        ]
        if not removed:
            return []

        for item in removed:
            self._active.remove(item)
            self._cancel(item)
            self._context.statistics.superseded += 1
            logger.info(f"Revision {item.revision_id} on {item.page.title!r} superseded")
            self._context.listeners.on_item_removed(item.revision_id)
        self._notify()
        return [item.revision_id for item in removed]

    # ------------------------------------------------------- background updates

    def apply_enrichment(self, revision_id: int, result: EnrichmentResult) -> bool:
        """Attach an AI verdict if the item is still known; False means it was dropped."""
        item = self.get(revision_id)
        if item is None:
            logger.debug(f"Dropping enrichment for departed revision {revision_id}")
            return False
        item.enrichment = result
        if self._cursor == revision_id:
            self._context.listeners.on_enrichment_updated(revision_id, result)
        return True

    def apply_name_verdict(self, revision_id: int, verdict: NameVerdict) -> bool:
        item = self.get(revision_id)
        if item is None:
            return False
        item.name_verdict = verdict
        if self._cursor == revision_id:
            self._context.listeners.on_name_verdict(revision_id, verdict)
        return True

    def apply_consecutive(self, revision_id: int, consecutive: ConsecutiveEdits) -> bool:
        item = self.get(revision_id)
        if item is None:
            return False
        item.consecutive = consecutive
        if self._cursor == revision_id:
            self._notify()
        return True

    # ------------------------------------------------------------ policy hooks

    def record_warning(self, author: str, level: WarningLevel) -> int:
        """Raise the current severity of every queued item by ``author``.

        The admission-time severity is left untouched.
        """
        updated = 0
        for item in self._active:
            if item.author.name == author:
                item.author.current_severity = level
                updated += 1
        if updated:
            self._notify()
        return updated

    def spotlight_author(self, author: str) -> int:
        self._context.spotlight.add(author)
        return self.refresh_boosts()

    def refresh_boosts(self) -> int:
        """Sync ``boosted`` flags with the spotlight (which may have expired)."""
        changed = 0
        for item in self._active:
            boosted = self._context.spotlight.is_boosted(item.author.name)
            if boosted != item.boosted:
                item.boosted = boosted
                changed += 1
        if changed:
            self._resort()
            self._notify()
        return changed

    # ---------------------------------------------------------------- internals

    def _resort(self) -> None:
        if len(self._active) < 3:
            return
        bonus = self._settings.boost_bonus
        head, rest = self._active[0], self._active[1:]
        rest.sort(key=lambda item: (-item.effective_priority(bonus), item.sequence))
        self._active = [head, *rest]

    def _reposition(self, index: int) -> None:
        if not self._active:
            self._cursor = None
            return
        self._cursor = self._active[min(index, len(self._active) - 1)].revision_id

    def _dismiss(self, item: WorkItem) -> None:
        if len(self._dismissed) == self._dismissed.maxlen:
            evicted = self._dismissed[0]
            logger.debug(f"Dismissed history full, forgetting revision {evicted.revision_id}")
        self._dismissed.append(item)

    def _index_of(self, revision_id: int) -> Optional[int]:
        for index, item in enumerate(self._active):
            if item.revision_id == revision_id:
                return index
        return None

    def _find_dismissed(self, revision_id: int) -> Optional[WorkItem]:
        for item in self._dismissed:
            if item.revision_id == revision_id:
                return item
        return None

    def _cancel(self, item: WorkItem) -> None:
        """Abort background lookups for ``item``.

        The author-name lookup is shared by every item from that author, so
        it is only aborted when no other active item still needs it.
        """
        if self._orchestrator is None:
            return
        self._orchestrator.cancel(item.revision_id)
        author = item.author.name
        if not any(
            other.author.name == author and other.revision_id != item.revision_id
            for other in self._active
        ):
            self._orchestrator.cancel_name(author)

    def _notify(self) -> None:
        self._context.listeners.on_queue_changed(self.active, self.cursor)


__all__ = ["TriageQueue"]
