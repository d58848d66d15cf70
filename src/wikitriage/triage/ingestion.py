"""Feed ingestion: poll, filter, assemble and admit work items.

One ``poll()`` turns a batch of recent changes into admitted WorkItems:

1. Pull entries newer than the last seen revision.
2. Drop entries superseded inside the batch, then remove queued items that
   the batch supersedes (staleness elimination).
3. Filter by exclusion list, account type and edit count.
4. Resolve talk pages, block status and priority scores in batches.
5. Assemble and admit survivors oldest-first; start background enrichment.
6. Re-check staleness against the wiki's latest revisions.

Any per-entry lookup failure degrades to a default value. Only a failure
to pull the feed itself escapes ``poll()``, as ``FeedUnavailableError``,
and ``run_once()`` turns that into backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Iterable, List, Optional, Set, TypeVar

from .events import FeedStatus
from .exceptions import FeedUnavailableError
from .models import (
    AuthorInfo,
    ConsecutiveEdits,
    FeedEntry,
    PageInfo,
    PageMetadata,
    WorkItem,
)
from .diff_text import readable_diff
from .prompts import is_temporary_account
from .retry_policy import PollBackoff
from .warning_levels import WarningLevelParser

if TYPE_CHECKING:
    from .context import TriageContext
    from .enrichment import AIEnrichmentOrchestrator
    from .queue import TriageQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLP_CATEGORIES = {"Category:Living people", "Living people"}


class IngestionFilterPipeline:
    """Drives the recent-changes feed into a ``TriageQueue``.

    Example:
        pipeline = IngestionFilterPipeline(context, queue, orchestrator)
        stop = asyncio.Event()
        await pipeline.run(stop)
    """

    def __init__(
        self,
        context: "TriageContext",
        queue: "TriageQueue",
        orchestrator: Optional["AIEnrichmentOrchestrator"] = None,
        parser: Optional[WarningLevelParser] = None,
    ) -> None:
        self._context = context
        self._queue = queue
        self._orchestrator = orchestrator
        self._parser = parser or WarningLevelParser()
        feed_settings = context.settings.feed
        self._backoff = PollBackoff(
            base_delay_seconds=feed_settings.refresh_seconds,
            max_delay_seconds=feed_settings.max_backoff_seconds,
        )
        self._status = FeedStatus.HEALTHY
        self._last_seen: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()
        queue.on_restore = self._on_restore

    @property
    def last_seen(self) -> Optional[int]:
        return self._last_seen

    @property
    def status(self) -> FeedStatus:
        return self._status

    @property
    def backoff(self) -> PollBackoff:
        return self._backoff

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------ polling

    async def poll(self) -> List[WorkItem]:
        """Run one ingestion pass and return the newly admitted items.

        Raises:
            FeedUnavailableError: If the feed itself could not be pulled
        """
        if self._queue.is_full:
            logger.debug("Queue at capacity, deferring poll")
            return []

        feed = self._context.feed
        entries = await feed.poll_changes(self._context.settings.feed.namespaces, self._last_seen)
        if not entries:
            return []

        newest = max(entry.revision_id for entry in entries)
        self._last_seen = max(newest, self._last_seen or 0)

        entries = latest_per_page(entries)
        for entry in entries:
            self._queue.remove_superseded(entry.title, entry.revision_id)

        candidates = [entry for entry in entries if self._passes_author_filters(entry)]
        candidates = [entry for entry in candidates if not self._queue.contains(entry.revision_id)]
        if not candidates:
            return []

        edit_counts = await self._edit_counts(candidates)
        candidates = [
            entry for entry in candidates
            if self._within_edit_ceiling(entry.author, edit_counts.get(entry.author))
        ]
        if not candidates:
            return []

        authors = sorted({entry.author for entry in candidates})
        talk_pages, blocked, scores = await asyncio.gather(
            self._talk_pages(authors),
            self._resolve(feed.blocked_status(authors), {}, "block status"),
            self._resolve(
                feed.priority_scores([entry.revision_id for entry in candidates]),
                {},
                "priority scores",
            ),
        )

        minimum = self._context.settings.filters.minimum_score
        admitted: List[WorkItem] = []
        for entry in candidates:
            score = float(scores.get(entry.revision_id, 0.0))
            boosted = self._context.spotlight.is_boosted(entry.author)
            if score < minimum and not boosted:
                continue
            if self._queue.is_full:
                logger.debug("Queue filled up during admission")
                break

            item = await self.build_item(
                entry,
                edit_count=edit_counts.get(entry.author),
                talk_text=talk_pages.get(entry.author, ""),
                blocked=bool(blocked.get(entry.author, False)),
                score=score,
            )
            item.boosted = boosted
            if self._queue.admit(item):
                admitted.append(item)
                self._start_background(item)

        if admitted:
            await self._recheck_staleness()
        logger.debug(f"Poll saw {len(entries)} entries, admitted {len(admitted)}")
        return admitted

    async def run_once(self) -> float:
        """Poll once and return the delay before the next poll."""
        self._queue.refresh_boosts()
        if self._queue.is_full:
            return self._backoff.base_delay_seconds

        try:
            await self.poll()
        except FeedUnavailableError as exc:
            delay = self._backoff.record_failure()
            logger.warning(
                f"Feed poll failed ({self._backoff.failures} in a row), retrying in {delay:.1f}s: {exc}"
            )
            if self._backoff.exhausted and self._status is not FeedStatus.DEGRADED:
                self._set_status(FeedStatus.DEGRADED)
            return delay

        if self._status is not FeedStatus.HEALTHY:
            self._set_status(FeedStatus.HEALTHY)
        return self._backoff.record_success()

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until ``stop`` is set."""
        logger.info("Starting feed poll loop")
        try:
            while not stop.is_set():
                try:
                    delay = await self.run_once()
                except Exception:
                    logger.error("Unexpected error in poll loop", exc_info=True)
                    delay = self._backoff.record_failure()
                try:
                    await asyncio.wait_for(stop.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.aclose()
            logger.info("Feed poll loop stopped")

    async def aclose(self) -> None:
        """Cancel outstanding background lookups."""
        if self._orchestrator is not None:
            self._orchestrator.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait for all background lookups started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ----------------------------------------------------------------- assembly

    async def build_item(
        self,
        entry: FeedEntry,
        *,
        edit_count: Optional[int] = None,
        talk_text: str = "",
        blocked: bool = False,
        score: float = 0.0,
    ) -> WorkItem:
        """Assemble a WorkItem from fresh page and author details."""
        feed = self._context.feed
        operator = self._context.settings.filters.operator_name

        history, contributions, diff, categories, metadata, reverts = await asyncio.gather(
            self._resolve(feed.history(entry.title), [], f"history of {entry.title!r}"),
            self._resolve(feed.contributions(entry.author), [], f"contributions of {entry.author}"),
            self._resolve(feed.diff(entry.title, entry.parent_id, entry.revision_id), None, f"diff {entry.revision_id}"),
            self._resolve(feed.categories(entry.revision_id), [], f"categories of {entry.revision_id}"),
            self._resolve(feed.page_metadata(entry.title), PageMetadata(), f"metadata of {entry.title!r}"),
            self._resolve(feed.revert_count(entry.title, operator), 0, "revert count") if operator else _value(0),
        )

        level = self._parser.extract_level(talk_text)
        page = PageInfo(
            title=entry.title,
            namespace=entry.namespace,
            history=list(history),
            categories=list(categories),
            date_format=metadata.date_format,
            language_variant=metadata.language_variant,
        )
        author = AuthorInfo(
            name=entry.author,
            edit_count=edit_count,
            current_severity=level,
            admission_severity=level,
            blocked=blocked,
            empty_talk_page=not talk_text.strip(),
            contributions=list(contributions),
            warning_history=self._parser.extract_history(talk_text),
        )
        return WorkItem(
            revision_id=entry.revision_id,
            page=page,
            author=author,
            change_size=entry.change_size,
            comment=entry.comment,
            minor=entry.minor,
            tags=list(entry.tags),
            diff=diff,
            timestamp=entry.timestamp,
            parent_id=entry.parent_id,
            priority_score=score,
            revert_count=int(reverts or 0),
            is_blp=any(category in BLP_CATEGORIES for category in page.categories),
            mentions_operator=mentions(diff, operator),
        )

    # ------------------------------------------------------------------ filters

    def _passes_author_filters(self, entry: FeedEntry) -> bool:
        filters = self._context.settings.filters
        if not entry.author or self._context.is_excluded(entry.author):
            return False
        if is_temporary_account(entry.author):
            return filters.show_temporary_accounts
        return filters.show_registered_accounts

    def _within_edit_ceiling(self, author: str, edit_count: Optional[int]) -> bool:
        if edit_count is None or self._context.spotlight.is_boosted(author):
            return True
        return edit_count <= self._context.settings.filters.max_edit_count

    async def _edit_counts(self, entries: Iterable[FeedEntry]) -> Dict[str, Optional[int]]:
        registered = sorted({entry.author for entry in entries if not is_temporary_account(entry.author)})
        if not registered:
            return {}
        return await self._resolve(self._context.feed.edit_counts(registered), {}, "edit counts")

    async def _talk_pages(self, authors: List[str]) -> Dict[str, str]:
        results = await asyncio.gather(
            *(self._context.feed.talk_page_text(author) for author in authors),
            return_exceptions=True,
        )
        pages: Dict[str, str] = {}
        for author, result in zip(authors, results):
            if isinstance(result, BaseException):
                logger.warning(f"Talk page lookup for {author} failed: {result}")
                pages[author] = ""
            else:
                pages[author] = result or ""
        return pages

    async def _recheck_staleness(self) -> None:
        titles = self._queue.titles()
        if not titles:
            return
        latest = await self._resolve(self._context.feed.latest_revision_ids(titles), {}, "latest revisions")
        if latest:
            self._queue.remove_stale(latest)

    async def _resolve(self, awaitable: Awaitable[T], default: T, what: str) -> T:
        try:
            return await awaitable
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Lookup of {what} failed, using default: {exc}")
            return default

    # --------------------------------------------------------------- background

    def _start_background(self, item: WorkItem) -> None:
        if self._orchestrator is not None:
            self._spawn(self._enrich(item), f"enrich-{item.revision_id}")
            if not is_temporary_account(item.author.name):
                self._spawn(self._classify_name(item), f"name-{item.revision_id}")
        self._spawn(self._consecutive(item), f"consecutive-{item.revision_id}")

    def _on_restore(self, item: WorkItem) -> None:
        if self._orchestrator is not None and item.enrichment is None:
            self._spawn(self._enrich(item), f"enrich-{item.revision_id}")

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed", exc_info=exc)

    async def _enrich(self, item: WorkItem) -> None:
        result = await self._orchestrator.enrich(item)
        if result is not None:
            self._queue.apply_enrichment(item.revision_id, result)

    async def _classify_name(self, item: WorkItem) -> None:
        verdict = await self._orchestrator.classify_author_name(item.author.name, item.page.title)
        if verdict is not None and not verdict.cancelled:
            self._queue.apply_name_verdict(item.revision_id, verdict)

    async def _consecutive(self, item: WorkItem) -> None:
        consecutive = await self._resolve(
            self._context.feed.consecutive_edits(item.page.title, item.author.name),
            None,
            f"consecutive edits on {item.page.title!r}",
        )
        if isinstance(consecutive, ConsecutiveEdits):
            self._queue.apply_consecutive(item.revision_id, consecutive)

    def _set_status(self, status: FeedStatus) -> None:
        self._status = status
        if status is FeedStatus.DEGRADED:
            logger.error("Feed unreachable, polling at maximum backoff")
        else:
            logger.info("Feed reachable again")
        self._context.listeners.on_feed_status(status)


def latest_per_page(entries: Iterable[FeedEntry]) -> List[FeedEntry]:
    """Keep only the newest entry per page, ordered oldest-first."""
    newest: Dict[str, FeedEntry] = {}
    for entry in entries:
        current = newest.get(entry.title)
        if current is None or entry.revision_id > current.revision_id:
            newest[entry.title] = entry
    return sorted(newest.values(), key=lambda entry: entry.revision_id)


def mentions(diff: Any, name: Optional[str]) -> bool:
    """True when the readable diff mentions ``name`` (case-insensitive)."""
    if not name or not diff:
        return False
    return name.lower() in readable_diff(diff).lower()


async def _value(value: T) -> T:
    return value


__all__ = ["IngestionFilterPipeline", "latest_per_page", "mentions"]
