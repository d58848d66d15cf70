"""In-memory collaborators and builders shared by the test suite."""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

from wikitriage.triage.events import TriageListener
from wikitriage.triage.models import (
    AuthorInfo,
    ConsecutiveEdits,
    FeedEntry,
    PageInfo,
    PageMetadata,
    RevisionSummary,
    ScoringRequest,
    WorkItem,
)

EDIT_VERDICT = (
    '{"hasIssues": true, "probability": 85, "confidence": "high", '
    '"reasoning": "Replaced the lead with profanity", '
    '"issues": [{"type": "vandalism", "severity": "critical", "description": "profanity"}], '
    '"constructive": false, "summary": "Vandalism", "action": "rollback", '
    '"recommendation": "Rollback and warn"}'
)
NAME_VERDICT = (
    '{"shouldFlag": true, "confidence": 0.9, "violationType": "promotional", '
    '"reasoning": "Company name", "recommendation": "Report to UAA"}'
)


class FakeFeedClient:
    """Scriptable in-memory ``FeedClient``.

    ``batches`` are returned by successive ``poll_changes`` calls; an
    exception instance in the list is raised instead.
    """

    def __init__(self) -> None:
        self.batches: List[object] = []
        self.edit_count_map: Dict[str, Optional[int]] = {}
        self.blocked: Dict[str, bool] = {}
        self.talk_pages: Dict[str, str] = {}
        self.scores: Dict[int, float] = {}
        self.latest: Dict[str, int] = {}
        self.category_map: Dict[int, List[str]] = {}
        self.diffs: Dict[int, str] = {}
        self.reverts: Dict[str, int] = {}
        self.consecutive: Dict[str, ConsecutiveEdits] = {}
        self.failing: set = set()
        self.poll_calls: List[Optional[int]] = []

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    async def poll_changes(self, namespaces: Iterable[int], since: Optional[int] = None) -> List[FeedEntry]:
        self.poll_calls.append(since)
        if not self.batches:
            return []
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return list(batch)

    async def edit_counts(self, usernames):
        self._check("edit_counts")
        return {name: self.edit_count_map.get(name, 5) for name in usernames}

    async def blocked_status(self, usernames):
        self._check("blocked_status")
        return {name: self.blocked.get(name, False) for name in usernames}

    async def talk_page_text(self, username):
        self._check("talk_page_text")
        return self.talk_pages.get(username, "")

    async def page_metadata(self, title):
        self._check("page_metadata")
        return PageMetadata(date_format="dmy (day-month-year)")

    async def diff(self, title, old_revision_id, new_revision_id):
        self._check("diff")
        return self.diffs.get(new_revision_id, "")

    async def history(self, title):
        self._check("history")
        return [RevisionSummary(revision_id=1, title=title)]

    async def contributions(self, username):
        self._check("contributions")
        return []

    async def categories(self, revision_id):
        self._check("categories")
        return self.category_map.get(revision_id, [])

    async def latest_revision_ids(self, titles):
        self._check("latest_revision_ids")
        return {title: self.latest[title] for title in titles if title in self.latest}

    async def priority_scores(self, revision_ids):
        self._check("priority_scores")
        return {revision_id: self.scores.get(revision_id, 0.5) for revision_id in revision_ids}

    async def revert_count(self, title, username):
        self._check("revert_count")
        return self.reverts.get(title, 0)

    async def consecutive_edits(self, title, username):
        self._check("consecutive_edits")
        return self.consecutive.get(title, ConsecutiveEdits(count=1))


class FakeClassifierClient:
    """``ClassifierClient`` answering from a callable or fixed text.

    Set ``gate`` to an ``asyncio.Event`` to hold every request until it is set.
    """

    def __init__(self, response: object = EDIT_VERDICT) -> None:
        self.response = response
        self.requests: List[ScoringRequest] = []
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, request: ScoringRequest) -> str:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.response, Exception):
            raise self.response
        if callable(self.response):
            return self.response(request)
        return self.response


class RecordingListener(TriageListener):
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_queue_changed(self, active, cursor):
        self.events.append(("queue", [item.revision_id for item in active], cursor.revision_id if cursor else None))

    def on_item_removed(self, revision_id):
        self.events.append(("removed", revision_id))

    def on_enrichment_updated(self, revision_id, result):
        self.events.append(("enrichment", revision_id, result))

    def on_name_verdict(self, revision_id, verdict):
        self.events.append(("name", revision_id, verdict))

    def on_item_left(self, item):
        self.events.append(("left", item.revision_id))

    def on_feed_status(self, status):
        self.events.append(("status", status))

    def of(self, kind: str) -> List[tuple]:
        return [event for event in self.events if event[0] == kind]


def entry(revision_id: int, title: str = "Sandbox", author: str = "Newbie", **kwargs) -> FeedEntry:
    kwargs.setdefault("parent_id", revision_id - 1)
    kwargs.setdefault("old_size", 100)
    kwargs.setdefault("new_size", 120)
    return FeedEntry(revision_id=revision_id, title=title, author=author, **kwargs)


def make_item(
    revision_id: int,
    score: float = 0.5,
    title: Optional[str] = None,
    author: str = "Newbie",
    edit_count: Optional[int] = 5,
) -> WorkItem:
    return WorkItem(
        revision_id=revision_id,
        page=PageInfo(title=title or f"Page {revision_id}"),
        author=AuthorInfo(name=author, edit_count=edit_count),
        change_size=20,
        comment="test edit",
        priority_score=score,
    )
