"""Collaborator contracts consumed by the triage core.

The core never talks to the network directly. It depends on these two
narrow protocols so that the MediaWiki and Ollama implementations can be
swapped for fakes in tests or for other backends.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from ..triage.models import (
    ConsecutiveEdits,
    FeedEntry,
    PageMetadata,
    RevisionSummary,
    ScoringRequest,
)


@runtime_checkable
class FeedClient(Protocol):
    """Read-only access to the wiki's change feed and page/user facts.

    Batch methods take an iterable and return a mapping; names or ids the
    backend does not know are simply absent from the mapping.
    """

    async def poll_changes(self, namespaces: Iterable[int], since: Optional[int] = None) -> List[FeedEntry]:
        ...

    async def edit_counts(self, usernames: Iterable[str]) -> Dict[str, Optional[int]]:
        ...

    async def blocked_status(self, usernames: Iterable[str]) -> Dict[str, bool]:
        ...

    async def talk_page_text(self, username: str) -> str:
        ...

    async def page_metadata(self, title: str) -> PageMetadata:
        ...

    async def diff(self, title: str, old_revision_id: int, new_revision_id: int) -> Any:
        ...

    async def history(self, title: str) -> List[RevisionSummary]:
        ...

    async def contributions(self, username: str) -> List[RevisionSummary]:
        ...

    async def categories(self, revision_id: int) -> List[str]:
        ...

    async def latest_revision_ids(self, titles: Iterable[str]) -> Dict[str, int]:
        ...

    async def priority_scores(self, revision_ids: Iterable[int]) -> Dict[int, float]:
        ...

    async def revert_count(self, title: str, username: str) -> int:
        ...

    async def consecutive_edits(self, title: str, username: str) -> ConsecutiveEdits:
        ...


@runtime_checkable
class ClassifierClient(Protocol):
    """Request/response access to an external scoring model."""

    async def generate(self, request: ScoringRequest) -> str:
        """Return the raw text of the model's answer.

        Raises:
            ClassifierError: If the endpoint fails or answers with nothing.
        """
        ...


__all__ = ["ClassifierClient", "FeedClient", "ScoringRequest"]
