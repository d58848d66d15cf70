"""MediaWiki action API feed client.

Implements ``FeedClient`` with read-only queries against ``api.php``
(recent changes, users, blocks, revisions, compare, parse, usercontribs)
plus ORES ``goodfaith`` scores exposed through ``prop=revisions``.
Every transport or HTTP failure surfaces as ``FeedUnavailableError``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import httpx

from ..triage.exceptions import FeedUnavailableError
from ..triage.models import ConsecutiveEdits, FeedEntry, PageMetadata, RevisionSummary

logger = logging.getLogger(__name__)

REVERT_TAGS = {"mw-undo", "mw-rollback", "mw-manual-revert"}
MAX_TITLES_PER_REQUEST = 50
HISTORY_COUNT = 10
CONTRIBUTION_COUNT = 10

DATE_FORMAT_TEMPLATES = [
    (re.compile(r"\{\{Use dmy dates", re.I), "dmy (day-month-year)"),
    (re.compile(r"\{\{Use mdy dates", re.I), "mdy (month-day-year)"),
    (re.compile(r"\{\{Use ymd dates", re.I), "ymd (year-month-day)"),
]
VARIANT_TEMPLATES = [
    (re.compile(rf"\{{\{{Use {variant} English", re.I), f"{variant} English")
    for variant in (
        "British", "American", "Canadian", "Australian", "New Zealand",
        "Irish", "South African", "Indian", "Hong Kong", "Singapore",
    )
]
USE_TEMPLATE_RE = re.compile(r"\{\{Use ([^}|]+)(?:\|[^}]*)?\}\}", re.I)


class MediaWikiFeedClient:
    """Async read-only client for one wiki.

    Example:
        async with MediaWikiFeedClient("https://en.wikipedia.org/w/api.php") as feed:
            entries = await feed.poll_changes([0, 1])
    """

    def __init__(
        self,
        api_url: str,
        user_agent: str = "wikitriage/0.1",
        timeout: float = 30.0,
        batch_limit: int = 50,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.batch_limit = batch_limit
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[httpx.AsyncClient] = None) -> "MediaWikiFeedClient":
        return cls(
            api_url=settings.api_url,
            user_agent=settings.user_agent,
            timeout=settings.request_timeout,
            batch_limit=settings.batch_limit,
            client=client,
        )

    async def _get(self, **params: Any) -> Dict[str, Any]:
        query = {"format": "json", "formatversion": 2}
        for key, value in params.items():
            encoded = _encode(value)
            if encoded is not None:
                query[key] = encoded
        try:
            response = await self._client.get(self.api_url, params=query, headers=self.headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise FeedUnavailableError(f"MediaWiki API returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise FeedUnavailableError(f"MediaWiki API request failed: {e}") from e

        if "error" in data:
            error = data["error"]
            raise FeedUnavailableError(f"MediaWiki API error {error.get('code')}: {error.get('info')}")
        return data

    # ------------------------------------------------------------------- feed

    async def poll_changes(self, namespaces: Iterable[int], since: Optional[int] = None) -> List[FeedEntry]:
        data = await self._get(
            action="query",
            list="recentchanges",
            rcnamespace=list(namespaces),
            rclimit=self.batch_limit,
            rcprop="title|ids|sizes|flags|user|tags|comment|timestamp",
            rctype="edit",
        )
        entries = []
        for change in data.get("query", {}).get("recentchanges", []):
            revision_id = change.get("revid")
            if not revision_id or "user" not in change:
                logger.warning(f"Skipping malformed recent change: {change}")
                continue
            if since is not None and revision_id <= since:
                continue
            entries.append(
                FeedEntry(
                    revision_id=revision_id,
                    title=change.get("title", ""),
                    author=change["user"],
                    namespace=change.get("ns", 0),
                    parent_id=change.get("old_revid", 0) or 0,
                    timestamp=change.get("timestamp"),
                    comment=change.get("comment", ""),
                    minor=bool(change.get("minor", False)),
                    tags=list(change.get("tags", [])),
                    old_size=change.get("oldlen"),
                    new_size=change.get("newlen"),
                )
            )
        return entries

    # ------------------------------------------------------------------ users

    async def edit_counts(self, usernames: Iterable[str]) -> Dict[str, Optional[int]]:
        counts: Dict[str, Optional[int]] = {}
        for chunk in _chunks(list(usernames), MAX_TITLES_PER_REQUEST):
            data = await self._get(action="query", list="users", ususers=chunk, usprop="editcount")
            for user in data.get("query", {}).get("users", []):
                counts[user.get("name", "")] = user.get("editcount")
        return counts

    async def blocked_status(self, usernames: Iterable[str]) -> Dict[str, bool]:
        names = list(usernames)
        blocked = {name: False for name in names}
        for chunk in _chunks(names, MAX_TITLES_PER_REQUEST):
            data = await self._get(action="query", list="blocks", bkusers=chunk, bkprop="id|user|expiry")
            for block in data.get("query", {}).get("blocks", []):
                if block.get("user") in blocked:
                    blocked[block["user"]] = not block.get("partial", False)
        return blocked

    async def talk_page_text(self, username: str) -> str:
        data = await self._get(
            action="query",
            prop="revisions",
            titles=f"User talk:{username}",
            rvprop="content",
            rvslots="main",
        )
        pages = data.get("query", {}).get("pages", [])
        if not pages or pages[0].get("missing"):
            return ""
        revisions = pages[0].get("revisions") or []
        if not revisions:
            return ""
        return revisions[0].get("slots", {}).get("main", {}).get("content", "")

    async def contributions(self, username: str) -> List[RevisionSummary]:
        data = await self._get(
            action="query",
            list="usercontribs",
            ucuser=username,
            uclimit=CONTRIBUTION_COUNT,
            ucprop="title|ids|timestamp|comment|flags|sizediff|tags",
        )
        return [
            RevisionSummary(
                revision_id=contrib.get("revid", 0),
                parent_id=contrib.get("parentid", 0),
                title=contrib.get("title"),
                author=username,
                timestamp=contrib.get("timestamp"),
                comment=contrib.get("comment", ""),
                size_delta=contrib.get("sizediff"),
                minor=bool(contrib.get("minor", False)),
                tags=list(contrib.get("tags", [])),
            )
            for contrib in data.get("query", {}).get("usercontribs", [])
        ]

    # ------------------------------------------------------------------ pages

    async def page_metadata(self, title: str) -> PageMetadata:
        data = await self._get(action="parse", page=title, prop="wikitext")
        return parse_page_metadata(data.get("parse", {}).get("wikitext", ""))

    async def diff(self, title: str, old_revision_id: int, new_revision_id: int) -> Any:
        if not old_revision_id:
            # Page creation: there is nothing to compare against
            return await self._revision_content(new_revision_id)
        data = await self._get(action="compare", fromrev=old_revision_id, torev=new_revision_id, prop="diff")
        return data.get("compare", {}).get("body")

    async def history(self, title: str) -> List[RevisionSummary]:
        revisions = await self._revisions(
            title,
            rvprop="ids|timestamp|comment|flags|user|tags|size",
            rvlimit=HISTORY_COUNT + 1,
        )
        summaries = []
        for index, revision in enumerate(revisions[:HISTORY_COUNT]):
            size = revision.get("size")
            if index + 1 < len(revisions):
                delta = (size or 0) - (revisions[index + 1].get("size") or 0)
            else:
                delta = size
            summaries.append(
                RevisionSummary(
                    revision_id=revision.get("revid", 0),
                    parent_id=revision.get("parentid", 0),
                    title=title,
                    author=revision.get("user"),
                    timestamp=revision.get("timestamp"),
                    comment=revision.get("comment", ""),
                    size=size,
                    size_delta=delta,
                    minor=bool(revision.get("minor", False)),
                    tags=list(revision.get("tags", [])),
                )
            )
        return summaries

    async def categories(self, revision_id: int) -> List[str]:
        data = await self._get(action="query", prop="categories", revids=revision_id, cllimit="max")
        pages = data.get("query", {}).get("pages", [])
        if not pages:
            return []
        return [category.get("title", "") for category in pages[0].get("categories", [])]

    async def latest_revision_ids(self, titles: Iterable[str]) -> Dict[str, int]:
        latest: Dict[str, int] = {}
        for chunk in _chunks(list(titles), MAX_TITLES_PER_REQUEST):
            data = await self._get(action="query", prop="revisions", titles=chunk, rvprop="ids")
            query = data.get("query", {})
            renamed = {item["to"]: item["from"] for item in query.get("normalized", [])}
            for page in query.get("pages", []):
                revisions = page.get("revisions") or []
                if revisions and "title" in page:
                    title = renamed.get(page["title"], page["title"])
                    latest[title] = revisions[0]["revid"]
        return latest

    async def priority_scores(self, revision_ids: Iterable[int]) -> Dict[int, float]:
        """ORES ``goodfaith`` false-probability per revision (0 when unscored)."""
        scores: Dict[int, float] = {}
        for chunk in _chunks(list(revision_ids), MAX_TITLES_PER_REQUEST):
            data = await self._get(
                action="query",
                prop="revisions",
                revids=chunk,
                rvprop="oresscores|ids",
                rvslots="*",
            )
            for page in data.get("query", {}).get("pages", []):
                for revision in page.get("revisions", []):
                    ores = revision.get("oresscores") or {}
                    goodfaith = ores.get("goodfaith") or {}
                    scores[revision["revid"]] = float(goodfaith.get("false", 0.0))
        return scores

    async def revert_count(self, title: str, username: str) -> int:
        since = datetime.now(timezone.utc) - timedelta(days=1)
        revisions = await self._revisions(
            title,
            rvstart=since.strftime("%Y-%m-%dT%H:%M:%SZ"),
            rvdir="newer",
            rvuser=username,
            rvprop="timestamp|tags",
            rvlimit="max",
        )
        return sum(1 for revision in revisions if REVERT_TAGS.intersection(revision.get("tags", [])))

    async def consecutive_edits(self, title: str, username: str) -> ConsecutiveEdits:
        """Walk the page history back until someone other than ``username`` edited."""
        result = ConsecutiveEdits()
        continuation: Dict[str, Any] = {}
        previous_size: Optional[int] = None
        while True:
            data = await self._get(
                action="query",
                prop="revisions",
                titles=title,
                rvprop="ids|timestamp|user|size",
                rvlimit=10,
                **continuation,
            )
            pages = data.get("query", {}).get("pages", [])
            revisions = pages[0].get("revisions", []) if pages else []
            more = data.get("continue")

            for revision in revisions:
                size = revision.get("size") or 0
                if previous_size is not None:
                    result.total_size_delta += previous_size - size
                if revision.get("user") != username:
                    result.prior_revision_id = revision.get("revid")
                    return result
                if result.newest_revision_id is None:
                    result.newest_revision_id = revision.get("revid")
                result.count += 1
                result.oldest_timestamp = revision.get("timestamp")
                previous_size = size

            if not more or not revisions:
                # History exhausted: the streak starts at page creation
                if previous_size is not None:
                    result.total_size_delta += previous_size
                result.page_created = result.count > 0
                return result
            continuation = dict(more)

    async def _revisions(self, title: str, **params: Any) -> List[Dict[str, Any]]:
        data = await self._get(action="query", prop="revisions", titles=title, **params)
        pages = data.get("query", {}).get("pages", [])
        if not pages:
            return []
        return pages[0].get("revisions") or []

    async def _revision_content(self, revision_id: int) -> str:
        data = await self._get(action="query", prop="revisions", revids=revision_id, rvprop="content", rvslots="main")
        pages = data.get("query", {}).get("pages", [])
        for page in pages:
            for revision in page.get("revisions", []):
                return revision.get("slots", {}).get("main", {}).get("content", "")
        return ""

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "MediaWikiFeedClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def parse_page_metadata(wikitext: str) -> PageMetadata:
    """Read ``{{Use ...}}`` locale templates from page wikitext."""
    metadata = PageMetadata()
    for pattern, value in DATE_FORMAT_TEMPLATES:
        if pattern.search(wikitext):
            metadata.date_format = value
            break
    for pattern, value in VARIANT_TEMPLATES:
        if pattern.search(wikitext):
            metadata.language_variant = value
            break

    known = DATE_FORMAT_TEMPLATES + VARIANT_TEMPLATES
    for match in USE_TEMPLATE_RE.finditer(wikitext):
        if not any(pattern.search(match.group(0)) for pattern, _ in known):
            metadata.other_templates.append(match.group(1).strip())
    return metadata


def _encode(value: Any) -> Any:
    if isinstance(value, (list, tuple, set)):
        return "|".join(str(item) for item in value)
    if isinstance(value, bool):
        return "1" if value else None
    return value


def _chunks(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


__all__ = ["MediaWikiFeedClient", "parse_page_metadata"]
