"""Severity extraction from user talk-page wikitext.

Warnings are left on talk pages under a level-2 heading named after the
month they were issued (``== October 2026 ==``). Each substituted warning
template leaves a hidden marker such as ``<!-- Template:uw-vandalism3 -->``
whose numeric suffix is the tier. Only the current month's section counts
toward the author's severity.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple

from .models import WarningLevel, WarningRecord

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

HEADING_RE = re.compile(r"^==\s*([^=\n]+?)\s*==\s*$", re.MULTILINE)
TEMPLATE_MARKER_RE = re.compile(r"<!--\s*Template:([\w-]+?)(\d(?:i?m)?)\s*-->")
TIMESTAMP_RE = re.compile(r"(\d{2}:\d{2}.*?\d{4} \(UTC\))")
USER_LINK_RE = re.compile(r"\[\[User(?:[ _]talk)?:([^\]|]+)", re.IGNORECASE)
WIKILINK_RE = re.compile(r"\[\[([^\]]+?)\]\]")
HTML_TAG_RE = re.compile(r"<[^>]*>")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_section_name(moment: datetime) -> str:
    """Heading used for warnings issued in the month of ``moment``."""
    return f"{MONTH_NAMES[moment.month - 1]} {moment.year}"


class WarningLevelParser:
    """Reads the effective warning level and warning history of an author.

    Both operations are total: malformed or missing input yields level
    ``0`` and an empty history.

    Example:
        parser = WarningLevelParser()
        level = parser.extract_level(talk_page_text)
        if level.is_final:
            ...
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow

    def current_section_name(self) -> str:
        return month_section_name(self._clock())

    def extract_level(self, talk_page_text: Optional[str]) -> WarningLevel:
        try:
            section = self._current_section(talk_page_text)
            if section is None:
                return WarningLevel.NONE
            _, body = section
            levels = []
            for match in TEMPLATE_MARKER_RE.finditer(body):
                level = WarningLevel.from_marker(match.group(2))
                if level is not None:
                    levels.append(level)
            return WarningLevel.highest(levels)
        except Exception as exc:
            logger.warning(f"Could not read warning level from talk page: {exc}")
            return WarningLevel.NONE

    def extract_history(self, talk_page_text: Optional[str]) -> List[WarningRecord]:
        try:
            section = self._current_section(talk_page_text)
            if section is None:
                return []
            title, body = section
            return list(self._records(title, body))
        except Exception as exc:
            logger.warning(f"Could not read warning history from talk page: {exc}")
            return []

    def _current_section(self, text: Optional[str]) -> Optional[Tuple[str, str]]:
        if not isinstance(text, str) or not text:
            return None

        wanted = _normalize(self.current_section_name())
        headings = list(HEADING_RE.finditer(text))
        for index, heading in enumerate(headings):
            if _normalize(heading.group(1)) != wanted:
                continue
            end = headings[index + 1].start() if index + 1 < len(headings) else len(text)
            return heading.group(1).strip(), text[heading.end():end]
        return None

    def _records(self, section_title: str, body: str) -> Iterator[WarningRecord]:
        markers = list(TEMPLATE_MARKER_RE.finditer(body))
        for index, marker in enumerate(markers):
            level = WarningLevel.from_marker(marker.group(2))
            if level is None:
                continue

            end = markers[index + 1].start() if index + 1 < len(markers) else len(body)
            content = body[marker.end():end]

            timestamp = None
            timestamp_match = TIMESTAMP_RE.search(content)
            if timestamp_match:
                timestamp = HTML_TAG_RE.sub("", timestamp_match.group(1))

            username = None
            user_match = USER_LINK_RE.search(content)
            if user_match:
                username = user_match.group(1).strip()

            article = None
            link_match = WIKILINK_RE.search(content)
            if link_match:
                article = link_match.group(1).split("|", 1)[0].strip()

            yield WarningRecord(
                template=marker.group(1),
                level=level,
                section=section_title,
                timestamp=timestamp,
                username=username,
                article=article,
            )


def _normalize(heading: str) -> str:
    return " ".join(heading.split()).lower()


__all__ = ["WarningLevelParser", "month_section_name", "MONTH_NAMES"]
