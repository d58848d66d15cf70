"""Conversion of MediaWiki HTML diff tables into compact readable text.

Output legend: two spaces for unchanged context, ``- `` for removed lines,
``+ `` for added lines, ``[[text]]`` for inline additions and ``~~text~~``
for inline removals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, List, Optional

MAX_CONTEXT = 2
MAX_LINES = 60
MAX_LINE_LENGTH = 500

_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class _DiffCell:
    side: str
    context: bool = False
    changed: bool = False
    chunks: List[str] = field(default_factory=list)

    def text(self) -> str:
        value = _WHITESPACE_RE.sub(" ", "".join(self.chunks)).strip()
        if len(value) > MAX_LINE_LENGTH:
            value = value[:MAX_LINE_LENGTH] + "..."
        return value


@dataclass
class _DiffRow:
    line_number: bool = False
    deleted: Optional[_DiffCell] = None
    added: Optional[_DiffCell] = None

    @property
    def is_context(self) -> bool:
        return bool(self.deleted and self.added and self.deleted.context and self.added.context)


class DiffTableParser(HTMLParser):
    """Collect the rows of a ``<table class="diff">`` body."""

    def __init__(self) -> None:
        super().__init__()
        self.rows: List[_DiffRow] = []
        self._row: Optional[_DiffRow] = None
        self._cell: Optional[_DiffCell] = None

    def handle_starttag(self, tag: str, attrs: List[tuple]) -> None:
        if tag == "tr":
            self._row = _DiffRow()
        elif tag == "td" and self._row is not None:
            classes = (dict(attrs).get("class") or "").split()
            if "diff-lineno" in classes:
                self._row.line_number = True
            elif "diff-side-deleted" in classes or "diff-side-added" in classes:
                side = "deleted" if "diff-side-deleted" in classes else "added"
                self._cell = _DiffCell(
                    side=side,
                    context="diff-context" in classes,
                    changed="diff-deletedline" in classes or "diff-addedline" in classes,
                )
        elif self._cell is not None and self._cell.changed:
            if tag == "ins":
                self._cell.chunks.append("[[")
            elif tag == "del":
                self._cell.chunks.append("~~")

    def handle_endtag(self, tag: str) -> None:
        if tag == "td" and self._cell is not None and self._row is not None:
            setattr(self._row, self._cell.side, self._cell)
            self._cell = None
        elif tag == "tr" and self._row is not None:
            self.rows.append(self._row)
            self._row = None
        elif self._cell is not None and self._cell.changed:
            if tag == "ins":
                self._cell.chunks.append("]]")
            elif tag == "del":
                self._cell.chunks.append("~~")

    def handle_data(self, data: str) -> None:
        if self._cell is not None:
            self._cell.chunks.append(data)


def readable_diff(diff_payload: Any) -> str:
    """Render a diff payload for prompts and text checks."""
    if not diff_payload or not isinstance(diff_payload, str):
        return "No changes visible"

    parser = DiffTableParser()
    parser.feed(f"<table>{diff_payload}</table>")
    parser.close()

    if not parser.rows:
        plain = _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", diff_payload)).strip()
        return plain[:MAX_LINE_LENGTH] if plain else "No changes visible"

    rows = [row for row in parser.rows if not row.line_number and row.deleted and row.added]
    lines: List[str] = []
    context_buffer: List[str] = []
    index = 0
    while index < len(rows):
        row = rows[index]
        if row.is_context:
            text = row.deleted.text()
            if text:
                context_buffer.append(f"  {text}")
                context_buffer = context_buffer[-MAX_CONTEXT:]
            index += 1
            continue

        if context_buffer:
            if lines:
                lines.append("")
            lines.extend(context_buffer)
            context_buffer = []

        if row.deleted.changed and row.deleted.text():
            lines.append(f"- {row.deleted.text()}")
        if row.added.changed and row.added.text():
            lines.append(f"+ {row.added.text()}")

        index += 1
        trailing = 0
        while index < len(rows) and trailing < MAX_CONTEXT and rows[index].is_context:
            text = rows[index].deleted.text()
            if text:
                lines.append(f"  {text}")
            trailing += 1
            index += 1

    if not lines:
        return "No significant changes detected in diff"

    if len(lines) > MAX_LINES:
        omitted = len(lines) - MAX_LINES
        lines = lines[:MAX_LINES] + [f"\n... ({omitted} more lines omitted)"]
    return "\n".join(lines)


__all__ = ["DiffTableParser", "readable_diff"]
