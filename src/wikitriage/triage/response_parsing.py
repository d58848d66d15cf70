"""Recovery of structured verdicts from loosely formatted model output.

The classifier is asked for a single JSON object, but local models wrap
it in prose, fence it in markdown, add comments or stop mid-object when
they hit the token limit. The helpers here dig the object out and, when
that fails, fall back to a keyword sniff so callers always get a result.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from .models import ConfidenceTier, EnrichmentResult, NameVerdict, RecommendedAction

logger = logging.getLogger(__name__)

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
PROBLEM_KEYWORDS = ("issue", "problem", "vandalism")

_CLOSERS = {"{": "}", "[": "]"}


def extract_json_object(text: str) -> str:
    """Return the first balanced JSON object in ``text``.

    Scans from the first ``{`` tracking brace/bracket depth and skipping
    quoted strings. If the text ends before the object closes, the missing
    closers are appended in nesting order.
    """
    fenced = FENCED_JSON_RE.search(text)
    if fenced:
        return fenced.group(1)

    start = text.find("{")
    if start == -1:
        return text.strip()

    stack: List[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if stack and stack[-1] == char:
                stack.pop()
            if not stack:
                return text[start:index + 1]

    # Truncated mid-object
    repaired = text[start:]
    if in_string:
        repaired += '"'
    repaired = repaired.rstrip().rstrip(",")
    return repaired + "".join(reversed(stack))


def strip_comments(text: str) -> str:
    """Remove ``//`` line comments outside strings and ``/* */`` blocks."""
    lines = []
    for line in text.split("\n"):
        in_string = False
        cut = len(line)
        for index, char in enumerate(line):
            if char == '"' and (index == 0 or line[index - 1] != "\\"):
                in_string = not in_string
            elif not in_string and char == "/" and line[index + 1:index + 2] == "/":
                cut = index
                break
        lines.append(line[:cut])
    return BLOCK_COMMENT_RE.sub("", "\n".join(lines))


def parse_verdict(raw: Any) -> Dict[str, Any]:
    """Parse a raw classifier payload into a dict.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    if isinstance(raw, dict):
        if "content" not in raw:
            return raw
        raw = raw["content"]
    text = raw if isinstance(raw, str) else str(raw)

    candidate = strip_comments(extract_json_object(text.strip()))
    parsed = json.loads(candidate)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def sniff_issues(raw: Any) -> bool:
    lowered = str(raw).lower()
    return any(keyword in lowered for keyword in PROBLEM_KEYWORDS)


def parse_edit_response(raw: Any) -> EnrichmentResult:
    """Turn a classifier payload into an EnrichmentResult; never raises."""
    raw_text = raw if isinstance(raw, str) else str(raw)
    try:
        verdict = parse_verdict(raw)
        return EnrichmentResult.from_verdict(verdict, raw_response=raw_text)
    except (ValueError, TypeError) as exc:
        logger.warning(f"Failed to parse classifier response, falling back to keyword sniff: {exc}")
        has_issues = sniff_issues(raw_text)
        return EnrichmentResult(
            has_issues=has_issues,
            probability=50 if has_issues else 10,
            confidence=ConfidenceTier.LOW,
            summary="Potential issues detected (parsing failed)" if has_issues else "No clear issues detected",
            action=RecommendedAction.REVIEW,
            recommendation="Manual review recommended due to parsing error",
            raw_response=raw_text,
            parse_error=str(exc),
        )


def parse_name_response(raw: Any) -> NameVerdict:
    try:
        return NameVerdict.from_verdict(parse_verdict(raw))
    except (ValueError, TypeError) as exc:
        logger.warning(f"Failed to parse username verdict: {exc}")
        return NameVerdict(
            reasoning="Could not parse classifier response",
            recommendation="Manual review recommended due to parsing error",
            error=str(exc),
        )


def describe_raw(raw: Optional[str], limit: int = 200) -> str:
    """Short single-line preview of a payload for log messages."""
    if not raw:
        return "<empty>"
    flat = " ".join(raw.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."


__all__ = [
    "describe_raw",
    "extract_json_object",
    "parse_edit_response",
    "parse_name_response",
    "parse_verdict",
    "sniff_issues",
    "strip_comments",
]
