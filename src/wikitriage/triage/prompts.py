"""Prompt and schema construction for classifier requests."""

from __future__ import annotations

import ipaddress
import textwrap
from enum import Enum
from typing import Any, Dict, Optional

from .diff_text import readable_diff
from .models import NameViolation, RecommendedAction, ScoringRequest, WarningLevel, WorkItem

NAMESPACE_NAMES: Dict[int, str] = {
    0: "Main",
    1: "Talk",
    2: "User",
    3: "User talk",
    4: "Project",
    5: "Project talk",
    6: "File",
    7: "File talk",
    8: "MediaWiki",
    9: "MediaWiki talk",
    10: "Template",
    11: "Template talk",
    12: "Help",
    13: "Help talk",
    14: "Category",
    15: "Category talk",
    100: "Portal",
    101: "Portal talk",
    118: "Draft",
    119: "Draft talk",
}

DEFAULT_LENIENCY = (
    "Article namespace - STRICT. Accuracy, neutrality and verifiability are required."
)
SANDBOX_LENIENCY = (
    "Sandbox - MAXIMUM LENIENCY. Experiments and unfinished content are expected; almost always approve."
)
TALK_LENIENCY = (
    "Discussion page - VERY LENIENT. Opinions and debate are normal; flag only attacks or harassment."
)
NAMESPACE_LENIENCY: Dict[str, str] = {
    "User": "Personal user space - EXTREMELY LENIENT. Flag only attack pages or severe violations.",
    "Project": "Policy and guideline space - MODERATE. Proposals are normal; watch for disruption.",
    "Draft": "Draft space - LENIENT. Missing sources and formatting are acceptable; flag only clear vandalism.",
    "File": "File description page - MODERATE. Check copyright claims and descriptions.",
    "Template": "Template page - MODERATE. Watch for vandalism that breaks transclusions.",
    "Category": "Category page - MODERATE. Watch for inappropriate categorisation.",
    "MediaWiki": "Interface messages - STRICT. Changes affect every reader.",
}

ISSUE_TYPES = [
    "vandalism", "spam", "pov", "unsourced", "attack",
    "copyright", "disruptive", "factual-error", "policy", "username",
]

EDIT_VERDICT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "hasIssues": {"type": "boolean"},
        "probability": {"type": "number", "minimum": 0, "maximum": 100},
        "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
        "reasoning": {"type": "string"},
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ISSUE_TYPES},
                    "severity": {"type": "string", "enum": ["critical", "major", "minor"]},
                    "description": {"type": "string"},
                },
                "required": ["type", "severity", "description"],
            },
        },
        "constructive": {"type": "boolean"},
        "summary": {"type": "string"},
        "action": {"type": "string", "enum": [action.value for action in RecommendedAction]},
        "recommendation": {"type": "string"},
    },
    "required": [
        "hasIssues", "probability", "confidence", "reasoning", "issues",
        "constructive", "summary", "action", "recommendation",
    ],
}

NAME_VERDICT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "shouldFlag": {"type": "boolean"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "violationType": {"type": "string", "enum": [kind.value for kind in NameViolation]},
        "reasoning": {"type": "string"},
        "recommendation": {"type": "string"},
    },
    "required": ["shouldFlag", "confidence", "violationType", "reasoning", "recommendation"],
}


class AuthorProfile(str, Enum):
    """Experience bucket used to calibrate how much benefit of the doubt to give."""

    ANONYMOUS = "anonymous"
    BRAND_NEW = "brand-new"
    VERY_NEW = "very-new"
    NEW = "new"
    INTERMEDIATE = "intermediate"
    EXPERIENCED = "experienced"

    @property
    def description(self) -> str:
        return _PROFILE_DESCRIPTIONS[self]


_PROFILE_DESCRIPTIONS = {
    AuthorProfile.ANONYMOUS: "Temporary or logged-out editor. Higher vandalism rate, but judge the edit, not the editor.",
    AuthorProfile.BRAND_NEW: "Brand new account with no edits yet. Could be a newcomer or a throwaway; extra scrutiny.",
    AuthorProfile.VERY_NEW: "Very new account (under 10 edits). Still learning; assume good faith unless clearly malicious.",
    AuthorProfile.NEW: "New account (under 50 edits). Minor mistakes expected, likely good faith.",
    AuthorProfile.INTERMEDIATE: "Intermediate editor (50-500 edits). Should know the basic policies.",
    AuthorProfile.EXPERIENCED: "Experienced editor (500+ edits). Trust their judgement unless clearly problematic.",
}

_WARNING_CONTEXT = {
    WarningLevel.NONE: "No warnings this month.",
    WarningLevel.LEVEL_1: "One level-1 warning this month; still assume good faith.",
    WarningLevel.LEVEL_2: "Level-2 warning this month; a pattern may be emerging.",
    WarningLevel.LEVEL_3: "Level-3 warning this month; further vandalism likely leads to a block.",
    WarningLevel.LEVEL_4: "Final warning given this month; further vandalism warrants an AIV report.",
    WarningLevel.LEVEL_4_IMMEDIATE: "Only-warning (4im) given this month; further vandalism warrants an AIV report.",
}


def is_temporary_account(username: str) -> bool:
    """True for IP editors and MediaWiki temporary accounts (``~2026-...``)."""
    if not username:
        return False
    if username.startswith("~"):
        return True
    try:
        ipaddress.ip_address(username)
    except ValueError:
        return False
    return True


def author_profile(username: str, edit_count: Optional[int]) -> AuthorProfile:
    if is_temporary_account(username) or edit_count is None:
        return AuthorProfile.ANONYMOUS
    if edit_count <= 0:
        return AuthorProfile.BRAND_NEW
    if edit_count < 10:
        return AuthorProfile.VERY_NEW
    if edit_count < 50:
        return AuthorProfile.NEW
    if edit_count < 500:
        return AuthorProfile.INTERMEDIATE
    return AuthorProfile.EXPERIENCED


def is_sandbox(title: str) -> bool:
    lowered = title.lower()
    return "/sandbox" in lowered or lowered.endswith(":sandbox")


def namespace_name(namespace: int) -> str:
    return NAMESPACE_NAMES.get(namespace, str(namespace))


def leniency_hint(title: str, namespace: int) -> str:
    if is_sandbox(title):
        return SANDBOX_LENIENCY
    if namespace % 2 == 1:
        return TALK_LENIENCY
    return NAMESPACE_LENIENCY.get(namespace_name(namespace), DEFAULT_LENIENCY)


def build_edit_prompt(item: WorkItem, diff_text: Optional[str] = None) -> str:
    author = item.author
    profile = author_profile(author.name, author.edit_count)
    diff_text = diff_text if diff_text is not None else readable_diff(item.diff)
    sign = "+" if item.change_size > 0 else ""
    temporary = " (temporary account)" if profile is AuthorProfile.ANONYMOUS else ""
    edits = "unknown" if author.edit_count is None else str(author.edit_count)

    header = textwrap.dedent(
        f"""\
        You are an experienced wiki recent-changes patroller. Judge the edit below and
        answer with exactly one JSON object matching the provided schema. Default to
        "approve" unless there is clear evidence of vandalism, a policy violation or
        harmful content.

        EDIT
        Page:        "{item.page.title}"
        Namespace:   {namespace_name(item.page.namespace)} - {leniency_hint(item.page.title, item.page.namespace)}
        Editor:      {author.name}{temporary}, {edits} edits
        Profile:     {profile.description}
        Warnings:    {_WARNING_CONTEXT[author.current_severity]}
        Summary:     "{item.comment or 'No summary'}"
        Size change: {sign}{item.change_size} bytes
        Risk score:  {item.priority_score * 100:.1f}%
        BLP:         {"yes" if item.is_blp else "no"}
        """
    )
    rules = textwrap.dedent(
        """\
        Diff legend: two spaces = context, "- " removed, "+ " added,
        [[text]] inline addition, ~~text~~ inline removal.

        Rules, in order:
        1. Respect the namespace leniency above. Talk, user, draft and sandbox pages
           tolerate opinion and missing citations.
        2. Profanity, gibberish, graffiti, unexplained blanking, obvious hoaxes or a
           summary that hides a much larger change mean rollback.
        3. Poor style, plausible unsourced claims (outside BLPs) and formatting fixes
           are not vandalism.
        4. Compare the summary with the byte delta: "typo" should be tiny.

        Actions: approve (default), thank, welcome (good edit by a new account),
        warn, warn-and-revert, rollback, report-aiv, review (only when the diff cannot
        be judged). Quote the problematic text in each issue description and give a
        one-line recommendation.
        """
    )
    return f"{header}\nDiff:\n{diff_text}\n\n{rules}"


def build_name_prompt(username: str, page_context: str) -> str:
    return textwrap.dedent(
        f"""\
        Decide whether this wiki username breaks the username policy and answer with
        exactly one JSON object matching the provided schema.

        Username: {username}
        Editing:  {page_context}
        (Use the page only to detect promotional names.)

        Flag: promotional names (companies, products, websites), impersonation of
        real people or officials, offensive names, confusing names and names implying
        a shared or role account. Personal names, creative combinations, interests,
        numbers and non-English names are acceptable. Be conservative: when in doubt,
        do not flag.

        Confidence: 0.9-1.0 obvious, 0.7-0.9 strong, 0.5-0.7 borderline, below 0.5
        acceptable.
        """
    )


def edit_scoring_request(item: WorkItem, options: Optional[Dict[str, Any]] = None) -> ScoringRequest:
    return ScoringRequest(prompt=build_edit_prompt(item), schema=EDIT_VERDICT_SCHEMA, options=dict(options or {}))


def name_scoring_request(username: str, page_context: str, options: Optional[Dict[str, Any]] = None) -> ScoringRequest:
    return ScoringRequest(
        prompt=build_name_prompt(username, page_context),
        schema=NAME_VERDICT_SCHEMA,
        options=dict(options or {}),
    )


__all__ = [
    "AuthorProfile",
    "EDIT_VERDICT_SCHEMA",
    "NAME_VERDICT_SCHEMA",
    "author_profile",
    "build_edit_prompt",
    "build_name_prompt",
    "edit_scoring_request",
    "is_sandbox",
    "is_temporary_account",
    "leniency_hint",
    "name_scoring_request",
    "namespace_name",
]
