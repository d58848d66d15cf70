"""Domain models for the moderation triage engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator


class WarningLevel(str, Enum):
    """Talk-page warning tier, ordered by an explicit rank table."""

    NONE = "0"
    LEVEL_1 = "1"
    LEVEL_2 = "2"
    LEVEL_3 = "3"
    LEVEL_4 = "4"
    LEVEL_4_IMMEDIATE = "4im"

    @property
    def rank(self) -> int:
        return _WARNING_LEVEL_RANKS[self]

    @property
    def is_final(self) -> bool:
        return self.rank >= _WARNING_LEVEL_RANKS[WarningLevel.LEVEL_4]

    @classmethod
    def from_marker(cls, marker: str) -> Optional["WarningLevel"]:
        """Map a template suffix such as ``"3"`` or ``"4im"`` to a level.

        Returns None for suffixes that are not warning tiers.
        """
        marker = marker.strip().lower()
        if not marker:
            return None
        digit, rest = marker[0], marker[1:]
        if rest in ("im", "m", "-immediate"):
            return cls.LEVEL_4_IMMEDIATE if digit == "4" else None
        if rest:
            return None
        try:
            level = cls(digit)
        except ValueError:
            return None
        return level

    @classmethod
    def highest(cls, levels: Iterable["WarningLevel"]) -> "WarningLevel":
        """Return the maximum level by rank, or NONE for an empty input."""
        return max(levels, key=lambda level: level.rank, default=cls.NONE)


_WARNING_LEVEL_RANKS: Dict[WarningLevel, int] = {
    WarningLevel.NONE: 0,
    WarningLevel.LEVEL_1: 1,
    WarningLevel.LEVEL_2: 2,
    WarningLevel.LEVEL_3: 3,
    WarningLevel.LEVEL_4: 4,
    WarningLevel.LEVEL_4_IMMEDIATE: 5,
}


@dataclass(slots=True)
class WarningRecord:
    """One warning template found in the current month's talk-page section."""

    template: str
    level: WarningLevel
    section: str
    timestamp: Optional[str] = None
    username: Optional[str] = None
    article: Optional[str] = None


@dataclass(slots=True)
class FeedEntry:
    """A raw row from the recent-changes feed."""

    revision_id: int
    title: str
    author: str
    namespace: int = 0
    parent_id: int = 0
    timestamp: Optional[str] = None
    comment: str = ""
    minor: bool = False
    tags: List[str] = field(default_factory=list)
    old_size: Optional[int] = None
    new_size: Optional[int] = None
    size_delta: Optional[int] = None

    @property
    def change_size(self) -> int:
        if self.new_size is not None and self.old_size is not None:
            return self.new_size - self.old_size
        return self.size_delta or 0


@dataclass(slots=True)
class RevisionSummary:
    """Short description of a revision used for history and contribution lists."""

    revision_id: int
    parent_id: int = 0
    title: Optional[str] = None
    author: Optional[str] = None
    timestamp: Optional[str] = None
    comment: str = ""
    size: Optional[int] = None
    size_delta: Optional[int] = None
    minor: bool = False
    tags: List[str] = field(default_factory=list)


@dataclass(slots=True)
class PageMetadata:
    """Locale hints read from ``{{Use ...}}`` templates on the page."""

    date_format: str = "Unknown"
    language_variant: str = "Unknown"
    other_templates: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ConsecutiveEdits:
    """Streak of edits by one author at the top of a page's history."""

    count: int = 0
    total_size_delta: int = 0
    newest_revision_id: Optional[int] = None
    oldest_timestamp: Optional[str] = None
    prior_revision_id: Optional[int] = None
    page_created: bool = False


@dataclass(slots=True)
class PageInfo:
    title: str
    namespace: int = 0
    history: List[RevisionSummary] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    date_format: str = "Unknown"
    language_variant: str = "Unknown"

    @property
    def is_talk(self) -> bool:
        return self.namespace % 2 == 1


@dataclass(slots=True)
class AuthorInfo:
    name: str
    edit_count: Optional[int] = None
    current_severity: WarningLevel = WarningLevel.NONE
    admission_severity: WarningLevel = WarningLevel.NONE
    blocked: bool = False
    empty_talk_page: bool = False
    contributions: List[RevisionSummary] = field(default_factory=list)
    warning_history: List[WarningRecord] = field(default_factory=list)


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendedAction(str, Enum):
    APPROVE = "approve"
    THANK = "thank"
    REVIEW = "review"
    WARN = "warn"
    WARN_AND_REVERT = "warn-and-revert"
    ROLLBACK = "rollback"
    REPORT_AIV = "report-aiv"
    WELCOME = "welcome"


class NameViolation(str, Enum):
    PROMOTIONAL = "promotional"
    IMPERSONATION = "impersonation"
    OFFENSIVE = "offensive"
    CONFUSING = "confusing"
    SHARED = "shared"
    NONE = "none"


class VerdictIssue(BaseModel):
    """A single problem the classifier found in an edit."""

    type: str = "policy"
    severity: str = "minor"
    description: str = ""


class EnrichmentResult(BaseModel):
    """Classifier verdict for one edit.

    Fields are lenient: unknown enum values fall back to the safe default
    so that a sloppy model answer still produces a usable result.
    """

    has_issues: bool = False
    probability: float = 0.0
    confidence: ConfidenceTier = ConfidenceTier.LOW
    reasoning: str = ""
    issues: List[VerdictIssue] = Field(default_factory=list)
    constructive: bool = True
    summary: str = "No issues detected"
    action: RecommendedAction = RecommendedAction.REVIEW
    recommendation: str = "No specific recommendation"
    raw_response: Optional[str] = None
    parse_error: Optional[str] = None
    error: Optional[str] = None

    @field_validator("probability", mode="before")
    @classmethod
    def _clamp_probability(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return min(max(number, 0.0), 100.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in {tier.value for tier in ConfidenceTier}:
            return value.lower()
        return ConfidenceTier.LOW

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in {action.value for action in RecommendedAction}:
            return value.lower()
        return RecommendedAction.REVIEW

    @field_validator("issues", mode="before")
    @classmethod
    def _drop_malformed_issues(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [issue for issue in value if isinstance(issue, dict)]

    @classmethod
    def from_verdict(cls, verdict: Dict[str, Any], raw_response: Optional[str] = None) -> "EnrichmentResult":
        """Build a result from the classifier's camelCase verdict object."""
        return cls(
            has_issues=bool(verdict.get("hasIssues", False)),
            probability=verdict.get("probability", 0),
            confidence=verdict.get("confidence", "low"),
            reasoning=str(verdict.get("reasoning") or ""),
            issues=verdict.get("issues") or [],
            constructive=bool(verdict.get("constructive", True)),
            summary=str(verdict.get("summary") or "No issues detected"),
            action=verdict.get("action", "review"),
            recommendation=str(verdict.get("recommendation") or "No specific recommendation"),
            raw_response=raw_response,
        )

    @classmethod
    def degraded(cls, error: str) -> "EnrichmentResult":
        """Result used when the classifier could not be reached."""
        return cls(
            has_issues=False,
            confidence=ConfidenceTier.LOW,
            summary="Analysis failed",
            recommendation="Manual review recommended",
            error=error,
        )


class NameVerdict(BaseModel):
    """Classifier verdict on whether an author name breaks naming policy."""

    should_flag: bool = False
    confidence: float = 0.0
    violation_type: NameViolation = NameViolation.NONE
    reasoning: str = ""
    recommendation: str = ""
    cancelled: bool = False
    error: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return min(max(number, 0.0), 1.0)

    @field_validator("violation_type", mode="before")
    @classmethod
    def _coerce_violation(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in {kind.value for kind in NameViolation}:
            return value.lower()
        return NameViolation.NONE

    @classmethod
    def from_verdict(cls, verdict: Dict[str, Any]) -> "NameVerdict":
        return cls(
            should_flag=bool(verdict.get("shouldFlag", False)),
            confidence=verdict.get("confidence", 0),
            violation_type=verdict.get("violationType", "none"),
            reasoning=str(verdict.get("reasoning") or ""),
            recommendation=str(verdict.get("recommendation") or ""),
        )


@dataclass(slots=True)
class ScoringRequest:
    """One request to the classifier: a prompt plus the JSON schema to answer in."""

    prompt: str
    schema: Dict[str, Any]
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkItem:
    """The unit of triage: one admitted revision plus everything known about it.

    ``revision_id`` is the identity used for dedup and cancellation.
    ``enrichment``, ``name_verdict`` and ``consecutive`` are filled in
    asynchronously after admission.
    """

    revision_id: int
    page: PageInfo
    author: AuthorInfo
    change_size: int = 0
    comment: str = ""
    minor: bool = False
    tags: List[str] = field(default_factory=list)
    diff: Any = None
    timestamp: Optional[str] = None
    parent_id: int = 0
    priority_score: float = 0.0
    boosted: bool = False
    reviewed: bool = False
    enrichment: Optional[EnrichmentResult] = None
    name_verdict: Optional[NameVerdict] = None
    consecutive: Optional[ConsecutiveEdits] = None
    revert_count: int = 0
    is_blp: bool = False
    mentions_operator: bool = False
    sequence: int = 0

    def effective_priority(self, boost_bonus: float) -> float:
        return self.priority_score + (boost_bonus if self.boosted else 0.0)


@dataclass
class TriageStatistics:
    """Counters kept across a session."""

    reviewed: int = 0
    admitted: int = 0
    superseded: int = 0


__all__ = [
    "AuthorInfo",
    "ConfidenceTier",
    "ConsecutiveEdits",
    "EnrichmentResult",
    "FeedEntry",
    "NameVerdict",
    "NameViolation",
    "PageInfo",
    "PageMetadata",
    "RecommendedAction",
    "RevisionSummary",
    "ScoringRequest",
    "TriageStatistics",
    "VerdictIssue",
    "WarningLevel",
    "WarningRecord",
    "WorkItem",
]
