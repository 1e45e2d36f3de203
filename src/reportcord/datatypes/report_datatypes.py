"""
Data structures for the member report pipeline.

Covers the classifier's decoded verdict (:class:`ViolationAssessment` and the
closed family of :data:`ViolationAction` cases), the records kept by the
in-memory stores, and the result types handed back to the command layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Tuple, Union

from reportcord.datatypes.discord_datatypes import GuildID, MessageID, UserID


class ViolationLevel(IntEnum):
    """Severity assigned by the classifier, 0 (none) through 4 (most severe)."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        """Chinese severity text used in replies and audit entries."""
        return _LEVEL_LABELS[self]


_LEVEL_LABELS = {
    ViolationLevel.NONE: "未",
    ViolationLevel.LOW: "轻微",
    ViolationLevel.MEDIUM: "中度",
    ViolationLevel.HIGH: "严重",
    ViolationLevel.CRITICAL: "极其严重",
}


# ---------------------------------------------------------------------------
# Violation actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MuteAction:
    """Mute the reported member for ``seconds`` seconds."""

    seconds: int

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ValueError(f"mute duration must be positive, got {self.seconds}")

    @property
    def kind(self) -> str:
        return "mute"

    def describe(self) -> str:
        return f"禁言{self.seconds}秒"


@dataclass(frozen=True, slots=True)
class WarnAction:
    """Add ``count`` warnings to the reported member."""

    count: int

    def __post_init__(self) -> None:
        if self.count <= 0:
            raise ValueError(f"warning count must be positive, got {self.count}")

    @property
    def kind(self) -> str:
        return "warn"

    def describe(self) -> str:
        return f"警告{self.count}次"


@dataclass(frozen=True, slots=True)
class ExpelAction:
    """Remove the reported member from the guild without banning."""

    @property
    def kind(self) -> str:
        return "expel"

    def describe(self) -> str:
        return "踢出群聊"


@dataclass(frozen=True, slots=True)
class ExpelAndBanAction:
    """Remove the reported member and add them to the ban list."""

    @property
    def kind(self) -> str:
        return "expel_and_ban"

    def describe(self) -> str:
        return "踢出群聊并加入黑名单"


ViolationAction = Union[MuteAction, WarnAction, ExpelAction, ExpelAndBanAction]


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ReporterPenalty:
    """Classifier decision about the reporter rather than the reported content.

    ``duration_minutes`` is only meaningful when ``should_limit`` is True.
    """

    should_limit: bool
    duration_minutes: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ViolationAssessment:
    """Structured verdict decoded from the classifier's raw response."""

    level: ViolationLevel
    reason: str
    actions: Tuple[ViolationAction, ...] = ()
    reporter_penalty: Optional[ReporterPenalty] = None

    @property
    def is_violation(self) -> bool:
        return self.level > ViolationLevel.NONE


# ---------------------------------------------------------------------------
# Store records
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ContextMessage:
    """One recent guild message kept for classifier context."""

    user_id: UserID
    content: str
    timestamp: float


@dataclass(slots=True)
class CooldownRecord:
    """A reporter barred from reporting in one guild until ``expires_at``."""

    user_id: UserID
    guild_id: GuildID
    created_at: float
    expires_at: float
    reason: str = ""

    def is_active(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(slots=True)
class ReportedMessageRecord:
    """Cached outcome of a message that has already been adjudicated."""

    message_id: MessageID
    decided_at: float
    result_summary: str


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ActionOutcome:
    """Result of dispatching a single violation action."""

    action: ViolationAction
    succeeded: bool
    error: Optional[str] = None

    def describe(self) -> str:
        if self.succeeded:
            return self.action.describe()
        return f"{self.action.describe()}失败"


@dataclass(slots=True)
class EnforcementResult:
    """Human-readable summary plus the per-action outcome list."""

    summary: str
    outcomes: List[ActionOutcome] = field(default_factory=list)

    @property
    def dispatched(self) -> bool:
        return bool(self.outcomes)

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and not any(o.succeeded for o in self.outcomes)


class ReportState(Enum):
    """Terminal states of a single report."""

    BLOCKED = "blocked"
    CACHED_RESULT = "cached_result"
    REJECTED = "rejected"
    PARSE_FAILED = "parse_failed"
    DONE = "done"


@dataclass(slots=True)
class ReportOutcome:
    """What the command layer needs to answer the reporter."""

    state: ReportState
    reply: str
    quote: bool = True
    summary: Optional[str] = None
    assessment: Optional[ViolationAssessment] = None
    enforcement: Optional[EnforcementResult] = None
