"""Domain models used by the ChoreKeeper package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

EffortMap = Dict[str, float]
"""Ordered association of child id to effort percent."""


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


class QualityRating(str, Enum):
    """How well a chore was done, as judged by a parent."""

    FAILED = "failed"
    BAD = "bad"
    GOOD = "good"
    EXCELLENT = "excellent"


class ScheduleType(str, Enum):
    """Recurrence rules a schedule can follow."""

    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class InstanceStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


@dataclass(slots=True)
class Child:
    """A child in the household with a running reward balance (minor units)."""

    id: str
    name: str
    avatar_emoji: str
    access_code: str
    balance: int = 0


@dataclass(slots=True)
class ChoreTemplate:
    """Reusable chore definition."""

    id: str
    name: str
    default_reward: int
    icon: str
    description: str = ""


@dataclass(slots=True)
class Recurrence:
    """Recurrence descriptor for a schedule.

    ``start_date`` and ``end_date`` are ISO ``YYYY-MM-DD`` strings and compare
    lexicographically. ``days`` holds weekday ordinals, 0=Sunday..6=Saturday,
    and is only consulted for ``custom`` schedules.
    """

    type: ScheduleType
    start_date: str
    end_date: Optional[str] = None
    days: Optional[FrozenSet[int]] = None

    def __post_init__(self) -> None:
        self.type = ScheduleType(self.type)
        if self.days is not None:
            self.days = frozenset(int(day) for day in self.days)


@dataclass(slots=True)
class ScheduledChore:
    """Assignment of a chore template to one or more children on a recurrence."""

    id: str
    template_id: str
    child_ids: Tuple[str, ...]
    reward: int
    recurrence: Recurrence
    is_joined: bool = False
    is_optional: bool = False
    max_pickups_per_period: Optional[int] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        self.child_ids = tuple(self.child_ids)


@dataclass(slots=True)
class ChoreInstance:
    """A concrete, dated occurrence of a scheduled chore."""

    id: str
    scheduled_chore_id: str
    due_date: str
    is_joined: bool
    total_reward: int
    status: InstanceStatus = InstanceStatus.PENDING
    quality: Optional[QualityRating] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is InstanceStatus.PENDING


@dataclass(slots=True)
class ChoreParticipant:
    """One child's part in a chore instance."""

    id: str
    instance_id: str
    child_id: str
    status: ParticipantStatus = ParticipantStatus.PENDING
    completed_at: Optional[datetime] = None
    effort_percent: Optional[float] = None
    earned_reward: Optional[int] = None
    quality: Optional[QualityRating] = None

    @property
    def is_done(self) -> bool:
        return self.status is ParticipantStatus.DONE

    @property
    def is_rated(self) -> bool:
        return self.quality is not None or self.earned_reward is not None


@dataclass(slots=True)
class BalanceEntry:
    """Signed ledger entry for withdrawals and manual balance adjustments."""

    id: str
    child_id: str
    amount: int
    created_at: datetime = field(default_factory=utc_now)
    note: str = ""


@dataclass(slots=True)
class Settings:
    """Household-wide settings (single record)."""

    pin_hash: Optional[str] = None
    session_duration_days: int = 7
    currency: str = "$"


@dataclass(slots=True)
class SessionRecord:
    """A parent session token and its expiry."""

    token: str
    expires_at: datetime

    def is_expired(self, *, at: Optional[datetime] = None) -> bool:
        moment = at or utc_now()
        return moment >= self.expires_at


@dataclass(slots=True)
class ParticipantRating:
    """Input row for rating several participants at once."""

    child_id: str
    quality: QualityRating
    effort_percent: Optional[float] = None


@dataclass(slots=True)
class RatingResult:
    """Outcome of rating a single participant."""

    earned_reward: int
    all_rated: bool


__all__ = [
    "BalanceEntry",
    "Child",
    "ChoreInstance",
    "ChoreParticipant",
    "ChoreTemplate",
    "EffortMap",
    "InstanceStatus",
    "ParticipantRating",
    "ParticipantStatus",
    "QualityRating",
    "RatingResult",
    "Recurrence",
    "ScheduleType",
    "ScheduledChore",
    "SessionRecord",
    "Settings",
    "utc_now",
]
