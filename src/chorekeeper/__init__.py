"""ChoreKeeper package for scheduling household chores and paying out rewards."""

from .api import ApiExporter
from .exceptions import (
    AuthenticationError,
    ChoreKeeperError,
    NotFoundError,
    ValidationError,
)
from .models import (
    BalanceEntry,
    Child,
    ChoreInstance,
    ChoreParticipant,
    ChoreTemplate,
    InstanceStatus,
    ParticipantRating,
    ParticipantStatus,
    QualityRating,
    RatingResult,
    Recurrence,
    ScheduledChore,
    ScheduleType,
    Settings,
)
from .ops import StructuredLogger
from .security import AuthManager
from .service import ChoreKeeper
from .store import ChoreStore, InMemoryChoreStore

__all__ = [
    "ApiExporter",
    "AuthManager",
    "AuthenticationError",
    "BalanceEntry",
    "Child",
    "ChoreInstance",
    "ChoreKeeper",
    "ChoreKeeperError",
    "ChoreParticipant",
    "ChoreStore",
    "ChoreTemplate",
    "InMemoryChoreStore",
    "InstanceStatus",
    "NotFoundError",
    "ParticipantRating",
    "ParticipantStatus",
    "QualityRating",
    "RatingResult",
    "Recurrence",
    "ScheduleType",
    "ScheduledChore",
    "Settings",
    "StructuredLogger",
    "ValidationError",
]
