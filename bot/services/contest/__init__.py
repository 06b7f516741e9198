"""Движок реферального конкурса."""

from .engine import ContestEngine
from .errors import (
    ConcurrencyConflict,
    ContestError,
    NotFoundError,
    StorageError,
    TooSoonError,
    ValidationError,
)
from .events import EventBus, ParticipantDeparted, ReferralAwarded, TaskCompleted
from .lifecycle import MemberEvent, MemberState, classify_status_change, transition
from .schemas import (
    CommunityStats,
    ContestRules,
    CounterDrift,
    DepartureResult,
    ParticipantProfile,
    ParticipantView,
    PersonalLeaderboard,
    RankedEntry,
    RegistrationResult,
    TaskResult,
)

__all__ = [
    "ConcurrencyConflict",
    "ContestEngine",
    "ContestError",
    "CommunityStats",
    "ContestRules",
    "CounterDrift",
    "DepartureResult",
    "EventBus",
    "MemberEvent",
    "MemberState",
    "NotFoundError",
    "ParticipantDeparted",
    "ParticipantProfile",
    "ParticipantView",
    "PersonalLeaderboard",
    "RankedEntry",
    "ReferralAwarded",
    "RegistrationResult",
    "StorageError",
    "TaskCompleted",
    "TaskResult",
    "TooSoonError",
    "ValidationError",
    "classify_status_change",
    "transition",
]
