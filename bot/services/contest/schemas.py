"""DTO движка: правила начисления и неизменяемые снимки участников."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from bot.models import Participant
from bot.models.base import as_utc


@dataclass(slots=True, frozen=True)
class ContestRules:
    """Правила конкурса. Значения по умолчанию совпадают с ContestSettings."""

    task_points: int = 3
    referral_points: int = 2
    task_min_delay: float = 30.0
    operation_timeout: float = 10.0
    ranking_snapshot_ttl: float = 10.0

    @classmethod
    def from_settings(cls, contest) -> "ContestRules":
        return cls(
            task_points=contest.task_points,
            referral_points=contest.referral_points,
            task_min_delay=contest.task_min_delay_sec,
            operation_timeout=contest.operation_timeout_sec,
            ranking_snapshot_ttl=contest.ranking_snapshot_ttl_sec,
        )


@dataclass(slots=True, frozen=True)
class ParticipantProfile:
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None


@dataclass(slots=True, frozen=True)
class ParticipantView:
    """Снимок строки участника, отдаваемый наружу вместо ORM-объекта."""

    id: int
    external_user_id: int
    community_id: int
    referral_code: str
    points: int
    task_completed: bool
    referral_count: int
    is_active: bool
    joined_at: datetime
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None
    referred_by: int | None = None
    first_referral_point_at: datetime | None = None

    @classmethod
    def from_model(cls, participant: Participant) -> "ParticipantView":
        first_point = participant.first_referral_point_at
        return cls(
            id=participant.id,
            external_user_id=participant.external_user_id,
            community_id=participant.community_id,
            referral_code=participant.referral_code,
            points=participant.points,
            task_completed=participant.task_completed,
            referral_count=participant.referral_count,
            is_active=participant.is_active,
            joined_at=as_utc(participant.joined_at),
            first_name=participant.first_name,
            last_name=participant.last_name,
            username=participant.username,
            referred_by=participant.referred_by,
            first_referral_point_at=as_utc(first_point) if first_point else None,
        )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part).strip()

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.username:
            return f"@{self.username}"
        return f"id{self.external_user_id}"


@dataclass(slots=True, frozen=True)
class RegistrationResult:
    participant: ParticipantView
    created: bool
    reactivated: bool = False
    referrer: ParticipantView | None = None

    @property
    def attributed(self) -> bool:
        return self.referrer is not None


@dataclass(slots=True, frozen=True)
class TaskResult:
    awarded: bool
    total_points: int


@dataclass(slots=True, frozen=True)
class DepartureResult:
    departed: bool
    # (referrer_id, снятые очки)
    revoked: tuple[tuple[int, int], ...] = ()


@dataclass(slots=True, frozen=True)
class RankedEntry:
    position: int
    participant: ParticipantView


@dataclass(slots=True, frozen=True)
class PersonalLeaderboard:
    """Позиция участника и соседи по таблице (±radius мест)."""

    position: int
    points: int
    entries: tuple[RankedEntry, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class CommunityStats:
    participants: int
    active: int
    task_completed: int
    active_referrals: int
    total_points: int


@dataclass(slots=True, frozen=True)
class CounterDrift:
    """Расхождение счётчиков участника с состоянием реферальных связей."""

    participant_id: int
    external_user_id: int
    stored_points: int
    expected_points: int
    stored_referral_count: int
    expected_referral_count: int


__all__ = [
    "CommunityStats",
    "ContestRules",
    "CounterDrift",
    "DepartureResult",
    "ParticipantProfile",
    "ParticipantView",
    "PersonalLeaderboard",
    "RankedEntry",
    "RegistrationResult",
    "TaskResult",
]
