"""Детерминированный порядок участников в таблице лидеров.

Ключи сортировки, по убыванию приоритета:
1. очки — больше выше;
2. first_referral_point_at — раньше выше, без значения в конце;
3. referral_count — больше выше;
4. joined_at — раньше выше;
5. id — меньше выше (последний стабильный ключ).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence, TypeVar

from bot.models.base import as_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Rankable(Protocol):
    id: int
    points: int
    referral_count: int
    is_active: bool
    first_referral_point_at: datetime | None

    @property
    def joined_at(self) -> datetime: ...


R = TypeVar("R", bound=Rankable)


def ranking_key(item: Rankable) -> tuple:
    first_point = item.first_referral_point_at
    return (
        -item.points,
        first_point is None,
        as_utc(first_point) if first_point is not None else _EPOCH,
        -item.referral_count,
        as_utc(item.joined_at),
        item.id,
    )


def rank(participants: Iterable[R]) -> list[R]:
    """Активные участники в итоговом порядке. Неактивные отбрасываются."""

    return sorted((p for p in participants if p.is_active), key=ranking_key)


def position_of(ranked: Sequence[Rankable], participant_id: int) -> int:
    """1-based позиция в уже отсортированном списке, 0 — если участника нет."""

    for index, item in enumerate(ranked, start=1):
        if item.id == participant_id:
            return index
    return 0


__all__ = ["Rankable", "position_of", "rank", "ranking_key"]
