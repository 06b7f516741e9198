"""Одноразовое задание: переход по ссылке с минимальной задержкой."""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bot.models import Participant
from bot.models.base import as_utc
from bot.repositories import complete_task_if_pending, get_participant
from .errors import NotFoundError, TooSoonError


def seconds_remaining(prompt_sent_at: datetime | None, now: datetime, min_delay: float) -> float:
    if prompt_sent_at is None:
        return min_delay
    elapsed = (as_utc(now) - as_utc(prompt_sent_at)).total_seconds()
    return max(0.0, min_delay - elapsed)


async def complete_task(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    prompt_sent_at: datetime | None,
    *,
    points: int,
    min_delay: float,
    now: datetime,
) -> tuple[bool, Participant]:
    """Возвращает (начислено ли этим вызовом, участник после операции)."""

    remaining = seconds_remaining(prompt_sent_at, now, min_delay)
    if remaining > 0:
        participant = await get_participant(session, external_user_id, community_id)
        if participant is None:
            raise NotFoundError(f"Участник {external_user_id} не найден")
        if participant.task_completed:
            return False, participant
        raise TooSoonError(remaining)

    # check-and-set первым: из N параллельных вызовов выигрывает ровно один
    awarded = await complete_task_if_pending(session, external_user_id, community_id, points=points)
    participant = await get_participant(session, external_user_id, community_id)
    if participant is None:
        raise NotFoundError(f"Участник {external_user_id} не найден")
    if awarded:
        logger.info(
            "Задание выполнено: {user} +{points} очк. (итого {total})",
            user=external_user_id,
            points=points,
            total=participant.points,
        )
    return awarded, participant


__all__ = ["complete_task", "seconds_remaining"]
