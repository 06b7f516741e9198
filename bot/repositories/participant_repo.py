"""Функции для работы с таблицей участников конкурса.

Функции не делают commit: границы транзакции задаёт вызывающий сервис.
Все изменения счётчиков — атомарные UPDATE с условием, без read-modify-write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import DateTime, case, func, literal, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from bot.models import Participant
from bot.models.base import utcnow

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError as exc:
        raise RuntimeError(f"Диалект {dialect} не поддерживает upsert участников") from exc


async def insert_participant_if_absent(session: AsyncSession, values: dict[str, Any]) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING по ключу (external_user_id, community_id).

    Возвращает True, если строка действительно создана этим вызовом.
    """

    insert = _insert_for(session)
    now = utcnow()
    stmt = (
        insert(Participant.__table__)
        .values(created_at=now, updated_at=now, **values)
        .on_conflict_do_nothing(index_elements=["external_user_id", "community_id"])
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def get_participant(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
) -> Optional[Participant]:
    stmt = (
        select(Participant)
        .where(
            Participant.external_user_id == external_user_id,
            Participant.community_id == community_id,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def get_participant_by_id(session: AsyncSession, participant_id: int) -> Optional[Participant]:
    stmt = (
        select(Participant)
        .where(Participant.id == participant_id)
        .execution_options(populate_existing=True)
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def get_participant_by_code(
    session: AsyncSession,
    code: str,
    community_id: int,
) -> Optional[Participant]:
    stmt = select(Participant).where(
        Participant.referral_code == code,
        Participant.community_id == community_id,
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def reactivate_participant(
    session: AsyncSession,
    participant_id: int,
    *,
    first_name: str,
    last_name: str | None,
    username: str | None,
) -> bool:
    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(Participant.id == participant_id, Participant.is_active.is_(False))
        .values(
            is_active=True,
            first_name=first_name,
            last_name=last_name,
            username=username,
            updated_at=utcnow(),
        )
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def deactivate_participant(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
) -> bool:
    """Переводит участника в неактивные. False — уже неактивен или не найден."""

    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(
            Participant.external_user_id == external_user_id,
            Participant.community_id == community_id,
            Participant.is_active.is_(True),
        )
        .values(is_active=False, updated_at=utcnow())
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def set_referred_by(session: AsyncSession, participant_id: int, referrer_id: int) -> None:
    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(Participant.id == participant_id, Participant.referred_by.is_(None))
        .values(referred_by=referrer_id, updated_at=utcnow())
    )
    await session.exec(stmt)


async def credit_referral(
    session: AsyncSession,
    referrer_id: int,
    *,
    points: int,
    at: datetime,
) -> bool:
    """Начисляет очки за приглашение активному рефереру.

    first_referral_point_at записывается один раз через COALESCE.
    """

    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(Participant.id == referrer_id, Participant.is_active.is_(True))
        .values(
            points=Participant.points + points,
            referral_count=Participant.referral_count + 1,
            first_referral_point_at=func.coalesce(
                Participant.first_referral_point_at, literal(at, DateTime(timezone=True))
            ),
            updated_at=utcnow(),
        )
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def debit_referral(session: AsyncSession, referrer_id: int, *, points: int) -> None:
    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(Participant.id == referrer_id)
        .values(
            points=Participant.points - points,
            referral_count=Participant.referral_count - 1,
            updated_at=utcnow(),
        )
    )
    await session.exec(stmt)


async def complete_task_if_pending(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    *,
    points: int,
) -> bool:
    """Check-and-set: флаг задания и очки меняются одним UPDATE."""

    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(
            Participant.external_user_id == external_user_id,
            Participant.community_id == community_id,
            Participant.task_completed.is_(False),
        )
        .values(
            task_completed=True,
            points=Participant.points + points,
            updated_at=utcnow(),
        )
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def overwrite_counters(
    session: AsyncSession,
    participant_id: int,
    *,
    expected_points: int,
    expected_referral_count: int,
    points: int,
    referral_count: int,
) -> bool:
    """Перезапись счётчиков, только если они не менялись с момента чтения."""

    stmt = (
        update(Participant)
        .execution_options(synchronize_session=False)
        .where(
            Participant.id == participant_id,
            Participant.points == expected_points,
            Participant.referral_count == expected_referral_count,
        )
        .values(points=points, referral_count=referral_count, updated_at=utcnow())
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def list_active_participants(
    session: AsyncSession,
    community_id: int,
) -> Sequence[Participant]:
    stmt = select(Participant).where(
        Participant.community_id == community_id,
        Participant.is_active.is_(True),
    )
    result = await session.exec(stmt)
    return result.all()


async def community_counters(session: AsyncSession, community_id: int) -> tuple[int, int, int, int]:
    """(всего, активных, с выполненным заданием, сумма очков активных)."""

    stmt = select(
        func.count(Participant.id),
        func.coalesce(func.sum(case((Participant.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Participant.task_completed.is_(True), 1), else_=0)), 0),
        func.coalesce(
            func.sum(case((Participant.is_active.is_(True), Participant.points), else_=0)), 0
        ),
    ).where(Participant.community_id == community_id)
    result = await session.exec(stmt)
    total, active, task_done, points = result.one()
    return int(total), int(active), int(task_done), int(points)


async def list_participants(session: AsyncSession, community_id: int) -> Sequence[Participant]:
    stmt = select(Participant).where(Participant.community_id == community_id)
    result = await session.exec(stmt)
    return result.all()


__all__ = [
    "community_counters",
    "complete_task_if_pending",
    "credit_referral",
    "deactivate_participant",
    "debit_referral",
    "get_participant",
    "get_participant_by_code",
    "get_participant_by_id",
    "insert_participant_if_absent",
    "list_active_participants",
    "list_participants",
    "overwrite_counters",
    "reactivate_participant",
    "set_referred_by",
]
