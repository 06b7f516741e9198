"""Работа с таблицей реферальных связей конкурса."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from bot.models import ReferralEdge, ReferralStatus
from bot.models.base import utcnow


async def create_edge(
    session: AsyncSession,
    *,
    referrer_id: int,
    referred_id: int,
    community_id: int,
    points_awarded: int,
) -> ReferralEdge:
    edge = ReferralEdge(
        referrer_id=referrer_id,
        referred_id=referred_id,
        community_id=community_id,
        status=ReferralStatus.ACTIVE,
        points_awarded=points_awarded,
    )
    session.add(edge)
    await session.flush()
    return edge


async def list_active_inbound(session: AsyncSession, referred_id: int) -> Sequence[ReferralEdge]:
    """ACTIVE-связи, где участник — приглашённая сторона."""

    stmt = select(ReferralEdge).where(
        ReferralEdge.referred_id == referred_id,
        ReferralEdge.status == ReferralStatus.ACTIVE,
    )
    result = await session.exec(stmt)
    return result.all()


async def mark_edge_left(session: AsyncSession, edge_id: int, *, at: datetime) -> bool:
    """ACTIVE -> LEFT. False, если связь уже закрыта параллельным вызовом."""

    stmt = (
        update(ReferralEdge)
        .execution_options(synchronize_session=False)
        .where(ReferralEdge.id == edge_id, ReferralEdge.status == ReferralStatus.ACTIVE)
        .values(status=ReferralStatus.LEFT, left_at=at, updated_at=utcnow())
    )
    result = await session.exec(stmt)
    return result.rowcount == 1


async def active_totals_by_referrer(
    session: AsyncSession,
    community_id: int,
) -> dict[int, tuple[int, int]]:
    """referrer_id -> (кол-во ACTIVE связей, сумма points_awarded)."""

    stmt = (
        select(
            ReferralEdge.referrer_id,
            func.count(ReferralEdge.id),
            func.coalesce(func.sum(ReferralEdge.points_awarded), 0),
        )
        .where(
            ReferralEdge.community_id == community_id,
            ReferralEdge.status == ReferralStatus.ACTIVE,
        )
        .group_by(ReferralEdge.referrer_id)
    )
    result = await session.exec(stmt)
    return {referrer_id: (int(count), int(points)) for referrer_id, count, points in result.all()}


__all__ = [
    "active_totals_by_referrer",
    "create_edge",
    "list_active_inbound",
    "mark_edge_left",
]
