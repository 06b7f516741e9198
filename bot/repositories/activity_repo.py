"""Запросы к журналу событий членства."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from bot.models import ActivityAction, MembershipActivity


async def add_activity(session: AsyncSession, activity: MembershipActivity) -> MembershipActivity:
    session.add(activity)
    await session.flush()
    return activity


async def find_recent_activity(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    action: ActivityAction,
    since: datetime,
) -> Optional[MembershipActivity]:
    stmt = (
        select(MembershipActivity)
        .where(
            MembershipActivity.external_user_id == external_user_id,
            MembershipActivity.community_id == community_id,
            MembershipActivity.action == action,
            MembershipActivity.created_at >= since,
        )
        .limit(1)
    )
    result = await session.exec(stmt)
    return result.first()


async def list_user_activity(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    limit: int,
) -> Sequence[MembershipActivity]:
    stmt = (
        select(MembershipActivity)
        .where(
            MembershipActivity.external_user_id == external_user_id,
            MembershipActivity.community_id == community_id,
        )
        .order_by(MembershipActivity.created_at.desc(), MembershipActivity.id.desc())
        .limit(limit)
    )
    result = await session.exec(stmt)
    return result.all()


async def count_activity_by_action(
    session: AsyncSession,
    community_id: int,
    since: datetime | None = None,
) -> dict[ActivityAction, int]:
    stmt = select(MembershipActivity.action, func.count(MembershipActivity.id)).where(
        MembershipActivity.community_id == community_id
    )
    if since is not None:
        stmt = stmt.where(MembershipActivity.created_at >= since)
    stmt = stmt.group_by(MembershipActivity.action)
    result = await session.exec(stmt)
    return {ActivityAction(action): int(count) for action, count in result.all()}


async def count_activity_users(session: AsyncSession, community_id: int) -> int:
    stmt = select(func.count(func.distinct(MembershipActivity.external_user_id))).where(
        MembershipActivity.community_id == community_id
    )
    result = await session.exec(stmt)
    return int(result.one())


async def delete_activity_before(session: AsyncSession, cutoff: datetime) -> int:
    stmt = delete(MembershipActivity).where(MembershipActivity.created_at < cutoff)
    result = await session.exec(stmt)
    return result.rowcount or 0


__all__ = [
    "add_activity",
    "count_activity_by_action",
    "count_activity_users",
    "delete_activity_before",
    "find_recent_activity",
    "list_user_activity",
]
