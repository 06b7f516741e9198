"""Журнал событий членства: заявки, одобрения, отказы, входы и выходы.

Журнал вспомогательный: сбой записи логируется и не мешает вступлению в
канал. Повторное одобрение того же пользователя в пределах окна не пишется.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bot.models import ActivityAction, MembershipActivity
from bot.models.base import as_utc, utcnow
from bot.repositories import (
    add_activity,
    count_activity_by_action,
    count_activity_users,
    delete_activity_before,
    find_recent_activity,
    list_user_activity,
)
from bot.services.contest import ParticipantProfile


@dataclass(slots=True, frozen=True)
class ActivityEntry:
    action: ActivityAction
    created_at: datetime
    referral_code: str | None = None
    details: str | None = None


@dataclass(slots=True, frozen=True)
class ActivityStats:
    total: int
    unique_users: int
    by_action: dict[ActivityAction, int] = field(default_factory=dict)
    recent: int = 0

    def count(self, action: ActivityAction) -> int:
        return self.by_action.get(action, 0)


class ActivityLog:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        enabled: bool = True,
        approval_window: float = 300,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_maker = session_maker
        self._enabled = enabled
        self._approval_window = approval_window
        self._now = now

    async def record(
        self,
        action: ActivityAction,
        external_user_id: int,
        community_id: int,
        *,
        profile: ParticipantProfile | None = None,
        referral_code: str | None = None,
        details: str | None = None,
    ) -> bool:
        """True, если запись добавлена."""

        if not self._enabled:
            return False

        profile = profile or ParticipantProfile()
        now = self._now()
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    if action is ActivityAction.APPROVED:
                        since = now - timedelta(seconds=self._approval_window)
                        duplicate = await find_recent_activity(
                            session, external_user_id, community_id, action, since
                        )
                        if duplicate is not None:
                            logger.debug(
                                "Одобрение {user} уже записано в {at}",
                                user=external_user_id,
                                at=duplicate.created_at,
                            )
                            return False
                    await add_activity(
                        session,
                        MembershipActivity(
                            external_user_id=external_user_id,
                            community_id=community_id,
                            action=action,
                            first_name=profile.first_name,
                            username=profile.username,
                            referral_code=referral_code,
                            details=details,
                            created_at=now,
                        ),
                    )
        except SQLAlchemyError:
            logger.exception(
                "Не удалось записать событие {action} для {user}",
                action=action.value,
                user=external_user_id,
            )
            return False
        logger.debug("Событие {action}: {user}", action=action.value, user=external_user_id)
        return True

    async def history(self, external_user_id: int, community_id: int, limit: int = 50) -> list[ActivityEntry]:
        async with self._session_maker() as session:
            rows = await list_user_activity(session, external_user_id, community_id, limit)
        return [
            ActivityEntry(
                action=row.action,
                created_at=as_utc(row.created_at),
                referral_code=row.referral_code,
                details=row.details,
            )
            for row in rows
        ]

    async def chat_stats(self, community_id: int, *, hours: float = 24) -> ActivityStats:
        since = self._now() - timedelta(hours=hours)
        async with self._session_maker() as session:
            by_action = await count_activity_by_action(session, community_id)
            recent = await count_activity_by_action(session, community_id, since)
            unique_users = await count_activity_users(session, community_id)
        return ActivityStats(
            total=sum(by_action.values()),
            unique_users=unique_users,
            by_action=by_action,
            recent=sum(recent.values()),
        )

    async def cleanup(self, days: int) -> int:
        """Удаляет записи старше days дней, возвращает их количество."""

        cutoff = self._now() - timedelta(days=days)
        async with self._session_maker() as session:
            async with session.begin():
                deleted = await delete_activity_before(session, cutoff)
        logger.info("Журнал очищен: удалено {count} записей старше {days} дн.", count=deleted, days=days)
        return deleted


__all__ = ["ActivityEntry", "ActivityLog", "ActivityStats"]
