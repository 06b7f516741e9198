"""Отчёты для администраторов: /stats, /health, /history."""

from __future__ import annotations

import html
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from bot.models import ActivityAction
from bot.services.contest import CommunityStats
from bot.utils.cache import CacheStats, DedupCache
from bot.utils.i18n import I18nManager
from .activity import ActivityEntry, ActivityStats


@dataclass(slots=True, frozen=True)
class HealthReport:
    database_ok: bool
    database_latency_ms: float
    cache: CacheStats
    uptime_seconds: float

    @property
    def healthy(self) -> bool:
        return self.database_ok


async def check_health(
    db_engine: AsyncEngine,
    cache: DedupCache,
    *,
    started_at: float,
    clock: Callable[[], float] = time.monotonic,
) -> HealthReport:
    begin = clock()
    try:
        async with db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database_ok = True
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Проверка БД не прошла: {error}", error=exc)
        database_ok = False
    latency_ms = (clock() - begin) * 1000
    return HealthReport(
        database_ok=database_ok,
        database_latency_ms=round(latency_ms, 1),
        cache=cache.stats(),
        uptime_seconds=max(0.0, clock() - started_at),
    )


def render_health(i18n: I18nManager, report: HealthReport, locale: str | None = None) -> str:
    return i18n.gettext(
        "health_text",
        locale=locale,
        status=i18n.gettext("health_ok" if report.healthy else "health_fail", locale=locale),
        latency=report.database_latency_ms,
        keys=report.cache.keys,
        hits=report.cache.hits,
        misses=report.cache.misses,
        evictions=report.cache.evictions,
        uptime=round(report.uptime_seconds / 60),
    )


def render_stats(
    i18n: I18nManager,
    contest: CommunityStats,
    activity: ActivityStats,
    locale: str | None = None,
) -> str:
    return i18n.gettext(
        "admin_stats_text",
        locale=locale,
        participants=contest.participants,
        active=contest.active,
        task_done=contest.task_completed,
        referrals=contest.active_referrals,
        points=contest.total_points,
        requests=activity.count(ActivityAction.JOIN_REQUEST),
        approved=activity.count(ActivityAction.APPROVED),
        rejected=activity.count(ActivityAction.REJECTED),
        left=activity.count(ActivityAction.LEFT),
        recent=activity.recent,
        users=activity.unique_users,
    )


def render_history(
    i18n: I18nManager,
    user_id: int,
    entries: list[ActivityEntry],
    locale: str | None = None,
) -> str:
    if not entries:
        return i18n.gettext("history_empty", locale=locale, user=user_id)
    lines = [i18n.gettext("history_header", locale=locale, user=user_id)]
    for entry in entries:
        lines.append(
            i18n.gettext(
                "history_row",
                locale=locale,
                at=entry.created_at.strftime("%Y-%m-%d %H:%M"),
                action=entry.action.value,
                details=html.escape(entry.details or entry.referral_code or ""),
            )
        )
    return "\n".join(lines)


__all__ = ["HealthReport", "check_health", "render_health", "render_history", "render_stats"]
