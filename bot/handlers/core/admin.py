"""Команды администраторов конкурса."""

from __future__ import annotations

from typing import Callable

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from loguru import logger

from bot.context import (
    activity,
    cache,
    contest,
    db_engine,
    i18n,
    leaderboard_publisher,
    settings,
    started_at,
)
from bot.services.core.reports import check_health, render_health, render_history, render_stats

router = Router(name="core-admin")


def _is_admin(message: Message) -> bool:
    return bool(message.from_user) and message.from_user.id in settings.telegram.admins


@router.message(Command("leaderboard"))
async def command_leaderboard(message: Message, gettext: Callable[..., str]) -> None:
    """Публикует таблицу лидеров в канал вне расписания."""

    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    published = await leaderboard_publisher.publish_now()
    await message.answer(gettext("leaderboard_published" if published else "leaderboard_empty"))


@router.message(Command("reconcile"))
async def command_reconcile(message: Message, gettext: Callable[..., str]) -> None:
    """Сверяет счётчики участников с реферальными связями."""

    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    drifts = await contest.reconcile(settings.telegram.channel_id)
    for drift in drifts:
        logger.warning(
            "Расхождение у {user}: очки {stored}->{expected}, рефералы {stored_count}->{expected_count}",
            user=drift.external_user_id,
            stored=drift.stored_points,
            expected=drift.expected_points,
            stored_count=drift.stored_referral_count,
            expected_count=drift.expected_referral_count,
        )
    await message.answer(gettext("reconcile_done", count=len(drifts)))


__all__ = ["router"]


@router.message(Command("stats"))
async def command_stats(message: Message, gettext: Callable[..., str], locale: str | None = None) -> None:
    """Сводка по конкурсу и журналу событий канала."""

    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    channel_id = settings.telegram.channel_id
    contest_stats = await contest.get_community_stats(channel_id)
    activity_stats = await activity.chat_stats(channel_id)
    await message.answer(render_stats(i18n, contest_stats, activity_stats, locale))


@router.message(Command("health"))
async def command_health(message: Message, gettext: Callable[..., str], locale: str | None = None) -> None:
    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    report = await check_health(db_engine, cache, started_at=started_at)
    logger.info(
        "Health-check по запросу {admin}: healthy={healthy}",
        admin=message.from_user.id,
        healthy=report.healthy,
    )
    await message.answer(render_health(i18n, report, locale))


@router.message(Command("cleanup"))
async def command_cleanup(message: Message, gettext: Callable[..., str]) -> None:
    """Удаляет записи журнала старше activity.retention_days."""

    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    days = settings.activity.retention_days
    deleted = await activity.cleanup(days)
    await message.answer(gettext("cleanup_done", count=deleted, days=days))


@router.message(Command("history"))
async def command_history(
    message: Message,
    command: CommandObject,
    gettext: Callable[..., str],
    locale: str | None = None,
) -> None:
    if not _is_admin(message):
        await message.answer(gettext("admin_only"))
        return
    raw = (command.args or "").strip()
    if not raw.lstrip("-").isdigit():
        await message.answer(gettext("history_usage"))
        return
    user_id = int(raw)
    entries = await activity.history(user_id, settings.telegram.channel_id, limit=20)
    await message.answer(render_history(i18n, user_id, entries, locale))
