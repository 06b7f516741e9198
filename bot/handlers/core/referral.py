"""Реферальная ссылка /link и личная статистика /classifica."""

from __future__ import annotations

import html
from typing import Callable

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import Message

from bot.context import contest, invite_links, settings
from bot.services.contest import NotFoundError, PersonalLeaderboard

router = Router(name="core-referral")
router.message.filter(F.chat.type == "private")


@router.message(Command("link"))
async def command_link(message: Message, gettext: Callable[..., str]) -> None:
    try:
        participant = await contest.get_stats(message.from_user.id, settings.telegram.channel_id)
    except NotFoundError:
        await message.answer(gettext("not_registered"))
        return
    link = await invite_links.get_link(participant)
    if link is None:
        await message.answer(gettext("link_unavailable"))
        return
    await message.answer(gettext("link_text", link=link, points=contest.rules.referral_points))


@router.message(Command("classifica"))
async def command_classifica(message: Message, gettext: Callable[..., str]) -> None:
    community_id = settings.telegram.channel_id
    try:
        participant = await contest.get_stats(message.from_user.id, community_id)
    except NotFoundError:
        await message.answer(gettext("not_registered"))
        return
    if not participant.is_active:
        await message.answer(gettext("stats_inactive"))
        return

    personal = await contest.get_personal_leaderboard(
        message.from_user.id, community_id, radius=settings.leaderboard.size
    )
    text = gettext(
        "stats_text",
        points=participant.points,
        position=personal.position or "-",
        referrals=participant.referral_count,
        task=gettext("stats_task_done" if participant.task_completed else "stats_task_pending"),
    )
    text += render_nearby(personal, participant.id, gettext)
    await message.answer(text)


def render_nearby(personal: PersonalLeaderboard, participant_id: int, gettext: Callable[..., str]) -> str:
    if not personal.entries:
        return ""
    lines = [gettext("stats_nearby_header")]
    for entry in personal.entries:
        key = "ranking_row_self" if entry.participant.id == participant_id else "ranking_row"
        lines.append(
            gettext(
                key,
                position=entry.position,
                name=html.escape(entry.participant.display_name),
                points=entry.participant.points,
            )
        )
    return "\n".join(lines)


__all__ = ["render_nearby", "router"]
