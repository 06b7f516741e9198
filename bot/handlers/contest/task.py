"""Подтверждение задания кнопкой task_done:<user_id>."""

from __future__ import annotations

import math
from typing import Callable

from aiogram import F, Router
from aiogram.types import CallbackQuery

from bot.context import cache, contest, onboarding, settings
from bot.keyboards.inline.task import TASK_DONE_PREFIX, parse_task_callback
from bot.services.contest import NotFoundError, TooSoonError

router = Router(name="contest-task")


@router.callback_query(F.data.startswith(TASK_DONE_PREFIX))
async def handle_task_done(callback: CallbackQuery, gettext: Callable[..., str]) -> None:
    owner_id = parse_task_callback(callback.data)
    if owner_id is None or owner_id != callback.from_user.id:
        await callback.answer(gettext("task_not_owner"), show_alert=True)
        return

    rules = settings.contest
    if not await cache.allow(
        f"task_click:{owner_id}", rules.task_clicks_per_window, rules.task_clicks_window_sec
    ):
        await callback.answer(gettext("task_rate_limited"), show_alert=True)
        return

    community_id = settings.telegram.channel_id
    prompt_sent_at = await onboarding.prompt_sent_at(community_id, owner_id)
    try:
        result = await contest.complete_task(owner_id, community_id, prompt_sent_at)
    except TooSoonError as exc:
        await callback.answer(
            gettext("task_too_soon", seconds=math.ceil(exc.remaining_seconds)), show_alert=True
        )
        return
    except NotFoundError:
        await callback.answer(gettext("not_registered"), show_alert=True)
        return

    if not result.awarded:
        await callback.answer(gettext("task_already_done", total=result.total_points))
        return
    await callback.answer()
    if callback.message:
        await callback.message.answer(
            gettext("task_awarded", points=contest.rules.task_points, total=result.total_points)
        )


__all__ = ["router"]
