"""Inline-клавиатура задания: ссылка на страницу и подтверждение."""

from __future__ import annotations

from typing import Callable

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

TASK_DONE_PREFIX = "task_done:"


def build_task_keyboard(
    user_id: int,
    task_url: str,
    gettext: Callable[..., str],
) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=gettext("task_open_button"), url=task_url)],
            [
                InlineKeyboardButton(
                    text=gettext("task_done_button"),
                    callback_data=f"{TASK_DONE_PREFIX}{user_id}",
                )
            ],
        ]
    )


def parse_task_callback(data: str | None) -> int | None:
    """task_done:<user_id> -> user_id; None для чужих и битых данных."""

    if not data or not data.startswith(TASK_DONE_PREFIX):
        return None
    raw = data[len(TASK_DONE_PREFIX):]
    return int(raw) if raw.isdigit() else None


__all__ = ["TASK_DONE_PREFIX", "build_task_keyboard", "parse_task_callback"]
