"""Базовые хендлеры: /start с реферальным кодом и /help."""

from __future__ import annotations

from typing import Callable

from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.filters.command import CommandObject
from aiogram.types import Message

from bot.context import onboarding, settings

router = Router(name="core-common")
router.message.filter(F.chat.type == "private")


def parse_start_payload(payload: str | None) -> str | None:
    """ref_<code> -> code; остальные payload'ы игнорируются."""

    if not payload or not payload.startswith("ref_"):
        return None
    code = payload[len("ref_"):]
    return code or None


@router.message(CommandStart(ignore_case=True))
async def handle_start(
    message: Message,
    gettext: Callable[..., str],
    locale: str | None = None,
    command: CommandObject | None = None,
) -> None:
    """Регистрация в конкурсе канала и приветствие с заданием."""

    code = parse_start_payload(command.args if command else None)
    result = await onboarding.register(message.from_user, settings.telegram.channel_id, code)
    await message.answer(gettext("start_registered"))
    await onboarding.greet(message.from_user, result, locale)


@router.message(Command("help"))
async def handle_help(message: Message, gettext: Callable[..., str]) -> None:
    await message.answer(gettext("help_message"))


__all__ = ["parse_start_payload", "router"]
