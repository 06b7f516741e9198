"""Middleware мультиязычности."""

from __future__ import annotations

from functools import partial
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, User

from bot.utils.i18n import get_i18n


class I18nMiddleware(BaseMiddleware):
    """Определяет язык пользователя и подставляет gettext в контекст.

    Пользователь берётся из event_from_user, поэтому middleware работает
    одинаково для сообщений, колбэков, заявок на вступление и chat_member.
    """

    def __init__(self) -> None:
        self._i18n = get_i18n()

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user: User | None = data.get("event_from_user")
        locale = self._i18n.detect_locale(user.language_code if user else None)
        data["locale"] = locale
        data["gettext"] = partial(self._i18n.gettext, locale=locale)
        return await handler(event, data)


__all__ = ["I18nMiddleware"]
