"""Антиспам middleware на дедуп-кеше."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject, User
from loguru import logger

from bot.utils.cache import DedupCache
from bot.utils.i18n import get_i18n


class ThrottlingMiddleware(BaseMiddleware):
    """Не больше max_count апдейтов от пользователя за window секунд."""

    def __init__(self, cache: DedupCache, *, max_count: int = 1, window: float = 1.0) -> None:
        self._cache = cache
        self._max_count = max_count
        self._window = window

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user: User | None = data.get("event_from_user")
        if user is None:
            return await handler(event, data)

        key = f"throttle:{type(event).__name__}:{user.id}"
        if not await self._cache.allow(key, self._max_count, self._window):
            logger.debug("Апдейт от {user} отброшен throttling'ом", user=user.id)
            await self._notify_throttled(event, data)
            return None
        return await handler(event, data)

    async def _notify_throttled(self, event: TelegramObject, data: Dict[str, Any]) -> None:
        gettext = data.get("gettext") or get_i18n().gettext
        message = gettext("throttled")
        if isinstance(event, Message):
            await event.answer(message)
        elif isinstance(event, CallbackQuery):
            await event.answer(message, show_alert=False)


__all__ = ["ThrottlingMiddleware"]
