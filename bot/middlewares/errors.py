"""Глобальный перехват и логирование ошибок."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject
from loguru import logger

from bot.services.contest import ContestError
from bot.utils.i18n import get_i18n


class ErrorsMiddleware(BaseMiddleware):
    """Логирует исключения и уведомляет пользователя на его языке.

    Повторяемые ContestError (сбой хранилища, конфликт) получают просьбу
    повторить; остальные — общее сообщение об ошибке.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        try:
            return await handler(event, data)
        except ContestError as exc:
            logger.warning(
                "Ошибка конкурса при обработке апдейта: {error} (retryable={retryable})",
                error=exc,
                retryable=exc.retryable,
            )
            await self._notify(event, self._text(data, "error_retry" if exc.retryable else "error_generic"))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Ошибка при обработке апдейта: {error}", error=exc)
            await self._notify(event, self._text(data, "error_generic"))
        return None

    @staticmethod
    def _text(data: Dict[str, Any], key: str) -> str:
        gettext = data.get("gettext") or get_i18n().gettext
        return gettext(key)

    @staticmethod
    async def _notify(event: TelegramObject, text: str) -> None:
        if isinstance(event, Message):
            await event.answer(text)
        elif isinstance(event, CallbackQuery):
            await event.answer(text, show_alert=True)


__all__ = ["ErrorsMiddleware"]
