"""Периодическая публикация таблицы лидеров в канал."""

from __future__ import annotations

import asyncio
import html

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from loguru import logger

from bot.services.contest import ContestEngine, ContestError, ParticipantView
from bot.utils.i18n import I18nManager


def render_leaderboard(i18n: I18nManager, entries: list[ParticipantView], locale: str | None = None) -> str:
    if not entries:
        return i18n.gettext("leaderboard_empty", locale=locale)
    lines = [i18n.gettext("leaderboard_header", locale=locale)]
    for position, participant in enumerate(entries, start=1):
        lines.append(
            i18n.gettext(
                "ranking_row",
                locale=locale,
                position=position,
                name=html.escape(participant.display_name),
                points=participant.points,
            )
        )
    return "\n".join(lines)


class LeaderboardPublisher:
    """Раз в interval секунд отправляет топ-N в канал."""

    def __init__(
        self,
        bot: Bot,
        engine: ContestEngine,
        i18n: I18nManager,
        *,
        channel_id: int,
        interval: float,
        size: int,
    ) -> None:
        self._bot = bot
        self._engine = engine
        self._i18n = i18n
        self._channel_id = channel_id
        self._interval = interval
        self._size = size
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="leaderboard-publisher")
            logger.info("Публикация таблицы лидеров запущена (интервал {interval} c)", interval=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def publish_now(self) -> bool:
        entries = await self._engine.get_leaderboard(self._channel_id, limit=self._size)
        if not entries:
            logger.debug("Таблица лидеров пуста — публикация пропущена")
            return False
        await self._bot.send_message(
            chat_id=self._channel_id,
            text=render_leaderboard(self._i18n, entries),
        )
        logger.info("Таблица лидеров опубликована ({count} строк)", count=len(entries))
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.publish_now()
            except (ContestError, TelegramAPIError) as exc:
                logger.error("Не удалось опубликовать таблицу лидеров: {error}", error=exc)


__all__ = ["LeaderboardPublisher", "render_leaderboard"]
