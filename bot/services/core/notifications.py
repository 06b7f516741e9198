"""Уведомления рефереров о начислениях и снятиях очков."""

from __future__ import annotations

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from loguru import logger

from bot.services.contest import (
    ContestEngine,
    ContestError,
    EventBus,
    ParticipantDeparted,
    ReferralAwarded,
)
from bot.utils.i18n import I18nManager


class ContestNotifier:
    """Подписчик EventBus: пишет рефереру в личку."""

    def __init__(self, bot: Bot, engine: ContestEngine, i18n: I18nManager) -> None:
        self._bot = bot
        self._engine = engine
        self._i18n = i18n

    def attach(self, events: EventBus) -> None:
        events.subscribe(ReferralAwarded, self.on_referral_awarded)
        events.subscribe(ParticipantDeparted, self.on_participant_departed)

    def detach(self, events: EventBus) -> None:
        events.unsubscribe(ReferralAwarded, self.on_referral_awarded)
        events.unsubscribe(ParticipantDeparted, self.on_participant_departed)

    async def on_referral_awarded(self, event: ReferralAwarded) -> None:
        text = self._i18n.gettext(
            "referral_awarded_notice",
            points=self._engine.rules.referral_points,
            total=event.new_point_total,
        )
        await self._send(event.referrer_user_id, text)

    async def on_participant_departed(self, event: ParticipantDeparted) -> None:
        for referrer_id, delta in event.revoked_referrals:
            try:
                referrer = await self._engine.get_by_id(referrer_id)
            except ContestError as exc:
                logger.warning("Реферер {id} недоступен для уведомления: {error}", id=referrer_id, error=exc)
                continue
            text = self._i18n.gettext("referral_revoked_notice", points=delta)
            await self._send(referrer.external_user_id, text)

    async def _send(self, chat_id: int, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=chat_id, text=text)
        except TelegramAPIError as exc:
            # пользователь мог не начинать диалог с ботом
            logger.debug("Уведомление {chat} не доставлено: {error}", chat=chat_id, error=exc)


__all__ = ["ContestNotifier"]
