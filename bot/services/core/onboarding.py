"""Регистрация пришедших в канал и приветствие с заданием."""

from __future__ import annotations

import html
from datetime import datetime
from functools import partial

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import User
from loguru import logger

from bot.keyboards.inline.task import build_task_keyboard
from bot.models.base import utcnow
from bot.services.contest import (
    ContestEngine,
    ContestError,
    ParticipantProfile,
    RegistrationResult,
    ValidationError,
)
from bot.utils.cache import DedupCache
from bot.utils.i18n import I18nManager
from .invite_links import InviteLinkService


def profile_from_user(user: User) -> ParticipantProfile:
    return ParticipantProfile(
        first_name=user.first_name or "",
        last_name=user.last_name,
        username=user.username,
    )


class OnboardingService:
    """Связывает апдейты Telegram с движком конкурса.

    Отклонённый реферальный код не мешает вступлению: участник
    регистрируется без привязки. Повторяемые ошибки движка повторяются
    один раз.
    """

    def __init__(
        self,
        bot: Bot,
        contest: ContestEngine,
        cache: DedupCache,
        invite_links: InviteLinkService,
        i18n: I18nManager,
        *,
        task_url: str,
        prompt_ttl: float,
    ) -> None:
        self._bot = bot
        self._contest = contest
        self._cache = cache
        self._invite_links = invite_links
        self._i18n = i18n
        self._task_url = task_url
        self._prompt_ttl = prompt_ttl

    async def register(
        self,
        user: User,
        community_id: int,
        referral_code: str | None = None,
    ) -> RegistrationResult:
        profile = profile_from_user(user)
        try:
            return await self._register_with_retry(user.id, community_id, profile, referral_code)
        except ValidationError as exc:
            if referral_code is None:
                raise
            logger.info(
                "Код {code} от {user} отклонён ({error}) — регистрация без кода",
                code=referral_code,
                user=user.id,
                error=exc,
            )
            return await self._register_with_retry(user.id, community_id, profile, None)

    async def greet(self, user: User, result: RegistrationResult, locale: str | None = None) -> bool:
        """Приветствие один раз за prompt_ttl; без выполненного задания — с кнопками."""

        participant = result.participant
        if not await self._cache.mark_once(
            f"welcome:{participant.community_id}:{user.id}", ttl=self._prompt_ttl
        ):
            return False

        gettext = partial(self._i18n.gettext, locale=locale)
        link = await self._invite_links.get_link(participant) or ""
        name = html.escape(participant.display_name)
        if participant.task_completed:
            text = gettext("welcome_back", name=name, points=participant.points, link=link)
            markup = None
        else:
            text = gettext(
                "welcome_task",
                name=name,
                task_points=self._contest.rules.task_points,
                referral_points=self._contest.rules.referral_points,
                link=link,
            )
            markup = build_task_keyboard(user.id, self._task_url, gettext)

        try:
            await self._bot.send_message(chat_id=user.id, text=text, reply_markup=markup)
        except TelegramAPIError as exc:
            logger.warning("Приветствие для {user} не доставлено: {error}", user=user.id, error=exc)
            await self._cache.forget(f"welcome:{participant.community_id}:{user.id}")
            return False
        if not participant.task_completed:
            await self.remember_prompt(participant.community_id, user.id)
        return True

    async def remember_prompt(self, community_id: int, user_id: int) -> None:
        await self._cache.remember(
            self._prompt_key(community_id, user_id), utcnow().isoformat(), ttl=self._prompt_ttl
        )

    async def prompt_sent_at(self, community_id: int, user_id: int) -> datetime | None:
        raw = await self._cache.recall(self._prompt_key(community_id, user_id))
        return datetime.fromisoformat(raw) if raw else None

    @staticmethod
    def _prompt_key(community_id: int, user_id: int) -> str:
        return f"welcome_sent:{community_id}:{user_id}"

    async def _register_with_retry(
        self,
        user_id: int,
        community_id: int,
        profile: ParticipantProfile,
        referral_code: str | None,
    ) -> RegistrationResult:
        try:
            return await self._contest.register_or_activate(user_id, community_id, profile, referral_code)
        except ContestError as exc:
            if not exc.retryable:
                raise
            logger.warning("Повтор регистрации {user} после {error}", user=user_id, error=exc)
        return await self._contest.register_or_activate(user_id, community_id, profile, referral_code)


__all__ = ["OnboardingService", "profile_from_user"]
