"""Персональные инвайт-ссылки в канал конкурса."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from loguru import logger

from bot.services.contest import ParticipantView
from bot.utils.cache import DedupCache

LINK_NAME_PREFIX = "Referral: "
_LINK_NAME_RE = re.compile(r"^Referral:\s*(?P<code>\S+)$")


def link_name(referral_code: str) -> str:
    return f"{LINK_NAME_PREFIX}{referral_code}"


def parse_link_name(name: str | None) -> str | None:
    """Достаёт реферальный код из имени инвайт-ссылки ("Referral: <code>")."""

    if not name:
        return None
    match = _LINK_NAME_RE.match(name.strip())
    return match.group("code") if match else None


class InviteLinkService:
    """Создаёт ссылку с заявкой на вступление и мемоизирует её в кеше.

    Ссылка живёт expire_seconds, в кеше хранится меньше (ttl_seconds),
    чтобы пользователь никогда не получил уже истёкшую ссылку.
    """

    def __init__(
        self,
        bot: Bot,
        cache: DedupCache,
        *,
        ttl_seconds: int,
        expire_seconds: int,
    ) -> None:
        self._bot = bot
        self._cache = cache
        self._ttl = ttl_seconds
        self._expire = expire_seconds

    async def get_link(self, participant: ParticipantView) -> str | None:
        key = f"invite:{participant.community_id}:{participant.referral_code}"

        async def create() -> str | None:
            expire_date = datetime.now(timezone.utc) + timedelta(seconds=self._expire)
            try:
                invite = await self._bot.create_chat_invite_link(
                    chat_id=participant.community_id,
                    name=link_name(participant.referral_code),
                    expire_date=expire_date,
                    creates_join_request=True,
                )
            except TelegramAPIError as exc:
                logger.error(
                    "Не удалось создать инвайт-ссылку для {user}: {error}",
                    user=participant.external_user_id,
                    error=exc,
                )
                return None
            logger.info(
                "Создана инвайт-ссылка для {user} (код {code})",
                user=participant.external_user_id,
                code=participant.referral_code,
            )
            return invite.invite_link

        return await self._cache.get_or_set(key, self._ttl, create)


__all__ = ["InviteLinkService", "LINK_NAME_PREFIX", "link_name", "parse_link_name"]
