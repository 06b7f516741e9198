"""Реферальные коды и начисление за приглашение."""

from __future__ import annotations

import re
import secrets
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bot.models import Participant
from bot.repositories import (
    create_edge,
    credit_referral,
    get_participant,
    get_participant_by_code,
    get_participant_by_id,
    set_referred_by,
)
from .errors import ConcurrencyConflict, ValidationError

CODE_PREFIX = "REF"
CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def generate_referral_code() -> str:
    """Код всегда начинается с REF, поэтому не бывает чисто цифровым."""

    return f"{CODE_PREFIX}{secrets.token_hex(6).upper()}"


def validate_code(code: str) -> str:
    cleaned = (code or "").strip()
    if not CODE_PATTERN.match(cleaned):
        raise ValidationError(f"Некорректный реферальный код: {code!r}")
    return cleaned


async def resolve_referrer(
    session: AsyncSession,
    code: str,
    community_id: int,
) -> Participant | None:
    """Точное совпадение кода в том же сообществе.

    Чисто цифровой код без совпадения трактуется по-старому: это
    external_user_id реферера в том же сообществе.
    """

    referrer = await get_participant_by_code(session, code, community_id)
    if referrer is None and code.isdigit():
        referrer = await get_participant(session, int(code), community_id)
        if referrer is not None:
            logger.debug("Код {code} распознан как legacy user id", code=code)
    return referrer


async def reject_self_referral(session: AsyncSession, participant: Participant, code: str) -> None:
    """Код уже зарегистрированного участника не начисляется, но свой код отклоняется."""

    cleaned = (code or "").strip()
    if not CODE_PATTERN.match(cleaned):
        return
    referrer = await resolve_referrer(session, cleaned, participant.community_id)
    if referrer is not None and referrer.id == participant.id:
        raise ValidationError("Нельзя пригласить самого себя")


async def attribute_referral(
    session: AsyncSession,
    participant: Participant,
    code: str,
    *,
    points: int,
    at: datetime,
) -> Participant | None:
    """Привязывает нового участника к рефереру и начисляет очки.

    Возвращает обновлённого реферера или None, если привязки не было.
    """

    code = validate_code(code)
    referrer = await resolve_referrer(session, code, participant.community_id)
    if referrer is None:
        logger.info("Реферальный код {code} не найден — регистрация без привязки", code=code)
        return None
    if referrer.id == participant.id:
        raise ValidationError("Нельзя пригласить самого себя")
    if not referrer.is_active:
        logger.info(
            "Реферер {referrer} неактивен — участник {participant} без привязки",
            referrer=referrer.id,
            participant=participant.id,
        )
        return None

    if not await credit_referral(session, referrer.id, points=points, at=at):
        # реферер ушёл между чтением и UPDATE; повтор зарегистрирует без привязки
        raise ConcurrencyConflict(f"Реферер {referrer.id} деактивирован параллельно")
    await set_referred_by(session, participant.id, referrer.id)
    await create_edge(
        session,
        referrer_id=referrer.id,
        referred_id=participant.id,
        community_id=participant.community_id,
        points_awarded=points,
    )
    logger.info(
        "Реферал {referred} привязан к {referrer}: +{points} очк.",
        referred=participant.id,
        referrer=referrer.id,
        points=points,
    )
    return await get_participant_by_id(session, referrer.id)


__all__ = [
    "CODE_PATTERN",
    "CODE_PREFIX",
    "attribute_referral",
    "generate_referral_code",
    "reject_self_referral",
    "resolve_referrer",
    "validate_code",
]
