"""Жизненный цикл участника в сообществе.

UNREGISTERED -> ACTIVE -> INACTIVE -> ACTIVE -> ...; терминального
состояния нет. Переходы — чистые функции, эффекты применяет движок
внутри одной транзакции.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bot.models import Participant
from bot.repositories import (
    deactivate_participant,
    debit_referral,
    get_participant,
    list_active_inbound,
    mark_edge_left,
)


class MemberState(str, Enum):
    UNREGISTERED = "unregistered"
    ACTIVE = "active"
    INACTIVE = "inactive"


class MemberEvent(str, Enum):
    JOINED = "joined"
    LEFT = "left"


class Effect(str, Enum):
    CREATE = "create"
    ATTRIBUTE_REFERRAL = "attribute_referral"
    REACTIVATE = "reactivate"
    DEACTIVATE = "deactivate"
    REVOKE_REFERRALS = "revoke_referrals"


@dataclass(slots=True, frozen=True)
class Transition:
    new_state: MemberState
    effects: tuple[Effect, ...] = ()


_TRANSITIONS: dict[tuple[MemberState, MemberEvent], Transition] = {
    (MemberState.UNREGISTERED, MemberEvent.JOINED): Transition(
        MemberState.ACTIVE, (Effect.CREATE, Effect.ATTRIBUTE_REFERRAL)
    ),
    (MemberState.INACTIVE, MemberEvent.JOINED): Transition(
        MemberState.ACTIVE, (Effect.REACTIVATE,)
    ),
    (MemberState.ACTIVE, MemberEvent.JOINED): Transition(MemberState.ACTIVE),
    (MemberState.ACTIVE, MemberEvent.LEFT): Transition(
        MemberState.INACTIVE, (Effect.DEACTIVATE, Effect.REVOKE_REFERRALS)
    ),
    (MemberState.INACTIVE, MemberEvent.LEFT): Transition(MemberState.INACTIVE),
    (MemberState.UNREGISTERED, MemberEvent.LEFT): Transition(MemberState.UNREGISTERED),
}


def transition(state: MemberState, event: MemberEvent) -> Transition:
    return _TRANSITIONS[(state, event)]


def state_of(participant) -> MemberState:
    if participant is None:
        return MemberState.UNREGISTERED
    return MemberState.ACTIVE if participant.is_active else MemberState.INACTIVE


PRESENT_STATUSES = frozenset({"member", "administrator", "creator"})
GONE_STATUSES = frozenset({"left", "kicked", "banned"})


def _normalize(status) -> str:
    # aiogram отдаёт ChatMemberStatus (str-enum), в тестах обычные строки
    return str(getattr(status, "value", status)).lower()


def classify_status_change(old_status, new_status) -> MemberEvent | None:
    """Переводит смену статуса в Telegram в событие жизненного цикла.

    present -> gone: LEFT; иначе gone/unknown -> present: JOINED.
    Остальные смены (например, member -> administrator) событий не дают.
    """

    old, new = _normalize(old_status), _normalize(new_status)
    if old in PRESENT_STATUSES and new in GONE_STATUSES:
        return MemberEvent.LEFT
    if old not in PRESENT_STATUSES and new in PRESENT_STATUSES:
        return MemberEvent.JOINED
    return None


async def apply_departure(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    *,
    at: datetime,
) -> tuple[Participant | None, Transition, list[tuple[int, int]]]:
    """Уход участника: деактивация и снятие реферальных очков.

    Первым идёт UPDATE участника, затем каждая ACTIVE-связь закрывается
    check-and-set'ом; реферер уменьшается только если связь закрыл именно
    этот вызов. Повторная обработка ухода ничего не меняет.
    """

    departed = await deactivate_participant(session, external_user_id, community_id)
    participant = await get_participant(session, external_user_id, community_id)
    prior = MemberState.ACTIVE if departed else state_of(participant)
    step = transition(prior, MemberEvent.LEFT)
    revoked: list[tuple[int, int]] = []
    if participant is None or Effect.REVOKE_REFERRALS not in step.effects:
        return participant, step, revoked

    for edge in await list_active_inbound(session, participant.id):
        if not await mark_edge_left(session, edge.id, at=at):
            continue
        await debit_referral(session, edge.referrer_id, points=edge.points_awarded)
        revoked.append((edge.referrer_id, edge.points_awarded))
        logger.info(
            "Реферал {referred} ушёл: у реферера {referrer} снято {points} очк.",
            referred=participant.id,
            referrer=edge.referrer_id,
            points=edge.points_awarded,
        )
    return participant, step, revoked


__all__ = [
    "Effect",
    "GONE_STATUSES",
    "MemberEvent",
    "MemberState",
    "PRESENT_STATUSES",
    "Transition",
    "apply_departure",
    "classify_status_change",
    "state_of",
    "transition",
]
