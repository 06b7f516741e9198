"""Реестр участников: атомарный upsert и реактивация."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from bot.models import Participant
from bot.repositories import get_participant, insert_participant_if_absent, reactivate_participant
from .errors import StorageError
from .lifecycle import MemberState
from .referrals import generate_referral_code
from .schemas import ParticipantProfile


async def get_or_create(
    session: AsyncSession,
    external_user_id: int,
    community_id: int,
    profile: ParticipantProfile,
) -> tuple[Participant, MemberState]:
    """Возвращает участника и его состояние ДО этого вызова.

    INSERT ... ON CONFLICT DO NOTHING идёт первым: два параллельных вызова
    никогда не создадут две строки, а транзакция сразу берёт блокировку
    на запись.
    """

    created = await insert_participant_if_absent(
        session,
        {
            "external_user_id": external_user_id,
            "community_id": community_id,
            "first_name": profile.first_name or "",
            "last_name": profile.last_name,
            "username": profile.username,
            "referral_code": generate_referral_code(),
        },
    )
    participant = await get_participant(session, external_user_id, community_id)
    if participant is None:
        raise StorageError(f"Upsert участника {external_user_id} не вернул строку")
    if created:
        return participant, MemberState.UNREGISTERED
    if participant.is_active:
        return participant, MemberState.ACTIVE
    return participant, MemberState.INACTIVE


async def reactivate(
    session: AsyncSession,
    participant: Participant,
    profile: ParticipantProfile,
) -> Participant:
    """Возврат ушедшего участника: профиль обновляется, очки и связи не трогаются."""

    await reactivate_participant(
        session,
        participant.id,
        first_name=profile.first_name or participant.first_name,
        last_name=profile.last_name,
        username=profile.username,
    )
    refreshed = await get_participant(session, participant.external_user_id, participant.community_id)
    return refreshed or participant


__all__ = ["get_or_create", "reactivate"]
