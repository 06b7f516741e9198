"""Вступление в канал и выход из него."""

from __future__ import annotations

from aiogram import F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ChatJoinRequest, ChatMemberUpdated
from loguru import logger

from bot.context import activity, contest, onboarding, settings
from bot.models import ActivityAction
from bot.services.contest import MemberEvent, classify_status_change
from bot.services.core.invite_links import parse_link_name
from bot.services.core.onboarding import profile_from_user

router = Router(name="contest-membership")
router.chat_join_request.filter(F.chat.id == settings.telegram.channel_id)
router.chat_member.filter(F.chat.id == settings.telegram.channel_id)


@router.chat_join_request()
async def handle_join_request(request: ChatJoinRequest, locale: str | None = None) -> None:
    """Одобряем заявку, регистрируем с кодом из имени ссылки и шлём задание."""

    user = request.from_user
    code = parse_link_name(request.invite_link.name if request.invite_link else None)
    profile = profile_from_user(user)
    await activity.record(
        ActivityAction.JOIN_REQUEST, user.id, request.chat.id, profile=profile, referral_code=code
    )
    try:
        await request.approve()
    except TelegramAPIError as exc:
        logger.warning("Заявку {user} не удалось одобрить: {error}", user=user.id, error=exc)
        await activity.record(
            ActivityAction.REJECTED, user.id, request.chat.id, profile=profile, details=str(exc)[:255]
        )
        return
    await activity.record(ActivityAction.APPROVED, user.id, request.chat.id, profile=profile)

    result = await onboarding.register(user, request.chat.id, code)
    logger.info(
        "Заявка {user} одобрена (новый={created}, реферер={referrer})",
        user=user.id,
        created=result.created,
        referrer=result.referrer.id if result.referrer else None,
    )
    await onboarding.greet(user, result, locale)


@router.chat_member()
async def handle_member_update(update: ChatMemberUpdated, locale: str | None = None) -> None:
    user = update.new_chat_member.user
    if user.is_bot:
        return
    old_status = update.old_chat_member.status
    new_status = update.new_chat_member.status
    event = classify_status_change(old_status, new_status)
    details = f"{getattr(old_status, 'value', old_status)} -> {getattr(new_status, 'value', new_status)}"
    if event is MemberEvent.JOINED:
        code = parse_link_name(update.invite_link.name if update.invite_link else None)
        await activity.record(
            ActivityAction.JOINED,
            user.id,
            update.chat.id,
            profile=profile_from_user(user),
            referral_code=code,
            details=details,
        )
        result = await onboarding.register(user, update.chat.id, code)
        await onboarding.greet(user, result, locale)
    elif event is MemberEvent.LEFT:
        await activity.record(
            ActivityAction.LEFT, user.id, update.chat.id, profile=profile_from_user(user), details=details
        )
        result = await contest.handle_departure(user.id, update.chat.id)
        logger.info(
            "Участник {user} вышел (деактивирован={departed}, снято связей={revoked})",
            user=user.id,
            departed=result.departed,
            revoked=len(result.revoked),
        )


__all__ = ["router"]
