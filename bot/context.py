"""Глобальные сервисы и зависимости бота конкурса."""

from __future__ import annotations

import time

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

from config.settings import get_settings
from .database import get_engine, get_session_maker
from .services.contest import ContestEngine, ContestRules, EventBus
from .services.core.activity import ActivityLog
from .services.core.invite_links import InviteLinkService
from .services.core.leaderboard_publisher import LeaderboardPublisher
from .services.core.notifications import ContestNotifier
from .services.core.onboarding import OnboardingService
from .utils.cache import build_dedup_cache, configure_cache
from .utils.i18n import get_i18n

settings = get_settings()

configure_cache()
started_at = time.monotonic()
db_engine = get_engine()
session_maker = get_session_maker()
cache = build_dedup_cache()
i18n = get_i18n()

bot = Bot(
    token=settings.telegram.token,
    default=DefaultBotProperties(parse_mode=ParseMode.HTML),
)
dp = Dispatcher(storage=MemoryStorage())

events = EventBus()
contest = ContestEngine(
    session_maker,
    rules=ContestRules.from_settings(settings.contest),
    cache=cache,
    events=events,
)
invite_links = InviteLinkService(
    bot,
    cache,
    ttl_seconds=settings.contest.invite_link_ttl_sec,
    expire_seconds=settings.contest.invite_link_expire_sec,
)
onboarding = OnboardingService(
    bot,
    contest,
    cache,
    invite_links,
    i18n,
    task_url=str(settings.contest.task_url),
    prompt_ttl=settings.contest.prompt_marker_ttl_sec,
)
activity = ActivityLog(
    session_maker,
    enabled=settings.activity.enabled,
    approval_window=settings.activity.approval_dedup_window_sec,
)
notifier = ContestNotifier(bot, contest, i18n)
leaderboard_publisher = LeaderboardPublisher(
    bot,
    contest,
    i18n,
    channel_id=settings.telegram.channel_id,
    interval=settings.leaderboard.interval_sec,
    size=settings.leaderboard.size,
)

__all__ = [
    "activity",
    "bot",
    "cache",
    "contest",
    "db_engine",
    "dp",
    "events",
    "i18n",
    "invite_links",
    "leaderboard_publisher",
    "notifier",
    "onboarding",
    "session_maker",
    "settings",
    "started_at",
]
