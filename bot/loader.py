"""Loader бота конкурса — подключение роутеров, middleware и фоновых задач."""

from __future__ import annotations

from aiogram import Dispatcher
from loguru import logger

from .context import bot, cache, contest, dp, events, leaderboard_publisher, notifier, settings
from .database import dispose_engine, init_db
from .handlers import register_routers
from .middlewares import ErrorsMiddleware, I18nMiddleware, ThrottlingMiddleware

register_routers(dp)


async def on_startup(dispatcher: Dispatcher) -> None:
    """Регистрация middlewares, подписчиков и фоновых задач."""

    logger.info("Бот конкурса стартует в окружении {env}", env=settings.environment)
    if not settings.is_production:
        logger.debug("on_startup: create tables (dev)")
        await init_db()
    logger.debug("on_startup: setup middlewares")
    _setup_middlewares(dispatcher)
    logger.debug("on_startup: attach event subscribers")
    notifier.attach(events)
    if settings.leaderboard.enabled:
        logger.debug("on_startup: start leaderboard publisher")
        await leaderboard_publisher.start()
    logger.info("on_startup завершён, бот готов принимать апдейты")


async def on_shutdown(dispatcher: Dispatcher) -> None:
    """Мягкое выключение сервиса."""

    await leaderboard_publisher.stop()
    notifier.detach(events)
    await dispose_engine()
    logger.info("Бот конкурса корректно остановлен (кеш: {stats})", stats=cache.stats())


def _setup_middlewares(dispatcher: Dispatcher) -> None:
    """Подключает i18n/throttling/error middlewares."""

    i18n_mw = I18nMiddleware()
    throttling_mw = ThrottlingMiddleware(cache, max_count=2, window=1.0)
    errors_mw = ErrorsMiddleware()

    for observer in (
        dispatcher.message,
        dispatcher.callback_query,
        dispatcher.chat_join_request,
        dispatcher.chat_member,
    ):
        observer.middleware(i18n_mw)
        observer.middleware(errors_mw)

    dispatcher.message.middleware(throttling_mw)
    logger.debug("Middleware стек активирован")


__all__ = ["bot", "contest", "dp", "on_shutdown", "on_startup"]
