"""Entry point бота конкурса."""

from __future__ import annotations

import asyncio

from loguru import logger

from config.settings import get_settings
from .logging_config import setup_logging


async def main() -> None:
    settings = get_settings()
    setup_logging(json=settings.log_json, level=settings.log_level)

    from .loader import bot, dp, on_shutdown, on_startup

    await on_startup(dp)
    logger.info("Запуск aiogram polling...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await on_shutdown(dp)
    logger.info("Polling завершён")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
