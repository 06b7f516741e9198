"""Утилита для первичной инициализации базы данных без Alembic."""

from __future__ import annotations

import asyncio

from loguru import logger

from bot.database import dispose_engine, init_db


async def _run() -> None:
    await init_db()
    await dispose_engine()
    logger.info("Таблицы конкурса созданы")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
