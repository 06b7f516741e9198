"""Async движок SQLModel и фабрика сессий."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from bot import models  # noqa: F401  импортируем модели для регистрации метаданных

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def create_engine(dsn: str, *, echo: bool = False) -> AsyncEngine:
    connect_args = {}
    if dsn.startswith("sqlite"):
        # несколько конкурентных писателей ждут блокировку, а не падают сразу
        connect_args["timeout"] = 30
    return create_async_engine(dsn, echo=echo, poolclass=NullPool, connect_args=connect_args)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from config.settings import get_settings

        settings = get_settings()
        _engine = create_engine(settings.database.dsn, echo=settings.database.echo)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = build_session_maker(get_engine())
    return _session_maker


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Создаёт таблицы без Alembic (локальный запуск и тесты)."""

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


__all__ = [
    "build_session_maker",
    "create_engine",
    "dispose_engine",
    "get_engine",
    "get_session_maker",
    "init_db",
]
