from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel

from bot.database import build_session_maker, create_engine
from bot.services.contest import ContestEngine, ContestRules, EventBus, ParticipantProfile
from bot.utils.cache import DedupCache

COMMUNITY_ID = -1001234567890
OTHER_COMMUNITY_ID = -1009876543210


class FakeClock:
    """Подменяемые «настенные» часы движка."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def ago(self, seconds: float) -> datetime:
        return self.now - timedelta(seconds=seconds)


class FakeMonotonic:
    """Монотонные часы для дедуп-кеша."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def dedup_cache(monotonic: FakeMonotonic) -> DedupCache:
    return DedupCache(max_keys=100, default_ttl=3600, clock=monotonic)


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'contest.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine):
    return build_session_maker(db_engine)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def contest(session_maker, clock: FakeClock, events: EventBus) -> ContestEngine:
    return ContestEngine(session_maker, rules=ContestRules(), events=events, now=clock)


@pytest.fixture
def cached_contest(session_maker, clock: FakeClock, events: EventBus, dedup_cache: DedupCache) -> ContestEngine:
    return ContestEngine(
        session_maker,
        rules=ContestRules(ranking_snapshot_ttl=60.0),
        cache=dedup_cache,
        events=events,
        now=clock,
    )


def profile(name: str) -> ParticipantProfile:
    return ParticipantProfile(first_name=name, username=name.lower())


async def join(contest: ContestEngine, user_id: int, code: str | None = None, community_id: int = COMMUNITY_ID):
    return await contest.register_or_activate(user_id, community_id, profile(f"User{user_id}"), code)
