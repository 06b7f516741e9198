from __future__ import annotations

from pathlib import Path

import pytest

from bot.database import build_session_maker, create_engine
from bot.models import ActivityAction
from bot.services.contest import ContestEngine, ParticipantProfile
from bot.services.core.activity import ActivityLog
from bot.services.core.reports import check_health, render_health, render_history, render_stats
from bot.utils.cache import DedupCache
from bot.utils.i18n import I18nManager
from conftest import COMMUNITY_ID, OTHER_COMMUNITY_ID, join

LOCALES = Path(__file__).resolve().parent.parent / "locales"


@pytest.fixture
def activity(session_maker, clock) -> ActivityLog:
    return ActivityLog(session_maker, approval_window=300, now=clock)


@pytest.fixture
def i18n() -> I18nManager:
    return I18nManager(LOCALES, default_locale="en", enabled_locales=["en"])


@pytest.mark.anyio
@pytest.mark.unit
class TestActivityLog:
    async def test_history_is_newest_first(self, activity: ActivityLog, clock) -> None:
        ann = ParticipantProfile(first_name="Ann", username="ann")
        await activity.record(ActivityAction.JOIN_REQUEST, 1, COMMUNITY_ID, profile=ann, referral_code="REFX")
        clock.advance(1)
        await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID, profile=ann)
        clock.advance(60)
        await activity.record(ActivityAction.LEFT, 1, COMMUNITY_ID, details="member -> left")
        await activity.record(ActivityAction.JOIN_REQUEST, 1, OTHER_COMMUNITY_ID)

        history = await activity.history(1, COMMUNITY_ID)
        assert [entry.action for entry in history] == [
            ActivityAction.LEFT,
            ActivityAction.APPROVED,
            ActivityAction.JOIN_REQUEST,
        ]
        assert history[-1].referral_code == "REFX"
        assert history[0].created_at == clock.now

    async def test_repeated_approval_is_recorded_once_per_window(self, activity: ActivityLog, clock) -> None:
        assert await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID) is True
        clock.advance(120)
        assert await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID) is False
        clock.advance(400)
        assert await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID) is True
        assert len(await activity.history(1, COMMUNITY_ID)) == 2

    async def test_chat_stats(self, activity: ActivityLog, clock) -> None:
        await activity.record(ActivityAction.JOIN_REQUEST, 1, COMMUNITY_ID)
        await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID)
        clock.advance(2 * 24 * 3600)
        await activity.record(ActivityAction.JOIN_REQUEST, 2, COMMUNITY_ID)
        await activity.record(ActivityAction.REJECTED, 2, COMMUNITY_ID)
        await activity.record(ActivityAction.LEFT, 1, COMMUNITY_ID)
        await activity.record(ActivityAction.JOINED, 3, OTHER_COMMUNITY_ID)

        stats = await activity.chat_stats(COMMUNITY_ID)
        assert stats.total == 5
        assert stats.unique_users == 2
        assert stats.count(ActivityAction.JOIN_REQUEST) == 2
        assert stats.count(ActivityAction.JOINED) == 0
        assert stats.recent == 3

    async def test_cleanup_removes_only_old_records(self, activity: ActivityLog, clock) -> None:
        await activity.record(ActivityAction.JOIN_REQUEST, 1, COMMUNITY_ID)
        clock.advance(100 * 24 * 3600)
        await activity.record(ActivityAction.LEFT, 1, COMMUNITY_ID)

        assert await activity.cleanup(90) == 1
        assert [entry.action for entry in await activity.history(1, COMMUNITY_ID)] == [ActivityAction.LEFT]

    async def test_disabled_log_records_nothing(self, session_maker) -> None:
        log = ActivityLog(session_maker, enabled=False)
        assert await log.record(ActivityAction.JOINED, 1, COMMUNITY_ID) is False
        assert await log.history(1, COMMUNITY_ID) == []

    async def test_storage_failure_does_not_raise(self, tmp_path) -> None:
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            log = ActivityLog(build_session_maker(engine))
            assert await log.record(ActivityAction.JOINED, 1, COMMUNITY_ID) is False
        finally:
            await engine.dispose()


@pytest.mark.anyio
@pytest.mark.unit
class TestCommunityStats:
    async def test_counters(self, contest: ContestEngine, clock) -> None:
        referrer = (await join(contest, 1)).participant
        await join(contest, 2, referrer.referral_code)
        await join(contest, 3, referrer.referral_code)
        await contest.complete_task(2, COMMUNITY_ID, clock.ago(31))
        await contest.handle_departure(3, COMMUNITY_ID)
        await join(contest, 4, community_id=OTHER_COMMUNITY_ID)

        stats = await contest.get_community_stats(COMMUNITY_ID)
        assert stats.participants == 3
        assert stats.active == 2
        assert stats.task_completed == 1
        assert stats.active_referrals == 1
        assert stats.total_points == 2 + 3

    async def test_empty_community(self, contest: ContestEngine) -> None:
        stats = await contest.get_community_stats(COMMUNITY_ID)
        assert (stats.participants, stats.active, stats.total_points) == (0, 0, 0)


@pytest.mark.anyio
@pytest.mark.unit
class TestReports:
    async def test_health_of_working_database(self, db_engine, i18n, monotonic) -> None:
        cache = DedupCache(clock=monotonic)
        await cache.remember("a", 1)
        report = await check_health(db_engine, cache, started_at=monotonic() - 600, clock=monotonic)

        assert report.healthy is True
        assert report.cache.keys == 1
        assert report.uptime_seconds >= 600
        text = render_health(i18n, report)
        assert "operational" in text
        assert "10 min" in text

    async def test_health_of_unreachable_database(self, tmp_path, i18n) -> None:
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'contest.db'}")
        try:
            report = await check_health(engine, DedupCache(), started_at=0.0)
        finally:
            await engine.dispose()

        assert report.healthy is False
        assert "unreachable" in render_health(i18n, report)

    async def test_stats_and_history_rendering(
        self, contest: ContestEngine, activity: ActivityLog, i18n
    ) -> None:
        await join(contest, 1)
        await activity.record(ActivityAction.JOIN_REQUEST, 1, COMMUNITY_ID, referral_code="REF<1>")
        await activity.record(ActivityAction.APPROVED, 1, COMMUNITY_ID)

        stats_text = render_stats(
            i18n,
            await contest.get_community_stats(COMMUNITY_ID),
            await activity.chat_stats(COMMUNITY_ID),
        )
        assert "Participants: <b>1</b>" in stats_text
        assert "Requests: 1" in stats_text

        history_text = render_history(i18n, 1, await activity.history(1, COMMUNITY_ID))
        assert "approved" in history_text
        assert "REF&lt;1&gt;" in history_text
        assert "No events" in render_history(i18n, 2, [])
