from __future__ import annotations

import asyncio

import pytest
from sqlmodel import select

from bot.models import ReferralEdge, ReferralStatus
from bot.services.contest import ContestEngine, ContestRules, ParticipantDeparted
from conftest import COMMUNITY_ID, join


async def load_edges(session_maker) -> list[ReferralEdge]:
    async with session_maker() as session:
        return list((await session.exec(select(ReferralEdge))).all())


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.referral
class TestDepartureCascade:
    async def test_departure_revokes_referral(self, contest: ContestEngine, session_maker, clock) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)

        result = await contest.handle_departure(200, COMMUNITY_ID)

        assert result.departed is True
        assert result.revoked == ((referrer.id, 2),)
        stats = await contest.get_stats(100, COMMUNITY_ID)
        assert stats.points == 0
        assert stats.referral_count == 0
        assert (await contest.get_stats(200, COMMUNITY_ID)).is_active is False

        (edge,) = await load_edges(session_maker)
        assert edge.status is ReferralStatus.LEFT
        assert edge.left_at is not None

    async def test_repeated_departure_is_noop(self, contest: ContestEngine) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)

        await contest.handle_departure(200, COMMUNITY_ID)
        again = await contest.handle_departure(200, COMMUNITY_ID)

        assert again.departed is False
        assert again.revoked == ()
        stats = await contest.get_stats(100, COMMUNITY_ID)
        assert (stats.points, stats.referral_count) == (0, 0)

    async def test_concurrent_departures_revoke_once(self, contest: ContestEngine) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)
        await join(contest, 300, referrer.referral_code)

        results = await asyncio.gather(*(contest.handle_departure(200, COMMUNITY_ID) for _ in range(10)))

        assert sum(result.departed for result in results) == 1
        stats = await contest.get_stats(100, COMMUNITY_ID)
        assert (stats.points, stats.referral_count) == (2, 1)

    async def test_unknown_participant_departure(self, contest: ContestEngine) -> None:
        result = await contest.handle_departure(404, COMMUNITY_ID)
        assert result.departed is False
        assert result.revoked == ()

    async def test_referrer_departure_keeps_outbound_edges(self, contest: ContestEngine, session_maker) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)

        result = await contest.handle_departure(100, COMMUNITY_ID)

        assert result.departed is True
        assert result.revoked == ()
        stats = await contest.get_stats(100, COMMUNITY_ID)
        assert (stats.points, stats.referral_count, stats.is_active) == (2, 1, False)
        (edge,) = await load_edges(session_maker)
        assert edge.status is ReferralStatus.ACTIVE

    async def test_revocation_uses_points_fixed_on_edge(self, session_maker, clock) -> None:
        old_rules = ContestEngine(session_maker, rules=ContestRules(referral_points=2), now=clock)
        new_rules = ContestEngine(session_maker, rules=ContestRules(referral_points=5), now=clock)

        referrer = (await join(old_rules, 100)).participant
        await join(old_rules, 200, referrer.referral_code)
        await join(new_rules, 300, referrer.referral_code)
        assert (await new_rules.get_stats(100, COMMUNITY_ID)).points == 7

        result = await new_rules.handle_departure(200, COMMUNITY_ID)
        assert result.revoked == ((referrer.id, 2),)
        assert (await new_rules.get_stats(100, COMMUNITY_ID)).points == 5

    async def test_departed_event(self, contest: ContestEngine, events) -> None:
        received: list[ParticipantDeparted] = []

        async def collect(event: ParticipantDeparted) -> None:
            received.append(event)

        events.subscribe(ParticipantDeparted, collect)
        referrer = (await join(contest, 100)).participant
        referred = (await join(contest, 200, referrer.referral_code)).participant
        await contest.handle_departure(200, COMMUNITY_ID)
        await contest.handle_departure(200, COMMUNITY_ID)

        assert received == [
            ParticipantDeparted(
                participant_id=referred.id,
                external_user_id=200,
                revoked_referrals=((referrer.id, 2),),
            )
        ]


@pytest.mark.anyio
@pytest.mark.unit
class TestRejoin:
    async def test_rejoin_reactivates_without_side_effects(self, contest: ContestEngine, session_maker, clock) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)
        await contest.complete_task(200, COMMUNITY_ID, clock.ago(31))
        await contest.handle_departure(200, COMMUNITY_ID)

        result = await join(contest, 200, referrer.referral_code)

        assert result.created is False
        assert result.reactivated is True
        assert result.referrer is None
        assert result.participant.is_active is True
        assert result.participant.points == 3
        assert (await contest.get_stats(100, COMMUNITY_ID)).points == 0
        edges = await load_edges(session_maker)
        assert len(edges) == 1
        assert edges[0].status is ReferralStatus.LEFT

    async def test_rejoin_refreshes_profile(self, contest: ContestEngine) -> None:
        from bot.services.contest import ParticipantProfile

        await join(contest, 200)
        await contest.handle_departure(200, COMMUNITY_ID)
        result = await contest.register_or_activate(
            200, COMMUNITY_ID, ParticipantProfile(first_name="Renamed", username="renamed")
        )

        assert result.participant.first_name == "Renamed"
        assert result.participant.username == "renamed"

    async def test_departure_after_rejoin_revokes_nothing_twice(self, contest: ContestEngine) -> None:
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)
        await contest.handle_departure(200, COMMUNITY_ID)
        await join(contest, 200)

        result = await contest.handle_departure(200, COMMUNITY_ID)
        assert result.departed is True
        assert result.revoked == ()
        assert (await contest.get_stats(100, COMMUNITY_ID)).points == 0
