from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from aiogram.types import User

from bot.keyboards.inline.task import build_task_keyboard, parse_task_callback
from bot.services.contest import ContestEngine, ParticipantDeparted, ReferralAwarded
from bot.services.contest.referrals import validate_code
from bot.services.core.invite_links import InviteLinkService, link_name, parse_link_name
from bot.services.core.leaderboard_publisher import LeaderboardPublisher
from bot.services.core.notifications import ContestNotifier
from bot.services.core.onboarding import OnboardingService
from bot.utils.i18n import I18nManager
from conftest import COMMUNITY_ID, join

LOCALES = Path(__file__).resolve().parent.parent / "locales"


class FakeBot:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.links_created = 0

    async def send_message(self, **kwargs):
        self.sent.append(kwargs)
        return SimpleNamespace(message_id=len(self.sent))

    async def create_chat_invite_link(self, **kwargs):
        self.links_created += 1
        assert kwargs["creates_join_request"] is True
        return SimpleNamespace(invite_link=f"https://t.me/+invite{self.links_created}", name=kwargs["name"])


@pytest.fixture
def i18n() -> I18nManager:
    return I18nManager(LOCALES, default_locale="it", enabled_locales=["it", "en"])


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def invite_links(fake_bot, dedup_cache) -> InviteLinkService:
    return InviteLinkService(fake_bot, dedup_cache, ttl_seconds=60, expire_seconds=120)  # type: ignore[arg-type]


@pytest.fixture
def onboarding(fake_bot, contest, dedup_cache, invite_links, i18n) -> OnboardingService:
    return OnboardingService(
        fake_bot,  # type: ignore[arg-type]
        contest,
        dedup_cache,
        invite_links,
        i18n,
        task_url="https://www.tiktok.com/@contest",
        prompt_ttl=1800,
    )


def tg_user(user_id: int, name: str = "Ann") -> User:
    return User(id=user_id, is_bot=False, first_name=name, username=name.lower())


@pytest.mark.unit
class TestParsing:
    def test_invite_link_name_roundtrip(self) -> None:
        assert link_name("REFABC123") == "Referral: REFABC123"
        assert parse_link_name("Referral: REFABC123") == "REFABC123"
        assert parse_link_name("Promo link") is None
        assert parse_link_name(None) is None

    def test_task_callback(self) -> None:
        keyboard = build_task_keyboard(42, "https://example.com", lambda key, **kw: key)
        done_button = keyboard.inline_keyboard[1][0]
        assert done_button.callback_data == "task_done:42"
        assert parse_task_callback(done_button.callback_data) == 42
        assert parse_task_callback("task_done:abc") is None
        assert parse_task_callback("other:42") is None

    def test_code_validation(self) -> None:
        assert validate_code(" REF_ok-1 ") == "REF_ok-1"
        from bot.services.contest import ValidationError

        for bad in ("", "has space", "x" * 65, "ünïcode"):
            with pytest.raises(ValidationError):
                validate_code(bad)


@pytest.mark.anyio
@pytest.mark.unit
class TestOnboarding:
    async def test_rejected_code_falls_back_to_plain_registration(self, onboarding: OnboardingService) -> None:
        result = await onboarding.register(tg_user(555), COMMUNITY_ID, "555")
        assert result.created is True
        assert result.referrer is None

    async def test_greeting_is_sent_once_and_remembers_prompt(
        self, onboarding: OnboardingService, fake_bot: FakeBot, clock
    ) -> None:
        user = tg_user(100)
        result = await onboarding.register(user, COMMUNITY_ID)

        assert await onboarding.greet(user, result, "en") is True
        assert await onboarding.greet(user, result, "en") is False
        assert len(fake_bot.sent) == 1
        message = fake_bot.sent[0]
        assert message["chat_id"] == 100
        assert "https://t.me/+invite1" in message["text"]
        assert message["reply_markup"].inline_keyboard[1][0].callback_data == "task_done:100"
        assert await onboarding.prompt_sent_at(COMMUNITY_ID, 100) is not None

    async def test_returning_user_gets_no_task_buttons(
        self, onboarding: OnboardingService, contest: ContestEngine, fake_bot: FakeBot, clock
    ) -> None:
        user = tg_user(100)
        await onboarding.register(user, COMMUNITY_ID)
        await contest.complete_task(100, COMMUNITY_ID, clock.ago(31))
        await contest.handle_departure(100, COMMUNITY_ID)

        result = await onboarding.register(user, COMMUNITY_ID)
        assert result.reactivated is True
        await onboarding.greet(user, result)
        assert fake_bot.sent[-1]["reply_markup"] is None

    async def test_invite_link_is_memoized(
        self, invite_links: InviteLinkService, contest: ContestEngine, fake_bot: FakeBot
    ) -> None:
        participant = (await join(contest, 100)).participant
        first = await invite_links.get_link(participant)
        second = await invite_links.get_link(participant)
        assert first == second == "https://t.me/+invite1"
        assert fake_bot.links_created == 1


@pytest.mark.anyio
@pytest.mark.unit
class TestNotifications:
    async def test_referrer_is_notified(self, contest: ContestEngine, events, fake_bot: FakeBot, i18n) -> None:
        ContestNotifier(fake_bot, contest, i18n).attach(events)  # type: ignore[arg-type]
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)
        await contest.handle_departure(200, COMMUNITY_ID)

        assert [message["chat_id"] for message in fake_bot.sent] == [100, 100]
        assert "+2" in fake_bot.sent[0]["text"]
        assert "-2" in fake_bot.sent[1]["text"]

    async def test_detached_notifier_stays_silent(
        self, contest: ContestEngine, events, fake_bot: FakeBot, i18n
    ) -> None:
        notifier = ContestNotifier(fake_bot, contest, i18n)  # type: ignore[arg-type]
        notifier.attach(events)
        notifier.detach(events)
        referrer = (await join(contest, 100)).participant
        await join(contest, 200, referrer.referral_code)

        assert fake_bot.sent == []

    async def test_direct_handlers(self, contest: ContestEngine, fake_bot: FakeBot, i18n) -> None:
        notifier = ContestNotifier(fake_bot, contest, i18n)  # type: ignore[arg-type]
        referrer = (await join(contest, 100)).participant
        await notifier.on_referral_awarded(
            ReferralAwarded(referrer_id=referrer.id, referrer_user_id=100, referred_id=2, new_point_total=4)
        )
        await notifier.on_participant_departed(
            ParticipantDeparted(participant_id=2, external_user_id=200, revoked_referrals=((9999, 2),))
        )
        assert len(fake_bot.sent) == 1


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.ranking
class TestLeaderboardPublisher:
    async def test_publish_now(self, contest: ContestEngine, fake_bot: FakeBot, i18n, clock) -> None:
        publisher = LeaderboardPublisher(
            fake_bot,  # type: ignore[arg-type]
            contest,
            i18n,
            channel_id=COMMUNITY_ID,
            interval=3600,
            size=5,
        )
        assert await publisher.publish_now() is False

        await join(contest, 1)
        await join(contest, 2)
        await contest.complete_task(2, COMMUNITY_ID, clock.ago(31))
        assert await publisher.publish_now() is True

        text = fake_bot.sent[-1]["text"]
        assert fake_bot.sent[-1]["chat_id"] == COMMUNITY_ID
        assert text.index("User2") < text.index("User1")


@pytest.mark.unit
class TestLocales:
    def test_locales_have_the_same_keys(self, i18n: I18nManager) -> None:
        assert i18n.missing_keys("en") == set()

    def test_fallback_to_default_locale(self, i18n: I18nManager) -> None:
        assert i18n.detect_locale("en-US") == "en"
        assert i18n.detect_locale("de") == "it"
        assert i18n.gettext("no_such_key") == "no_such_key"
        assert "3" in i18n.gettext("task_awarded", locale="de", points=3, total=5)
