"""ContestEngine — фасад реферального конкурса.

Каждая операция — одна транзакция (session.begin()), ограниченная по
времени operation_timeout. События публикуются после commit, наружу
отдаются только ParticipantView, а не ORM-строки. Ошибки SQLAlchemy
переводятся в доменные: IntegrityError и блокировки -> ConcurrencyConflict,
остальное -> StorageError.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bot.models.base import utcnow
from bot.repositories import (
    active_totals_by_referrer,
    community_counters,
    get_participant,
    get_participant_by_id,
    list_active_participants,
    list_participants,
    overwrite_counters,
)
from bot.utils.cache import DedupCache
from . import ranking, registry, tasks
from .errors import ConcurrencyConflict, NotFoundError, StorageError
from .events import ContestEvent, EventBus, ParticipantDeparted, ReferralAwarded, TaskCompleted
from .lifecycle import Effect, MemberEvent, MemberState, apply_departure, transition
from .referrals import attribute_referral, reject_self_referral
from .schemas import (
    CommunityStats,
    ContestRules,
    CounterDrift,
    DepartureResult,
    ParticipantProfile,
    ParticipantView,
    PersonalLeaderboard,
    RankedEntry,
    RegistrationResult,
    TaskResult,
)

T = TypeVar("T")
UnitOfWork = Callable[[AsyncSession], Awaitable[tuple[T, list[ContestEvent]]]]

_LOCK_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "lock not available",
)


def _is_lock_error(exc: OperationalError) -> bool:
    text = str(exc.orig or exc).lower()
    return any(marker in text for marker in _LOCK_MARKERS)


class ContestEngine:
    """Регистрация, задание, уход участников и рейтинг."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        rules: ContestRules | None = None,
        cache: DedupCache | None = None,
        events: EventBus | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_maker = session_maker
        self._rules = rules or ContestRules()
        self._cache = cache
        self._events = events or EventBus()
        self._now = now
        self._generations: defaultdict[int, int] = defaultdict(int)

    @property
    def rules(self) -> ContestRules:
        return self._rules

    @property
    def events(self) -> EventBus:
        return self._events

    # ------------------------------------------------------------------
    # Мутирующие операции

    async def register_or_activate(
        self,
        external_user_id: int,
        community_id: int,
        profile: ParticipantProfile | None = None,
        referral_code: str | None = None,
    ) -> RegistrationResult:
        """Первый вход, повторная доставка или возвращение ушедшего участника."""

        profile = profile or ParticipantProfile()

        async def unit(session: AsyncSession):
            participant, prior = await registry.get_or_create(
                session, external_user_id, community_id, profile
            )
            step = transition(prior, MemberEvent.JOINED)
            if Effect.REACTIVATE in step.effects:
                participant = await registry.reactivate(session, participant, profile)
                logger.info(
                    "Участник {user} вернулся в сообщество {community}",
                    user=external_user_id,
                    community=community_id,
                )

            referrer = None
            if referral_code and Effect.ATTRIBUTE_REFERRAL in step.effects:
                referrer = await attribute_referral(
                    session,
                    participant,
                    referral_code,
                    points=self._rules.referral_points,
                    at=self._now(),
                )
                if referrer is not None:
                    participant = await get_participant_by_id(session, participant.id)
            elif referral_code:
                await reject_self_referral(session, participant, referral_code)
                logger.debug(
                    "Код {code} проигнорирован: {user} уже зарегистрирован",
                    code=referral_code,
                    user=external_user_id,
                )

            result = RegistrationResult(
                participant=ParticipantView.from_model(participant),
                created=prior is MemberState.UNREGISTERED,
                reactivated=Effect.REACTIVATE in step.effects,
                referrer=ParticipantView.from_model(referrer) if referrer else None,
            )
            events: list[ContestEvent] = []
            if referrer is not None:
                events.append(
                    ReferralAwarded(
                        referrer_id=referrer.id,
                        referrer_user_id=referrer.external_user_id,
                        referred_id=participant.id,
                        new_point_total=referrer.points,
                    )
                )
            return result, events

        result = await self._run("register_or_activate", unit)
        if result.created or result.reactivated:
            await self._invalidate(community_id)
        return result

    async def complete_task(
        self,
        external_user_id: int,
        community_id: int,
        prompt_sent_at: datetime | None,
    ) -> TaskResult:
        async def unit(session: AsyncSession):
            awarded, participant = await tasks.complete_task(
                session,
                external_user_id,
                community_id,
                prompt_sent_at,
                points=self._rules.task_points,
                min_delay=self._rules.task_min_delay,
                now=self._now(),
            )
            events: list[ContestEvent] = []
            if awarded:
                events.append(
                    TaskCompleted(
                        participant_id=participant.id,
                        external_user_id=participant.external_user_id,
                        new_point_total=participant.points,
                    )
                )
            return TaskResult(awarded=awarded, total_points=participant.points), events

        result = await self._run("complete_task", unit)
        if result.awarded:
            await self._invalidate(community_id)
        return result

    async def handle_departure(self, external_user_id: int, community_id: int) -> DepartureResult:
        async def unit(session: AsyncSession):
            participant, step, revoked = await apply_departure(
                session, external_user_id, community_id, at=self._now()
            )
            departed = Effect.DEACTIVATE in step.effects
            events: list[ContestEvent] = []
            if departed and participant is not None:
                events.append(
                    ParticipantDeparted(
                        participant_id=participant.id,
                        external_user_id=participant.external_user_id,
                        revoked_referrals=tuple(revoked),
                    )
                )
                logger.info(
                    "Участник {user} покинул сообщество {community}, снято связей: {count}",
                    user=external_user_id,
                    community=community_id,
                    count=len(revoked),
                )
            return DepartureResult(departed=departed, revoked=tuple(revoked)), events

        result = await self._run("handle_departure", unit)
        if result.departed:
            await self._invalidate(community_id)
        return result

    async def reconcile(self, community_id: int) -> list[CounterDrift]:
        """Пересчитывает счётчики по ACTIVE-связям и флагу задания, чинит расхождения."""

        async def unit(session: AsyncSession):
            totals = await active_totals_by_referrer(session, community_id)
            drifts: list[CounterDrift] = []
            for participant in await list_participants(session, community_id):
                count, referral_points = totals.get(participant.id, (0, 0))
                expected_points = referral_points + (
                    self._rules.task_points if participant.task_completed else 0
                )
                if participant.points == expected_points and participant.referral_count == count:
                    continue
                repaired = await overwrite_counters(
                    session,
                    participant.id,
                    expected_points=participant.points,
                    expected_referral_count=participant.referral_count,
                    points=expected_points,
                    referral_count=count,
                )
                if not repaired:
                    raise ConcurrencyConflict(
                        f"Счётчики участника {participant.id} изменились во время сверки"
                    )
                drifts.append(
                    CounterDrift(
                        participant_id=participant.id,
                        external_user_id=participant.external_user_id,
                        stored_points=participant.points,
                        expected_points=expected_points,
                        stored_referral_count=participant.referral_count,
                        expected_referral_count=count,
                    )
                )
            return drifts, []

        drifts = await self._run("reconcile", unit)
        if drifts:
            logger.warning(
                "Сверка сообщества {community}: исправлено {count} участников",
                community=community_id,
                count=len(drifts),
            )
            await self._invalidate(community_id)
        return drifts

    # ------------------------------------------------------------------
    # Чтение

    async def get_stats(self, external_user_id: int, community_id: int) -> ParticipantView:
        return await self._require(external_user_id, community_id)

    async def get_by_id(self, participant_id: int) -> ParticipantView:
        async def unit(session: AsyncSession):
            participant = await get_participant_by_id(session, participant_id)
            if participant is None:
                raise NotFoundError(f"Участник #{participant_id} не найден")
            return ParticipantView.from_model(participant), []

        return await self._run("get_by_id", unit)

    async def get_community_stats(self, community_id: int) -> CommunityStats:
        async def unit(session: AsyncSession):
            total, active, task_done, points = await community_counters(session, community_id)
            totals = await active_totals_by_referrer(session, community_id)
            stats = CommunityStats(
                participants=total,
                active=active,
                task_completed=task_done,
                active_referrals=sum(count for count, _ in totals.values()),
                total_points=points,
            )
            return stats, []

        return await self._run("community_stats", unit)

    async def get_leaderboard(self, community_id: int, limit: int = 10) -> list[ParticipantView]:
        ranked = await self._ranked(community_id)
        return ranked[: max(0, limit)]

    async def get_rank(self, external_user_id: int, community_id: int) -> int:
        """1-based позиция; 0 для неактивного, NotFoundError для неизвестного."""

        participant = await self._require(external_user_id, community_id)
        if not participant.is_active:
            return 0
        _, position = await self._locate(participant)
        return position

    async def get_personal_leaderboard(
        self,
        external_user_id: int,
        community_id: int,
        radius: int = 5,
    ) -> PersonalLeaderboard:
        participant = await self._require(external_user_id, community_id)
        if not participant.is_active:
            return PersonalLeaderboard(position=0, points=participant.points)
        ranked, position = await self._locate(participant)
        if position == 0:
            return PersonalLeaderboard(position=0, points=participant.points)
        start = max(1, position - radius)
        end = min(len(ranked), position + radius)
        entries = tuple(
            RankedEntry(position=index, participant=ranked[index - 1])
            for index in range(start, end + 1)
        )
        return PersonalLeaderboard(position=position, points=participant.points, entries=entries)

    # ------------------------------------------------------------------
    # Внутреннее

    async def _require(self, external_user_id: int, community_id: int) -> ParticipantView:
        async def unit(session: AsyncSession):
            participant = await get_participant(session, external_user_id, community_id)
            if participant is None:
                raise NotFoundError(
                    f"Участник {external_user_id} не найден в сообществе {community_id}"
                )
            return ParticipantView.from_model(participant), []

        return await self._run("get_participant", unit)

    async def _locate(self, participant: ParticipantView) -> tuple[list[ParticipantView], int]:
        """Позиция активного участника; снимок без него считается устаревшим."""

        ranked = await self._ranked(participant.community_id)
        position = ranking.position_of(ranked, participant.id)
        if position == 0 and self._cache is not None:
            logger.debug(
                "Снимок рейтинга {community} без участника {id}, пересчёт",
                community=participant.community_id,
                id=participant.id,
            )
            await self._invalidate(participant.community_id)
            ranked = await self._ranked(participant.community_id)
            position = ranking.position_of(ranked, participant.id)
        return ranked, position

    async def _ranked(self, community_id: int) -> list[ParticipantView]:
        async def unit(session: AsyncSession):
            rows = await list_active_participants(session, community_id)
            return ranking.rank([ParticipantView.from_model(row) for row in rows]), []

        ttl = self._rules.ranking_snapshot_ttl
        if self._cache is None or ttl <= 0:
            return await self._run("ranking", unit)

        key = self._snapshot_key(community_id)
        cached = await self._cache.recall(key)
        if cached is not None:
            return cached
        generation = self._generations[community_id]
        ranked = await self._run("ranking", unit)
        # мутация закоммичена во время чтения: такой снимок не кешируем
        if self._generations[community_id] == generation:
            await self._cache.remember(key, ranked, ttl=ttl)
        return ranked

    async def _invalidate(self, community_id: int) -> None:
        self._generations[community_id] += 1
        if self._cache is not None:
            await self._cache.forget(self._snapshot_key(community_id))

    @staticmethod
    def _snapshot_key(community_id: int) -> str:
        return f"contest:ranking:{community_id}"

    async def _run(self, operation: str, unit: UnitOfWork[T]) -> T:
        try:
            result, events = await asyncio.wait_for(
                self._transaction(unit), timeout=self._rules.operation_timeout
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Операция {op} превысила таймаут {timeout} c",
                op=operation,
                timeout=self._rules.operation_timeout,
            )
            raise StorageError(f"{operation}: таймаут операции") from exc
        except IntegrityError as exc:
            logger.warning("Конфликт целостности в {op}: {error}", op=operation, error=exc.orig)
            raise ConcurrencyConflict(f"{operation}: конфликт записи") from exc
        except OperationalError as exc:
            if _is_lock_error(exc):
                logger.warning("Блокировка БД в {op}: {error}", op=operation, error=exc.orig)
                raise ConcurrencyConflict(f"{operation}: блокировка БД") from exc
            logger.exception("Сбой БД в {op}", op=operation)
            raise StorageError(f"{operation}: сбой БД") from exc
        except SQLAlchemyError as exc:
            logger.exception("Сбой БД в {op}", op=operation)
            raise StorageError(f"{operation}: сбой БД") from exc

        if events:
            await self._events.publish_all(events)
        return result

    async def _transaction(self, unit: UnitOfWork[T]) -> tuple[T, list[ContestEvent]]:
        async with self._session_maker() as session:
            async with session.begin():
                return await unit(session)


__all__ = ["ContestEngine"]
