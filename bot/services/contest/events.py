"""Доменные события конкурса и простая шина подписчиков.

События публикуются только после commit, поэтому подписчик никогда не
увидит изменение, которое потом откатилось.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from loguru import logger


@dataclass(slots=True, frozen=True)
class ReferralAwarded:
    referrer_id: int
    referrer_user_id: int
    referred_id: int
    new_point_total: int


@dataclass(slots=True, frozen=True)
class TaskCompleted:
    participant_id: int
    external_user_id: int
    new_point_total: int


@dataclass(slots=True, frozen=True)
class ParticipantDeparted:
    participant_id: int
    external_user_id: int
    # (referrer_id, снятые очки)
    revoked_referrals: tuple[tuple[int, int], ...] = field(default_factory=tuple)


ContestEvent = ReferralAwarded | TaskCompleted | ParticipantDeparted
E = TypeVar("E")
Handler = Callable[[E], Awaitable[None]]


class EventBus:
    """Рассылает события подписчикам; упавший подписчик не ломает остальных."""

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], callback: Handler) -> None:
        self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: type[E], callback: Handler) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def publish(self, event: ContestEvent) -> None:
        callbacks = list(self._subscribers.get(type(event), ()))
        if not callbacks:
            logger.trace("Событие {event} без подписчиков", event=type(event).__name__)
            return
        await asyncio.gather(*(self._safe_emit(cb, event) for cb in callbacks))

    async def publish_all(self, events: list[ContestEvent]) -> None:
        for event in events:
            await self.publish(event)

    async def _safe_emit(self, callback: Handler, event: ContestEvent) -> None:
        try:
            await callback(event)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Подписчик события {event} упал: {error}",
                event=type(event).__name__,
                error=exc,
            )


__all__ = [
    "ContestEvent",
    "EventBus",
    "ParticipantDeparted",
    "ReferralAwarded",
    "TaskCompleted",
]
