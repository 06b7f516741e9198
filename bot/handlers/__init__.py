"""Регистрация всех роутеров Aiogram."""

from __future__ import annotations

from aiogram import Dispatcher


def register_routers(dispatcher: Dispatcher) -> None:
    """Подключает все доступные роутеры к диспетчеру."""

    from .contest import membership, task
    from .core import admin, common, referral

    routers = (
        membership.router,
        task.router,
        admin.router,
        common.router,
        referral.router,
    )

    for router in routers:
        dispatcher.include_router(router)


__all__ = ["register_routers"]
