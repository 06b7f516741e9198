"""Доменные исключения конкурсного движка.

Движок не формирует текст для пользователя: вызывающий слой решает,
что показать, опираясь на тип исключения и флаг retryable.
"""

from __future__ import annotations


class ContestError(Exception):
    """Базовая ошибка движка."""

    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: bool | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if retryable is not None:
            self.retryable = retryable


class NotFoundError(ContestError):
    """Участник не найден."""


class ValidationError(ContestError):
    """Некорректный ввод: формат реферального кода, само-приглашение."""


class TooSoonError(ContestError):
    """Задание подтверждают раньше минимальной задержки."""

    def __init__(self, remaining_seconds: float) -> None:
        self.remaining_seconds = max(0.0, remaining_seconds)
        super().__init__(f"Задание можно подтвердить через {self.remaining_seconds:.0f} c")


class StorageError(ContestError):
    """Сбой хранилища или таймаут операции."""

    retryable = True


class ConcurrencyConflict(ContestError):
    """Параллельная операция изменила данные; повтор безопасен."""

    retryable = True


__all__ = [
    "ConcurrencyConflict",
    "ContestError",
    "NotFoundError",
    "StorageError",
    "TooSoonError",
    "ValidationError",
]
