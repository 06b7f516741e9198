"""Глобальные настройки реферального конкурса.

Настройки разделены по доменам (Telegram, конкурс, кеш, БД, лидерборд),
вся конфигурация загружается из переменных окружения через Pydantic Settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE


class TelegramSettings(BaseModel):
    """Конфигурация Telegram-бота и канала конкурса."""

    token: str = Field(..., description="Токен бота")
    channel_id: int = Field(..., description="ID канала, к которому привязан конкурс")
    app_name: str = "Contest"
    admins: list[int] = Field(default_factory=list, description="ID операторов/админов")

    @field_validator("admins", mode="before")
    @classmethod
    def _split_admins(cls, value):
        if isinstance(value, str):
            return [int(item) for item in value.split(",") if item.strip()]
        return value


class ContestSettings(BaseModel):
    """Правила начисления очков и антиабуз-таймеры."""

    task_points: PositiveInt = 3
    referral_points: PositiveInt = 2
    task_min_delay_sec: PositiveFloat = 30.0
    task_url: AnyHttpUrl = Field(
        "https://www.tiktok.com/", description="Страница, которую нужно посетить для задания"
    )
    prompt_marker_ttl_sec: PositiveInt = 1800
    invite_link_ttl_sec: PositiveInt = 25 * 24 * 60 * 60
    invite_link_expire_sec: PositiveInt = 30 * 24 * 60 * 60
    ranking_snapshot_ttl_sec: float = 10.0
    operation_timeout_sec: PositiveFloat = 10.0
    task_clicks_per_window: PositiveInt = 5
    task_clicks_window_sec: PositiveInt = 300


class CacheSettings(BaseModel):
    """Настройки кешей (aiocache поддерживает memory / redis)."""

    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 3600
    max_keys: PositiveInt = 1000
    redis_dsn: str | None = None


class DatabaseSettings(BaseModel):
    """SQLModel + aiosqlite (по умолчанию) и готовность к Postgres."""

    dsn: str = Field(
        "sqlite+aiosqlite:///./database/contest.db",
        description="Строка подключения SQLAlchemy/SQLModel",
    )
    echo: bool = False


class LeaderboardSettings(BaseModel):
    """Периодическая публикация таблицы лидеров в канал."""

    enabled: bool = True
    interval_sec: PositiveInt = 3600
    size: PositiveInt = 5


class ActivitySettings(BaseModel):
    """Журнал событий членства и срок его хранения."""

    enabled: bool = True
    retention_days: PositiveInt = 90
    approval_dedup_window_sec: PositiveInt = 300


class LocalizationSettings(BaseModel):
    """Список доступных языков и язык по умолчанию."""

    default_locale: str = "it"
    enabled_locales: list[str] = Field(default_factory=lambda: ["it", "en"])
    locales_path: Path = BASE_DIR / "locales"


class AppSettings(BaseSettings):
    """Главный контейнер настроек."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    log_json: bool = False
    log_level: str = "INFO"
    telegram: TelegramSettings
    contest: ContestSettings = ContestSettings()
    cache: CacheSettings = CacheSettings()
    database: DatabaseSettings = DatabaseSettings()
    leaderboard: LeaderboardSettings = LeaderboardSettings()
    activity: ActivitySettings = ActivitySettings()
    localization: LocalizationSettings = LocalizationSettings()

    @property
    def is_production(self) -> bool:
        """True, если бот запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Значения кэшируются, поэтому .env читается ровно один раз за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()  # type: ignore[call-arg]
    return _settings


__all__ = [
    "ActivitySettings",
    "AppSettings",
    "CacheSettings",
    "ContestSettings",
    "DatabaseSettings",
    "LeaderboardSettings",
    "LocalizationSettings",
    "TelegramSettings",
    "get_settings",
]
