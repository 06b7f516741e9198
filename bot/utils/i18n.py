"""Тексты бота конкурса.

JSON-словарь на каждый язык (locales/<lang>.json), fallback к языку по
умолчанию, плейсхолдеры через str.format. Движок конкурса текстов не
формирует: всё, что видит пользователь, берётся отсюда.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from loguru import logger


class I18nManager:
    """Загружает и выдаёт переводы."""

    def __init__(
        self,
        locales_path: Path,
        *,
        default_locale: str = "it",
        enabled_locales: Iterable[str] = ("it", "en"),
    ) -> None:
        self._default_locale = default_locale
        self._enabled_locales = set(enabled_locales) | {default_locale}
        self._locales_path = locales_path
        self._cache: dict[str, dict[str, str]] = {}
        self.reload()

    @property
    def default_locale(self) -> str:
        return self._default_locale

    @property
    def enabled_locales(self) -> tuple[str, ...]:
        return tuple(sorted(self._enabled_locales))

    def reload(self) -> None:
        """Перечитывает файлы локалей (например, после правки текстов)."""

        self._cache.clear()
        for locale in self._enabled_locales:
            locale_file = self._locales_path / f"{locale}.json"
            if not locale_file.exists():
                logger.warning(
                    "Локаль {locale} пропущена: отсутствует файл {path}",
                    locale=locale,
                    path=locale_file,
                )
                continue
            try:
                self._cache[locale] = json.loads(locale_file.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                logger.error("Не удалось прочитать локаль {locale}: {error}", locale=locale, error=exc)
        logger.info("Загружены локали: {locales}", locales=", ".join(sorted(self._cache)) or "нет")
        for locale in self._cache:
            missing = self.missing_keys(locale)
            if missing:
                logger.warning(
                    "В локали {locale} нет ключей: {keys}",
                    locale=locale,
                    keys=", ".join(sorted(missing)),
                )

    def detect_locale(self, hint: str | None) -> str:
        """language_code Telegram (it, en-US, ...) -> поддерживаемый язык."""

        if hint:
            normalized = hint.lower().split("-")[0]
            if normalized in self._enabled_locales:
                return normalized
        return self._default_locale

    def missing_keys(self, locale: str) -> set[str]:
        """Ключи языка по умолчанию, которых нет в locale."""

        return set(self._cache.get(self._default_locale, {})) - set(self._cache.get(locale, {}))

    def gettext(self, key: str, locale: str | None = None, **kwargs: Any) -> str:
        target_locale = locale if locale in self._enabled_locales else self._default_locale
        value = self._cache.get(target_locale, {}).get(key)
        if value is None and target_locale != self._default_locale:
            value = self._cache.get(self._default_locale, {}).get(key)
        if value is None:
            logger.debug("Ключ локали не найден: {key}", key=key)
            value = key
        if kwargs:
            try:
                value = value.format(**kwargs)
            except KeyError as exc:
                logger.error(
                    "Отсутствует плейсхолдер {placeholder} для ключа {key}",
                    placeholder=exc,
                    key=key,
                )
        return value


@lru_cache(maxsize=1)
def get_i18n() -> I18nManager:
    """Ленивая инициализация менеджера переводов из настроек."""

    from config.settings import get_settings

    localization = get_settings().localization
    return I18nManager(
        localization.locales_path,
        default_locale=localization.default_locale,
        enabled_locales=localization.enabled_locales,
    )


__all__ = ["I18nManager", "get_i18n"]
