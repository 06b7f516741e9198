"""Набор middleware бота конкурса."""

from .errors import ErrorsMiddleware
from .i18n import I18nMiddleware
from .throttling import ThrottlingMiddleware

__all__ = [
    "ErrorsMiddleware",
    "I18nMiddleware",
    "ThrottlingMiddleware",
]
