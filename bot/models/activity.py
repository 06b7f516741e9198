"""Журнал событий членства в канале (заявки, одобрения, выходы)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime
from sqlmodel import Field, SQLModel

from .base import utcnow


class ActivityAction(str, Enum):
    JOIN_REQUEST = "join_request"
    APPROVED = "approved"
    REJECTED = "rejected"
    JOINED = "joined"
    LEFT = "left"


class MembershipActivity(SQLModel, table=True):
    """Одна запись журнала. Журнал не влияет на очки и чистится по сроку."""

    __tablename__ = "contest_activity"

    id: Optional[int] = Field(default=None, primary_key=True)
    external_user_id: int = Field(sa_type=BigInteger, index=True)
    community_id: int = Field(sa_type=BigInteger, index=True)
    action: ActivityAction = Field(index=True)
    first_name: str = Field(default="", max_length=255)
    username: Optional[str] = Field(default=None, max_length=64)
    referral_code: Optional[str] = Field(default=None, max_length=64)
    details: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=utcnow, nullable=False, index=True, sa_type=DateTime(timezone=True)
    )


__all__ = ["ActivityAction", "MembershipActivity"]
