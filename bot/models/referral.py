"""Таблица реферальных связей конкурса."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime
from sqlmodel import Field

from .base import TimeStampedModel


class ReferralStatus(str, Enum):
    ACTIVE = "active"
    LEFT = "left"


class ReferralEdge(TimeStampedModel, table=True):
    __tablename__ = "contest_referrals"

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: int = Field(foreign_key="contest_participants.id", index=True)
    # приглашённый может быть привязан только один раз, при первой регистрации
    referred_id: int = Field(foreign_key="contest_participants.id", unique=True, index=True)
    community_id: int = Field(sa_type=BigInteger, index=True)
    status: ReferralStatus = Field(default=ReferralStatus.ACTIVE, index=True)
    points_awarded: int = Field(default=0)
    left_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


__all__ = ["ReferralEdge", "ReferralStatus"]
