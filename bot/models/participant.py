"""SQLModel модель участника конкурса."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, UniqueConstraint
from sqlmodel import Field

from .base import TimeStampedModel


class Participant(TimeStampedModel, table=True):
    """Участник конкурса в рамках одного сообщества (канала).

    Счётчики points / referral_count — кеш состояния реферальных связей,
    их всегда можно пересчитать по ACTIVE-записям contest_referrals.
    """

    __tablename__ = "contest_participants"
    __table_args__ = (
        UniqueConstraint("external_user_id", "community_id", name="uq_participant_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    external_user_id: int = Field(sa_type=BigInteger, index=True)
    community_id: int = Field(sa_type=BigInteger, index=True)
    username: Optional[str] = Field(default=None, max_length=64)
    first_name: str = Field(default="", max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    referral_code: str = Field(max_length=64, unique=True, index=True)
    points: int = Field(default=0)
    task_completed: bool = Field(default=False)
    referred_by: Optional[int] = Field(default=None, foreign_key="contest_participants.id")
    referral_count: int = Field(default=0)
    is_active: bool = Field(default=True, index=True)
    first_referral_point_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    @property
    def joined_at(self) -> datetime:
        return self.created_at


__all__ = ["Participant"]
