"""SQLModel сущности конкурса."""

from .activity import ActivityAction, MembershipActivity  # noqa: F401
from .participant import Participant  # noqa: F401
from .referral import ReferralEdge, ReferralStatus  # noqa: F401

__all__ = [
    "ActivityAction",
    "MembershipActivity",
    "Participant",
    "ReferralEdge",
    "ReferralStatus",
]
