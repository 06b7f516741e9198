"""Репозитории для работы с БД."""

from .activity_repo import (
    add_activity,
    count_activity_by_action,
    count_activity_users,
    delete_activity_before,
    find_recent_activity,
    list_user_activity,
)
from .participant_repo import (
    community_counters,
    complete_task_if_pending,
    credit_referral,
    deactivate_participant,
    debit_referral,
    get_participant,
    get_participant_by_code,
    get_participant_by_id,
    insert_participant_if_absent,
    list_active_participants,
    list_participants,
    overwrite_counters,
    reactivate_participant,
    set_referred_by,
)
from .referral_repo import (
    active_totals_by_referrer,
    create_edge,
    list_active_inbound,
    mark_edge_left,
)

__all__ = [
    "add_activity",
    "count_activity_by_action",
    "count_activity_users",
    "delete_activity_before",
    "find_recent_activity",
    "list_user_activity",
    "active_totals_by_referrer",
    "community_counters",
    "complete_task_if_pending",
    "create_edge",
    "credit_referral",
    "deactivate_participant",
    "debit_referral",
    "get_participant",
    "get_participant_by_code",
    "get_participant_by_id",
    "insert_participant_if_absent",
    "list_active_inbound",
    "list_active_participants",
    "list_participants",
    "mark_edge_left",
    "overwrite_counters",
    "reactivate_participant",
    "set_referred_by",
]
