"""Activity Models

Append-only audit trail. ``leadId`` on an activity references the lead's
storage ``id``.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from drivecrm.models.base import CRMModel, new_id, utc_now_iso
from drivecrm.models.user import UserSnapshot


class ActivityType(str, Enum):
    # Leads
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    IMPORT = "IMPORT"
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGNMENT = "ASSIGNMENT"
    COMMENT = "COMMENT"
    LEAD_CREATED = "LEAD_CREATED"

    # Users
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PERMISSION_CHANGED = "PERMISSION_CHANGED"

    # Subscriptions
    SUBSCRIPTION_CREATED = "SUBSCRIPTION_CREATED"
    SUBSCRIPTION_UPDATED = "SUBSCRIPTION_UPDATED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"

    # Reminders
    REMINDER_CREATED = "REMINDER_CREATED"
    REMINDER_UPDATED = "REMINDER_UPDATED"
    REMINDER_COMPLETED = "REMINDER_COMPLETED"
    REMINDER_SNOOZED = "REMINDER_SNOOZED"
    REMINDER_DISMISSED = "REMINDER_DISMISSED"
    REMINDER_DELETED = "REMINDER_DELETED"


class Activity(CRMModel):
    id: str = Field(default_factory=new_id)
    type: ActivityType
    user_id: str
    tenant_id: str = Field(alias="adminId")
    lead_id: Optional[str] = None
    details: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_now_iso)


class ActivityInput(CRMModel):
    """Entry handed to the activity log. ``metadata`` is checked before insert."""
    type: ActivityType
    user_id: str
    tenant_id: str = Field(alias="adminId")
    lead_id: Optional[str] = None
    details: str
    metadata: Any = Field(default_factory=dict)


def assignment_metadata(
    target: Optional[UserSnapshot],
    previous: Optional[UserSnapshot],
    actor: UserSnapshot,
) -> Dict[str, Any]:
    """``{assignedTo, assignedFrom, assignedBy}`` snapshots of an ASSIGNMENT entry."""
    return {
        "assignedTo": target.to_document() if target else None,
        "assignedFrom": previous.to_document() if previous else None,
        "assignedBy": actor.to_document(),
    }


class ActivityFilters(CRMModel):
    type: Optional[ActivityType] = None
    lead_id: Optional[str] = None
    user_id: Optional[str] = None
    since: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=500)


class ActivityTypeCount(CRMModel):
    type: str
    count: int


class DailyActivity(CRMModel):
    date: str
    activities: List[ActivityTypeCount] = Field(default_factory=list)
    total_count: int = 0
