"""Reminder Models"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from drivecrm.models.base import CRMModel, new_id, utc_now_iso

REMINDER_TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"
REMINDER_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ReminderType(str, Enum):
    CALL = "CALL"
    EMAIL = "EMAIL"
    TASK = "TASK"
    MEETING = "MEETING"


class ReminderStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SNOOZED = "SNOOZED"
    DISMISSED = "DISMISSED"


class Reminder(CRMModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: Optional[str] = None
    reminder_date: str  # YYYY-MM-DD, UTC
    reminder_time: str  # HH:mm, UTC
    type: ReminderType = ReminderType.TASK
    status: ReminderStatus = ReminderStatus.PENDING
    lead_id: str
    assigned_to: str
    created_by: str
    tenant_id: str = Field(alias="adminId")
    snoozed_until: Optional[str] = None
    completed_at: Optional[str] = None
    notification_sent: bool = False
    sound_enabled: bool = True
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class ReminderCreate(CRMModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    reminder_date: str
    reminder_time: str
    type: ReminderType = ReminderType.TASK
    lead_id: str
    assigned_to: Optional[str] = None
    sound_enabled: bool = True


class ReminderSnooze(CRMModel):
    snoozed_until: datetime
