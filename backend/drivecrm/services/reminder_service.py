"""
Reminder Service

Follow-up reminders on leads, polled by the client for due notifications.

Dates and times are stored as ``YYYY-MM-DD`` / ``HH:mm`` in UTC.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging
import re

from pymongo import ReturnDocument

from drivecrm.errors import NotFoundError, ValidationError
from drivecrm.models.activity import ActivityType
from drivecrm.models.base import parse_timestamp, utc_now_iso
from drivecrm.models.reminder import (
    REMINDER_DATE_PATTERN,
    REMINDER_TIME_PATTERN,
    Reminder,
    ReminderCreate,
    ReminderStatus,
)
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

REMINDERS_COLLECTION = "reminders"


def reminder_due_at(reminder: Reminder) -> datetime:
    return datetime.strptime(
        f"{reminder.reminder_date} {reminder.reminder_time}", "%Y-%m-%d %H:%M"
    ).replace(tzinfo=timezone.utc)


def is_due(reminder: Reminder, now: datetime, grace_seconds: int = 30) -> bool:
    """Pending reminders fire at their date+time, snoozed ones at ``snoozedUntil``.

    Both fire up to ``grace_seconds`` early so a poll just before the minute
    does not miss them.
    """
    threshold = now + timedelta(seconds=grace_seconds)
    if reminder.status == ReminderStatus.PENDING and not reminder.notification_sent:
        return reminder_due_at(reminder) <= threshold
    if reminder.status == ReminderStatus.SNOOZED and reminder.snoozed_until:
        return parse_timestamp(reminder.snoozed_until) <= threshold
    return False


def validate_schedule(reminder_date: str, reminder_time: str) -> None:
    if not re.match(REMINDER_TIME_PATTERN, reminder_time or ""):
        raise ValidationError("Invalid time format. Use HH:mm format")
    if not re.match(REMINDER_DATE_PATTERN, reminder_date or ""):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD format")
    try:
        datetime.strptime(reminder_date, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid date: {reminder_date}")


class ReminderService:
    """Service for lead reminders."""

    def __init__(self, db, settings, activity_service, lead_service, user_service):
        self.db = db
        self.settings = settings
        self.activity_service = activity_service
        self.lead_service = lead_service
        self.user_service = user_service

    @property
    def reminders(self):
        return self.db[REMINDERS_COLLECTION]

    async def create(self, tenant_id: str, actor_id: str, body: ReminderCreate) -> Reminder:
        validate_schedule(body.reminder_date, body.reminder_time)
        lead = await self.lead_service.find_by_id(tenant_id, body.lead_id)
        assignee = await self.user_service.get_member(tenant_id, body.assigned_to or actor_id)

        reminder = Reminder(
            title=body.title.strip(),
            description=body.description,
            reminder_date=body.reminder_date,
            reminder_time=body.reminder_time,
            type=body.type,
            lead_id=lead.id,
            assigned_to=assignee.id,
            created_by=actor_id,
            tenant_id=tenant_id,
            sound_enabled=body.sound_enabled,
        )
        await self.reminders.insert_one(reminder.to_document())

        await self.activity_service.record(
            ActivityType.REMINDER_CREATED,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=lead.id,
            details=f"Reminder created: {reminder.title}",
            metadata={
                "reminderId": reminder.id,
                "title": reminder.title,
                "reminderDate": reminder.reminder_date,
                "reminderTime": reminder.reminder_time,
                "type": reminder.type.value,
                "assignedTo": assignee.id,
            },
        )
        return reminder

    async def list_for_user(
        self,
        tenant_id: str,
        user_id: str,
        status: Optional[ReminderStatus] = None,
    ) -> List[Reminder]:
        query = tenant_filter(tenant_id, {"assignedTo": user_id})
        if status:
            query["status"] = status.value
        cursor = self.reminders.find(query, {"_id": 0}).sort([("reminderDate", 1), ("reminderTime", 1)])
        return [Reminder.model_validate(d) for d in await cursor.to_list(length=None)]

    async def _load(self, tenant_id: str, reminder_id: str) -> Reminder:
        doc = await self.reminders.find_one(tenant_filter(tenant_id, {"id": reminder_id}), {"_id": 0})
        if not doc:
            raise NotFoundError("Reminder not found")
        return Reminder.model_validate(doc)

    async def _transition(
        self,
        tenant_id: str,
        actor_id: str,
        reminder_id: str,
        set_doc: dict,
        activity_type: ActivityType,
        verb: str,
    ) -> Reminder:
        reminder = await self._load(tenant_id, reminder_id)
        set_doc["updatedAt"] = utc_now_iso()
        doc = await self.reminders.find_one_and_update(
            tenant_filter(tenant_id, {"id": reminder.id}),
            {"$set": set_doc},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError("Reminder not found")
        updated = Reminder.model_validate(doc)

        await self.activity_service.record(
            activity_type,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=updated.lead_id,
            details=f"Reminder {verb}: {updated.title}",
            metadata={"reminderId": updated.id, "status": updated.status.value},
        )
        return updated

    async def complete(self, tenant_id: str, actor_id: str, reminder_id: str) -> Reminder:
        return await self._transition(
            tenant_id, actor_id, reminder_id,
            {"status": ReminderStatus.COMPLETED.value, "completedAt": utc_now_iso()},
            ActivityType.REMINDER_COMPLETED, "completed",
        )

    async def snooze(self, tenant_id: str, actor_id: str, reminder_id: str, until: datetime) -> Reminder:
        until = parse_timestamp(until)
        if until <= datetime.now(timezone.utc):
            raise ValidationError("Snooze time must be in the future")
        return await self._transition(
            tenant_id, actor_id, reminder_id,
            {
                "status": ReminderStatus.SNOOZED.value,
                "snoozedUntil": until.isoformat(timespec="microseconds"),
                "notificationSent": False,
            },
            ActivityType.REMINDER_SNOOZED, "snoozed",
        )

    async def dismiss(self, tenant_id: str, actor_id: str, reminder_id: str) -> Reminder:
        return await self._transition(
            tenant_id, actor_id, reminder_id,
            {"status": ReminderStatus.DISMISSED.value},
            ActivityType.REMINDER_DISMISSED, "dismissed",
        )

    async def delete(self, tenant_id: str, actor_id: str, reminder_id: str) -> None:
        reminder = await self._load(tenant_id, reminder_id)
        await self.reminders.delete_one(tenant_filter(tenant_id, {"id": reminder.id}))
        await self.activity_service.record(
            ActivityType.REMINDER_DELETED,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=reminder.lead_id,
            details=f"Reminder deleted: {reminder.title}",
            metadata={"reminderId": reminder.id},
        )

    async def check_due(self, tenant_id: str, user_id: str, now: Optional[datetime] = None) -> List[Reminder]:
        """Return reminders that just became due and mark them notified.

        A reminder is returned by at most one poll: the flag flip is
        conditional on the state it was read with.
        """
        now = now or datetime.now(timezone.utc)
        query = tenant_filter(tenant_id, {
            "assignedTo": user_id,
            "$or": [
                {"status": ReminderStatus.PENDING.value, "notificationSent": False},
                {"status": ReminderStatus.SNOOZED.value},
            ],
        })
        cursor = self.reminders.find(query, {"_id": 0})
        candidates = [Reminder.model_validate(d) for d in await cursor.to_list(length=None)]
        due = [r for r in candidates if is_due(r, now, self.settings.reminder_grace_seconds)]

        notified = []
        for reminder in due:
            condition = {"id": reminder.id, "status": reminder.status.value}
            if reminder.status == ReminderStatus.PENDING:
                condition["notificationSent"] = False
            else:
                condition["snoozedUntil"] = reminder.snoozed_until
            result = await self.reminders.update_one(
                tenant_filter(tenant_id, condition),
                {"$set": {
                    "notificationSent": True,
                    "status": ReminderStatus.PENDING.value,
                    "snoozedUntil": None,
                    "updatedAt": utc_now_iso(),
                }},
            )
            if result.modified_count:
                notified.append(reminder.model_copy(update={
                    "notification_sent": True,
                    "status": ReminderStatus.PENDING,
                    "snoozed_until": None,
                }))
        if notified:
            logger.info(f"{len(notified)} reminders due for user {user_id}")
        return notified
