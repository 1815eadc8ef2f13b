"""Reminder routes. Reminders are listed and polled for the calling user."""
from fastapi import APIRouter, Depends
from typing import Optional

from middleware import get_services, rate_limit, require_auth
from drivecrm.models.caller import Caller
from drivecrm.models.reminder import ReminderCreate, ReminderSnooze, ReminderStatus
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


@router.get("")
async def list_reminders(
    status: Optional[ReminderStatus] = None,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.reminders.list_for_user(resolve_tenant_id(caller), caller.user_id, status)


@router.post("", status_code=201, dependencies=[Depends(rate_limit)])
async def create_reminder(
    body: ReminderCreate,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.reminders.create(resolve_tenant_id(caller), caller.user_id, body)


@router.post("/check-due")
async def check_due(
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    due = await services.reminders.check_due(resolve_tenant_id(caller), caller.user_id)
    return {"reminders": due, "count": len(due)}


@router.post("/{reminder_id}/complete")
async def complete_reminder(
    reminder_id: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.reminders.complete(resolve_tenant_id(caller), caller.user_id, reminder_id)


@router.post("/{reminder_id}/snooze")
async def snooze_reminder(
    reminder_id: str,
    body: ReminderSnooze,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.reminders.snooze(
        resolve_tenant_id(caller), caller.user_id, reminder_id, body.snoozed_until
    )


@router.post("/{reminder_id}/dismiss")
async def dismiss_reminder(
    reminder_id: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.reminders.dismiss(resolve_tenant_id(caller), caller.user_id, reminder_id)


@router.delete("/{reminder_id}")
async def delete_reminder(
    reminder_id: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    await services.reminders.delete(resolve_tenant_id(caller), caller.user_id, reminder_id)
    return {"success": True}
