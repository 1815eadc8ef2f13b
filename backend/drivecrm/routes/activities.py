"""Activity log routes (read-only)."""
from fastapi import APIRouter, Depends, Query
from typing import Optional

from middleware import get_services, require_auth
from drivecrm.models.activity import ActivityFilters, ActivityType
from drivecrm.models.caller import Caller
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

router = APIRouter(prefix="/api/activities", tags=["activities"])


@router.get("")
async def list_activities(
    type: Optional[ActivityType] = None,
    lead_id: Optional[str] = Query(None, alias="leadId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    since: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    filters = ActivityFilters(type=type, lead_id=lead_id, user_id=user_id, since=since, limit=limit)
    return await services.list_activities(resolve_tenant_id(caller), filters)


@router.get("/daily")
async def daily_activity(
    days: int = Query(30, ge=1, le=365),
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    """Per-day counts by activity type for the dashboard sparkline."""
    return await services.activities.aggregate_by_day(resolve_tenant_id(caller), days)
