"""
Lead API Routes

Tenant members read and edit leads; assignment, import and deletion are
admin-only. Every mutation is recorded in the activity log by the services.
"""
from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr
from typing import Optional
import logging

from middleware import get_services, rate_limit, require_admin, require_auth
from drivecrm.models.caller import Caller
from drivecrm.models.lead import (
    AssignRequest,
    BulkAssignRequest,
    BulkLeadRequest,
    BulkStatusRequest,
    LeadCreate,
    LeadFilters,
    LeadImportRequest,
    LeadUpdate,
    StatusChange,
)
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leads", tags=["leads"])


# ============================================================================
# COLLECTION
# ============================================================================

@router.get("")
async def list_leads(
    status: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    source: Optional[str] = None,
    country: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    """List tenant leads. Agents only see the leads assigned to them."""
    filters = LeadFilters(
        status=status,
        assigned_to=assigned_to if caller.is_admin else caller.user_id,
        source=source,
        country=country,
        search=search,
    )
    return await services.leads.list(resolve_tenant_id(caller), filters, page=page, limit=limit)


@router.post("", status_code=201, dependencies=[Depends(rate_limit)])
async def create_lead(
    body: LeadCreate,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.create_lead(resolve_tenant_id(caller), caller.user_id, body)


@router.get("/check-email")
async def check_email(
    email: EmailStr,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    exists = await services.leads.check_email_exists(resolve_tenant_id(caller), email)
    return {"exists": exists}


@router.get("/status-counts")
async def status_counts(
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    """Lead counts per status across the whole tenant, agents included."""
    return await services.leads.status_counts(resolve_tenant_id(caller))


@router.post("/import", dependencies=[Depends(rate_limit)])
async def import_leads(
    body: LeadImportRequest,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.leads.import_leads(
        resolve_tenant_id(caller), caller.user_id, body.rows, source=body.source, file_name=body.file_name
    )


# ============================================================================
# BULK
# ============================================================================

@router.post("/bulk-delete", dependencies=[Depends(rate_limit)])
async def bulk_delete(
    body: BulkLeadRequest,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    deleted = await services.leads.bulk_delete(resolve_tenant_id(caller), caller.user_id, body.lead_ids)
    return {"deletedCount": deleted}


@router.post("/bulk-status", dependencies=[Depends(rate_limit)])
async def bulk_status(
    body: BulkStatusRequest,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.leads.bulk_change_status(
        resolve_tenant_id(caller), caller.user_id, body.lead_ids, body.status
    )


@router.post("/bulk-assign", dependencies=[Depends(rate_limit)])
async def bulk_assign(
    body: BulkAssignRequest,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.bulk_assign(resolve_tenant_id(caller), caller.user_id, body.lead_ids, body.user_id)


@router.post("/bulk-unassign", dependencies=[Depends(rate_limit)])
async def bulk_unassign(
    body: BulkLeadRequest,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.bulk_unassign(resolve_tenant_id(caller), caller.user_id, body.lead_ids)


# ============================================================================
# SINGLE LEAD
# ============================================================================

@router.get("/{ref}")
async def get_lead(
    ref: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    """Fetch by storage id or numeric leadId."""
    return await services.leads.find_by_id(resolve_tenant_id(caller), ref)


@router.patch("/{ref}", dependencies=[Depends(rate_limit)])
async def update_lead(
    ref: str,
    body: LeadUpdate,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.leads.update(resolve_tenant_id(caller), caller.user_id, ref, body)


@router.delete("/{ref}", dependencies=[Depends(rate_limit)])
async def delete_lead(
    ref: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    lead = await services.leads.delete(resolve_tenant_id(caller), caller.user_id, ref)
    return {"deletedCount": 1, "id": lead.id, "leadId": lead.lead_id}


@router.put("/{ref}/status", dependencies=[Depends(rate_limit)])
async def change_status(
    ref: str,
    body: StatusChange,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.change_status(resolve_tenant_id(caller), caller.user_id, ref, body.status)


@router.post("/{ref}/assign", dependencies=[Depends(rate_limit)])
async def assign_lead(
    ref: str,
    body: AssignRequest,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.assign_lead(resolve_tenant_id(caller), caller.user_id, ref, body.user_id)


@router.delete("/{ref}/assign", dependencies=[Depends(rate_limit)])
async def unassign_lead(
    ref: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.unassign_lead(resolve_tenant_id(caller), caller.user_id, ref)


@router.get("/{ref}/activities")
async def lead_activities(
    ref: str,
    limit: int = Query(50, ge=1, le=500),
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    tenant_id = resolve_tenant_id(caller)
    lead = await services.leads.find_by_id(tenant_id, ref)
    return await services.activities.list_by_lead(tenant_id, lead.id, limit=limit)
