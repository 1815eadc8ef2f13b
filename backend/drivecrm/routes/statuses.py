"""Custom lead status routes."""
from fastapi import APIRouter, Depends

from middleware import get_services, require_admin, require_auth
from drivecrm.models.caller import Caller
from drivecrm.models.status import StatusCreate
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

router = APIRouter(prefix="/api/statuses", tags=["statuses"])


@router.get("")
async def list_statuses(
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.statuses.list(resolve_tenant_id(caller))


@router.post("", status_code=201)
async def create_status(
    body: StatusCreate,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.statuses.create(resolve_tenant_id(caller), caller.user_id, body)


@router.delete("/{status_id}")
async def delete_status(
    status_id: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    await services.statuses.delete(resolve_tenant_id(caller), status_id)
    return {"success": True}
