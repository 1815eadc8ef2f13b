"""Import history routes: past spreadsheet imports and their removal."""
from fastapi import APIRouter, Depends

from middleware import get_services, rate_limit, require_admin
from drivecrm.models.caller import Caller
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

router = APIRouter(prefix="/api/imports", tags=["imports"])


@router.get("")
async def list_imports(
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return {"imports": await services.leads.list_imports(resolve_tenant_id(caller))}


@router.delete("/{import_id}", dependencies=[Depends(rate_limit)])
async def delete_import(
    import_id: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    """Remove the import record together with every lead it created."""
    deleted = await services.leads.delete_import(resolve_tenant_id(caller), caller.user_id, import_id)
    return {"deletedCount": deleted}
