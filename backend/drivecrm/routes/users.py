"""
User API Routes

Tenant signup, agent management, usage limits and super-admin tenant teardown.
"""
from fastapi import APIRouter, Depends
import logging

from middleware import get_services, rate_limit, require_admin, require_auth
from drivecrm.models.caller import Caller
from drivecrm.models.user import AdminCreate, AgentCreate, AgentUpdate
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/signup", status_code=201, dependencies=[Depends(rate_limit)])
async def signup(body: AdminCreate, services: CRMServices = Depends(get_services)):
    """Create the tenant owner record for a newly registered identity."""
    return await services.users.create_admin(body)


@router.get("/agents")
async def list_agents(
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.users.list_agents(resolve_tenant_id(caller))


@router.post("/agents", status_code=201, dependencies=[Depends(rate_limit)])
async def create_agent(
    body: AgentCreate,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.users.create_agent(resolve_tenant_id(caller), caller.user_id, body)


@router.patch("/agents/{user_id}", dependencies=[Depends(rate_limit)])
async def update_agent(
    user_id: str,
    body: AgentUpdate,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    return await services.users.update_agent(resolve_tenant_id(caller), caller.user_id, user_id, body)


@router.delete("/agents/{user_id}", dependencies=[Depends(rate_limit)])
async def delete_agent(
    user_id: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    released = await services.users.delete_agent(resolve_tenant_id(caller), caller.user_id, user_id)
    return {"success": True, "leadsUnassigned": released}


@router.get("/usage")
async def usage_limits(
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.usage.get_limits(resolve_tenant_id(caller))


@router.delete("/admins/{admin_id}", dependencies=[Depends(rate_limit)])
async def delete_admin(
    admin_id: str,
    caller: Caller = Depends(require_admin),
    services: CRMServices = Depends(get_services),
):
    """Super admins only: remove an admin and everything its tenant owns."""
    return await services.users.delete_tenant(caller, admin_id)
