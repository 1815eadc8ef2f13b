"""Lead comment routes."""
from fastapi import APIRouter, Depends

from middleware import get_services, rate_limit, require_auth
from drivecrm.models.caller import Caller
from drivecrm.models.comment import CommentBody
from drivecrm.services import CRMServices
from drivecrm.services.tenant_scope import resolve_tenant_id

router = APIRouter(prefix="/api/leads", tags=["comments"])


@router.get("/{ref}/comments")
async def list_comments(
    ref: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.comments.list(resolve_tenant_id(caller), ref)


@router.post("/{ref}/comments", status_code=201, dependencies=[Depends(rate_limit)])
async def add_comment(
    ref: str,
    body: CommentBody,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.add_comment(resolve_tenant_id(caller), caller.user_id, ref, body.content)


@router.patch("/{ref}/comments/{comment_id}", dependencies=[Depends(rate_limit)])
async def edit_comment(
    ref: str,
    comment_id: str,
    body: CommentBody,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    return await services.edit_comment(resolve_tenant_id(caller), caller.user_id, ref, comment_id, body.content)


@router.delete("/{ref}/comments/{comment_id}", dependencies=[Depends(rate_limit)])
async def delete_comment(
    ref: str,
    comment_id: str,
    caller: Caller = Depends(require_auth),
    services: CRMServices = Depends(get_services),
):
    await services.delete_comment(resolve_tenant_id(caller), caller.user_id, ref, comment_id)
    return {"success": True}
