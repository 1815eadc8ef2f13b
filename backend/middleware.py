from fastapi import Depends, Request, HTTPException, status
from typing import Optional
import logging

from auth import decode_access_token
from drivecrm.errors import AuthorizationError
from drivecrm.models.caller import Caller
from drivecrm.services import CRMServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> CRMServices:
    return request.app.state.services


async def get_current_caller(request: Request) -> Optional[Caller]:
    """Extract the caller from the bearer token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ")[1]
    payload = decode_access_token(token, request.app.state.settings)
    if not payload:
        return None

    try:
        return Caller.from_claims(payload)
    except (KeyError, ValueError) as e:
        logger.warning(f"Token claims rejected: {e}")
        return None


async def require_auth(request: Request) -> Caller:
    """Require valid authentication."""
    caller = await get_current_caller(request)
    if not caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return caller


async def require_admin(caller: Caller = Depends(require_auth)) -> Caller:
    """Require the tenant owner."""
    if not caller.is_admin:
        raise AuthorizationError("Admin access required")
    return caller


async def rate_limit(request: Request) -> None:
    """Token bucket per client IP on mutating routes."""
    limiter = request.app.state.rate_limiter
    key = request.client.host if request.client else "unknown"
    allowed, error = await limiter.check(key)
    if not allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=error)
