"""Tenant scoping.

``tenant_filter`` is the one gate every service query goes through: a filter
without a tenant id cannot be built.
"""
from typing import Any, Dict, Iterable, Optional

from drivecrm.errors import AuthorizationError
from drivecrm.models.caller import Caller
from drivecrm.models.user import UserRole

TENANT_FIELD = "adminId"


def resolve_tenant_id(caller: Caller) -> str:
    """ADMIN owns its tenant; AGENT inherits the tenant of its creating admin."""
    if caller.role == UserRole.ADMIN:
        return caller.user_id
    if not caller.tenant_id:
        raise AuthorizationError("Agent account is not attached to a tenant")
    return caller.tenant_id


def tenant_filter(tenant_id: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge the tenant id into a query filter."""
    if not tenant_id:
        raise AuthorizationError("Tenant id is required")
    query = dict(extra or {})
    if TENANT_FIELD in query and query[TENANT_FIELD] != tenant_id:
        raise AuthorizationError("Cross-tenant filter rejected")
    query[TENANT_FIELD] = tenant_id
    return query


def build_filter(caller: Caller, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return tenant_filter(resolve_tenant_id(caller), extra)


def is_super_admin(caller: Caller, allowlist: Iterable[str]) -> bool:
    if caller.role != UserRole.ADMIN or not caller.email:
        return False
    return caller.email.lower() in {e.lower() for e in allowlist}
