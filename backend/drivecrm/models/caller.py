"""Authenticated caller, as supplied by the external identity provider."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from drivecrm.models.user import UserRole


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: UserRole
    tenant_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Caller":
        """Build a caller from decoded token claims.

        Expected claims: ``sub`` (user id), ``role`` and, for agents,
        ``adminId`` (the owning tenant).
        """
        return cls(
            user_id=str(claims["sub"]),
            role=UserRole(str(claims["role"]).upper()),
            tenant_id=claims.get("adminId") or claims.get("tenantId"),
            email=(claims.get("email") or "").lower() or None,
        )
