"""User Models

Admins own a tenant; agents belong to exactly one admin's tenant.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import EmailStr, Field, model_validator

from drivecrm.models.base import CRMModel, new_id, utc_now_iso


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Permission(str, Enum):
    ASSIGN_LEADS = "ASSIGN_LEADS"
    DELETE_COMMENTS = "DELETE_COMMENTS"
    VIEW_PHONE_NUMBERS = "VIEW_PHONE_NUMBERS"
    VIEW_EMAILS = "VIEW_EMAILS"
    MANAGE_USERS = "MANAGE_USERS"
    EDIT_LEAD_STATUS = "EDIT_LEAD_STATUS"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TRIAL = "trial"
    EXPIRED = "expired"


class User(CRMModel):
    """Stored user.

    An AGENT must carry both ``adminId`` and ``createdBy``.
    """
    id: str = Field(default_factory=new_id)
    first_name: str
    last_name: str = ""
    email: str
    role: UserRole = UserRole.AGENT
    status: UserStatus = UserStatus.ACTIVE
    tenant_id: Optional[str] = Field(default=None, alias="adminId")
    created_by: Optional[str] = None
    permissions: List[Permission] = Field(default_factory=list)

    # Billing fields read by the usage limiter
    balance: float = 0
    is_on_trial: bool = False
    trial_ends_at: Optional[str] = None
    current_plan: Optional[str] = None
    subscription_status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    subscription_start_date: Optional[str] = None
    subscription_end_date: Optional[str] = None
    max_leads: Optional[int] = None
    max_users: Optional[int] = None

    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def _agent_belongs_to_tenant(self):
        if self.role == UserRole.AGENT and not (self.tenant_id and self.created_by):
            raise ValueError("AGENT users require adminId and createdBy")
        if self.role == UserRole.ADMIN and self.tenant_id:
            raise ValueError("ADMIN users own their tenant and carry no adminId")
        return self

    def has_permission(self, permission: Permission) -> bool:
        return self.role == UserRole.ADMIN or permission in self.permissions


class UserSnapshot(CRMModel):
    """Read-time projection of a user embedded in activity metadata and comments."""
    id: str
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ============================================================================
# REQUEST MODELS
# ============================================================================

class AdminCreate(CRMModel):
    """Signup of a new tenant owner."""
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr

    def to_user(self, trial_days: int, max_leads: int, max_users: int) -> User:
        now = datetime.now(timezone.utc)
        return User(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip().lower(),
            role=UserRole.ADMIN,
            is_on_trial=True,
            trial_ends_at=(now + timedelta(days=trial_days)).isoformat(),
            subscription_status=SubscriptionStatus.TRIAL,
            max_leads=max_leads,
            max_users=max_users,
        )


class AgentCreate(CRMModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr
    permissions: List[Permission] = Field(default_factory=list)


class AgentUpdate(CRMModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: Optional[UserStatus] = None
    permissions: Optional[List[Permission]] = None


class TeardownResult(CRMModel):
    """Counts removed by a tenant teardown."""
    admin_id: str
    leads_deleted: int = 0
    agents_deleted: int = 0
    statuses_deleted: int = 0
    activities_deleted: int = 0
    comments_deleted: int = 0
    reminders_deleted: int = 0
    imports_deleted: int = 0
