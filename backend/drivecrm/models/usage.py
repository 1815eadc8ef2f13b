"""Usage/quota result models."""
from enum import Enum

from drivecrm.models.base import CRMModel

UNLIMITED = -1


class PlanState(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


class QuotaCheck(CRMModel):
    allowed: bool
    remaining: int


class UsageLimits(CRMModel):
    plan_state: PlanState
    can_import: bool
    can_add_team_member: bool
    current_leads: int
    max_leads: int
    remaining_leads: int
    current_users: int
    max_users: int
    remaining_users: int
    is_over_limit: bool = False
    over_limit_by: int = 0
