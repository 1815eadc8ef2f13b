"""Usage Limiter

Per-tenant lead and team-member quotas derived from the tenant admin's trial
or subscription state. ``-1`` means unlimited.
"""
from datetime import datetime, timezone
from typing import Optional
import logging

from drivecrm.errors import NotFoundError, QuotaExceededError
from drivecrm.models.base import parse_timestamp
from drivecrm.models.usage import UNLIMITED, PlanState, QuotaCheck, UsageLimits
from drivecrm.models.user import SubscriptionStatus, UserRole
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
LEADS_COLLECTION = "leads"


def _remaining(maximum: int, current: int) -> int:
    if maximum == UNLIMITED:
        return UNLIMITED
    return max(0, maximum - current)


def resolve_plan_state(admin: dict, now: datetime) -> PlanState:
    """Trial while ``isOnTrial`` and before ``trialEndsAt``; active while the
    subscription is active and not past its end date; otherwise expired."""
    trial_ends_at = admin.get("trialEndsAt")
    if admin.get("isOnTrial") and trial_ends_at and now < parse_timestamp(trial_ends_at):
        return PlanState.TRIAL

    if admin.get("subscriptionStatus") == SubscriptionStatus.ACTIVE.value:
        end = admin.get("subscriptionEndDate")
        if not end or now <= parse_timestamp(end):
            return PlanState.ACTIVE

    return PlanState.EXPIRED


class UsageLimiter:
    """Computes quotas consumed by lead creation, import and agent creation."""

    def __init__(self, db, settings):
        self.db = db
        self.settings = settings

    async def _load_admin(self, tenant_id: str) -> dict:
        admin = await self.db[USERS_COLLECTION].find_one(
            {"id": tenant_id, "role": UserRole.ADMIN.value},
            {"_id": 0}
        )
        if not admin:
            raise NotFoundError("Tenant not found")
        return admin

    async def get_limits(self, tenant_id: str, now: Optional[datetime] = None) -> UsageLimits:
        now = now or datetime.now(timezone.utc)
        admin = await self._load_admin(tenant_id)
        state = resolve_plan_state(admin, now)

        if state == PlanState.EXPIRED:
            max_leads = 0
            max_users = 0
        else:
            max_leads = admin.get("maxLeads")
            if max_leads is None:
                max_leads = self.settings.default_max_leads
            max_users = admin.get("maxUsers")
            if max_users is None:
                max_users = self.settings.default_max_users

        current_leads = await self.db[LEADS_COLLECTION].count_documents(tenant_filter(tenant_id))
        current_users = await self.db[USERS_COLLECTION].count_documents(
            tenant_filter(tenant_id, {"role": UserRole.AGENT.value})
        )

        over_by = 0
        if max_leads != UNLIMITED and current_leads > max_leads:
            over_by = current_leads - max_leads
        users_over = max_users != UNLIMITED and current_users > max_users

        return UsageLimits(
            plan_state=state,
            can_import=state != PlanState.EXPIRED and (max_leads == UNLIMITED or current_leads < max_leads),
            can_add_team_member=state != PlanState.EXPIRED and (max_users == UNLIMITED or current_users < max_users),
            current_leads=current_leads,
            max_leads=max_leads,
            remaining_leads=_remaining(max_leads, current_leads),
            current_users=current_users,
            max_users=max_users,
            remaining_users=_remaining(max_users, current_users),
            is_over_limit=over_by > 0 or users_over,
            over_limit_by=over_by,
        )

    async def check_can_import(self, tenant_id: str, requested: int = 1) -> QuotaCheck:
        limits = await self.get_limits(tenant_id)
        allowed = limits.can_import and (
            limits.remaining_leads == UNLIMITED or limits.remaining_leads >= requested
        )
        return QuotaCheck(allowed=allowed, remaining=limits.remaining_leads)

    async def check_can_add_user(self, tenant_id: str) -> QuotaCheck:
        limits = await self.get_limits(tenant_id)
        return QuotaCheck(allowed=limits.can_add_team_member, remaining=limits.remaining_users)

    async def ensure_can_import(self, tenant_id: str, requested: int = 1) -> QuotaCheck:
        check = await self.check_can_import(tenant_id, requested)
        if not check.allowed:
            logger.info(f"Lead quota rejected for tenant {tenant_id}: requested={requested} remaining={check.remaining}")
            raise QuotaExceededError(
                "Lead limit reached for your plan",
                {"requested": requested, "remaining": check.remaining},
            )
        return check

    async def ensure_can_add_user(self, tenant_id: str) -> QuotaCheck:
        check = await self.check_can_add_user(tenant_id)
        if not check.allowed:
            raise QuotaExceededError(
                "Team member limit reached for your plan",
                {"remaining": check.remaining},
            )
        return check
