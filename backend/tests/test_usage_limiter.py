"""
Usage limits derived from the tenant admin's trial / subscription state.
"""
from datetime import datetime, timedelta, timezone

import pytest

from drivecrm.errors import NotFoundError, QuotaExceededError
from drivecrm.models.lead import Lead, LeadCreate
from drivecrm.models.usage import UNLIMITED, PlanState
from drivecrm.models.user import AgentCreate
from drivecrm.services.usage_limiter import resolve_plan_state

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _iso(dt):
    return dt.isoformat()


class TestResolvePlanState:

    def test_trial_before_end(self):
        admin = {"isOnTrial": True, "trialEndsAt": _iso(NOW + timedelta(days=1))}
        assert resolve_plan_state(admin, NOW) == PlanState.TRIAL

    def test_trial_after_end_is_expired(self):
        admin = {"isOnTrial": True, "trialEndsAt": _iso(NOW - timedelta(seconds=1))}
        assert resolve_plan_state(admin, NOW) == PlanState.EXPIRED

    def test_active_subscription(self):
        admin = {"subscriptionStatus": "active", "subscriptionEndDate": _iso(NOW + timedelta(days=30))}
        assert resolve_plan_state(admin, NOW) == PlanState.ACTIVE

    def test_active_without_end_date(self):
        assert resolve_plan_state({"subscriptionStatus": "active"}, NOW) == PlanState.ACTIVE

    def test_lapsed_subscription(self):
        admin = {"subscriptionStatus": "active", "subscriptionEndDate": "2026-10-01T00:00:00Z"}
        assert resolve_plan_state(admin, NOW) == PlanState.EXPIRED

    def test_naive_timestamps_read_as_utc(self):
        admin = {"isOnTrial": True, "trialEndsAt": "2026-10-18T13:00:00"}
        assert resolve_plan_state(admin, NOW) == PlanState.TRIAL

    def test_nothing_set(self):
        assert resolve_plan_state({}, NOW) == PlanState.EXPIRED


class TestUsageLimiter:

    @pytest.mark.asyncio
    async def test_trial_limits(self, services, tenant):
        limits = await services.usage.get_limits(tenant.id)

        assert limits.plan_state == PlanState.TRIAL
        assert (limits.current_users, limits.max_users, limits.remaining_users) == (2, 5, 3)
        assert (limits.current_leads, limits.max_leads, limits.remaining_leads) == (0, 100, 100)
        assert limits.can_import and limits.can_add_team_member
        assert not limits.is_over_limit

    @pytest.mark.asyncio
    async def test_expired_plan_blocks_everything(self, services, tenant, db):
        await db["users"].update_one({"id": tenant.id}, {"$set": {"isOnTrial": False}})

        limits = await services.usage.get_limits(tenant.id)
        assert limits.plan_state == PlanState.EXPIRED
        assert (limits.max_leads, limits.max_users) == (0, 0)
        assert not limits.can_import and not limits.can_add_team_member

        with pytest.raises(QuotaExceededError):
            await services.create_lead(tenant.id, tenant.id, LeadCreate(first_name="Ann", email="ann@x.com"))

    @pytest.mark.asyncio
    async def test_unlimited_subscription(self, services, tenant, db):
        await db["users"].update_one({"id": tenant.id}, {"$set": {
            "isOnTrial": False,
            "subscriptionStatus": "active",
            "maxLeads": UNLIMITED,
        }})

        limits = await services.usage.get_limits(tenant.id)
        assert limits.remaining_leads == UNLIMITED
        check = await services.usage.check_can_import(tenant.id, requested=10_000)
        assert check.allowed

    @pytest.mark.asyncio
    async def test_missing_limits_fall_back_to_settings(self, services, tenant, db, settings):
        await db["users"].update_one({"id": tenant.id}, {"$unset": {"maxLeads": "", "maxUsers": ""}})
        limits = await services.usage.get_limits(tenant.id)
        assert limits.max_leads == settings.default_max_leads
        assert limits.max_users == settings.default_max_users

    @pytest.mark.asyncio
    async def test_over_limit_reported(self, services, tenant, db):
        for i in range(3):
            lead = Lead(first_name=f"L{i}", email=f"l{i}@x.com", tenant_id=tenant.id, created_by=tenant.id)
            await db["leads"].insert_one(lead.to_document())
        await db["users"].update_one({"id": tenant.id}, {"$set": {"maxLeads": 2}})

        limits = await services.usage.get_limits(tenant.id)
        assert limits.is_over_limit
        assert limits.over_limit_by == 1
        assert limits.remaining_leads == 0

    @pytest.mark.asyncio
    async def test_batch_request_must_fit(self, services, tenant, db):
        await db["users"].update_one({"id": tenant.id}, {"$set": {"maxLeads": 5}})
        assert (await services.usage.check_can_import(tenant.id, requested=5)).allowed
        assert not (await services.usage.check_can_import(tenant.id, requested=6)).allowed

    @pytest.mark.asyncio
    async def test_team_member_quota(self, services, tenant, db):
        await db["users"].update_one({"id": tenant.id}, {"$set": {"maxUsers": 2}})
        with pytest.raises(QuotaExceededError):
            await services.users.create_agent(
                tenant.id, tenant.id, AgentCreate(first_name="Extra", email="extra@t1.example.com")
            )
        assert await db["users"].count_documents({"adminId": tenant.id}) == 2

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, services):
        with pytest.raises(NotFoundError):
            await services.usage.get_limits("no-such-admin")
