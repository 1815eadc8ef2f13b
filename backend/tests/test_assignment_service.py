"""
Lead assignment.

- Assign / reassign / unassign transitions, one ASSIGNMENT activity each.
- Reassigning to the current assignee is a no-op with no activity.
- Unassigning an unassigned lead fails and logs nothing.
- Bulk operations report per-lead failures instead of raising.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from drivecrm.errors import InvalidStateError, NotFoundError, ValidationError
from drivecrm.models.activity import ActivityType
from drivecrm.models.lead import LEAD_ID_MAX, LEAD_ID_MIN, Lead, LeadCreate
from drivecrm.models.user import AgentUpdate, UserSnapshot, UserStatus
from drivecrm.services.assignment_service import assignment_details

pytestmark = pytest.mark.asyncio


async def _assignments(db, lead_id=None):
    query = {"type": ActivityType.ASSIGNMENT.value}
    if lead_id:
        query["leadId"] = lead_id
    return await db["activities"].find(query, {"_id": 0}).sort("timestamp", 1).to_list(length=None)


async def _lead(services, tenant_id, email="ann@x.com"):
    return await services.create_lead(
        tenant_id, tenant_id, LeadCreate(first_name="Ann", last_name="Lee", email=email)
    )


class TestAssignmentScenario:

    async def test_create_assign_unassign(self, services, tenant, db):
        agent = tenant.agents[0]
        lead = await _lead(services, tenant.id)
        assert lead.status == "NEW"
        assert LEAD_ID_MIN <= lead.lead_id <= LEAD_ID_MAX
        assert lead.assigned_to is None

        assigned = await services.assign_lead(tenant.id, tenant.id, lead.lead_id, agent.id)
        assert assigned.assigned_to == agent.id
        assert assigned.assigned_at is not None

        entries = await _assignments(db, lead.id)
        assert len(entries) == 1
        metadata = entries[0]["metadata"]
        assert metadata["assignedTo"]["id"] == agent.id
        assert metadata["assignedTo"]["firstName"] == "Agent1"
        assert metadata["assignedFrom"] is None
        assert metadata["assignedBy"]["id"] == tenant.id
        assert entries[0]["details"] == "Lead assigned to Agent1 T1"

        unassigned = await services.unassign_lead(tenant.id, tenant.id, lead.lead_id)
        assert unassigned.assigned_to is None
        assert unassigned.assigned_at is None

        entries = await _assignments(db, lead.id)
        assert len(entries) == 2
        assert entries[1]["metadata"]["assignedTo"] is None
        assert entries[1]["metadata"]["assignedFrom"]["id"] == agent.id
        assert entries[1]["details"] == "Lead unassigned from Agent1 T1"

    async def test_reassign_records_previous_assignee(self, services, tenant, db):
        first, second = tenant.agents
        lead = await _lead(services, tenant.id)
        await services.assign_lead(tenant.id, tenant.id, lead.id, first.id)

        moved = await services.assign_lead(tenant.id, tenant.id, lead.id, second.id)

        assert moved.assigned_to == second.id
        entries = await _assignments(db, lead.id)
        assert entries[-1]["details"] == "Lead reassigned from Agent1 T1 to Agent2 T1"
        assert entries[-1]["metadata"]["assignedFrom"]["id"] == first.id
        assert entries[-1]["metadata"]["assignedTo"]["id"] == second.id

    async def test_same_assignee_is_noop(self, services, tenant, db):
        agent = tenant.agents[0]
        lead = await _lead(services, tenant.id)

        first = await services.assign_lead(tenant.id, tenant.id, lead.id, agent.id)
        second = await services.assign_lead(tenant.id, tenant.id, lead.id, agent.id)

        assert second.assigned_to == agent.id
        assert second.assigned_at == first.assigned_at
        assert len(await _assignments(db, lead.id)) == 1

    async def test_unassign_when_unassigned(self, services, tenant, db):
        lead = await _lead(services, tenant.id)
        with pytest.raises(InvalidStateError):
            await services.unassign_lead(tenant.id, tenant.id, lead.id)
        assert await _assignments(db) == []


class TestAssignmentTargets:

    async def test_inactive_agent_rejected(self, services, tenant, db):
        agent = tenant.agents[0]
        await services.users.update_agent(tenant.id, tenant.id, agent.id, AgentUpdate(status=UserStatus.INACTIVE))
        lead = await _lead(services, tenant.id)

        with pytest.raises(InvalidStateError):
            await services.assign_lead(tenant.id, tenant.id, lead.id, agent.id)
        assert (await services.leads.find_by_id(tenant.id, lead.id)).assigned_to is None

    async def test_admin_is_not_an_assignment_target(self, services, tenant):
        lead = await _lead(services, tenant.id)
        with pytest.raises(ValidationError):
            await services.assign_lead(tenant.id, tenant.id, lead.id, tenant.id)

    async def test_agent_of_other_tenant_not_found(self, services, tenant, other_tenant):
        lead = await _lead(services, tenant.id)
        with pytest.raises(NotFoundError):
            await services.assign_lead(tenant.id, tenant.id, lead.id, other_tenant.agents[0].id)

    async def test_lead_of_other_tenant_not_found(self, services, tenant, other_tenant, db):
        lead = await _lead(services, tenant.id)
        with pytest.raises(NotFoundError):
            await services.assign_lead(other_tenant.id, other_tenant.id, lead.id, other_tenant.agents[0].id)
        with pytest.raises(NotFoundError):
            await services.unassign_lead(other_tenant.id, other_tenant.id, lead.id)
        assert await _assignments(db) == []


class TestLegacyLeads:

    async def test_lead_without_lead_id_gets_one_on_assign(self, services, tenant, db):
        legacy = Lead(first_name="Old", email="old@x.com", tenant_id=tenant.id, created_by=tenant.id)
        await db["leads"].insert_one(legacy.to_document())

        assigned = await services.assign_lead(tenant.id, tenant.id, legacy.id, tenant.agents[0].id)

        assert LEAD_ID_MIN <= assigned.lead_id <= LEAD_ID_MAX
        stored = await db["leads"].find_one({"id": legacy.id}, {"_id": 0})
        assert stored["leadId"] == assigned.lead_id


class TestAuditIsBestEffort:

    async def test_activity_failure_does_not_undo_assignment(self, services, tenant, db, caplog):
        lead = await _lead(services, tenant.id)
        services.activities.append = AsyncMock(side_effect=RuntimeError("activity store down"))

        assigned = await services.assign_lead(tenant.id, tenant.id, lead.id, tenant.agents[0].id)

        assert assigned.assigned_to == tenant.agents[0].id
        stored = await db["leads"].find_one({"id": lead.id}, {"_id": 0})
        assert stored["assignedTo"] == tenant.agents[0].id
        assert "Failed to record ASSIGNMENT activity" in caplog.text


class TestConcurrentAssign:

    async def test_racing_assigns_end_in_one_state(self, services, tenant, db):
        first, second = tenant.agents
        lead = await _lead(services, tenant.id)

        results = await asyncio.gather(
            services.assign_lead(tenant.id, tenant.id, lead.id, first.id),
            services.assign_lead(tenant.id, tenant.id, lead.id, second.id),
            return_exceptions=True,
        )

        stored = await db["leads"].find_one({"id": lead.id}, {"_id": 0})
        assert stored["assignedTo"] in {first.id, second.id}
        succeeded = [r for r in results if isinstance(r, Lead)]
        assert succeeded
        assert len(await _assignments(db, lead.id)) == len(succeeded)


class TestBulk:

    async def test_bulk_assign_partial_failure(self, services, tenant, other_tenant, db):
        agent = tenant.agents[0]
        leads = [await _lead(services, tenant.id, email=f"l{i}@x.com") for i in range(4)]
        foreign = await _lead(services, other_tenant.id)
        refs = [lead.id for lead in leads] + [foreign.id]

        result = await services.bulk_assign(tenant.id, tenant.id, refs, agent.id)

        assert result.modified_count == 4
        assert len(result.failures) == 1
        assert result.failures[0].lead_id == foreign.id
        assert result.failures[0].error == "NOT_FOUND"
        assert len(await _assignments(db)) == 4
        stored = await db["leads"].find_one({"id": foreign.id}, {"_id": 0})
        assert stored["assignedTo"] is None

    async def test_bulk_assign_skips_leads_already_held(self, services, tenant, db):
        agent = tenant.agents[0]
        held = await _lead(services, tenant.id, email="held@x.com")
        free = await _lead(services, tenant.id, email="free@x.com")
        await services.assign_lead(tenant.id, tenant.id, held.id, agent.id)

        result = await services.bulk_assign(tenant.id, tenant.id, [held.id, free.id, free.id], agent.id)

        assert result.modified_count == 1
        assert result.failures == []
        assert len(await _assignments(db)) == 2

    async def test_bulk_assign_to_inactive_agent_rejected_upfront(self, services, tenant):
        agent = tenant.agents[1]
        await services.users.update_agent(tenant.id, tenant.id, agent.id, AgentUpdate(status=UserStatus.INACTIVE))
        lead = await _lead(services, tenant.id)
        with pytest.raises(InvalidStateError):
            await services.bulk_assign(tenant.id, tenant.id, [lead.id], agent.id)

    async def test_bulk_unassign(self, services, tenant, db):
        agent = tenant.agents[0]
        assigned = await _lead(services, tenant.id, email="one@x.com")
        unassigned = await _lead(services, tenant.id, email="two@x.com")
        await services.assign_lead(tenant.id, tenant.id, assigned.id, agent.id)

        result = await services.bulk_unassign(tenant.id, tenant.id, [assigned.id, unassigned.id, "missing"])

        assert result.unassigned_count == 1
        assert [f.lead_id for f in result.failures] == ["missing"]
        entries = await _assignments(db, assigned.id)
        assert entries[-1]["metadata"]["assignedTo"] is None


async def test_assignment_details_wording():
    ann = UserSnapshot(id="1", first_name="Ann", last_name="Lee")
    bob = UserSnapshot(id="2", first_name="Bob")
    assert assignment_details(ann, None) == "Lead assigned to Ann Lee"
    assert assignment_details(bob, ann) == "Lead reassigned from Ann Lee to Bob"
    assert assignment_details(None, bob) == "Lead unassigned from Bob"
