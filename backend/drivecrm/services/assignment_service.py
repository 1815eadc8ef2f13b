"""
Assignment Service

Assign, reassign and unassign leads to agents of the same tenant.

Per lead the states are UNASSIGNED and ASSIGNED(user). Every transition is one
conditional update keyed on the previous assignee, so two concurrent writers
can never both believe they moved the lead from the same state.
Reassigning a lead to its current assignee changes nothing and logs nothing.
"""
import logging
from typing import List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from drivecrm.errors import ConflictError, InvalidStateError, ValidationError
from drivecrm.models.activity import ActivityType, assignment_metadata
from drivecrm.models.base import utc_now_iso
from drivecrm.models.lead import BulkAssignResult, BulkUnassignResult, Lead
from drivecrm.models.user import User, UserRole, UserSnapshot, UserStatus
from drivecrm.services.bulk import run_per_item
from drivecrm.services.lead_service import LEADS_COLLECTION, MAX_CAS_ATTEMPTS, LeadRef
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)


def assignment_details(target: Optional[UserSnapshot], previous: Optional[UserSnapshot]) -> str:
    if target is None:
        return f"Lead unassigned from {previous.full_name}".rstrip()
    if previous is not None:
        return f"Lead reassigned from {previous.full_name} to {target.full_name}".rstrip()
    return f"Lead assigned to {target.full_name}".rstrip()


class AssignmentService:
    """Service for lead assignment."""

    def __init__(self, db, settings, activity_service, lead_service, user_service, id_generator):
        self.db = db
        self.settings = settings
        self.activity_service = activity_service
        self.lead_service = lead_service
        self.user_service = user_service
        self.id_generator = id_generator

    @property
    def leads(self):
        return self.db[LEADS_COLLECTION]

    async def _load_target(self, tenant_id: str, user_id: str) -> User:
        target = await self.user_service.get_member(tenant_id, user_id)
        if target.role != UserRole.AGENT:
            raise ValidationError("Leads can only be assigned to agents")
        if target.status != UserStatus.ACTIVE:
            raise InvalidStateError("Cannot assign leads to an inactive user")
        return target

    async def _log_assignment(
        self,
        tenant_id: str,
        actor: UserSnapshot,
        lead: Lead,
        target: Optional[UserSnapshot],
        previous: Optional[UserSnapshot],
    ) -> None:
        await self.activity_service.record(
            ActivityType.ASSIGNMENT,
            user_id=actor.id,
            tenant_id=tenant_id,
            lead_id=lead.id,
            details=assignment_details(target, previous),
            metadata=assignment_metadata(target, previous, actor),
        )

    # ========================================================================
    # SINGLE LEAD
    # ========================================================================

    async def _assign_loaded(
        self,
        tenant_id: str,
        actor: UserSnapshot,
        lead: Lead,
        target: User,
    ) -> Tuple[Lead, bool]:
        """Returns the lead and whether it changed."""
        for _ in range(MAX_CAS_ATTEMPTS):
            previous_id = lead.assigned_to
            if previous_id == target.id:
                return lead, False

            now = utc_now_iso()
            set_doc = {"assignedTo": target.id, "assignedAt": now, "updatedAt": now}
            if lead.lead_id is None:
                set_doc["leadId"] = await self.id_generator.next_lead_id()
            try:
                doc = await self.leads.find_one_and_update(
                    tenant_filter(tenant_id, {"id": lead.id, "assignedTo": previous_id}),
                    {"$set": set_doc},
                    projection={"_id": 0},
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                logger.warning(f"leadId collision while assigning lead {lead.id}, regenerating")
                doc = None
            if doc is not None:
                break
            lead = await self.lead_service.find_by_id(tenant_id, lead.id)
        else:
            raise ConflictError("Lead assignment changed concurrently, try again")

        updated = Lead.model_validate(doc)
        previous = await self.user_service.snapshot(tenant_id, previous_id) if previous_id else None
        target_snapshot = UserSnapshot(id=target.id, first_name=target.first_name, last_name=target.last_name)
        logger.info(f"Lead assigned: {updated.id} {previous_id} -> {target.id} by {actor.id}")

        await self._log_assignment(tenant_id, actor, updated, target_snapshot, previous)
        return updated, True

    async def _unassign_loaded(self, tenant_id: str, actor: UserSnapshot, lead: Lead) -> Optional[Lead]:
        """Returns the updated lead, or None when it had no assignee."""
        for _ in range(MAX_CAS_ATTEMPTS):
            previous_id = lead.assigned_to
            if previous_id is None:
                return None
            doc = await self.leads.find_one_and_update(
                tenant_filter(tenant_id, {"id": lead.id, "assignedTo": previous_id}),
                {"$set": {"assignedTo": None, "assignedAt": None, "updatedAt": utc_now_iso()}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                break
            lead = await self.lead_service.find_by_id(tenant_id, lead.id)
        else:
            raise ConflictError("Lead assignment changed concurrently, try again")

        updated = Lead.model_validate(doc)
        previous = await self.user_service.snapshot(tenant_id, previous_id)
        logger.info(f"Lead unassigned: {updated.id} from {previous_id} by {actor.id}")

        await self._log_assignment(tenant_id, actor, updated, None, previous)
        return updated

    async def assign(self, tenant_id: str, actor_id: str, ref: LeadRef, target_user_id: str) -> Lead:
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        target = await self._load_target(tenant_id, target_user_id)
        actor = await self.user_service.snapshot(tenant_id, actor_id)
        updated, _ = await self._assign_loaded(tenant_id, actor, lead, target)
        return updated

    async def unassign(self, tenant_id: str, actor_id: str, ref: LeadRef) -> Lead:
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        actor = await self.user_service.snapshot(tenant_id, actor_id)
        updated = await self._unassign_loaded(tenant_id, actor, lead)
        if updated is None:
            raise InvalidStateError("Lead is not assigned to anyone")
        return updated

    # ========================================================================
    # BULK
    # ========================================================================

    async def bulk_assign(
        self,
        tenant_id: str,
        actor_id: str,
        refs: List[LeadRef],
        target_user_id: str,
    ) -> BulkAssignResult:
        """Assign each lead independently, one activity per modified lead.

        Leads missing from the tenant are reported as failures; leads already
        held by the target are skipped.
        """
        target = await self._load_target(tenant_id, target_user_id)
        actor = await self.user_service.snapshot(tenant_id, actor_id)

        async def _one(ref):
            lead = await self.lead_service.find_by_id(tenant_id, ref)
            updated, changed = await self._assign_loaded(tenant_id, actor, lead, target)
            return updated if changed else None

        modified, failures = await run_per_item(refs, _one, self.settings.bulk_concurrency)
        for failure in failures:
            logger.warning(f"Bulk assign skipped lead {failure.lead_id}: {failure.message}")
        logger.info(f"Bulk assign to {target.id} in tenant {tenant_id}: {len(modified)}/{len(refs)} modified")
        return BulkAssignResult(modified_count=len(modified), failures=failures)

    async def bulk_unassign(self, tenant_id: str, actor_id: str, refs: List[LeadRef]) -> BulkUnassignResult:
        actor = await self.user_service.snapshot(tenant_id, actor_id)

        async def _one(ref):
            lead = await self.lead_service.find_by_id(tenant_id, ref)
            return await self._unassign_loaded(tenant_id, actor, lead)

        unassigned, failures = await run_per_item(refs, _one, self.settings.bulk_concurrency)
        for failure in failures:
            logger.warning(f"Bulk unassign skipped lead {failure.lead_id}: {failure.message}")
        return BulkUnassignResult(unassigned_count=len(unassigned), failures=failures)
