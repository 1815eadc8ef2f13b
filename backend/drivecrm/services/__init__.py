"""DriveCRM Services

Services are built once at startup by ``build_services`` and shared by
reference; nothing here holds a global database handle.
"""
from dataclasses import dataclass
from typing import List, Optional
import random

from drivecrm.config import Settings
from drivecrm.models.activity import Activity, ActivityFilters
from drivecrm.models.comment import Comment
from drivecrm.models.lead import BulkAssignResult, BulkUnassignResult, Lead, LeadCreate
from .activity_service import ActivityService
from .assignment_service import AssignmentService
from .comment_service import CommentService
from .lead_id_generator import LeadIdGenerator
from .lead_service import LeadRef, LeadService
from .reminder_service import ReminderService
from .status_service import StatusService
from .tenant_scope import build_filter, resolve_tenant_id, tenant_filter
from .usage_limiter import UsageLimiter
from .user_service import UserService


@dataclass
class CRMServices:
    """Wired service graph plus the core operations used by route handlers."""
    settings: Settings
    activities: ActivityService
    id_generator: LeadIdGenerator
    usage: UsageLimiter
    statuses: StatusService
    users: UserService
    leads: LeadService
    assignments: AssignmentService
    comments: CommentService
    reminders: ReminderService

    async def create_lead(self, tenant_id: str, actor_id: str, fields: LeadCreate) -> Lead:
        return await self.leads.create(tenant_id, actor_id, fields)

    async def change_status(self, tenant_id: str, actor_id: str, lead_ref: LeadRef, new_status: str) -> Lead:
        return await self.leads.change_status(tenant_id, actor_id, lead_ref, new_status)

    async def assign_lead(self, tenant_id: str, actor_id: str, lead_ref: LeadRef, target_user_id: str) -> Lead:
        return await self.assignments.assign(tenant_id, actor_id, lead_ref, target_user_id)

    async def unassign_lead(self, tenant_id: str, actor_id: str, lead_ref: LeadRef) -> Lead:
        return await self.assignments.unassign(tenant_id, actor_id, lead_ref)

    async def bulk_assign(
        self, tenant_id: str, actor_id: str, lead_refs: List[LeadRef], target_user_id: str
    ) -> BulkAssignResult:
        return await self.assignments.bulk_assign(tenant_id, actor_id, lead_refs, target_user_id)

    async def bulk_unassign(self, tenant_id: str, actor_id: str, lead_refs: List[LeadRef]) -> BulkUnassignResult:
        return await self.assignments.bulk_unassign(tenant_id, actor_id, lead_refs)

    async def add_comment(self, tenant_id: str, actor_id: str, lead_ref: LeadRef, content: str) -> Comment:
        return await self.comments.add(tenant_id, actor_id, lead_ref, content)

    async def edit_comment(
        self, tenant_id: str, actor_id: str, lead_ref: LeadRef, comment_id: str, content: str
    ) -> Comment:
        return await self.comments.edit(tenant_id, actor_id, lead_ref, comment_id, content)

    async def delete_comment(self, tenant_id: str, actor_id: str, lead_ref: LeadRef, comment_id: str) -> Comment:
        return await self.comments.remove(tenant_id, actor_id, lead_ref, comment_id)

    async def list_activities(self, tenant_id: str, filters: Optional[ActivityFilters] = None) -> List[Activity]:
        return await self.activities.list(tenant_id, filters or ActivityFilters())


def build_services(db, settings: Settings, rng: Optional[random.Random] = None) -> CRMServices:
    activities = ActivityService(db)
    id_generator = LeadIdGenerator(db, rng=rng)
    usage = UsageLimiter(db, settings)
    statuses = StatusService(db)
    users = UserService(db, settings, activities, usage)
    leads = LeadService(db, settings, activities, id_generator, usage, statuses)
    assignments = AssignmentService(db, settings, activities, leads, users, id_generator)
    comments = CommentService(db, activities, leads, users)
    reminders = ReminderService(db, settings, activities, leads, users)
    return CRMServices(
        settings=settings,
        activities=activities,
        id_generator=id_generator,
        usage=usage,
        statuses=statuses,
        users=users,
        leads=leads,
        assignments=assignments,
        comments=comments,
        reminders=reminders,
    )


__all__ = [
    "CRMServices",
    "build_services",
    "ActivityService",
    "AssignmentService",
    "CommentService",
    "LeadIdGenerator",
    "LeadService",
    "ReminderService",
    "StatusService",
    "UsageLimiter",
    "UserService",
    "build_filter",
    "resolve_tenant_id",
    "tenant_filter",
]
