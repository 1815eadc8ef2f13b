"""User Service

Tenant admins, their agents, and the cascading teardown of a whole tenant.
"""
from typing import List
import logging

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import maybe_transaction
from drivecrm.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from drivecrm.models.activity import ActivityInput, ActivityType, assignment_metadata
from drivecrm.models.base import utc_now_iso
from drivecrm.models.caller import Caller
from drivecrm.models.user import (
    AdminCreate,
    AgentCreate,
    AgentUpdate,
    TeardownResult,
    User,
    UserRole,
    UserSnapshot,
)
from drivecrm.services.tenant_scope import is_super_admin, tenant_filter

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
LEADS_COLLECTION = "leads"
COMMENTS_COLLECTION = "comments"
REMINDERS_COLLECTION = "reminders"
STATUSES_COLLECTION = "statuses"
IMPORTS_COLLECTION = "imports"


class UserService:
    """Service for tenant membership."""

    def __init__(self, db, settings, activity_service, usage_limiter):
        self.db = db
        self.settings = settings
        self.activity_service = activity_service
        self.usage_limiter = usage_limiter

    async def _email_taken(self, email: str) -> bool:
        return await self.db[USERS_COLLECTION].find_one({"email": email}, {"_id": 1}) is not None

    async def _insert(self, user: User) -> User:
        if await self._email_taken(user.email):
            raise ConflictError(f"A user with email {user.email} already exists")
        try:
            await self.db[USERS_COLLECTION].insert_one(user.to_document())
        except DuplicateKeyError:
            raise ConflictError(f"A user with email {user.email} already exists")
        return user

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_member(self, tenant_id: str, user_id: str) -> User:
        """The tenant admin or one of its agents; anyone else is not found."""
        if user_id == tenant_id:
            query = {"id": tenant_id, "role": UserRole.ADMIN.value}
        else:
            query = tenant_filter(tenant_id, {"id": user_id})
        doc = await self.db[USERS_COLLECTION].find_one(query, {"_id": 0})
        if not doc:
            raise NotFoundError("User not found")
        return User.model_validate(doc)

    async def snapshot(self, tenant_id: str, user_id: str) -> UserSnapshot:
        """``{id, firstName, lastName}`` view of a tenant member.

        Users deleted since the reference was written come back with empty names.
        """
        try:
            user = await self.get_member(tenant_id, user_id)
        except NotFoundError:
            return UserSnapshot(id=user_id)
        return UserSnapshot(id=user.id, first_name=user.first_name, last_name=user.last_name)

    async def list_agents(self, tenant_id: str) -> List[User]:
        cursor = self.db[USERS_COLLECTION].find(
            tenant_filter(tenant_id, {"role": UserRole.AGENT.value}),
            {"_id": 0}
        ).sort("createdAt", -1)
        return [User.model_validate(d) for d in await cursor.to_list(length=None)]

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create_admin(self, fields: AdminCreate) -> User:
        """Signup: a new tenant on a trial plan."""
        admin = fields.to_user(
            trial_days=self.settings.trial_days,
            max_leads=self.settings.default_max_leads,
            max_users=self.settings.default_max_users,
        )
        await self._insert(admin)
        logger.info(f"Admin created: {admin.id} ({admin.email}), trial ends {admin.trial_ends_at}")

        await self.activity_service.record(
            ActivityType.USER_CREATED,
            user_id=admin.id,
            tenant_id=admin.id,
            details=f"Admin account created for {admin.email}",
            metadata={"targetUserId": admin.id, "role": admin.role.value},
        )
        return admin

    async def create_agent(self, tenant_id: str, actor_id: str, fields: AgentCreate) -> User:
        await self.usage_limiter.ensure_can_add_user(tenant_id)
        try:
            agent = User(
                first_name=fields.first_name.strip(),
                last_name=fields.last_name.strip(),
                email=fields.email.strip().lower(),
                role=UserRole.AGENT,
                tenant_id=tenant_id,
                created_by=actor_id,
                permissions=fields.permissions,
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid agent", {"errors": [err["msg"] for err in e.errors()]})

        await self._insert(agent)
        logger.info(f"Agent created: {agent.id} in tenant {tenant_id}")

        await self.activity_service.record(
            ActivityType.USER_CREATED,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Agent {agent.email} created",
            metadata={
                "targetUserId": agent.id,
                "email": agent.email,
                "permissions": [p.value for p in agent.permissions],
            },
        )
        return agent

    # ========================================================================
    # UPDATES
    # ========================================================================

    async def _get_agent(self, tenant_id: str, user_id: str) -> User:
        user = await self.get_member(tenant_id, user_id)
        if user.role != UserRole.AGENT:
            raise NotFoundError("User not found")
        return user

    async def update_agent(self, tenant_id: str, actor_id: str, user_id: str, patch: AgentUpdate) -> User:
        agent = await self._get_agent(tenant_id, user_id)
        current = agent.model_dump(mode="json")
        present = {
            k: v for k, v in patch.model_dump(mode="json", exclude_unset=True).items()
            if v is not None
        }

        changes = [
            {"field": to_camel(k), "oldValue": current.get(k), "newValue": v}
            for k, v in present.items()
            if current.get(k) != v
        ]
        if not changes:
            return agent

        set_doc = {c["field"]: c["newValue"] for c in changes}
        set_doc["updatedAt"] = utc_now_iso()
        doc = await self.db[USERS_COLLECTION].find_one_and_update(
            tenant_filter(tenant_id, {"id": agent.id}),
            {"$set": set_doc},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError("User not found")
        updated = User.model_validate(doc)

        permissions_changed = any(c["field"] == "permissions" for c in changes)
        await self.activity_service.record(
            ActivityType.PERMISSION_CHANGED if permissions_changed else ActivityType.USER_UPDATED,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Agent {updated.email} updated",
            metadata={"targetUserId": updated.id, "changes": changes},
        )
        return updated

    async def delete_agent(self, tenant_id: str, actor_id: str, user_id: str) -> int:
        """Delete an agent and release its leads. Returns the number of leads unassigned.

        Each released lead gets its own ASSIGNMENT entry, written in the same
        transaction as the release so the assignment history stays complete.
        """
        agent = await self._get_agent(tenant_id, user_id)
        actor = await self.snapshot(tenant_id, actor_id)
        released_from = UserSnapshot(id=agent.id, first_name=agent.first_name, last_name=agent.last_name)

        cursor = self.db[LEADS_COLLECTION].find(
            tenant_filter(tenant_id, {"assignedTo": agent.id}),
            {"_id": 0, "id": 1}
        )
        lead_ids = [d["id"] for d in await cursor.to_list(length=None)]
        now = utc_now_iso()

        released = 0
        async with maybe_transaction(self.db, self.settings.use_transactions) as session:
            for lead_id in lead_ids:
                # Leads reassigned since the read are no longer this agent's
                doc = await self.db[LEADS_COLLECTION].find_one_and_update(
                    tenant_filter(tenant_id, {"id": lead_id, "assignedTo": agent.id}),
                    {"$set": {"assignedTo": None, "assignedAt": None, "updatedAt": now}},
                    projection={"_id": 0, "id": 1},
                    session=session,
                )
                if doc is None:
                    continue
                released += 1
                await self.activity_service.append(ActivityInput(
                    type=ActivityType.ASSIGNMENT,
                    user_id=actor.id,
                    tenant_id=tenant_id,
                    lead_id=lead_id,
                    details=f"Lead unassigned from {released_from.full_name} due to user deletion",
                    metadata=assignment_metadata(None, released_from, actor),
                ), session=session)
            await self.db[USERS_COLLECTION].delete_one(tenant_filter(tenant_id, {"id": agent.id}), session=session)
        logger.info(f"Agent deleted: {agent.id}, {released} leads released")

        await self.activity_service.record(
            ActivityType.USER_DELETED,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Agent {agent.email} deleted",
            metadata={"targetUserId": agent.id, "email": agent.email, "leadsUnassigned": released},
        )
        return released

    # ========================================================================
    # TENANT TEARDOWN
    # ========================================================================

    async def delete_tenant(self, caller: Caller, admin_id: str) -> TeardownResult:
        """Delete an admin and everything its tenant owns.

        Super admins only. Dependent records go first so an interrupted run
        without a transaction leaves orphans, never dangling leads.
        """
        allowlist = self.settings.super_admin_emails
        if not is_super_admin(caller, allowlist):
            raise AuthorizationError("Only super admins can delete admin accounts")
        if admin_id == caller.user_id:
            raise ValidationError("You cannot delete your own account")

        admin = await self.db[USERS_COLLECTION].find_one(
            {"id": admin_id, "role": UserRole.ADMIN.value},
            {"_id": 0}
        )
        if not admin:
            raise NotFoundError("Admin not found")
        if admin.get("email", "").lower() in allowlist:
            raise AuthorizationError("Cannot delete another super admin")

        scope = tenant_filter(admin_id)
        result = TeardownResult(admin_id=admin_id)
        async with maybe_transaction(self.db, self.settings.use_transactions) as session:
            result.activities_deleted = await self.activity_service.delete_for_tenant(admin_id, session=session)
            result.comments_deleted = (
                await self.db[COMMENTS_COLLECTION].delete_many(scope, session=session)
            ).deleted_count
            result.reminders_deleted = (
                await self.db[REMINDERS_COLLECTION].delete_many(scope, session=session)
            ).deleted_count
            result.statuses_deleted = (
                await self.db[STATUSES_COLLECTION].delete_many(scope, session=session)
            ).deleted_count
            result.imports_deleted = (
                await self.db[IMPORTS_COLLECTION].delete_many(scope, session=session)
            ).deleted_count
            result.leads_deleted = (
                await self.db[LEADS_COLLECTION].delete_many(scope, session=session)
            ).deleted_count
            result.agents_deleted = (
                await self.db[USERS_COLLECTION].delete_many(
                    tenant_filter(admin_id, {"role": UserRole.AGENT.value}), session=session
                )
            ).deleted_count
            await self.db[USERS_COLLECTION].delete_one({"id": admin_id}, session=session)

        logger.warning(
            f"Tenant {admin_id} deleted by {caller.email}: "
            f"{result.leads_deleted} leads, {result.agents_deleted} agents, "
            f"{result.activities_deleted} activities"
        )
        return result
