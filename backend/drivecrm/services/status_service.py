"""Tenant lead statuses: the built-in set plus per-tenant custom statuses."""
from typing import Any, Dict, List
import logging

from pymongo.errors import DuplicateKeyError

from drivecrm.errors import ConflictError, NotFoundError, ValidationError
from drivecrm.models.lead import DEFAULT_LEAD_STATUSES
from drivecrm.models.status import CustomStatus, StatusCreate
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

STATUSES_COLLECTION = "statuses"


class StatusService:

    def __init__(self, db):
        self.db = db

    async def list_custom(self, tenant_id: str) -> List[CustomStatus]:
        cursor = self.db[STATUSES_COLLECTION].find(tenant_filter(tenant_id), {"_id": 0}).sort("createdAt", 1)
        return [CustomStatus.model_validate(d) for d in await cursor.to_list(length=None)]

    async def list(self, tenant_id: str) -> Dict[str, Any]:
        return {
            "defaults": list(DEFAULT_LEAD_STATUSES),
            "custom": await self.list_custom(tenant_id),
        }

    async def create(self, tenant_id: str, actor_id: str, body: StatusCreate) -> CustomStatus:
        name = body.name.strip()
        if not name:
            raise ValidationError("Status name cannot be empty")
        if name.upper() in DEFAULT_LEAD_STATUSES:
            raise ConflictError(f"Status {name} is a built-in status")
        existing = await self.db[STATUSES_COLLECTION].find_one(tenant_filter(tenant_id, {"name": name}), {"_id": 1})
        if existing:
            raise ConflictError(f"Status {name} already exists")

        status = CustomStatus(name=name, color=body.color, tenant_id=tenant_id, created_by=actor_id)
        try:
            await self.db[STATUSES_COLLECTION].insert_one(status.to_document())
        except DuplicateKeyError:
            raise ConflictError(f"Status {name} already exists")
        logger.info(f"Custom status created: {name} (tenant: {tenant_id})")
        return status

    async def delete(self, tenant_id: str, status_id: str) -> None:
        result = await self.db[STATUSES_COLLECTION].delete_one(tenant_filter(tenant_id, {"id": status_id}))
        if result.deleted_count == 0:
            raise NotFoundError("Status not found")

    async def resolve(self, tenant_id: str, value: str) -> str:
        """Return the canonical status name for a built-in name, custom name or custom id."""
        candidate = (value or "").strip()
        if candidate.upper() in DEFAULT_LEAD_STATUSES:
            return candidate.upper()
        if candidate:
            doc = await self.db[STATUSES_COLLECTION].find_one(
                tenant_filter(tenant_id, {"$or": [{"name": candidate}, {"id": candidate}]}),
                {"_id": 0, "name": 1}
            )
            if doc:
                return doc["name"]
        raise ValidationError(f"Invalid status: {value}")
