"""Activity Log Service

Append-only audit trail for leads, comments, users and reminders.

Entries are never updated. The only deletions come from bulk lead deletion
(activities of the deleted leads) and tenant teardown (everything of the tenant).
"""
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging

from drivecrm.errors import ValidationError
from drivecrm.models.activity import (
    Activity,
    ActivityFilters,
    ActivityInput,
    ActivityType,
    ActivityTypeCount,
    DailyActivity,
)
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

ACTIVITIES_COLLECTION = "activities"


class ActivityService:
    """Service for the activity log."""

    def __init__(self, db):
        self.db = db

    async def append(self, entry: ActivityInput, session=None) -> Activity:
        """Validate and persist one activity. Raises on any failure."""
        if not isinstance(entry.metadata, Mapping):
            raise ValidationError(
                "Activity metadata must be an object",
                {"received": type(entry.metadata).__name__},
            )
        tenant_filter(entry.tenant_id)

        activity = Activity(
            type=entry.type,
            user_id=entry.user_id,
            tenant_id=entry.tenant_id,
            lead_id=entry.lead_id,
            details=entry.details,
            metadata=dict(entry.metadata),
        )
        await self.db[ACTIVITIES_COLLECTION].insert_one(activity.to_document(), session=session)

        log_msg = f"[ACTIVITY] {activity.type.value}: {activity.details} (tenant: {activity.tenant_id})"
        if activity.lead_id:
            log_msg += f" (lead: {activity.lead_id})"
        logger.info(log_msg)
        return activity

    async def append_best_effort(self, entry: ActivityInput) -> Optional[Activity]:
        """Append after a primary mutation already succeeded.

        Failures are logged and swallowed; the primary state change stands.
        """
        try:
            return await self.append(entry)
        except Exception as e:
            logger.error(
                f"Failed to record {entry.type.value} activity for tenant {entry.tenant_id}: {e}",
                exc_info=True,
            )
            return None

    async def record(
        self,
        type: ActivityType,
        user_id: str,
        tenant_id: str,
        details: str,
        lead_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Activity]:
        """Best-effort append from keyword fields."""
        entry = ActivityInput(
            type=type,
            user_id=user_id,
            tenant_id=tenant_id,
            lead_id=lead_id,
            details=details,
            metadata=metadata if metadata is not None else {},
        )
        return await self.append_best_effort(entry)

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def _find(self, query: Dict[str, Any], limit: int) -> List[Activity]:
        cursor = self.db[ACTIVITIES_COLLECTION].find(
            query,
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [Activity.model_validate(d) for d in docs]

    async def list(self, tenant_id: str, filters: ActivityFilters) -> List[Activity]:
        query = tenant_filter(tenant_id)
        if filters.type:
            query["type"] = filters.type.value
        if filters.lead_id:
            query["leadId"] = filters.lead_id
        if filters.user_id:
            query["userId"] = filters.user_id
        if filters.since:
            query["timestamp"] = {"$gte": filters.since}
        return await self._find(query, filters.limit)

    async def list_by_lead(self, tenant_id: str, lead_id: str, limit: int = 50) -> List[Activity]:
        return await self._find(tenant_filter(tenant_id, {"leadId": lead_id}), limit)

    async def list_by_tenant(self, tenant_id: str, limit: int = 50) -> List[Activity]:
        return await self._find(tenant_filter(tenant_id), limit)

    async def list_by_user(self, tenant_id: str, user_id: str, limit: int = 50) -> List[Activity]:
        return await self._find(tenant_filter(tenant_id, {"userId": user_id}), limit)

    async def aggregate_by_day(self, tenant_id: str, days: int = 30) -> List[DailyActivity]:
        """Counts per day and activity type, newest day first."""
        start = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat(timespec="microseconds")
        pipeline = [
            {"$match": tenant_filter(tenant_id, {"timestamp": {"$gte": start}})},
            {"$group": {
                "_id": {"date": {"$substr": ["$timestamp", 0, 10]}, "type": "$type"},
                "count": {"$sum": 1},
            }},
            {"$group": {
                "_id": "$_id.date",
                "activities": {"$push": {"type": "$_id.type", "count": "$count"}},
                "totalCount": {"$sum": "$count"},
            }},
            {"$sort": {"_id": -1}},
        ]

        results = []
        async for row in self.db[ACTIVITIES_COLLECTION].aggregate(pipeline):
            results.append(DailyActivity(
                date=row["_id"],
                activities=[ActivityTypeCount(**a) for a in row["activities"]],
                total_count=row["totalCount"],
            ))
        return results

    # ========================================================================
    # CASCADES
    # ========================================================================

    async def delete_for_leads(self, tenant_id: str, lead_ids: List[str], session=None) -> int:
        if not lead_ids:
            return 0
        result = await self.db[ACTIVITIES_COLLECTION].delete_many(
            tenant_filter(tenant_id, {"leadId": {"$in": list(lead_ids)}}),
            session=session,
        )
        return result.deleted_count

    async def delete_for_tenant(self, tenant_id: str, session=None) -> int:
        result = await self.db[ACTIVITIES_COLLECTION].delete_many(
            tenant_filter(tenant_id), session=session
        )
        return result.deleted_count
