"""
Activity log: validated appends, best-effort recording, tenant-scoped queries
and daily aggregation.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from drivecrm.errors import AuthorizationError, ValidationError
from drivecrm.models.activity import ActivityFilters, ActivityInput, ActivityType
from drivecrm.services.activity_service import ActivityService

pytestmark = pytest.mark.asyncio


def _entry(**overrides):
    fields = {
        "type": ActivityType.STATUS_CHANGE,
        "user_id": "user-1",
        "tenant_id": "tenant-1",
        "lead_id": "lead-1",
        "details": "Status changed from NEW to WON",
        "metadata": {"oldStatus": "NEW", "newStatus": "WON"},
    }
    fields.update(overrides)
    return ActivityInput(**fields)


class TestAppend:

    async def test_append_persists_camel_case_document(self, db):
        service = ActivityService(db)
        activity = await service.append(_entry())

        stored = await db["activities"].find_one({"id": activity.id}, {"_id": 0})
        assert stored["type"] == "STATUS_CHANGE"
        assert stored["adminId"] == "tenant-1"
        assert stored["leadId"] == "lead-1"
        assert stored["userId"] == "user-1"
        assert stored["metadata"] == {"oldStatus": "NEW", "newStatus": "WON"}
        assert stored["timestamp"]

    async def test_non_mapping_metadata_rejected(self, db):
        service = ActivityService(db)
        with pytest.raises(ValidationError):
            await service.append(_entry(metadata=["not", "an", "object"]))
        with pytest.raises(ValidationError):
            await service.append(_entry(metadata="oops"))
        assert await db["activities"].count_documents({}) == 0

    async def test_missing_tenant_rejected(self, db):
        service = ActivityService(db)
        with pytest.raises(AuthorizationError):
            await service.append(_entry(tenant_id=""))

    async def test_best_effort_swallows_store_errors(self, caplog):
        db = MagicMock()
        db["activities"].insert_one = AsyncMock(side_effect=RuntimeError("write failed"))
        service = ActivityService(db)

        assert await service.append_best_effort(_entry()) is None
        assert "Failed to record STATUS_CHANGE activity" in caplog.text

    async def test_record_builds_entry(self, db):
        service = ActivityService(db)
        activity = await service.record(
            ActivityType.COMMENT,
            user_id="user-1",
            tenant_id="tenant-1",
            lead_id="lead-1",
            details="Added a comment",
        )
        assert activity.metadata == {}
        assert await db["activities"].count_documents({"type": "COMMENT"}) == 1


class TestQueries:

    async def _seed(self, service):
        await service.append(_entry(lead_id="lead-1", user_id="user-1"))
        await service.append(_entry(lead_id="lead-2", user_id="user-2", type=ActivityType.ASSIGNMENT))
        await service.append(_entry(lead_id="lead-1", user_id="user-2", type=ActivityType.COMMENT))
        await service.append(_entry(tenant_id="tenant-2", lead_id="lead-9"))

    async def test_listing_is_tenant_scoped(self, db):
        service = ActivityService(db)
        await self._seed(service)

        assert len(await service.list_by_tenant("tenant-1")) == 3
        assert len(await service.list_by_tenant("tenant-2")) == 1
        assert [a.type for a in await service.list_by_lead("tenant-1", "lead-1")] == [
            ActivityType.COMMENT, ActivityType.STATUS_CHANGE
        ]
        assert len(await service.list_by_user("tenant-1", "user-2")) == 2
        assert await service.list_by_lead("tenant-2", "lead-1") == []

    async def test_filters(self, db):
        service = ActivityService(db)
        await self._seed(service)

        by_type = await service.list("tenant-1", ActivityFilters(type=ActivityType.ASSIGNMENT))
        assert [a.lead_id for a in by_type] == ["lead-2"]

        limited = await service.list("tenant-1", ActivityFilters(limit=1))
        assert len(limited) == 1

        future = await service.list("tenant-1", ActivityFilters(since="2999-01-01T00:00:00+00:00"))
        assert future == []

    async def test_delete_for_leads_only_touches_tenant(self, db):
        service = ActivityService(db)
        await self._seed(service)
        await service.append(_entry(tenant_id="tenant-2", lead_id="lead-1"))

        assert await service.delete_for_leads("tenant-1", ["lead-1"]) == 2
        assert await service.delete_for_leads("tenant-1", []) == 0
        assert await db["activities"].count_documents({"adminId": "tenant-2"}) == 2


class TestAggregateByDay:

    async def test_rows_become_daily_counts(self):
        rows = [
            {
                "_id": "2026-10-18",
                "activities": [{"type": "COMMENT", "count": 2}, {"type": "ASSIGNMENT", "count": 1}],
                "totalCount": 3,
            },
            {"_id": "2026-10-17", "activities": [{"type": "IMPORT", "count": 1}], "totalCount": 1},
        ]
        cursor = MagicMock()
        cursor.__aiter__.return_value = rows
        db = MagicMock()
        db["activities"].aggregate = MagicMock(return_value=cursor)

        days = await ActivityService(db).aggregate_by_day("tenant-1", days=7)

        assert [d.date for d in days] == ["2026-10-18", "2026-10-17"]
        assert days[0].total_count == 3
        assert days[0].activities[0].type == "COMMENT"

        pipeline = db["activities"].aggregate.call_args[0][0]
        assert pipeline[0]["$match"]["adminId"] == "tenant-1"
        assert "$gte" in pipeline[0]["$match"]["timestamp"]
