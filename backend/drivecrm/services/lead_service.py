"""
Lead Service

Core business logic for tenant-scoped leads.

Handles:
- Lead creation (quota gate, per-tenant email uniqueness, leadId allocation)
- Lookups by storage id or numeric leadId
- Filtered listing
- Diff-patch updates and status changes
- Bulk delete with activity cascade
- Spreadsheet import of already-parsed rows
"""
import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import maybe_transaction
from drivecrm.errors import ConflictError, CRMError, NotFoundError
from drivecrm.models.activity import ActivityType
from drivecrm.models.base import new_id, utc_now_iso
from drivecrm.models.lead import (
    BulkStatusResult,
    DEFAULT_LEAD_STATUSES,
    ImportRecord,
    ImportResult,
    Lead,
    LeadCreate,
    LeadFilters,
    LeadPage,
    LeadStatus,
    LeadUpdate,
    StatusCount,
    StatusCounts,
)
from drivecrm.models.status import DEFAULT_STATUS_COLOR
from drivecrm.services.bulk import run_per_item
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

# Collections
LEADS_COLLECTION = "leads"
COMMENTS_COLLECTION = "comments"
REMINDERS_COLLECTION = "reminders"
IMPORTS_COLLECTION = "imports"

ALL_LEADS_COLOR = "#6366F1"

# Inserts retried after a leadId collision on the unique index
LEAD_ID_WRITE_ATTEMPTS = 5
# Conditional single-lead updates retried after losing a race
MAX_CAS_ATTEMPTS = 3

SEARCH_FIELDS = ("firstName", "lastName", "email", "phone")

LeadRef = Union[str, int]


def normalize_email(email) -> str:
    return str(email).strip().lower()


def is_lead_number(value: str) -> bool:
    # str.isdigit also accepts superscripts and other non-ASCII digits
    return value.isascii() and value.isdigit()


def lead_ref_filter(ref: LeadRef) -> Dict[str, Any]:
    """A lead is referenced by its storage id or by its numeric leadId."""
    if isinstance(ref, int):
        return {"leadId": ref}
    ref = str(ref).strip()
    if is_lead_number(ref):
        return {"leadId": int(ref)}
    return {"id": ref}


class LeadService:
    """Service for lead management operations."""

    def __init__(self, db, settings, activity_service, id_generator, usage_limiter, status_service):
        self.db = db
        self.settings = settings
        self.activity_service = activity_service
        self.id_generator = id_generator
        self.usage_limiter = usage_limiter
        self.status_service = status_service

    @property
    def leads(self):
        return self.db[LEADS_COLLECTION]

    # ========================================================================
    # READS
    # ========================================================================

    async def find_by_id(self, tenant_id: str, ref: LeadRef) -> Lead:
        """Leads outside the tenant are reported exactly like missing ones."""
        doc = await self.leads.find_one(tenant_filter(tenant_id, lead_ref_filter(ref)), {"_id": 0})
        if not doc:
            raise NotFoundError("Lead not found", {"leadId": str(ref)})
        return Lead.model_validate(doc)

    async def check_email_exists(self, tenant_id: str, email: str) -> bool:
        found = await self.leads.find_one(
            tenant_filter(tenant_id, {"email": normalize_email(email)}),
            {"_id": 1}
        )
        return found is not None

    async def list(
        self,
        tenant_id: str,
        filters: Optional[LeadFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> LeadPage:
        filters = filters or LeadFilters()
        query = tenant_filter(tenant_id)

        if filters.status:
            query["status"] = filters.status
        if filters.assigned_to:
            query["assignedTo"] = None if filters.assigned_to == "unassigned" else filters.assigned_to
        if filters.source:
            query["source"] = filters.source
        if filters.country:
            query["country"] = filters.country
        if filters.search and filters.search.strip():
            term = filters.search.strip()
            pattern = re.escape(term)
            search_or = [{f: {"$regex": pattern, "$options": "i"}} for f in SEARCH_FIELDS]
            if is_lead_number(term):
                search_or.append({"leadId": int(term)})
            query["$or"] = search_or

        page = max(1, page)
        skip = (page - 1) * limit
        cursor = self.leads.find(query, {"_id": 0}).sort("createdAt", -1).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        total = await self.leads.count_documents(query)

        return LeadPage(
            leads=[Lead.model_validate(d) for d in docs],
            total=total,
            page=page,
            limit=limit,
        )

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create(self, tenant_id: str, actor_id: str, fields: LeadCreate) -> Lead:
        await self.usage_limiter.ensure_can_import(tenant_id)
        return await self._insert_lead(tenant_id, actor_id, fields)

    async def _insert_lead(
        self,
        tenant_id: str,
        actor_id: str,
        fields: LeadCreate,
        log_activity: bool = True,
    ) -> Lead:
        email = normalize_email(fields.email)
        if await self.check_email_exists(tenant_id, email):
            raise ConflictError(f"A lead with email {email} already exists", {"email": email})

        status = LeadStatus.NEW.value
        if fields.status:
            status = await self.status_service.resolve(tenant_id, fields.status)

        lead_id = fields.lead_id
        for _ in range(LEAD_ID_WRITE_ATTEMPTS):
            if lead_id is None:
                lead_id = await self.id_generator.next_lead_id()
            lead = Lead(
                lead_id=lead_id,
                first_name=fields.first_name.strip(),
                last_name=(fields.last_name or "").strip(),
                email=email,
                phone=fields.phone,
                country=fields.country,
                status=status,
                source=fields.source or "-",
                comments=fields.comments or "No comments yet",
                import_id=fields.import_id,
                tenant_id=tenant_id,
                created_by=actor_id,
            )
            try:
                await self.leads.insert_one(lead.to_document())
                break
            except DuplicateKeyError:
                if await self.check_email_exists(tenant_id, email):
                    raise ConflictError(f"A lead with email {email} already exists", {"email": email})
                if fields.lead_id is not None:
                    raise ConflictError(f"leadId {fields.lead_id} is already in use")
                logger.warning(f"leadId {lead_id} collided on insert, regenerating")
                lead_id = None
        else:
            raise ConflictError("Could not allocate a unique leadId, try again")

        logger.info(f"Lead created: {lead.id} (leadId={lead.lead_id}) in tenant {tenant_id}")
        if log_activity:
            await self.activity_service.record(
                ActivityType.LEAD_CREATED,
                user_id=actor_id,
                tenant_id=tenant_id,
                lead_id=lead.id,
                details=f"Lead {lead.first_name} {lead.last_name}".rstrip() + " created",
                metadata={"leadId": lead.lead_id, "email": lead.email, "source": lead.source},
            )
        return lead

    async def import_leads(
        self,
        tenant_id: str,
        actor_id: str,
        rows: List[Dict[str, Any]],
        source: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> ImportResult:
        """Insert parsed spreadsheet rows.

        The whole batch must fit the tenant quota before anything is written.
        Rows whose email already exists in the tenant count as duplicates.
        Every imported lead carries the import id, recorded in the import history.
        """
        await self.usage_limiter.ensure_can_import(tenant_id, requested=len(rows))

        result = ImportResult(import_id=new_id())
        for index, row in enumerate(rows):
            try:
                fields = LeadCreate.model_validate(row)
            except PydanticValidationError as e:
                logger.warning(f"Import {result.import_id} row {index} rejected: {e.error_count()} errors")
                result.errors += 1
                continue

            fields.import_id = result.import_id
            if source and not fields.source:
                fields.source = source

            try:
                await self._insert_lead(tenant_id, actor_id, fields, log_activity=False)
                result.inserted += 1
            except ConflictError:
                result.duplicates += 1
            except CRMError as e:
                logger.warning(f"Import {result.import_id} row {index} failed: {e.message}")
                result.errors += 1

        logger.info(
            f"Import {result.import_id} for tenant {tenant_id}: inserted={result.inserted} "
            f"duplicates={result.duplicates} errors={result.errors}"
        )
        record = ImportRecord(
            id=result.import_id,
            file_name=file_name,
            source=source,
            record_count=len(rows),
            success_count=result.inserted,
            duplicate_count=result.duplicates,
            failure_count=result.errors,
            uploaded_by=actor_id,
            tenant_id=tenant_id,
        )
        await self.db[IMPORTS_COLLECTION].insert_one(record.to_document())

        await self.activity_service.record(
            ActivityType.IMPORT,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Imported {result.inserted} leads",
            metadata={
                "importId": result.import_id,
                "inserted": result.inserted,
                "duplicates": result.duplicates,
                "errors": result.errors,
                "source": source,
                "fileName": file_name,
            },
        )
        return result

    # ========================================================================
    # UPDATES
    # ========================================================================

    async def update(self, tenant_id: str, actor_id: str, ref: LeadRef, patch: LeadUpdate) -> Lead:
        """Apply only the fields present in ``patch``; nothing else is touched."""
        lead = await self.find_by_id(tenant_id, ref)
        present = patch.present_fields()

        if "email" in present:
            present["email"] = normalize_email(present["email"])
            if present["email"] != lead.email and await self.check_email_exists(tenant_id, present["email"]):
                raise ConflictError(f"A lead with email {present['email']} already exists")
        if "status" in present:
            present["status"] = await self.status_service.resolve(tenant_id, present["status"])
        for name in ("first_name", "last_name"):
            if name in present:
                present[name] = present[name].strip()

        current = lead.model_dump()
        changes = [
            {"field": to_camel(k), "oldValue": current.get(k), "newValue": v}
            for k, v in present.items()
            if current.get(k) != v
        ]
        if not changes:
            return lead

        set_doc = {c["field"]: c["newValue"] for c in changes}
        set_doc["updatedAt"] = utc_now_iso()
        try:
            doc = await self.leads.find_one_and_update(
                tenant_filter(tenant_id, {"id": lead.id}),
                {"$set": set_doc},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ConflictError(f"A lead with email {present.get('email')} already exists")
        if doc is None:
            raise NotFoundError("Lead not found", {"leadId": str(ref)})

        updated = Lead.model_validate(doc)
        await self.activity_service.record(
            ActivityType.UPDATE,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=updated.id,
            details="Lead details updated",
            metadata={"changes": changes},
        )
        return updated

    async def change_status(self, tenant_id: str, actor_id: str, ref: LeadRef, new_status: str) -> Lead:
        """Set the status; the same status again is a no-op with no activity."""
        lead = await self.find_by_id(tenant_id, ref)
        status = await self.status_service.resolve(tenant_id, new_status)

        for _ in range(MAX_CAS_ATTEMPTS):
            old_status = lead.status
            if old_status == status:
                return lead
            doc = await self.leads.find_one_and_update(
                tenant_filter(tenant_id, {"id": lead.id, "status": old_status}),
                {"$set": {"status": status, "updatedAt": utc_now_iso()}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                break
            lead = await self.find_by_id(tenant_id, lead.id)
        else:
            raise ConflictError("Lead status changed concurrently, try again")

        updated = Lead.model_validate(doc)
        logger.info(f"Lead {updated.id} status {old_status} -> {status}")
        await self.activity_service.record(
            ActivityType.STATUS_CHANGE,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=updated.id,
            details=f"Status changed from {old_status} to {status}",
            metadata={"oldStatus": old_status, "newStatus": status, "status": status},
        )
        return updated

    async def bulk_change_status(
        self,
        tenant_id: str,
        actor_id: str,
        refs: List[LeadRef],
        new_status: str,
    ) -> BulkStatusResult:
        status = await self.status_service.resolve(tenant_id, new_status)

        async def _one(ref):
            lead = await self.find_by_id(tenant_id, ref)
            if lead.status == status:
                return None
            return await self.change_status(tenant_id, actor_id, lead.id, status)

        modified, failures = await run_per_item(refs, _one, self.settings.bulk_concurrency)
        for failure in failures:
            logger.warning(f"Bulk status skipped lead {failure.lead_id}: {failure.message}")
        return BulkStatusResult(modified_count=len(modified), failures=failures)

    # ========================================================================
    # STATUS COUNTS
    # ========================================================================

    async def status_counts(self, tenant_id: str) -> StatusCounts:
        """Lead counts per status in the tenant, led by an "All Leads" total.

        Built-in statuses come first, then custom statuses in creation order.
        Statuses still held by leads but no longer defined are flagged deleted.
        """
        pipeline = [
            {"$match": tenant_filter(tenant_id)},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        counts: Dict[str, int] = {}
        async for row in self.leads.aggregate(pipeline):
            counts[row["_id"]] = row["count"]

        custom = await self.status_service.list_custom(tenant_id)
        items = [StatusCount(id=name, name=name, color=DEFAULT_STATUS_COLOR, count=counts.pop(name, 0))
                 for name in DEFAULT_LEAD_STATUSES]
        items += [StatusCount(id=s.id, name=s.name, color=s.color, count=counts.pop(s.name, 0)) for s in custom]
        items += [
            StatusCount(id=str(name), name=str(name), color=DEFAULT_STATUS_COLOR, count=count, is_deleted=True)
            for name, count in sorted(counts.items(), key=lambda kv: str(kv[0]))
        ]

        total = sum(item.count for item in items)
        items.insert(0, StatusCount(id="ALL", name="All Leads", color=ALL_LEADS_COLOR, count=total))
        return StatusCounts(
            status_counts=items,
            total_statuses=len(DEFAULT_LEAD_STATUSES) + len(custom),
            total_leads=total,
        )

    # ========================================================================
    # DELETION
    # ========================================================================

    async def _delete_cascade(self, tenant_id: str, lead_ids: List[str], session=None) -> int:
        """Children first: an interrupted run without a transaction can leave
        orphaned activities, never leads whose history is gone."""
        scope = tenant_filter(tenant_id, {"leadId": {"$in": lead_ids}})
        await self.activity_service.delete_for_leads(tenant_id, lead_ids, session=session)
        await self.db[COMMENTS_COLLECTION].delete_many(scope, session=session)
        await self.db[REMINDERS_COLLECTION].delete_many(scope, session=session)
        result = await self.leads.delete_many(
            tenant_filter(tenant_id, {"id": {"$in": lead_ids}}),
            session=session,
        )
        return result.deleted_count

    async def delete(self, tenant_id: str, actor_id: str, ref: LeadRef) -> Lead:
        """Delete one tenant lead with its activities, comments and reminders."""
        lead = await self.find_by_id(tenant_id, ref)
        async with maybe_transaction(self.db, self.settings.use_transactions) as session:
            deleted = await self._delete_cascade(tenant_id, [lead.id], session=session)
        if not deleted:
            raise NotFoundError("Lead not found", {"leadId": str(ref)})

        logger.info(f"Lead deleted: {lead.id} (leadId={lead.lead_id}) in tenant {tenant_id}")
        await self.activity_service.record(
            ActivityType.DELETE,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Lead {lead.first_name} {lead.last_name}".rstrip() + " deleted",
            metadata={"count": 1, "leadIds": [lead.id], "leadId": lead.lead_id, "email": lead.email},
        )
        return lead

    async def bulk_delete(self, tenant_id: str, actor_id: str, refs: List[LeadRef]) -> int:
        """Delete tenant leads with their activities, comments and reminders."""
        ids = [str(r).strip() for r in refs]
        numeric = [int(r) for r in ids if is_lead_number(r)]
        storage = [r for r in ids if not is_lead_number(r)]
        cursor = self.leads.find(
            tenant_filter(tenant_id, {"$or": [{"id": {"$in": storage}}, {"leadId": {"$in": numeric}}]}),
            {"_id": 0, "id": 1}
        )
        lead_ids = [d["id"] for d in await cursor.to_list(length=None)]
        if not lead_ids:
            return 0

        async with maybe_transaction(self.db, self.settings.use_transactions) as session:
            deleted = await self._delete_cascade(tenant_id, lead_ids, session=session)

        logger.info(f"Bulk delete in tenant {tenant_id}: {deleted} leads")
        await self.activity_service.record(
            ActivityType.DELETE,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Deleted {deleted} leads",
            metadata={"count": deleted, "leadIds": lead_ids},
        )
        return deleted

    # ========================================================================
    # IMPORT HISTORY
    # ========================================================================

    async def list_imports(self, tenant_id: str) -> List[ImportRecord]:
        cursor = self.db[IMPORTS_COLLECTION].find(tenant_filter(tenant_id), {"_id": 0}).sort("createdAt", -1)
        return [ImportRecord.model_validate(d) for d in await cursor.to_list(length=None)]

    async def delete_import(self, tenant_id: str, actor_id: str, import_id: str) -> int:
        """Delete an import record and every lead it created. Returns the leads deleted."""
        record = await self.db[IMPORTS_COLLECTION].find_one(tenant_filter(tenant_id, {"id": import_id}), {"_id": 0})
        if not record:
            raise NotFoundError("Import not found", {"importId": import_id})

        cursor = self.leads.find(tenant_filter(tenant_id, {"importId": import_id}), {"_id": 0, "id": 1})
        lead_ids = [d["id"] for d in await cursor.to_list(length=None)]

        async with maybe_transaction(self.db, self.settings.use_transactions) as session:
            deleted = await self._delete_cascade(tenant_id, lead_ids, session=session) if lead_ids else 0
            await self.db[IMPORTS_COLLECTION].delete_one(tenant_filter(tenant_id, {"id": import_id}), session=session)

        logger.info(f"Import {import_id} deleted in tenant {tenant_id}: {deleted} leads")
        await self.activity_service.record(
            ActivityType.DELETE,
            user_id=actor_id,
            tenant_id=tenant_id,
            details=f"Deleted import {record.get('fileName') or import_id} and {deleted} leads",
            metadata={"importId": import_id, "count": deleted, "leadIds": lead_ids},
        )
        return deleted
