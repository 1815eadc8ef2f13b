"""Lead Models

Leads are owned by one tenant (``adminId``). ``leadId`` is the short numeric
identifier shown to humans; ``id`` is the storage key.
"""
from enum import Enum
from typing import List, Optional

from pydantic import EmailStr, Field

from drivecrm.models.base import CRMModel, new_id, utc_now_iso

LEAD_ID_MIN = 10000
LEAD_ID_MAX = 999999


class LeadStatus(str, Enum):
    """Built-in statuses, always valid in every tenant."""
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    IN_PROGRESS = "IN_PROGRESS"
    QUALIFIED = "QUALIFIED"
    LOST = "LOST"
    WON = "WON"


DEFAULT_LEAD_STATUSES = [s.value for s in LeadStatus]


class Lead(CRMModel):
    id: str = Field(default_factory=new_id)
    lead_id: Optional[int] = Field(default=None, ge=LEAD_ID_MIN, le=LEAD_ID_MAX)
    first_name: str
    last_name: str = ""
    email: str
    phone: Optional[str] = None
    country: Optional[str] = None
    status: str = LeadStatus.NEW.value
    source: str = "-"
    comments: str = "No comments yet"
    import_id: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[str] = None
    tenant_id: str = Field(alias="adminId")
    created_by: str
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    def to_document(self) -> dict:
        doc = super().to_document()
        # Sparse unique index: an unset leadId must be absent, not null
        if doc.get("leadId") is None:
            doc.pop("leadId", None)
        return doc


# ============================================================================
# REQUEST MODELS
# ============================================================================

class LeadCreate(CRMModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr
    phone: Optional[str] = None
    country: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    comments: Optional[str] = None
    lead_id: Optional[int] = Field(default=None, ge=LEAD_ID_MIN, le=LEAD_ID_MAX)
    import_id: Optional[str] = None


class LeadUpdate(CRMModel):
    """Partial patch. Only fields present and non-null are written."""
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    comments: Optional[str] = None

    def present_fields(self) -> dict:
        return {
            k: v for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None
        }


class LeadFilters(CRMModel):
    status: Optional[str] = None
    # A user id, or "unassigned"
    assigned_to: Optional[str] = None
    source: Optional[str] = None
    country: Optional[str] = None
    search: Optional[str] = None


class StatusChange(CRMModel):
    status: str = Field(..., min_length=1)


class AssignRequest(CRMModel):
    user_id: str


class BulkLeadRequest(CRMModel):
    lead_ids: List[str] = Field(..., min_length=1)


class BulkAssignRequest(BulkLeadRequest):
    user_id: str


class BulkStatusRequest(BulkLeadRequest):
    status: str = Field(..., min_length=1)


class LeadImportRequest(CRMModel):
    """Rows already parsed from the uploaded spreadsheet."""
    rows: List[dict] = Field(..., min_length=1)
    source: Optional[str] = None
    file_name: Optional[str] = None


# ============================================================================
# RESULT MODELS
# ============================================================================

class BulkFailure(CRMModel):
    lead_id: str
    error: str
    message: str


class BulkAssignResult(CRMModel):
    modified_count: int = 0
    failures: List[BulkFailure] = Field(default_factory=list)


class BulkUnassignResult(CRMModel):
    unassigned_count: int = 0
    failures: List[BulkFailure] = Field(default_factory=list)


class BulkStatusResult(CRMModel):
    modified_count: int = 0
    failures: List[BulkFailure] = Field(default_factory=list)


class ImportResult(CRMModel):
    import_id: str
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0


class LeadPage(CRMModel):
    leads: List[Lead]
    total: int
    page: int
    limit: int


class ImportRecord(CRMModel):
    """One spreadsheet import. Leads it created carry its id as ``importId``."""
    id: str = Field(default_factory=new_id)
    file_name: Optional[str] = None
    source: Optional[str] = None
    record_count: int = 0
    success_count: int = 0
    duplicate_count: int = 0
    failure_count: int = 0
    uploaded_by: str
    tenant_id: str = Field(alias="adminId")
    created_at: str = Field(default_factory=utc_now_iso)


class StatusCount(CRMModel):
    id: str
    name: str
    color: str
    count: int = 0
    # Leads still carrying a custom status that has since been removed
    is_deleted: bool = False


class StatusCounts(CRMModel):
    status_counts: List[StatusCount]
    total_statuses: int
    total_leads: int
