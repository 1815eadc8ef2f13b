"""Custom lead statuses defined per tenant."""
from pydantic import Field

from drivecrm.models.base import CRMModel, new_id, utc_now_iso


DEFAULT_STATUS_COLOR = "#6b7280"


class CustomStatus(CRMModel):
    id: str = Field(default_factory=new_id)
    name: str
    color: str = DEFAULT_STATUS_COLOR
    tenant_id: str = Field(alias="adminId")
    created_by: str
    created_at: str = Field(default_factory=utc_now_iso)


class StatusCreate(CRMModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = DEFAULT_STATUS_COLOR
