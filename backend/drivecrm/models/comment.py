"""Comment Models"""
from pydantic import Field

from drivecrm.models.base import CRMModel, new_id, utc_now_iso
from drivecrm.models.user import UserSnapshot


class Comment(CRMModel):
    id: str = Field(default_factory=new_id)
    lead_id: str
    tenant_id: str = Field(alias="adminId")
    content: str
    created_by: UserSnapshot
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class CommentBody(CRMModel):
    content: str
