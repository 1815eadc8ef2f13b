"""Shared model plumbing.

Python attributes are snake_case, persisted and JSON field names are camelCase
(``leadId``, ``assignedTo``, ``adminId``...). Timestamps are ISO-8601 UTC strings.
"""
from datetime import datetime, timezone
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class CRMModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Dump with persisted field names, ready for insert."""
        return self.model_dump(by_alias=True, mode="json")


def parse_timestamp(value) -> datetime:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
