"""DriveCRM Data Models"""

from .base import CRMModel, new_id, parse_timestamp, utc_now_iso
from .user import (
    User,
    UserRole,
    UserStatus,
    UserSnapshot,
    Permission,
    SubscriptionStatus,
    AdminCreate,
    AgentCreate,
    AgentUpdate,
    TeardownResult,
)
from .caller import Caller
from .lead import (
    Lead,
    LeadStatus,
    LeadCreate,
    LeadUpdate,
    LeadFilters,
    LeadPage,
    ImportResult,
    ImportRecord,
    StatusCount,
    StatusCounts,
    BulkFailure,
    BulkAssignResult,
    BulkUnassignResult,
    BulkStatusResult,
    DEFAULT_LEAD_STATUSES,
    LEAD_ID_MIN,
    LEAD_ID_MAX,
)
from .activity import (
    Activity,
    ActivityType,
    ActivityInput,
    ActivityFilters,
    DailyActivity,
)
from .comment import Comment
from .status import CustomStatus, StatusCreate
from .reminder import Reminder, ReminderCreate, ReminderStatus, ReminderType
from .usage import PlanState, QuotaCheck, UsageLimits, UNLIMITED

__all__ = [
    "CRMModel",
    "new_id",
    "utc_now_iso",
    "parse_timestamp",
    # Users
    "User",
    "UserRole",
    "UserStatus",
    "UserSnapshot",
    "Permission",
    "SubscriptionStatus",
    "AdminCreate",
    "AgentCreate",
    "AgentUpdate",
    "TeardownResult",
    "Caller",
    # Leads
    "Lead",
    "LeadStatus",
    "LeadCreate",
    "LeadUpdate",
    "LeadFilters",
    "LeadPage",
    "ImportResult",
    "ImportRecord",
    "StatusCount",
    "StatusCounts",
    "BulkFailure",
    "BulkAssignResult",
    "BulkUnassignResult",
    "BulkStatusResult",
    "DEFAULT_LEAD_STATUSES",
    "LEAD_ID_MIN",
    "LEAD_ID_MAX",
    # Activities
    "Activity",
    "ActivityType",
    "ActivityInput",
    "ActivityFilters",
    "DailyActivity",
    # Comments / statuses / reminders
    "Comment",
    "CustomStatus",
    "StatusCreate",
    "Reminder",
    "ReminderCreate",
    "ReminderStatus",
    "ReminderType",
    # Usage
    "PlanState",
    "QuotaCheck",
    "UsageLimits",
    "UNLIMITED",
]
