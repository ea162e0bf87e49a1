from .models import (
    AiVerdict,
    AuditEvent,
    Child,
    Chore,
    Collection,
    DailyRequestCounter,
    EventType,
    Invite,
    Notification,
    NotificationType,
    Policy,
    QuietHours,
    RequestStatus,
    Role,
    ScreenTimeRecord,
    Submission,
    TimeRequest,
    UsageSnapshot,
    daily_doc_id,
)
from .policy import is_usage_allowed

__all__ = [
    "AiVerdict",
    "AuditEvent",
    "Child",
    "Chore",
    "Collection",
    "DailyRequestCounter",
    "EventType",
    "Invite",
    "Notification",
    "NotificationType",
    "Policy",
    "QuietHours",
    "RequestStatus",
    "Role",
    "ScreenTimeRecord",
    "Submission",
    "TimeRequest",
    "UsageSnapshot",
    "daily_doc_id",
    "is_usage_allowed",
]
