"""Firestore data models for KidTime.

These models define the schema for all Firestore collections.
The ledger functions and the device agent must conform to this schema.
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(StrEnum):
    PARENT = "parent"
    CHILD = "child"


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXCEEDED = "exceeded"


class AiVerdict(StrEnum):
    PASS = "pass"
    SUSPECT = "suspect"
    FAILED = "failed"
    ERROR = "error"


class EventType(StrEnum):
    TIME_REQUEST_SUBMITTED = "time_request_submitted"
    TIME_REQUEST_EXCEEDED = "time_request_exceeded"
    TIME_REQUEST_APPROVED = "time_request_approved"
    TIME_REQUEST_DENIED = "time_request_denied"
    CHORE_REWARD_APPLIED = "chore_reward_applied"
    MANUAL_BONUS_GRANTED = "manual_bonus_granted"
    CHILD_INVITE_CREATED = "child_invite_created"
    CHORE_ASSIGNED = "chore_assigned"
    CHORE_ASSIGNED_BULK = "chore_assigned_bulk"
    USAGE_VIEWED = "usage_viewed"
    USAGE_VIEWED_BULK = "usage_viewed_bulk"


class NotificationType(StrEnum):
    TIME_REQUEST = "time_request"
    TIME_REQUEST_DECISION = "time_request_decision"
    CHORE_REWARD = "chore_reward"
    INVITE_SENT = "invite_sent"


class Collection(StrEnum):
    POLICIES = "policies"
    TIME_REQUESTS = "timeRequests"
    REQUEST_COUNTERS = "timeRequestCounters"
    SCREEN_TIME = "screenTime"
    EVENTS = "events"
    NOTIFICATIONS = "notifications"
    CHILDREN = "children"
    INVITES = "invites"
    CHORES = "chores"
    SUBMISSIONS = "submissions"


def daily_doc_id(child_id: str, day: date) -> str:
    """Document id for per-child, per-day records (counters, screen time)."""
    return f"{child_id}_{day.isoformat()}"


class QuietHours(BaseModel):
    """A wall-clock interval, ``start`` inclusive and ``end`` exclusive.

    Values that are not strings are kept as ``None`` so the evaluator can
    skip the entry instead of rejecting the whole policy.
    """

    start: str | None = None
    end: str | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _drop_non_strings(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class Policy(BaseModel):
    """Firestore: policies/{childId}"""

    model_config = ConfigDict(extra="ignore")

    quiet_hours: list[QuietHours] = Field(default_factory=list)
    allowed_apps: list[str] = Field(default_factory=list)


class UsageSnapshot(BaseModel):
    budget_minutes: Annotated[int, Field(ge=0)] = 0
    used_minutes: Annotated[float, Field(ge=0)] = 0.0


class ScreenTimeRecord(BaseModel):
    """Firestore: screenTime/{childId}_{date}"""

    model_config = ConfigDict(extra="ignore")

    child_id: str
    date: str  # YYYY-MM-DD
    budget_minutes: Annotated[int, Field(ge=0)] = 0
    used_minutes: Annotated[float, Field(ge=0)] = 0.0
    last_updated: datetime | None = None

    def snapshot(self) -> UsageSnapshot:
        return UsageSnapshot(
            budget_minutes=self.budget_minutes,
            used_minutes=self.used_minutes,
        )


class TimeRequest(BaseModel):
    """Firestore: timeRequests/{requestId}"""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    child_id: str
    minutes_requested: Annotated[int, Field(gt=0)]
    status: RequestStatus = RequestStatus.PENDING
    reason: str | None = None
    created_at: datetime
    decided_at: datetime | None = None
    reviewer_id: str | None = None
    decision_reason: str | None = None


class DailyRequestCounter(BaseModel):
    """Firestore: timeRequestCounters/{childId}_{date}"""

    model_config = ConfigDict(extra="ignore")

    child_id: str
    date: str  # YYYY-MM-DD
    count: Annotated[int, Field(ge=0)] = 0
    last_request: datetime | None = None


class AuditEvent(BaseModel):
    """Firestore: events/{eventId}

    Append-only. Never updated or deleted once written.
    """

    type: EventType
    actor_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class Child(BaseModel):
    """Firestore: children/{childId}"""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    parent_id: str
    name: str
    phone: str | None = None
    status: str = "active"


class Notification(BaseModel):
    """Firestore: notifications/{notificationId}"""

    type: NotificationType
    recipient_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime


class Invite(BaseModel):
    """Firestore: invites/{inviteId}"""

    parent_id: str
    child_name: str
    phone: str
    token: str
    status: str = "pending"
    expires_at: datetime
    created_at: datetime


class Chore(BaseModel):
    """Firestore: chores/{choreId}"""

    child_id: str
    title: str
    type: str
    status: str = "open"
    assigned_by: str
    minutes_award: Annotated[int, Field(gt=0)] = 10
    created_at: datetime


class Submission(BaseModel):
    """Firestore: submissions/{submissionId}

    Created by the child app, judged by the verification service. Only the
    reward bookkeeping fields are written here.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    child_id: str | None = None
    chore_id: str | None = None
    minutes_award: int | None = None
    ai_verdict: str | None = None  # an AiVerdict value once judged
    reward_applied: bool = False
    reward_applied_at: datetime | None = None
    reward_date: str | None = None
