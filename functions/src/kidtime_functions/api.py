"""Callable operations exposed to the apps.

Each operation validates its payload into a pydantic input model, runs the
ledger operation and returns a JSON-ready dict with camelCase keys. Known
failures come back as ``{"ok": false, "code", "error", "message"}``.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, field_validator

from kidtime_shared.firestore import to_camel
from kidtime_shared.store import DocumentStore, TransactionAbortedError

from .awards import RewardLedger
from .config import LedgerLimits
from .errors import ErrorCode, InvalidArgumentError, KidTimeError
from .household import Household
from .notifications import NotificationSink, StoreNotificationSink
from .records import utc_now
from .session import Caller, require_caller
from .time_requests import RequestDecision, TimeRequestLedger
from .voice import VoiceDispatcher

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Inputs ───


class SubmitRequestInput(ApiModel):
    child_id: str = Field(min_length=1)
    minutes: StrictInt
    reason: str | None = None


class DecideRequestInput(ApiModel):
    request_id: str = Field(min_length=1)
    approved: bool = True
    reason: str | None = None


class GrantBonusInput(ApiModel):
    child_id: str = Field(min_length=1)
    minutes: StrictInt
    reason: str | None = None


class InviteChildInput(ApiModel):
    child_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)


class DispatchInput(ApiModel):
    intent: str | None = None
    entities: dict[str, Any] = Field(default_factory=dict)

    @field_validator("entities", mode="before")
    @classmethod
    def _missing_entities(cls, value: Any) -> Any:
        return {} if value is None else value


# ─── Results ───


class SubmitRequestResult(ApiModel):
    ok: bool = True
    id: str
    message: str


class DecisionResult(ApiModel):
    ok: bool = True
    message: str
    child_id: str
    minutes_approved: int | None = None
    minutes_denied: int | None = None
    new_budget_minutes: int | None = None
    capped: bool | None = None


class GrantBonusResult(ApiModel):
    ok: bool = True
    message: str
    award_date: str
    new_budget_minutes: int
    capped: bool


class InviteChildResult(ApiModel):
    ok: bool = True
    message: str
    invite_id: str
    token: str


class DispatchResult(ApiModel):
    ok: bool
    say: str
    error: str | None = None


class Failure(ApiModel):
    ok: bool = False
    code: ErrorCode
    error: str
    message: str


def _dump(result: ApiModel) -> dict[str, Any]:
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "payload"
    return f"Invalid {field}: {first['msg']}"


class KidTimeFunctions:
    """Wires the ledgers to one store and serves callable operations."""

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationSink | None = None,
        limits: LedgerLimits | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        limits = limits or LedgerLimits()
        notifications = notifications or StoreNotificationSink(store)
        self.requests = TimeRequestLedger(store, notifications, limits, clock)
        self.rewards = RewardLedger(store, notifications, limits, clock)
        self.household = Household(store, notifications, limits, clock)
        self.voice = VoiceDispatcher(self.household, self.rewards, limits)
        self._operations: dict[str, Callable[[Caller | None, Mapping[str, Any]], ApiModel]] = {
            "submitRequest": self._submit_request,
            "approveRequest": self._approve_request,
            "denyRequest": self._deny_request,
            "grantBonusTime": self._grant_bonus_time,
            "inviteChild": self._invite_child,
            "dispatch": self._dispatch,
        }

    @property
    def operations(self) -> list[str]:
        return sorted(self._operations)

    def call(
        self,
        operation: str,
        payload: Mapping[str, Any] | None,
        caller: Caller | None,
    ) -> dict[str, Any]:
        """Run a callable operation and return its JSON-ready result."""
        try:
            handler = self._operations.get(operation)
            if handler is None:
                raise InvalidArgumentError(f"Unknown operation {operation}.", error="Unknown operation")
            return _dump(handler(caller, payload or {}))
        except ValidationError as e:
            failure = Failure(
                code=ErrorCode.INVALID_ARGUMENT,
                error="Invalid argument",
                message=_validation_message(e),
            )
        except KidTimeError as e:
            failure = Failure(code=e.code, error=e.error, message=e.message)
        except TransactionAbortedError as e:
            logger.warning("%s aborted: %s", operation, e)
            failure = Failure(
                code=ErrorCode.ABORTED,
                error="Transaction aborted",
                message="The operation could not be completed. Please try again.",
            )
        logger.info("%s failed with %s: %s", operation, failure.code, failure.message)
        return _dump(failure)

    def _submit_request(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        data = SubmitRequestInput.model_validate(payload)
        submitted = self.requests.submit_request(caller, data.child_id, data.minutes, data.reason)
        return SubmitRequestResult(
            id=submitted.request_id,
            message=(
                f"Time request submitted! This is request #{submitted.request_number} "
                f"of {submitted.daily_limit} today."
            ),
        )

    def _approve_request(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        data = DecideRequestInput.model_validate(payload)
        decision = self.requests.decide_request(caller, data.request_id, data.approved, data.reason)
        return _decision_result(decision)

    def _deny_request(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        data = DecideRequestInput.model_validate(payload)
        decision = self.requests.deny_request(caller, data.request_id, data.reason)
        return _decision_result(decision)

    def _grant_bonus_time(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        data = GrantBonusInput.model_validate(payload)
        grant = self.rewards.grant_bonus_time(caller, data.child_id, data.minutes, data.reason)
        return GrantBonusResult(
            message=f"Granted {grant.minutes} bonus minutes to child.",
            award_date=grant.award_date.isoformat(),
            new_budget_minutes=grant.new_budget_minutes,
            capped=grant.capped,
        )

    def _invite_child(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        data = InviteChildInput.model_validate(payload)
        invite = self.household.invite_child(caller, data.child_name, data.phone)
        return InviteChildResult(
            message=f"Invited {invite.child_name} to join the family.",
            invite_id=invite.invite_id,
            token=invite.token,
        )

    def _dispatch(self, caller: Caller | None, payload: Mapping[str, Any]) -> ApiModel:
        caller = require_caller(caller)
        try:
            data = DispatchInput.model_validate(payload)
        except ValidationError as e:
            logger.info("Unreadable dispatch payload: %s", _validation_message(e))
            return DispatchResult(
                ok=False,
                say="I did not understand that command.",
                error=ErrorCode.INVALID_ARGUMENT,
            )
        reply = self.voice.dispatch(caller, data.intent, data.entities)
        return DispatchResult(ok=reply.ok, say=reply.say, error=reply.error)


def _decision_result(decision: RequestDecision) -> DecisionResult:
    if decision.approved:
        return DecisionResult(
            message=f"Approved {decision.minutes} minutes! Child's screen time budget updated.",
            child_id=decision.child_id,
            minutes_approved=decision.minutes,
            new_budget_minutes=decision.new_budget_minutes,
            capped=decision.capped,
        )
    return DecisionResult(
        message="Request denied.",
        child_id=decision.child_id,
        minutes_denied=decision.minutes,
    )


def call(
    operation: str,
    payload: Mapping[str, Any] | None,
    caller: Caller | None,
    *,
    functions: KidTimeFunctions,
) -> dict[str, Any]:
    """Module-level entry point; see ``KidTimeFunctions.call``."""
    return functions.call(operation, payload, caller)
