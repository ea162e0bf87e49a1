"""Time-request ledger.

Children ask for extra minutes (at most three asks per day); parents
approve or deny each pending ask once. Every state change and its audit
event commit in one store transaction, so concurrent submissions cannot
both slip under the daily cap and a request cannot be decided twice.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from kidtime_shared import (
    Child,
    Collection,
    DailyRequestCounter,
    EventType,
    NotificationType,
    RequestStatus,
    TimeRequest,
    daily_doc_id,
)
from kidtime_shared.firestore import document_to_model, model_to_firestore
from kidtime_shared.store import DocumentStore, StoreTransaction

from .config import LedgerLimits
from .errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    ResourceExhaustedError,
)
from .notifications import NotificationSink, notify
from .records import add_to_budget, append_event, ledger_day, read_screen_time, utc_now
from .session import Caller, require_caller, require_parent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmittedRequest:
    request_id: str
    request_number: int
    daily_limit: int


@dataclass(frozen=True)
class RequestDecision:
    request_id: str
    child_id: str
    approved: bool
    minutes: int
    new_budget_minutes: int | None = None
    capped: bool = False


@dataclass(frozen=True)
class _SubmitOutcome:
    request_id: str
    request_number: int | None  # None when the daily limit was hit


class TimeRequestLedger:
    """Submits and decides time requests."""

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationSink,
        limits: LedgerLimits | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._notifications = notifications
        self._limits = limits or LedgerLimits()
        self._clock = clock

    def submit_request(
        self,
        caller: Caller | None,
        child_id: str,
        minutes: int,
        reason: str | None = None,
    ) -> SubmittedRequest:
        """Create a pending request, or an exceeded one past the daily limit.

        Raises ResourceExhaustedError after recording the exceeded request.
        """
        caller = require_caller(caller)
        if not child_id:
            raise InvalidArgumentError("childId is required.")
        max_minutes = self._limits.max_request_minutes
        if isinstance(minutes, bool) or not isinstance(minutes, int) or not 0 < minutes <= max_minutes:
            raise InvalidArgumentError(
                f"Requested minutes must be between 1 and {max_minutes}.",
            )
        child = self._authorize_submitter(caller, child_id)

        now = self._clock()
        day = ledger_day(now)
        counter_id = daily_doc_id(child_id, day)
        limit = self._limits.daily_request_limit

        def submit(tx: StoreTransaction) -> _SubmitOutcome:
            counter = tx.get(Collection.REQUEST_COUNTERS, counter_id)
            count = int(counter.get("count", 0)) if counter else 0

            if count >= limit:
                request_id = self._create_request(
                    tx, child_id, minutes, reason, now, RequestStatus.EXCEEDED
                )
                append_event(
                    tx,
                    EventType.TIME_REQUEST_EXCEEDED,
                    caller.uid,
                    {
                        "child_id": child_id,
                        "request_id": request_id,
                        "minutes_requested": minutes,
                        "reason": reason,
                        "daily_count": count,
                    },
                    now,
                )
                return _SubmitOutcome(request_id, None)

            updated = DailyRequestCounter(
                child_id=child_id, date=day.isoformat(), count=count + 1, last_request=now
            )
            tx.set(Collection.REQUEST_COUNTERS, counter_id, model_to_firestore(updated), merge=True)
            request_id = self._create_request(
                tx, child_id, minutes, reason, now, RequestStatus.PENDING
            )
            append_event(
                tx,
                EventType.TIME_REQUEST_SUBMITTED,
                caller.uid,
                {
                    "child_id": child_id,
                    "request_id": request_id,
                    "minutes_requested": minutes,
                    "reason": reason,
                    "request_number": count + 1,
                },
                now,
            )
            return _SubmitOutcome(request_id, count + 1)

        outcome = self._store.run_transaction(submit)

        if outcome.request_number is None:
            logger.warning(
                "Child %s hit the daily request limit (%d); recorded %s as exceeded",
                child_id,
                limit,
                outcome.request_id,
            )
            raise ResourceExhaustedError(
                f"You have already submitted {limit} time requests today. Try again tomorrow.",
            )

        logger.info(
            "Child %s requested %d minutes (%s, request %d of %d)",
            child_id,
            minutes,
            outcome.request_id,
            outcome.request_number,
            limit,
        )
        self._notify_parent(child, child_id, minutes, reason, outcome)
        return SubmittedRequest(outcome.request_id, outcome.request_number, limit)

    def approve_request(
        self, caller: Caller | None, request_id: str, reason: str | None = None
    ) -> RequestDecision:
        return self.decide_request(caller, request_id, True, reason)

    def deny_request(
        self, caller: Caller | None, request_id: str, reason: str | None = None
    ) -> RequestDecision:
        return self.decide_request(caller, request_id, False, reason)

    def decide_request(
        self,
        caller: Caller | None,
        request_id: str,
        approved: bool,
        reason: str | None = None,
    ) -> RequestDecision:
        """Approve or deny a pending request exactly once.

        Approval adds the requested minutes to today's budget in the same
        transaction that flips the status.
        """
        reviewer = require_parent(caller, "approve or deny time requests")
        if not request_id:
            raise InvalidArgumentError("requestId is required.")

        now = self._clock()
        day = ledger_day(now)
        max_budget = self._limits.max_daily_budget_minutes

        def decide(tx: StoreTransaction) -> RequestDecision:
            data = tx.get(Collection.TIME_REQUESTS, request_id)
            if data is None:
                raise NotFoundError("The time request could not be found.", error="Request not found")
            request = document_to_model(TimeRequest, data, doc_id=request_id)
            if request.status != RequestStatus.PENDING:
                raise FailedPreconditionError(
                    "This request has already been approved or denied.",
                    error="Request already processed",
                )
            child = tx.get(Collection.CHILDREN, request.child_id)
            if child is None:
                raise NotFoundError("Child not found.", error="Child not found")
            if child.get("parentId") != reviewer.uid:
                raise PermissionDeniedError("Not authorized to decide requests for this child.")
            record = read_screen_time(tx, request.child_id, day) if approved else None

            tx.update(
                Collection.TIME_REQUESTS,
                request_id,
                {
                    "status": (RequestStatus.APPROVED if approved else RequestStatus.DENIED).value,
                    "decidedAt": now,
                    "reviewerId": reviewer.uid,
                    "decisionReason": reason,
                },
            )

            if record is None:
                append_event(
                    tx,
                    EventType.TIME_REQUEST_DENIED,
                    reviewer.uid,
                    {
                        "child_id": request.child_id,
                        "request_id": request_id,
                        "minutes_requested": request.minutes_requested,
                        "reason": reason,
                    },
                    now,
                )
                return RequestDecision(
                    request_id=request_id,
                    child_id=request.child_id,
                    approved=False,
                    minutes=request.minutes_requested,
                )

            change = add_to_budget(tx, record, request.minutes_requested, max_budget, now)
            append_event(
                tx,
                EventType.TIME_REQUEST_APPROVED,
                reviewer.uid,
                {
                    "child_id": request.child_id,
                    "request_id": request_id,
                    "minutes_approved": request.minutes_requested,
                    "new_budget_minutes": change.new_budget_minutes,
                    "capped": change.capped,
                    "reason": reason,
                },
                now,
            )
            return RequestDecision(
                request_id=request_id,
                child_id=request.child_id,
                approved=True,
                minutes=request.minutes_requested,
                new_budget_minutes=change.new_budget_minutes,
                capped=change.capped,
            )

        decision = self._store.run_transaction(decide)

        logger.info(
            "%s %s %s (%d minutes for child %s)",
            reviewer.uid,
            "approved" if approved else "denied",
            request_id,
            decision.minutes,
            decision.child_id,
        )
        notify(
            self._notifications,
            self._clock,
            NotificationType.TIME_REQUEST_DECISION,
            decision.child_id,
            {
                "request_id": request_id,
                "approved": approved,
                "minutes": decision.minutes,
                "reason": reason,
                "new_budget_minutes": decision.new_budget_minutes,
            },
        )
        return decision

    def _authorize_submitter(self, caller: Caller, child_id: str) -> Child | None:
        """Children ask for themselves; parents only for their own children."""
        if not caller.is_parent:
            if caller.uid != child_id:
                raise PermissionDeniedError("Children can only request time for themselves.")
            return None
        data = self._store.get(Collection.CHILDREN, child_id)
        if data is None:
            raise NotFoundError("Child not found.", error="Child not found")
        child = document_to_model(Child, data, doc_id=child_id)
        if child.parent_id != caller.uid:
            raise PermissionDeniedError("Not authorized to request time for this child.")
        return child

    def _create_request(
        self,
        tx: StoreTransaction,
        child_id: str,
        minutes: int,
        reason: str | None,
        now: datetime,
        status: RequestStatus,
    ) -> str:
        request = TimeRequest(
            child_id=child_id,
            minutes_requested=minutes,
            status=status,
            reason=reason,
            created_at=now,
            # Exceeded requests are born decided
            decided_at=now if status == RequestStatus.EXCEEDED else None,
        )
        return tx.add(Collection.TIME_REQUESTS, model_to_firestore(request, exclude={"id"}))

    def _notify_parent(
        self,
        child: Child | None,
        child_id: str,
        minutes: int,
        reason: str | None,
        outcome: _SubmitOutcome,
    ) -> None:
        try:
            if child is None:
                data = self._store.get(Collection.CHILDREN, child_id)
                if data is None:
                    logger.debug("No child record for %s, skipping parent notification", child_id)
                    return
                child = document_to_model(Child, data, doc_id=child_id)
        except Exception:
            logger.exception("Failed to look up parent of %s", child_id)
            return

        notify(
            self._notifications,
            self._clock,
            NotificationType.TIME_REQUEST,
            child.parent_id,
            {
                "child_id": child_id,
                "child_name": child.name,
                "minutes": minutes,
                "reason": reason,
                "request_id": outcome.request_id,
                "request_number": outcome.request_number,
            },
        )
