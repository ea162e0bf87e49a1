"""Reward ledger: chore awards and manual bonus time.

A chore submission that passes verification earns its ``minutesAward`` on
the child's next-day budget. Parents can also grant bonus minutes for today.
Both paths cap the day's budget at the configured maximum and audit the
change in the same transaction.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from kidtime_shared import (
    AiVerdict,
    Child,
    Collection,
    EventType,
    NotificationType,
    Submission,
)
from kidtime_shared.firestore import document_to_model
from kidtime_shared.store import DocumentStore, StoreTransaction

from .config import LedgerLimits
from .errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from .notifications import NotificationSink, notify
from .records import add_to_budget, append_event, ledger_day, read_screen_time, utc_now
from .session import Caller, require_caller

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class SkipReason(StrEnum):
    ALREADY_APPLIED = "already applied"
    NOT_PASSED = "not passed"
    INCOMPLETE = "missing childId or minutesAward"


@dataclass(frozen=True)
class AwardResult:
    """What happened when a submission's award was processed."""

    submission_id: str
    applied: bool
    child_id: str | None = None
    minutes_award: int = 0
    award_date: date | None = None
    new_budget_minutes: int | None = None
    capped: bool = False
    skipped_reason: SkipReason | None = None


@dataclass(frozen=True)
class BonusGrant:
    child_id: str
    minutes: int
    award_date: date
    new_budget_minutes: int
    capped: bool


class RewardLedger:
    """Applies chore awards and parent-granted bonuses to budgets."""

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

    def on_submission_updated(
        self,
        submission_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any],
    ) -> AwardResult | None:
        """Apply the award when a submission's verdict changes to pass.

        Returns None when the update is not a transition to pass.
        """
        previous = (before or {}).get("aiVerdict")
        current = after.get("aiVerdict")
        if previous == current or current != AiVerdict.PASS:
            return None
        return self.apply_award(submission_id)

    def apply_award(self, submission_id: str) -> AwardResult:
        """Credit a passing submission's minutes to the child's next-day budget.

        Safe to call repeatedly: the submission's ``rewardApplied`` flag is
        checked and set in the same transaction as the budget change.
        """
        now = self._clock()
        award_day = ledger_day(now, offset_days=1)
        max_budget = self._limits.max_daily_budget_minutes

        def award(tx: StoreTransaction) -> AwardResult:
            data = tx.get(Collection.SUBMISSIONS, submission_id)
            if data is None:
                raise NotFoundError("Submission not found.", error="Submission not found")
            submission = document_to_model(Submission, data, doc_id=submission_id)

            if submission.reward_applied:
                return AwardResult(submission_id, False, skipped_reason=SkipReason.ALREADY_APPLIED)
            if submission.ai_verdict != AiVerdict.PASS:
                return AwardResult(submission_id, False, skipped_reason=SkipReason.NOT_PASSED)
            if not submission.child_id or not submission.minutes_award or submission.minutes_award <= 0:
                return AwardResult(
                    submission_id, False, skipped_reason=SkipReason.INCOMPLETE
                )

            record = read_screen_time(tx, submission.child_id, award_day)
            change = add_to_budget(tx, record, submission.minutes_award, max_budget, now)
            append_event(
                tx,
                EventType.CHORE_REWARD_APPLIED,
                SYSTEM_ACTOR,
                {
                    "child_id": submission.child_id,
                    "submission_id": submission_id,
                    "chore_id": submission.chore_id,
                    "minutes_award": submission.minutes_award,
                    "award_date": award_day.isoformat(),
                    "capped": change.capped,
                },
                now,
            )
            tx.update(
                Collection.SUBMISSIONS,
                submission_id,
                {
                    "rewardApplied": True,
                    "rewardAppliedAt": now,
                    "rewardDate": award_day.isoformat(),
                },
            )
            return AwardResult(
                submission_id,
                True,
                child_id=submission.child_id,
                minutes_award=submission.minutes_award,
                award_date=award_day,
                new_budget_minutes=change.new_budget_minutes,
                capped=change.capped,
            )

        result = self._store.run_transaction(award)

        if not result.applied:
            if result.skipped_reason == SkipReason.INCOMPLETE:
                logger.error("Submission %s missing childId or minutesAward", submission_id)
            else:
                logger.info("Skipped award for submission %s: %s", submission_id, result.skipped_reason)
            return result

        logger.info(
            "Award applied for submission %s: %d minutes for %s on %s%s",
            submission_id,
            result.minutes_award,
            result.child_id,
            result.award_date,
            " (capped)" if result.capped else "",
        )
        notify(
            self._notifications,
            self._clock,
            NotificationType.CHORE_REWARD,
            result.child_id or "",
            {
                "submission_id": submission_id,
                "minutes_award": result.minutes_award,
                "award_date": result.award_date.isoformat() if result.award_date else None,
            },
        )
        return result

    def pending_awards(self) -> list[str]:
        """Ids of passing submissions whose reward has not been applied."""
        passed = self._store.query(Collection.SUBMISSIONS, {"aiVerdict": AiVerdict.PASS.value})
        return sorted(snap.id for snap in passed if not snap.data.get("rewardApplied"))

    def apply_pending_awards(self) -> list[AwardResult]:
        """Apply every pending award. One failing submission does not stop the rest."""
        results: list[AwardResult] = []
        for submission_id in self.pending_awards():
            try:
                results.append(self.apply_award(submission_id))
            except Exception:
                logger.exception("Error applying award for submission %s", submission_id)
        return results

    def grant_bonus_time(
        self,
        caller: Caller | None,
        child_id: str,
        minutes: int,
        reason: str | None = None,
    ) -> BonusGrant:
        """Add parent-granted minutes to the child's budget for today."""
        caller = require_caller(caller)
        if not child_id:
            raise InvalidArgumentError("childId is required.")
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            raise InvalidArgumentError("childId and positive minutes required.")

        data = self._store.get(Collection.CHILDREN, child_id)
        if data is None:
            raise NotFoundError("Child not found.", error="Child not found")
        child = document_to_model(Child, data, doc_id=child_id)
        if child.parent_id != caller.uid:
            raise PermissionDeniedError("Not authorized to grant time to this child.")

        now = self._clock()
        day = ledger_day(now)
        max_budget = self._limits.max_daily_budget_minutes

        def grant(tx: StoreTransaction) -> BonusGrant:
            record = read_screen_time(tx, child_id, day)
            change = add_to_budget(tx, record, minutes, max_budget, now)
            append_event(
                tx,
                EventType.MANUAL_BONUS_GRANTED,
                caller.uid,
                {
                    "child_id": child_id,
                    "minutes": minutes,
                    "reason": reason,
                    "award_date": day.isoformat(),
                    "capped": change.capped,
                },
                now,
            )
            return BonusGrant(
                child_id=child_id,
                minutes=minutes,
                award_date=day,
                new_budget_minutes=change.new_budget_minutes,
                capped=change.capped,
            )

        grant_result = self._store.run_transaction(grant)
        logger.info(
            "%s granted %d bonus minutes to %s (budget now %d%s)",
            caller.uid,
            minutes,
            child_id,
            grant_result.new_budget_minutes,
            ", capped" if grant_result.capped else "",
        )
        return grant_result
