"""Record helpers shared by the request and award ledgers.

All of these operate inside a store transaction. Reads come first: call
``read_screen_time`` before any write in the same transaction.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from kidtime_shared import AuditEvent, Collection, EventType, ScreenTimeRecord, daily_doc_id
from kidtime_shared.firestore import document_to_model, model_to_firestore
from kidtime_shared.store import StoreTransaction


def utc_now() -> datetime:
    return datetime.now(UTC)


def ledger_day(now: datetime, offset_days: int = 0) -> date:
    """Calendar day used to key daily records. Ledger days are UTC days."""
    return (now.astimezone(UTC) + timedelta(days=offset_days)).date()


@dataclass(frozen=True)
class BudgetChange:
    """Outcome of adding minutes to a day's budget."""

    child_id: str
    day: date
    previous_minutes: int
    added_minutes: int
    new_budget_minutes: int
    capped: bool


def read_screen_time(tx: StoreTransaction, child_id: str, day: date) -> ScreenTimeRecord:
    """Read a child's record for ``day``; a missing record reads as empty."""
    data = tx.get(Collection.SCREEN_TIME, daily_doc_id(child_id, day))
    defaults = {"childId": child_id, "date": day.isoformat()}
    return document_to_model(ScreenTimeRecord, {**defaults, **(data or {})})


def add_to_budget(
    tx: StoreTransaction,
    record: ScreenTimeRecord,
    minutes: int,
    max_budget_minutes: int,
    now: datetime,
) -> BudgetChange:
    """Add ``minutes`` to the record's budget, capped at ``max_budget_minutes``.

    ``record`` must have been read in the same transaction. A budget already
    above the cap is left as it is, never lowered.
    """
    uncapped = record.budget_minutes + minutes
    new_budget = max(record.budget_minutes, min(uncapped, max_budget_minutes))
    day = date.fromisoformat(record.date)
    tx.set(
        Collection.SCREEN_TIME,
        daily_doc_id(record.child_id, day),
        {
            "childId": record.child_id,
            "date": record.date,
            "budgetMinutes": new_budget,
            "lastUpdated": now,
        },
        merge=True,
    )
    return BudgetChange(
        child_id=record.child_id,
        day=day,
        previous_minutes=record.budget_minutes,
        added_minutes=minutes,
        new_budget_minutes=new_budget,
        capped=new_budget != uncapped,
    )


def append_event(
    tx: StoreTransaction,
    event_type: EventType,
    actor_id: str,
    payload: dict[str, Any],
    now: datetime,
) -> str:
    """Append an audit event in the transaction and return its id."""
    event = AuditEvent(type=event_type, actor_id=actor_id, payload=payload, created_at=now)
    return tx.add(Collection.EVENTS, model_to_firestore(event))
