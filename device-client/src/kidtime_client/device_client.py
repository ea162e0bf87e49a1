"""Firestore access for the device agent."""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime

from kidtime_shared import Collection, Policy, ScreenTimeRecord, UsageSnapshot, daily_doc_id
from kidtime_shared.firestore import document_to_model
from kidtime_shared.store import DocumentStore, StoreTransaction

logger = logging.getLogger(__name__)


def utc_today(clock: Callable[[], datetime]) -> date:
    """Screen time records are keyed by UTC day, like the ledgers write them."""
    return clock().astimezone(UTC).date()


class DeviceClient:
    """Reads the child's policy and budget and reports used time."""

    def __init__(
        self,
        store: DocumentStore,
        child_id: str,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self._store = store
        self._child_id = child_id
        self._clock = clock

    @property
    def child_id(self) -> str:
        return self._child_id

    def today(self) -> date:
        return utc_today(self._clock)

    def get_policy(self) -> Policy | None:
        """Get the child's policy, or None if the parent has not set one."""
        data = self._store.get(Collection.POLICIES, self._child_id)
        if data is None:
            return None
        return document_to_model(Policy, data)

    def get_usage(self) -> UsageSnapshot | None:
        """Get today's budget and usage, or None if there is no record yet."""
        day = self.today()
        data = self._store.get(Collection.SCREEN_TIME, daily_doc_id(self._child_id, day))
        if data is None:
            return None
        defaults = {"childId": self._child_id, "date": day.isoformat()}
        return document_to_model(ScreenTimeRecord, {**defaults, **data}).snapshot()

    def add_used_time(self, seconds: float) -> float:
        """Atomically add ``seconds`` of use to today's record.

        Returns the new total used minutes.
        """
        day = self.today()
        doc_id = daily_doc_id(self._child_id, day)

        def accrue(tx: StoreTransaction) -> float:
            data = tx.get(Collection.SCREEN_TIME, doc_id) or {}
            new_minutes = float(data.get("usedMinutes", 0.0)) + seconds / 60.0
            tx.set(
                Collection.SCREEN_TIME,
                doc_id,
                {
                    "childId": self._child_id,
                    "date": day.isoformat(),
                    "usedMinutes": new_minutes,
                    "lastUpdated": self._clock(),
                },
                merge=True,
            )
            return new_minutes

        return self._store.run_transaction(accrue)
