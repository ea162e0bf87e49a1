"""Overlay guard: decides when the lock overlay is shown.

Policy and usage updates arrive in bursts (a Firestore listener firing for
each field, a poll landing right after a bonus). The guard ignores updates
that do not change its input key, waits for the burst to settle before
evaluating, and remembers the last evaluation so a repeated input does not
hit the evaluator again.

Timers are cooperative. Any scheduler with ``call_later(delay, callback)``
returning a cancellable handle works, an asyncio event loop included; the
device agent uses ``TickScheduler`` and drives it between polls.
"""

import heapq
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from kidtime_shared import Policy, UsageSnapshot, is_usage_allowed

logger = logging.getLogger(__name__)

NO_POLICY = "no-policy"
DEFAULT_DEBOUNCE_SECONDS = 0.1

Evaluator = Callable[[Policy | None, UsageSnapshot | None, datetime], bool]


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        ...


# ─── Scheduling ───


class TimerHandle:
    """A scheduled callback. Cancelling more than once is harmless."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self._callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def _run(self) -> None:
        self._cancelled = True
        self._callback()


class TickScheduler:
    """Single-threaded timer queue, run by calling ``run_due``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._clock() + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._sequence), handle))
        return handle

    def run_due(self) -> int:
        """Run every live timer whose time has come. Returns how many ran."""
        ran = 0
        now = self._clock()
        while self._queue and self._queue[0][0] <= now:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            handle._run()
            ran += 1
        return ran

    def next_deadline(self) -> float | None:
        """When the next live timer is due, or None if nothing is pending."""
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None


# ─── Guard ───


class GuardState(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class GuardKey:
    """Everything an evaluation depends on, with time floored to the minute."""

    policy_key: str
    budget_minutes: int | None
    used_minutes: float | None
    time_key: str

    @classmethod
    def build(cls, policy: Policy | None, usage: UsageSnapshot | None, now: datetime) -> "GuardKey":
        return cls(
            policy_key=NO_POLICY if policy is None else policy.model_dump_json(),
            budget_minutes=None if usage is None else usage.budget_minutes,
            used_minutes=None if usage is None else usage.used_minutes,
            time_key=now.replace(second=0, microsecond=0).isoformat(),
        )


class OverlayGuard:
    """Debounced, memoized lock state for the child's device.

    The guard starts unlocked. ``observe`` feeds it new inputs; the lock state
    is recomputed ``debounce_seconds`` after the last change. ``on_change`` is
    called with the new state whenever a commit flips it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        evaluator: Evaluator = is_usage_allowed,
        on_change: Callable[[bool], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._scheduler = scheduler
        self._debounce_seconds = debounce_seconds
        self._evaluator = evaluator
        self._on_change = on_change
        self._clock = clock

        self._state = GuardState.IDLE
        self._locked = False
        self._last_key: GuardKey | None = None
        self._pending: Cancellable | None = None
        self._cached: tuple[GuardKey, bool] | None = None

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def state(self) -> GuardState:
        return self._state

    def observe(
        self,
        policy: Policy | None,
        usage: UsageSnapshot | None,
        now: datetime | None = None,
    ) -> None:
        """Feed the latest inputs. Unchanged inputs are ignored."""
        if self._state == GuardState.DISPOSED:
            raise RuntimeError("OverlayGuard used after dispose()")

        now = now or self._clock()
        key = GuardKey.build(policy, usage, now)
        if key == self._last_key:
            return
        self._last_key = key

        self._cancel_pending()
        self._pending = self._scheduler.call_later(
            self._debounce_seconds, lambda: self._commit(key, policy, usage, now)
        )
        self._state = GuardState.PENDING

    def evaluate(self, key: GuardKey, policy: Policy | None, usage: UsageSnapshot | None, now: datetime) -> bool:
        """Return whether usage is allowed, reusing the last result for the same key."""
        if self._cached is not None and self._cached[0] == key:
            logger.debug("Guard cache hit for %s", key.time_key)
            return self._cached[1]
        allowed = self._evaluator(policy, usage, now)
        self._cached = (key, allowed)
        return allowed

    def dispose(self) -> None:
        """Cancel any pending commit. Disposing twice is a no-op."""
        if self._state == GuardState.DISPOSED:
            return
        self._cancel_pending()
        self._state = GuardState.DISPOSED

    def __enter__(self) -> "OverlayGuard":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _commit(
        self,
        key: GuardKey,
        policy: Policy | None,
        usage: UsageSnapshot | None,
        now: datetime,
    ) -> None:
        if self._state != GuardState.PENDING:
            return
        self._pending = None
        self._state = GuardState.IDLE

        locked = not self.evaluate(key, policy, usage, now)
        if locked == self._locked:
            return
        self._locked = locked
        logger.info("Overlay %s", "locked" if locked else "unlocked")
        if self._on_change is not None:
            self._on_change(locked)
