"""Main loop for the device agent."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from kidtime_shared import Policy, UsageSnapshot

from .cache import LocalCache
from .device_client import DeviceClient
from .guard import OverlayGuard, TickScheduler
from .lock import lock_screen

logger = logging.getLogger(__name__)


@dataclass
class AgentState:
    """Mutable state for the agent loop."""

    policy: Policy | None = None
    usage: UsageSnapshot | None = None
    is_online: bool = True
    is_locked: bool = False


def run_agent_loop(
    client: DeviceClient,
    cache: LocalCache,
    poll_interval_seconds: int = 10,
    debounce_seconds: float = 0.1,
    should_stop: Callable[[], bool] = lambda: False,
    lock: Callable[[], bool] = lock_screen,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    clock: Callable[[], datetime] = datetime.now,
) -> AgentState:
    """Run until interrupted or ``should_stop`` is true. Returns the final state."""
    state = AgentState()
    scheduler = TickScheduler(monotonic)

    def on_change(locked: bool) -> None:
        state.is_locked = locked
        if locked:
            logger.warning("Usage not allowed, locking screen")
            if not lock():
                logger.warning("Screen lock request was not accepted")
        else:
            logger.info("Usage allowed again")

    with OverlayGuard(
        scheduler,
        debounce_seconds=debounce_seconds,
        on_change=on_change,
        clock=clock,
    ) as guard:
        _initial_sync(client, state, cache)
        guard.observe(state.policy, state.usage)

        logger.info(
            "Starting agent loop (poll=%ds, online=%s)", poll_interval_seconds, state.is_online
        )
        while not should_stop():
            try:
                _idle(scheduler, poll_interval_seconds, sleep, monotonic)
                _tick(client, state, cache, poll_interval_seconds, lock)
                guard.observe(state.policy, state.usage)
            except KeyboardInterrupt:
                logger.info("Agent loop interrupted")
                break
            except Exception:
                logger.exception("Error in agent loop tick")

    return state


def _idle(
    scheduler: TickScheduler,
    seconds: float,
    sleep: Callable[[float], None],
    monotonic: Callable[[], float],
) -> None:
    """Sleep for ``seconds``, waking to run guard timers as they fall due."""
    deadline = monotonic() + seconds
    while True:
        scheduler.run_due()
        now = monotonic()
        if now >= deadline:
            return
        wake = deadline
        next_timer = scheduler.next_deadline()
        if next_timer is not None:
            wake = min(wake, next_timer)
        sleep(max(wake - now, 0.0))


def _initial_sync(client: DeviceClient, state: AgentState, cache: LocalCache) -> None:
    """Load policy and usage, falling back to the cache when offline."""
    _sync_pending_time(client, cache)
    try:
        _refresh(client, state, cache)
        state.is_online = True
    except Exception:
        logger.warning("Failed to connect to Firestore, using cached data")
        state.is_online = False
        _load_from_cache(client, state, cache)


def _tick(
    client: DeviceClient,
    state: AgentState,
    cache: LocalCache,
    poll_interval_seconds: int,
    lock: Callable[[], bool],
) -> None:
    """One poll: lock again if still locked, record the time just spent, refresh inputs."""
    if state.is_locked:
        # The child may have signed back in since the last lock
        logger.debug("Still locked, locking screen again")
        if not lock():
            logger.warning("Screen lock request was not accepted")

    _accrue(client, state, cache, poll_interval_seconds)

    try:
        _refresh(client, state, cache)
        if not state.is_online:
            logger.info("Back online")
            _sync_pending_time(client, cache)
        state.is_online = True
    except Exception:
        if state.is_online:
            logger.warning("Lost connection to Firestore, switching to offline mode")
        state.is_online = False


def _refresh(client: DeviceClient, state: AgentState, cache: LocalCache) -> None:
    state.policy = client.get_policy()
    state.usage = client.get_usage()
    cache.save_policy(state.policy)
    if state.usage is not None:
        cache.save_usage(client.today().isoformat(), state.usage)
    logger.debug(
        "Refreshed inputs: policy=%s, usage=%s",
        "set" if state.policy else "none",
        state.usage,
    )


def _load_from_cache(client: DeviceClient, state: AgentState, cache: LocalCache) -> None:
    cached = cache.load_policy()
    if cached is not None:
        state.policy = cached.policy
        logger.info("Loaded policy from cache (cached at %s)", cached.cached_at)
    state.usage = cache.load_usage(client.today().isoformat())
    if state.usage is not None:
        logger.info("Loaded usage from cache")


def _accrue(
    client: DeviceClient,
    state: AgentState,
    cache: LocalCache,
    seconds: float,
) -> None:
    """Report used time, queueing it locally when offline."""
    if state.is_online:
        try:
            used = client.add_used_time(seconds)
            if state.usage is not None:
                state.usage = state.usage.model_copy(update={"used_minutes": used})
            logger.debug("Reported usage, total used: %.1f minutes", used)
            return
        except Exception:
            logger.debug("Failed to report usage, queueing locally")
            state.is_online = False

    cache.add_pending_time(seconds)
    if state.usage is not None:
        state.usage = state.usage.model_copy(
            update={"used_minutes": state.usage.used_minutes + seconds / 60.0}
        )
        cache.save_usage(client.today().isoformat(), state.usage)


def _sync_pending_time(client: DeviceClient, cache: LocalCache) -> None:
    pending_seconds = cache.get_and_clear_pending_time()
    if pending_seconds <= 0:
        return
    try:
        client.add_used_time(pending_seconds)
        logger.info("Synced %.1f pending seconds", pending_seconds)
    except Exception:
        cache.add_pending_time(pending_seconds)
        logger.warning("Failed to sync pending time, will retry later")
