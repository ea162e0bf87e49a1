"""Tests for the device agent loop."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from kidtime_shared import Policy, UsageSnapshot
from kidtime_shared.store import MemoryStore
from kidtime_client.cache import LocalCache
from kidtime_client.device_client import DeviceClient
from kidtime_client.loop import run_agent_loop

NOW = datetime(2024, 1, 15, 14, 0, tzinfo=UTC)
RECORD = "kid-1_2024-01-15"


class FakeTime:
    """Monotonic clock that only moves when the loop sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class OfflineStore(MemoryStore):
    def get(self, collection: str, doc_id: str) -> dict | None:
        raise ConnectionError("offline")

    def run_transaction(self, fn: object) -> object:
        raise ConnectionError("offline")


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore()
    store.set("policies", "kid-1", {"quietHours": [], "allowedApps": []})
    return store


@pytest.fixture
def cache(tmp_path: Path) -> LocalCache:
    return LocalCache(tmp_path / "cache")


def _run(client: DeviceClient, cache: LocalCache, polls: int, locks: list[str]) -> FakeTime:
    fake = FakeTime()
    ticks = iter(range(polls + 1))

    run_agent_loop(
        client,
        cache,
        poll_interval_seconds=60,
        should_stop=lambda: next(ticks) >= polls,
        lock=lambda: locks.append("lock") is None,
        sleep=fake.sleep,
        monotonic=fake.monotonic,
        clock=lambda: NOW,
    )
    return fake


def test_accrues_usage_each_poll(store: MemoryStore, cache: LocalCache) -> None:
    store.set("screenTime", RECORD, {"budgetMinutes": 120, "usedMinutes": 0})
    client = DeviceClient(store, "kid-1", clock=lambda: NOW)

    fake = _run(client, cache, polls=3, locks=[])

    record = store.get("screenTime", RECORD)
    assert record is not None
    assert record["usedMinutes"] == 3.0
    assert sum(fake.sleeps) == pytest.approx(180)


def test_keeps_counting_usage_once_locked(store: MemoryStore, cache: LocalCache) -> None:
    store.set("screenTime", RECORD, {"budgetMinutes": 2, "usedMinutes": 0})
    client = DeviceClient(store, "kid-1", clock=lambda: NOW)
    locks: list[str] = []

    _run(client, cache, polls=4, locks=locks)

    # Locked during the third poll, then again on the third and fourth ticks
    assert locks == ["lock"] * 3
    record = store.get("screenTime", RECORD)
    assert record is not None
    assert record["usedMinutes"] == 4.0


def test_relocks_every_poll_while_locked(store: MemoryStore, cache: LocalCache) -> None:
    store.set("screenTime", RECORD, {"budgetMinutes": 30, "usedMinutes": 30})
    client = DeviceClient(store, "kid-1", clock=lambda: NOW)
    locks: list[str] = []

    _run(client, cache, polls=10, locks=locks)

    # One lock when the guard flips, one more on every poll after it
    assert len(locks) == 11
    record = store.get("screenTime", RECORD)
    assert record is not None
    assert record["usedMinutes"] == 40.0


def test_locks_immediately_when_exhausted(store: MemoryStore, cache: LocalCache) -> None:
    store.set("screenTime", RECORD, {"budgetMinutes": 30, "usedMinutes": 30})
    client = DeviceClient(store, "kid-1", clock=lambda: NOW)
    locks: list[str] = []

    fake = _run(client, cache, polls=1, locks=locks)

    assert locks[0] == "lock"
    # Woke for the debounce timer before finishing the poll interval
    assert fake.sleeps[0] == pytest.approx(0.1)


def test_offline_uses_cache_and_queues_usage(cache: LocalCache) -> None:
    cache.save_policy(Policy())
    cache.save_usage("2024-01-15", UsageSnapshot(budget_minutes=60, used_minutes=59.5))
    client = DeviceClient(OfflineStore(), "kid-1", clock=lambda: NOW)
    locks: list[str] = []

    _run(client, cache, polls=2, locks=locks)

    # The queued minute pushes usage over the budget; usage keeps queueing
    assert locks == ["lock", "lock"]
    assert cache.get_and_clear_pending_time() == 120.0


def test_pending_usage_synced_on_start(store: MemoryStore, cache: LocalCache) -> None:
    store.set("screenTime", RECORD, {"budgetMinutes": 120, "usedMinutes": 10})
    cache.add_pending_time(120.0)
    client = DeviceClient(store, "kid-1", clock=lambda: NOW)

    _run(client, cache, polls=0, locks=[])

    record = store.get("screenTime", RECORD)
    assert record is not None
    assert record["usedMinutes"] == 12.0
    assert cache.get_and_clear_pending_time() == 0.0
