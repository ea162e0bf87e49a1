"""Tests for the in-memory document store."""

import threading

import pytest

from kidtime_shared.store import (
    DocumentMissingError,
    MemoryStore,
    ReadAfterWriteError,
    StoreTransaction,
    TransactionAbortedError,
)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(max_attempts=50)


def test_set_merge_and_update(store: MemoryStore) -> None:
    store.set("screenTime", "kid_2024-01-15", {"budgetMinutes": 60, "usedMinutes": 10})
    store.set("screenTime", "kid_2024-01-15", {"budgetMinutes": 90}, merge=True)
    store.update("screenTime", "kid_2024-01-15", {"usedMinutes": 20})

    assert store.get("screenTime", "kid_2024-01-15") == {
        "budgetMinutes": 90,
        "usedMinutes": 20,
    }


def test_update_missing_document_fails(store: MemoryStore) -> None:
    with pytest.raises(DocumentMissingError):
        store.update("children", "nobody", {"name": "x"})


def test_get_returns_copies(store: MemoryStore) -> None:
    store.set("children", "kid", {"name": "Ada"})
    doc = store.get("children", "kid")
    assert doc is not None
    doc["name"] = "changed"

    assert store.get("children", "kid") == {"name": "Ada"}


def test_query_filters_on_every_field(store: MemoryStore) -> None:
    store.set("children", "a", {"parentId": "p1", "name": "Ada"})
    store.set("children", "b", {"parentId": "p1", "name": "Bo"})
    store.set("children", "c", {"parentId": "p2", "name": "Ada"})

    found = store.query("children", {"parentId": "p1", "name": "Ada"})

    assert [snap.id for snap in found] == ["a"]
    assert len(store.query("children", {"parentId": "p1"})) == 2
    assert len(store.query("children")) == 3


def test_transaction_commits_all_writes(store: MemoryStore) -> None:
    def work(tx: StoreTransaction) -> str:
        tx.get("counters", "c")
        tx.set("counters", "c", {"count": 1})
        return tx.add("events", {"type": "bump"})

    event_id = store.run_transaction(work)

    assert store.get("counters", "c") == {"count": 1}
    assert store.get("events", event_id) == {"type": "bump"}


def test_failed_transaction_writes_nothing(store: MemoryStore) -> None:
    def work(tx: StoreTransaction) -> None:
        tx.set("counters", "c", {"count": 1})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.run_transaction(work)

    assert store.get("counters", "c") is None


def test_update_of_missing_document_aborts_whole_transaction(store: MemoryStore) -> None:
    def work(tx: StoreTransaction) -> None:
        tx.set("counters", "c", {"count": 1})
        tx.update("counters", "missing", {"count": 2})

    with pytest.raises(DocumentMissingError):
        store.run_transaction(work)

    assert store.get("counters", "c") is None


def test_reads_must_precede_writes(store: MemoryStore) -> None:
    def work(tx: StoreTransaction) -> None:
        tx.set("counters", "a", {"count": 1})
        tx.get("counters", "b")

    with pytest.raises(ReadAfterWriteError):
        store.run_transaction(work)


def test_conflicting_write_reruns_transaction(store: MemoryStore) -> None:
    store.set("counters", "c", {"count": 0})
    attempts = 0

    def work(tx: StoreTransaction) -> None:
        nonlocal attempts
        attempts += 1
        current = tx.get("counters", "c") or {"count": 0}
        if attempts == 1:
            # Another writer sneaks in between our read and our commit
            store.set("counters", "c", {"count": 10})
        tx.set("counters", "c", {"count": current["count"] + 1})

    store.run_transaction(work)

    assert attempts == 2
    assert store.get("counters", "c") == {"count": 11}


def test_gives_up_after_max_attempts() -> None:
    store = MemoryStore(max_attempts=3)

    def work(tx: StoreTransaction) -> None:
        tx.get("counters", "c")
        store.set("counters", "c", {"count": 1})
        tx.set("counters", "c", {"count": 2})

    with pytest.raises(TransactionAbortedError):
        store.run_transaction(work)


def test_concurrent_increments_do_not_lose_updates(store: MemoryStore) -> None:
    def increment(tx: StoreTransaction) -> None:
        current = tx.get("counters", "c") or {"count": 0}
        tx.set("counters", "c", {"count": current["count"] + 1})

    threads = [
        threading.Thread(target=lambda: [store.run_transaction(increment) for _ in range(5)])
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("counters", "c") == {"count": 40}
