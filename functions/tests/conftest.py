"""Shared fixtures for ledger function tests."""

from datetime import UTC, datetime

import pytest

from kidtime_shared import Notification, Role
from kidtime_shared.store import MemoryStore
from kidtime_functions.api import KidTimeFunctions
from kidtime_functions.session import Caller

NOW = datetime(2024, 1, 15, 18, 0, tzinfo=UTC)


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def create(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingSink:
    def create(self, notification: Notification) -> None:
        raise ConnectionError("push service unavailable")


class Clock:
    """A settable clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore(max_attempts=50)
    store.set("children", "kid-1", {"parentId": "parent-1", "name": "Ada", "status": "active"})
    store.set("children", "kid-2", {"parentId": "parent-1", "name": "Bo", "status": "active"})
    store.set("children", "kid-3", {"parentId": "parent-2", "name": "Cy", "status": "active"})
    return store


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def functions(store: MemoryStore, sink: RecordingSink, clock: Clock) -> KidTimeFunctions:
    return KidTimeFunctions(store, notifications=sink, clock=clock)


@pytest.fixture
def parent() -> Caller:
    return Caller(uid="parent-1", role=Role.PARENT)


@pytest.fixture
def other_parent() -> Caller:
    return Caller(uid="parent-2", role=Role.PARENT)


@pytest.fixture
def child() -> Caller:
    return Caller(uid="kid-1", role=Role.CHILD)

