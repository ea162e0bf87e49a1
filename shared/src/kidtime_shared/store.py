"""Document store used by the ledger functions and the device agent.

``DocumentStore`` is the small slice of Firestore that KidTime relies on:
keyed reads and writes, equality queries, appends with generated ids, and a
transactional read-modify-write primitive. ``FirestoreStore`` backs it with
Cloud Firestore; ``MemoryStore`` is an in-process implementation with the
same optimistic-concurrency semantics, for tests and local runs.

Transactions follow the Firestore rules: every read happens before the first
write, and the transaction function may be run more than once, so it must not
have side effects outside the transaction.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from google.cloud import firestore  # type: ignore[import-untyped]
from google.cloud.firestore import Client, Transaction  # type: ignore[import-untyped]
from google.cloud.firestore_v1.base_query import FieldFilter  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentMissingError(StoreError):
    """Raised when updating a document that does not exist."""


class ReadAfterWriteError(StoreError):
    """Raised when a transaction reads after it has started writing."""


class TransactionAbortedError(StoreError):
    """Raised when a transaction keeps conflicting and runs out of attempts."""


@dataclass(frozen=True)
class Snapshot:
    """A document read from a query."""

    id: str
    data: dict[str, Any]


class StoreTransaction(ABC):
    """Reads and buffered writes that commit together."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""


class DocumentStore(ABC):
    """Keyed document access plus transactions."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def add(self, collection: str, data: dict[str, Any]) -> str:
        ...

    @abstractmethod
    def query(
        self, collection: str, filters: Mapping[str, Any] | None = None
    ) -> list[Snapshot]:
        """Return documents whose fields equal every value in ``filters``."""

    @abstractmethod
    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        """Run ``fn`` atomically, retrying it on conflicting writes."""


# ─── Cloud Firestore ──────────────────────────────────────────────────────────


class _FirestoreTransaction(StoreTransaction):
    def __init__(self, db: Client, transaction: Transaction):
        self._db = db
        self._transaction = transaction

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._db.collection(collection).document(doc_id).get(
            transaction=self._transaction
        )
        return doc.to_dict() if doc.exists else None

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        doc_ref = self._db.collection(collection).document(doc_id)
        self._transaction.set(doc_ref, data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        doc_ref = self._db.collection(collection).document(doc_id)
        self._transaction.update(doc_ref, data)

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_ref = self._db.collection(collection).document()
        self._transaction.create(doc_ref, data)
        return doc_ref.id


class FirestoreStore(DocumentStore):
    """Cloud Firestore implementation."""

    def __init__(self, db: Client, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self._db = db
        self._max_attempts = max_attempts

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._db.collection(collection).document(doc_id).get()
        return doc.to_dict() if doc.exists else None

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        self._db.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._db.collection(collection).document(doc_id).update(data)

    def add(self, collection: str, data: dict[str, Any]) -> str:
        _, doc_ref = self._db.collection(collection).add(data)
        return doc_ref.id

    def query(
        self, collection: str, filters: Mapping[str, Any] | None = None
    ) -> list[Snapshot]:
        query = self._db.collection(collection)
        for field, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(field, "==", value))
        return [Snapshot(id=doc.id, data=doc.to_dict()) for doc in query.stream()]

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        transaction = self._db.transaction(max_attempts=self._max_attempts)

        @firestore.transactional
        def run_in_transaction(transaction: Transaction) -> T:
            return fn(_FirestoreTransaction(self._db, transaction))

        return run_in_transaction(transaction)


# ─── In-process memory ────────────────────────────────────────────────────────

_Key = tuple[str, str]


class _Conflict(Exception):
    pass


@dataclass
class _Write:
    kind: str  # "set", "merge", "update" or "create"
    key: _Key
    data: dict[str, Any]


class _MemoryTransaction(StoreTransaction):
    def __init__(self, store: "MemoryStore"):
        self._store = store
        self.reads: dict[_Key, int] = {}
        self.writes: list[_Write] = []

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        if self.writes:
            raise ReadAfterWriteError(
                f"Read of {collection}/{doc_id} after writes in the same transaction"
            )
        data, version = self._store._read((collection, doc_id))
        self.reads[(collection, doc_id)] = version
        return data

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        kind = "merge" if merge else "set"
        self.writes.append(_Write(kind, (collection, doc_id), copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.writes.append(_Write("update", (collection, doc_id), copy.deepcopy(data)))

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = _new_id()
        self.writes.append(_Write("create", (collection, doc_id), copy.deepcopy(data)))
        return doc_id


class MemoryStore(DocumentStore):
    """In-process store with per-document versions.

    A transaction records the version of every document it reads; commit
    fails if any of them changed in the meantime and the transaction
    function is run again, like Firestore's optimistic retries. State is lost
    when the process exits.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self._max_attempts = max_attempts
        self._lock = threading.RLock()
        self._docs: dict[_Key, dict[str, Any]] = {}
        self._versions: dict[_Key, int] = {}

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data, _ = self._read((collection, doc_id))
        return data

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        kind = "merge" if merge else "set"
        self._apply([_Write(kind, (collection, doc_id), copy.deepcopy(data))])

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._apply([_Write("update", (collection, doc_id), copy.deepcopy(data))])

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = _new_id()
        self._apply([_Write("create", (collection, doc_id), copy.deepcopy(data))])
        return doc_id

    def query(
        self, collection: str, filters: Mapping[str, Any] | None = None
    ) -> list[Snapshot]:
        filters = filters or {}
        with self._lock:
            return [
                Snapshot(id=doc_id, data=copy.deepcopy(data))
                for (name, doc_id), data in self._docs.items()
                if name == collection
                and all(data.get(field) == value for field, value in filters.items())
            ]

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            transaction = _MemoryTransaction(self)
            result = fn(transaction)
            try:
                self._commit(transaction)
            except _Conflict:
                logger.debug(
                    "Transaction conflict, retrying (attempt %d/%d)",
                    attempt,
                    self._max_attempts,
                )
                continue
            return result
        raise TransactionAbortedError(
            f"Transaction failed to commit after {self._max_attempts} attempts"
        )

    def _read(self, key: _Key) -> tuple[dict[str, Any] | None, int]:
        with self._lock:
            data = self._docs.get(key)
            return copy.deepcopy(data), self._versions.get(key, 0)

    def _commit(self, transaction: _MemoryTransaction) -> None:
        with self._lock:
            for key, version in transaction.reads.items():
                if self._versions.get(key, 0) != version:
                    raise _Conflict()
            self._apply(transaction.writes)

    def _apply(self, writes: list[_Write]) -> None:
        with self._lock:
            staged: dict[_Key, dict[str, Any]] = {}
            for write in writes:
                current = staged.get(write.key, self._docs.get(write.key))
                if write.kind == "set":
                    staged[write.key] = dict(write.data)
                elif write.kind == "create":
                    if current is not None:
                        raise StoreError(f"Document {write.key[0]}/{write.key[1]} already exists")
                    staged[write.key] = dict(write.data)
                elif write.kind == "merge":
                    staged[write.key] = {**(current or {}), **write.data}
                else:
                    if current is None:
                        raise DocumentMissingError(
                            f"Document {write.key[0]}/{write.key[1]} does not exist"
                        )
                    staged[write.key] = {**current, **write.data}
            for key, data in staged.items():
                self._docs[key] = data
                self._versions[key] = self._versions.get(key, 0) + 1


def _new_id() -> str:
    return uuid.uuid4().hex[:20]
