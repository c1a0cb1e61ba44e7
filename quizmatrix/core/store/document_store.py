"""In-memory document store with transactions and change subscriptions.

This is the reference implementation of the persistence capabilities the core
relies on: slash-addressed documents grouped in collections, serialized
read-modify-write transactions that commit all-or-nothing, a server-assigned
timestamp sentinel, and push notifications that always deliver the latest
snapshot of a document or collection.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import copy
from dataclasses import dataclass, field
from datetime import datetime
import logging
from threading import RLock, local
from typing import Any
from uuid import uuid4

from quizmatrix.core.clock import ClockSource, SystemClock
from quizmatrix.core.errors import NotFoundError, QuizError, StoreError
from quizmatrix.core.store.paths import is_document_path, split_path

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Placeholder replaced by the store clock's value when written."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __copy__(self) -> "_ServerTimestamp":
        return self

    def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
        return self

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(slots=True, frozen=True)
class DocumentSnapshot:
    path: str
    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass(slots=True, frozen=True)
class CollectionSnapshot:
    path: str
    documents: list[DocumentSnapshot] = field(default_factory=list)


Snapshot = DocumentSnapshot | CollectionSnapshot
Listener = Callable[[Snapshot], None]
Predicate = Callable[[dict[str, Any]], bool]


@dataclass(slots=True, eq=False)
class _Subscription:
    path: str
    listener: Listener
    order_by: str | None = None


class Transaction:
    """Staged view over the store; nothing is visible to others until commit."""

    def __init__(self, store: "DocumentStore", commit_time: datetime) -> None:
        self._store = store
        self._commit_time = commit_time
        self._writes: dict[str, dict[str, Any] | None] = {}

    @property
    def commit_time(self) -> datetime:
        return self._commit_time

    @property
    def writes(self) -> dict[str, dict[str, Any] | None]:
        return self._writes

    def get(self, path: str) -> dict[str, Any] | None:
        if path in self._writes:
            staged = self._writes[path]
            return copy.deepcopy(staged) if staged is not None else None
        return self._store._read(path)

    def require(self, path: str) -> dict[str, Any]:
        data = self.get(path)
        if data is None:
            raise NotFoundError(f"Document {path} does not exist.")
        return data

    def list(
        self,
        collection_path: str,
        order_by: str | None = None,
        where: Predicate | None = None,
    ) -> list[DocumentSnapshot]:
        merged = {snap.path: snap.data for snap in self._store._scan(collection_path)}
        prefix = collection_path + "/"
        for path, data in self._writes.items():
            if path.startswith(prefix) and "/" not in path[len(prefix):]:
                merged[path] = copy.deepcopy(data)
        snapshots = [
            DocumentSnapshot(path=path, id=split_path(path)[1], data=data)
            for path, data in merged.items()
            if data is not None and (where is None or where(data))
        ]
        return _ordered(snapshots, order_by)

    def set(self, path: str, data: dict[str, Any]) -> None:
        if not is_document_path(path):
            raise StoreError(f"Cannot write to collection path {path!r}.")
        self._writes[path] = self._resolve(data)

    def create(self, collection_path: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        doc_id = doc_id or self._store.new_id()
        path = f"{collection_path}/{doc_id}"
        if self.get(path) is not None:
            raise StoreError(f"Document {path} already exists.")
        self.set(path, data)
        return doc_id

    def update(self, path: str, fields: dict[str, Any]) -> dict[str, Any]:
        current = self.require(path)
        current.update(fields)
        self.set(path, current)
        return current

    def delete(self, path: str) -> None:
        self._writes[path] = None

    def delete_collection(self, collection_path: str) -> int:
        snapshots = self.list(collection_path)
        for snapshot in snapshots:
            self.delete(snapshot.path)
        return len(snapshots)

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        resolved = copy.deepcopy(data)
        for key, value in resolved.items():
            if value is SERVER_TIMESTAMP:
                resolved[key] = self._commit_time
        return resolved


class DocumentStore:
    """Thread-safe in-memory document database."""

    def __init__(self, clock: ClockSource | None = None) -> None:
        self._clock = clock or SystemClock()
        self._lock = RLock()
        self._local = local()
        self._documents: dict[str, dict[str, Any]] = {}
        self._subscriptions: list[_Subscription] = []
        self._commit_count = 0

    @property
    def clock(self) -> ClockSource:
        return self._clock

    @property
    def commit_count(self) -> int:
        return self._commit_count

    @staticmethod
    def new_id() -> str:
        return uuid4().hex[:20]

    # --- Reads ---

    def get(self, path: str) -> dict[str, Any] | None:
        with self._lock:
            return self._read(path)

    def list(
        self,
        collection_path: str,
        order_by: str | None = None,
        where: Predicate | None = None,
    ) -> list[DocumentSnapshot]:
        with self._lock:
            snapshots = [
                snap for snap in self._scan(collection_path) if where is None or where(snap.data)
            ]
        return _ordered(snapshots, order_by)

    # --- Writes ---

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run a serialized read-modify-write unit that commits all-or-nothing."""
        if getattr(self._local, "active", False):
            raise StoreError("Nested transactions are not supported.")
        with self._lock:
            self._local.active = True
            try:
                txn = Transaction(self, self._clock.now())
                try:
                    yield txn
                except Exception:
                    if txn.writes:
                        logger.debug("Discarded %d staged write(s)", len(txn.writes))
                    raise
                changed = self._commit(txn.writes)
            finally:
                self._local.active = False
        self._notify(changed)

    def _commit(self, writes: dict[str, dict[str, Any] | None]) -> set[str]:
        if not writes:
            return set()
        try:
            self._apply_writes(writes)
        except QuizError:
            logger.warning("Commit of %d write(s) rolled back", len(writes))
            raise
        except Exception as exc:
            logger.warning("Commit of %d write(s) rolled back: %s", len(writes), exc)
            raise StoreError(f"Commit failed: {exc}") from exc
        self._commit_count += 1
        return set(writes)

    def _apply_writes(self, writes: dict[str, dict[str, Any] | None]) -> None:
        # Build the next state aside and swap it in, so a failure leaves no trace.
        documents = dict(self._documents)
        for path, data in writes.items():
            if data is None:
                documents.pop(path, None)
            else:
                documents[path] = data
        self._documents = documents

    # --- Subscriptions ---

    def subscribe(self, path: str, listener: Listener, order_by: str | None = None) -> Callable[[], None]:
        """Push the current snapshot of ``path`` now and after every commit touching it."""
        subscription = _Subscription(path=path.strip("/"), listener=listener, order_by=order_by)
        with self._lock:
            self._subscriptions.append(subscription)
        self._deliver(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def snapshot(self, path: str, order_by: str | None = None) -> Snapshot:
        path = path.strip("/")
        if is_document_path(path):
            return DocumentSnapshot(path=path, id=split_path(path)[1], data=self.get(path))
        return CollectionSnapshot(path=path, documents=self.list(path, order_by=order_by))

    def _notify(self, changed: set[str]) -> None:
        if not changed:
            return
        touched = set(changed)
        touched.update(split_path(path)[0] for path in changed)
        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.path in touched]
        for subscription in targets:
            self._deliver(subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        snapshot = self.snapshot(subscription.path, order_by=subscription.order_by)
        try:
            subscription.listener(snapshot)
        except Exception:
            logger.exception("Change listener for %s failed", subscription.path)

    # --- Internals (caller holds the lock) ---

    def _read(self, path: str) -> dict[str, Any] | None:
        data = self._documents.get(path.strip("/"))
        return copy.deepcopy(data) if data is not None else None

    def _scan(self, collection_path: str) -> list[DocumentSnapshot]:
        prefix = collection_path.strip("/") + "/"
        return [
            DocumentSnapshot(path=path, id=path[len(prefix):], data=copy.deepcopy(data))
            for path, data in self._documents.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]


def _ordered(snapshots: list[DocumentSnapshot], order_by: str | None) -> list[DocumentSnapshot]:
    if order_by is None:
        return snapshots
    # Documents missing the field sort last.
    return sorted(
        snapshots,
        key=lambda snap: (snap.data.get(order_by) is None, snap.data.get(order_by)),
    )
