"""Shared fixtures: an in-memory DocumentStore with live listeners.

Listeners fire synchronously, including once on registration. Transactions
and batches stage their writes and apply them only when the whole unit
succeeds. SERVER_TIMESTAMP, ArrayUnion, ArrayRemove and dotted update
paths are interpreted the way Firestore does.
"""

import copy
import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
from google.cloud.firestore import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

from nutrismart.core.models import ProfileType, UserProfile
from nutrismart.shell.errors import StoreError
from nutrismart.shell.store import Snapshot


@dataclass
class Watcher:
    target: str
    on_snapshot: Callable
    on_error: Callable
    filters: tuple = ()
    order_by: Optional[str] = None
    is_query: bool = False
    active: bool = True


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0]


def _matches(data: dict, filters) -> bool:
    for field_path, op, value in filters:
        actual = data
        for part in field_path.split("."):
            actual = actual.get(part) if isinstance(actual, dict) else None
        if op == "==" and actual != value:
            return False
        if op == "in" and actual not in value:
            return False
        if op == "array-contains" and (not isinstance(actual, list) or value not in actual):
            return False
    return True


class FakeStore:
    """In-memory DocumentStore for shell tests."""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, Any]] = {}
        self.watchers: list[Watcher] = []
        self.writes: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    # ==================== Test helpers ====================

    def fail(self, operation: str, path: str, error: Optional[Exception] = None) -> None:
        """Make the next writes of operation on path raise."""
        self.failures[(operation, path)] = error or StoreError(operation, path, "injected failure")

    def server_time(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def active_watchers(self, target: str) -> list[Watcher]:
        return [w for w in self.watchers if w.active and w.target == target]

    def emit_error(self, target: str, error: Exception) -> None:
        for watcher in self.active_watchers(target):
            watcher.on_error(error)

    def count_writes(self, operation: str, path: str) -> int:
        return self.writes.count((operation, path))

    # ==================== Value transforms ====================

    def _resolve(self, value: Any, existing: Any = None) -> Any:
        if value is SERVER_TIMESTAMP:
            return self.server_time()
        if isinstance(value, ArrayUnion):
            current = list(existing or [])
            return current + [v for v in value.values if v not in current]
        if isinstance(value, ArrayRemove):
            return [v for v in (existing or []) if v not in value.values]
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v) for v in value]
        return copy.deepcopy(value)

    def _merge(self, target: dict, data: dict) -> None:
        for key, value in data.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge(target[key], value)
            else:
                target[key] = self._resolve(value, target.get(key))

    def _check(self, operation: str, path: str) -> None:
        error = self.failures.get((operation, path))
        if error is not None:
            raise error
        if operation == "update" and path not in self.docs:
            raise StoreError("update", path, f"No document to update: {path}")

    def _apply(self, operation: str, path: str, data: Optional[dict] = None, merge: bool = False) -> None:
        if operation == "set":
            if merge and path in self.docs:
                self._merge(self.docs[path], data)
            else:
                self.docs[path] = self._resolve(data)
        elif operation == "update":
            document = self.docs[path]
            for key, value in data.items():
                parts = key.split(".")
                target = document
                for part in parts[:-1]:
                    if not isinstance(target.get(part), dict):
                        target[part] = {}
                    target = target[part]
                target[parts[-1]] = self._resolve(value, target.get(parts[-1]))
        elif operation == "delete":
            self.docs.pop(path, None)
        self.writes.append((operation, path))

    def _commit(self, staged: list[tuple]) -> None:
        for operation, path, _, _ in staged:
            self._check(operation, path)
        # update() validity must account for documents created earlier in the unit
        for operation, path, data, merge in staged:
            if operation == "update" and path not in self.docs:
                raise StoreError("update", path, f"No document to update: {path}")
            self._apply(operation, path, data, merge)
        self._notify({path for _, path, _, _ in staged})

    # ==================== Listeners ====================

    def _snapshot(self, path: str) -> Snapshot:
        if path in self.docs:
            return Snapshot(path=path, exists=True, data=copy.deepcopy(self.docs[path]))
        return Snapshot(path=path, exists=False)

    def _query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        results = [
            self._snapshot(path)
            for path, data in self.docs.items()
            if _parent(path) == collection and _matches(data, filters)
        ]
        if order_by:
            present = [s for s in results if s.data.get(order_by) is not None]
            missing = [s for s in results if s.data.get(order_by) is None]
            present.sort(key=lambda s: s.data[order_by], reverse=descending)
            results = present + missing
        else:
            results.sort(key=lambda s: s.path)
        return results[:limit] if limit else results

    def _fire(self, watcher: Watcher) -> None:
        if not watcher.active:
            return
        if watcher.is_query:
            watcher.on_snapshot(self._query(watcher.target, watcher.filters, watcher.order_by))
        else:
            watcher.on_snapshot(self._snapshot(watcher.target))

    def _notify(self, paths: set[str]) -> None:
        parents = {_parent(p) for p in paths}
        for watcher in list(self.watchers):
            if watcher.is_query and watcher.target in parents:
                self._fire(watcher)
            elif not watcher.is_query and watcher.target in paths:
                self._fire(watcher)

    def _register(self, watcher: Watcher):
        self.watchers.append(watcher)
        self._fire(watcher)

        def unsubscribe() -> None:
            watcher.active = False
            if watcher in self.watchers:
                self.watchers.remove(watcher)

        return unsubscribe

    # ==================== DocumentStore ====================

    def get(self, path: str) -> Snapshot:
        return self._snapshot(path)

    def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        return self._query(collection, filters, order_by, descending, limit)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        self._commit([("set", path, data, merge)])

    def update(self, path: str, data: dict) -> None:
        self._commit([("update", path, data, False)])

    def add(self, collection: str, data: dict) -> str:
        doc_id = self.new_id(collection)
        self._commit([("set", f"{collection}/{doc_id}", data, False)])
        return doc_id

    def delete(self, path: str) -> None:
        self._commit([("delete", path, None, False)])

    def new_id(self, collection: str) -> str:
        return f"doc{next(self._ids)}"

    def watch_document(self, path, on_snapshot, on_error):
        return self._register(Watcher(path, on_snapshot, on_error))

    def watch_query(self, collection, on_snapshot, on_error, filters=(), order_by=None):
        return self._register(
            Watcher(collection, on_snapshot, on_error, tuple(filters), order_by, is_query=True)
        )

    def run_transaction(self, fn):
        transaction = FakeTransaction(self)
        result = fn(transaction)
        self._commit(transaction.staged)
        return result

    def batch(self) -> "FakeBatch":
        return FakeBatch(self)


class FakeBatch:
    def __init__(self, store: FakeStore) -> None:
        self._store = store
        self.staged: list[tuple] = []

    def set(self, path, data, merge=False):
        self.staged.append(("set", path, data, merge))

    def update(self, path, data):
        self.staged.append(("update", path, data, False))

    def delete(self, path):
        self.staged.append(("delete", path, None, False))

    def commit(self):
        self._store._commit(self.staged)


class FakeTransaction(FakeBatch):
    def get(self, path):
        return self._store.get(path)

    def query(self, collection, filters=(), limit=None):
        return self._store.query(collection, filters, limit=limit)


# ==================== Fixtures ====================


@pytest.fixture
def store():
    return FakeStore()


def make_profile(uid: str = "patient-1", **overrides) -> dict:
    """A stored patient profile document."""
    document = {
        "id": uid,
        "tenantId": "clinic-x",
        "fullName": "Ana Souza",
        "email": f"{uid}@example.com",
        "profileType": ProfileType.PATIENT.value,
        "dashboardShareCode": "ABCD2345",
        "calorieGoal": 2000,
        "proteinGoal": 140,
        "waterGoal": 2000,
    }
    document.update(overrides)
    return document


@pytest.fixture
def patient_profile() -> UserProfile:
    return UserProfile.model_validate(make_profile())
