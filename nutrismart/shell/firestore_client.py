"""Firestore Client - DocumentStore implementation over google-cloud-firestore.

All database I/O goes through here; business rules live in core and in the
synchronizers/repositories that use the DocumentStore protocol.

Note on listeners: the Python client retries its watch stream internally
and has no error callback. on_error is invoked when a listener cannot be
registered or a snapshot cannot be decoded.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeVar

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore
from google.cloud.firestore import FieldFilter

from .errors import StoreError, StorePermissionError
from .store import (
    ErrorCallback,
    Filter,
    QueryCallback,
    Snapshot,
    SnapshotCallback,
    Unsubscribe,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None


def translate_error(error: Exception, operation: str, path: str) -> Exception:
    """Map a Google API error onto the application's store errors."""
    if isinstance(error, api_exceptions.PermissionDenied):
        return StorePermissionError(operation, path)
    if isinstance(error, api_exceptions.GoogleAPICallError):
        return StoreError(operation, path, str(error))
    return error


def _to_snapshot(doc: Any) -> Snapshot:
    return Snapshot(path=doc.reference.path, exists=doc.exists, data=doc.to_dict() or {})


class _FirestoreTransaction:
    """Transaction facade handed to run_transaction callbacks."""

    def __init__(self, store: "FirestoreStore", transaction: Any) -> None:
        self._store = store
        self._transaction = transaction

    def get(self, path: str) -> Snapshot:
        ref = self._store.client.document(path)
        return _to_snapshot(ref.get(transaction=self._transaction))

    def query(
        self, collection: str, filters: Sequence[Filter] = (), limit: Optional[int] = None
    ) -> list[Snapshot]:
        query = self._store.build_query(collection, filters, limit=limit)
        return [_to_snapshot(doc) for doc in query.stream(transaction=self._transaction)]

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._transaction.set(self._store.client.document(path), data, merge=merge)

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._transaction.update(self._store.client.document(path), data)

    def delete(self, path: str) -> None:
        self._transaction.delete(self._store.client.document(path))


class _FirestoreBatch:
    def __init__(self, store: "FirestoreStore") -> None:
        self._store = store
        self._batch = store.client.batch()

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._batch.set(self._store.client.document(path), data, merge=merge)

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._batch.update(self._store.client.document(path), data)

    def delete(self, path: str) -> None:
        self._batch.delete(self._store.client.document(path))

    def commit(self) -> None:
        try:
            self._batch.commit()
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "batch", "") from e


class FirestoreStore:
    """DocumentStore backed by a google-cloud-firestore client.

    Document structure:
        tenants/{tenantId}/            tenant, config/site, plan_templates, guidelines
        users/{uid}                    user profile
        rooms/{roomId}/messages/{id}   room and its chat
        meal_entries, hydration_entries, weight_logs
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore store.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def build_query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Any:
        query: Any = self.client.collection(collection)
        for field_path, op, value in filters:
            query = query.where(filter=FieldFilter(field_path, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit:
            query = query.limit(limit)
        return query

    # ==================== Point operations ====================

    def get(self, path: str) -> Snapshot:
        logger.debug("Fetching %s", path)
        try:
            return _to_snapshot(self.client.document(path).get())
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "get", path) from e

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Snapshot]:
        logger.debug("Querying %s where %s", collection, filters)
        try:
            query = self.build_query(collection, filters, order_by, descending, limit)
            return [_to_snapshot(doc) for doc in query.stream()]
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "list", collection) from e

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        try:
            self.client.document(path).set(data, merge=merge)
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "write", path) from e

    def update(self, path: str, data: dict[str, Any]) -> None:
        try:
            self.client.document(path).update(data)
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "update", path) from e

    def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            _, ref = self.client.collection(collection).add(data)
            return ref.id
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "create", collection) from e

    def delete(self, path: str) -> None:
        try:
            self.client.document(path).delete()
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "delete", path) from e

    def new_id(self, collection: str) -> str:
        return self.client.collection(collection).document().id

    # ==================== Live listeners ====================

    def watch_document(
        self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Unsubscribe:
        def handle(docs: list, changes: Any, read_time: Any) -> None:
            try:
                # A missing document arrives as an empty list.
                snapshot = _to_snapshot(docs[0]) if docs else Snapshot(path=path, exists=False)
            except Exception as e:
                logger.error("Failed to decode snapshot of %s: %s", path, str(e))
                on_error(e)
                return
            on_snapshot(snapshot)

        try:
            watch = self.client.document(path).on_snapshot(handle)
        except api_exceptions.GoogleAPICallError as e:
            on_error(translate_error(e, "get", path))
            return lambda: None
        return watch.unsubscribe

    def watch_query(
        self,
        collection: str,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
    ) -> Unsubscribe:
        def handle(docs: list, changes: Any, read_time: Any) -> None:
            try:
                snapshots = [_to_snapshot(doc) for doc in docs]
            except Exception as e:
                logger.error("Failed to decode snapshots of %s: %s", collection, str(e))
                on_error(e)
                return
            on_snapshot(snapshots)

        try:
            query = self.build_query(collection, filters, order_by)
            watch = query.on_snapshot(handle)
        except api_exceptions.GoogleAPICallError as e:
            on_error(translate_error(e, "list", collection))
            return lambda: None
        return watch.unsubscribe

    # ==================== Atomic writes ====================

    def run_transaction(self, fn: Callable[[_FirestoreTransaction], T]) -> T:
        @firestore.transactional
        def run(transaction: Any) -> T:
            return fn(_FirestoreTransaction(self, transaction))

        try:
            return run(self.client.transaction())
        except api_exceptions.GoogleAPICallError as e:
            raise translate_error(e, "transaction", "") from e

    def batch(self) -> _FirestoreBatch:
        return _FirestoreBatch(self)
