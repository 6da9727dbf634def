"""Document Store - the client contract the application needs from Firestore.

Every synchronizer and repository depends on this protocol rather than on a
concrete client, so each can be built in isolation. FirestoreStore in
firestore_client.py is the production implementation.

Listener rules:
    - on_snapshot may fire zero or many times, and may fire synchronously
      inside watch_document/watch_query before the unsubscribe handle is
      returned.
    - Snapshots of one listener arrive in the order the store emits them;
      nothing is guaranteed across listeners.
    - The returned Unsubscribe must be called when the owner is torn down or
      switches target. Calling it twice is harmless.

Write values may contain google.cloud.firestore transforms
(SERVER_TIMESTAMP, ArrayUnion, ArrayRemove), and update() keys may be
dotted field paths such as "lastRead.<uid>".
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar


T = TypeVar("T")

Unsubscribe = Callable[[], None]
Filter = tuple[str, str, Any]


@dataclass(frozen=True)
class Snapshot:
    """One emitted state of a document at a point in time."""

    path: str
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        """Document data with the document id under 'id'."""
        return {**self.data, "id": self.id}


SnapshotCallback = Callable[[Snapshot], None]
QueryCallback = Callable[[list[Snapshot]], None]
ErrorCallback = Callable[[Exception], None]


class Transaction(Protocol):
    """Reads must happen before writes; writes apply only if fn returns."""

    def get(self, path: str) -> Snapshot: ...

    def query(
        self, collection: str, filters: Sequence[Filter] = (), limit: Optional[int] = None
    ) -> list[Snapshot]: ...

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    def update(self, path: str, data: dict[str, Any]) -> None: ...

    def delete(self, path: str) -> None: ...


class WriteBatch(Protocol):
    """Blind writes applied all-or-nothing on commit()."""

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    def update(self, path: str, data: dict[str, Any]) -> None: ...

    def delete(self, path: str) -> None: ...

    def commit(self) -> None: ...


class DocumentStore(Protocol):
    def get(self, path: str) -> Snapshot: ...

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Snapshot]: ...

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    def update(self, path: str, data: dict[str, Any]) -> None: ...

    def add(self, collection: str, data: dict[str, Any]) -> str: ...

    def delete(self, path: str) -> None: ...

    def new_id(self, collection: str) -> str: ...

    def watch_document(
        self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Unsubscribe: ...

    def watch_query(
        self,
        collection: str,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
    ) -> Unsubscribe: ...

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T: ...

    def batch(self) -> WriteBatch: ...
