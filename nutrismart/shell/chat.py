"""Room/Chat Synchronizer - live message list and sending for one room.

The message sub-collection is the source of truth for history. The room's
lastMessage field is only a preview for room lists and unread badges.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from google.cloud.firestore import SERVER_TIMESTAMP
from pydantic import ValidationError

from ..core.models import Message
from . import paths
from .errors import PermissionErrorChannel, StoreError, StorePermissionError
from .store import DocumentStore, Snapshot, Unsubscribe


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatUser:
    id: str
    name: str
    is_professional: bool = False


MessageListener = Callable[[Message], None]
ErrorListener = Callable[[Exception], None]


class RoomChat:
    """Chat session of one user in one room.

    Each start() opens one subscription lifetime: the room is marked read on
    its first snapshot, and every later snapshot whose newest message is new
    and from someone else triggers on_new_message once.

    Listener failures are kept in `error` and passed to on_error. Only
    permission failures also go to the permission channel.
    """

    def __init__(
        self,
        store: DocumentStore,
        room_id: str,
        user: ChatUser,
        on_new_message: Optional[MessageListener] = None,
        permission_errors: Optional[PermissionErrorChannel] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> None:
        self._store = store
        self.room_id = room_id
        self.user = user
        self._on_new_message = on_new_message
        self._permission_errors = permission_errors
        self._on_error_listener = on_error
        self.error: Optional[Exception] = None

        self._lock = threading.RLock()
        self._send_lock = threading.Lock()
        self._messages: list[Message] = []
        self._seen_ids: set[str] = set()
        self._first_snapshot = True
        self._generation = 0
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def messages(self) -> list[Message]:
        """Messages ordered by creation time, oldest first."""
        return list(self._messages)

    @property
    def is_sending(self) -> bool:
        return self._send_lock.locked()

    def start(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                return
            self._generation += 1
            generation = self._generation
            self._first_snapshot = True
            self._seen_ids = set()
            self._messages = []
            self.error = None

            unsubscribe = self._store.watch_query(
                paths.room_messages(self.room_id),
                lambda snapshots: self._on_snapshot(generation, snapshots),
                lambda error: self._on_error(generation, error),
                order_by="createdAt",
            )
            if generation == self._generation:
                self._unsubscribe = unsubscribe
                return
        unsubscribe()

    def stop(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            self._generation += 1
        if unsubscribe is not None:
            unsubscribe()

    def _parse(self, snapshots: list[Snapshot]) -> list[Message]:
        messages = []
        for snapshot in snapshots:
            try:
                messages.append(Message.model_validate(snapshot.to_dict()))
            except ValidationError as e:
                logger.warning("Skipping malformed message %s: %d errors", snapshot.id, e.error_count())
        return messages

    def _on_snapshot(self, generation: int, snapshots: list[Snapshot]) -> None:
        with self._lock:
            if generation != self._generation:
                return

            messages = self._parse(snapshots)
            self._messages = messages

            if self._first_snapshot:
                self._first_snapshot = False
                self._seen_ids = {m.id for m in messages}
                self._mark_read()
                return

            new_messages = [m for m in messages if m.id not in self._seen_ids]
            self._seen_ids.update(m.id for m in new_messages)

        if not new_messages or self._on_new_message is None:
            return
        newest = messages[-1]
        if newest in new_messages and newest.sender_id != self.user.id:
            self._on_new_message(newest)

    def _mark_read(self) -> None:
        path = paths.room(self.room_id)
        try:
            self._store.update(path, {f"lastRead.{self.user.id}": SERVER_TIMESTAMP})
        except StorePermissionError as e:
            self._report_permission(e)
        except StoreError as e:
            logger.error("Failed to mark room %s read: %s", self.room_id, str(e))

    def _on_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        logger.error("Message listener failed for room %s: %s", self.room_id, str(error))
        self.error = error
        if isinstance(error, StorePermissionError):
            self._report_permission(error)
        if self._on_error_listener is not None:
            self._on_error_listener(error)

    def _report_permission(self, error: StorePermissionError) -> None:
        if self._permission_errors is not None:
            self._permission_errors.emit(error)

    def send(self, text: str) -> bool:
        """Append a message and refresh the room's lastMessage preview.

        Args:
            text: Message body

        Returns:
            True if sent, False if skipped (blank text or a send in flight)

        Raises:
            StoreError: If either write fails
        """
        if not text or not text.strip():
            return False
        if not self._send_lock.acquire(blocking=False):
            logger.debug("Send skipped, previous send still in flight")
            return False

        collection = paths.room_messages(self.room_id)
        try:
            self._store.add(
                collection,
                {
                    "text": text,
                    "senderId": self.user.id,
                    "senderName": self.user.name,
                    "createdAt": SERVER_TIMESTAMP,
                    "isProfessional": self.user.is_professional,
                },
            )
            self._store.update(
                paths.room(self.room_id),
                {
                    "lastMessage": {
                        "text": text,
                        "senderId": self.user.id,
                        # Same clock as lastRead, which has_unread compares it with
                        "createdAt": SERVER_TIMESTAMP,
                    }
                },
            )
        except StorePermissionError as e:
            self._report_permission(e)
            raise
        finally:
            self._send_lock.release()
        return True
