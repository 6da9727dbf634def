"""Tests for the room chat synchronizer."""

import pytest
from google.cloud.firestore import SERVER_TIMESTAMP

from nutrismart.core.models import Room
from nutrismart.core.rooms import has_unread
from nutrismart.shell.chat import ChatUser, RoomChat
from nutrismart.shell.errors import PermissionErrorChannel, StoreError, StorePermissionError


ROOM = "rooms/r1"
MESSAGES = "rooms/r1/messages"

PATIENT = ChatUser(id="patient-1", name="Ana")
PROFESSIONAL = ChatUser(id="prof-1", name="Dra. Carla", is_professional=True)


def post(store, sender: ChatUser, text: str) -> str:
    return store.add(
        MESSAGES,
        {
            "text": text,
            "senderId": sender.id,
            "senderName": sender.name,
            "createdAt": SERVER_TIMESTAMP,
            "isProfessional": sender.is_professional,
        },
    )


@pytest.fixture
def room(store):
    store.docs[ROOM] = {"professionalId": "prof-1", "patientId": "patient-1"}
    return ROOM


@pytest.fixture
def notified():
    return []


@pytest.fixture
def chat(store, room, notified):
    chat = RoomChat(store, "r1", PATIENT, notified.append, PermissionErrorChannel())
    yield chat
    chat.stop()


class TestMarkRead:
    """The room is marked read once per subscription lifetime."""

    def test_mark_read_once_over_five_snapshots(self, store, chat):
        """Only the first of five snapshots writes lastRead."""
        post(store, PROFESSIONAL, "Bom dia")
        chat.start()
        for i in range(4):
            post(store, PROFESSIONAL, f"Mensagem {i}")

        assert len(chat.messages) == 5
        assert store.count_writes("update", ROOM) == 1
        assert "patient-1" in store.docs[ROOM]["lastRead"]

    def test_restart_marks_read_again(self, store, chat):
        """A new subscription lifetime marks the room read again."""
        chat.start()
        chat.stop()
        chat.start()

        assert store.count_writes("update", ROOM) == 2

    def test_mark_read_failure_does_not_break_chat(self, store, chat):
        """A failed read marker is logged and messages still load."""
        post(store, PROFESSIONAL, "Oi")
        store.fail("update", ROOM)
        chat.start()

        assert [m.text for m in chat.messages] == ["Oi"]


class TestMessages:
    """Tests for the live message list and notifications."""

    def test_messages_ordered_by_creation(self, store, chat):
        """Every snapshot replaces the list, oldest first."""
        post(store, PROFESSIONAL, "primeira")
        chat.start()
        post(store, PATIENT, "segunda")

        assert [m.text for m in chat.messages] == ["primeira", "segunda"]

    def test_existing_messages_do_not_notify(self, store, chat, notified):
        """Messages present when the chat opens are not new."""
        post(store, PROFESSIONAL, "antiga")
        chat.start()

        assert notified == []

    def test_foreign_message_notifies_once(self, store, chat, notified):
        """A new message from someone else notifies exactly once."""
        chat.start()
        post(store, PROFESSIONAL, "Como foi o almoço?")
        store.update(ROOM, {"lastMessage": {"text": "x", "senderId": "prof-1"}})
        post(store, PATIENT, "Ótimo!")

        assert [m.text for m in notified] == ["Como foi o almoço?"]

    def test_own_message_does_not_notify(self, chat, notified):
        """Sending never notifies the sender."""
        chat.start()
        chat.send("Olá")

        assert notified == []

    def test_stop_ends_updates(self, store, chat, notified):
        """After stop() the list no longer changes."""
        chat.start()
        chat.stop()
        post(store, PROFESSIONAL, "tarde demais")

        assert chat.messages == []
        assert notified == []
        assert not store.active_watchers(MESSAGES)

    def test_permission_error_reaches_channel(self, store, room):
        """A permission-denied listener is reported on the permission channel."""
        channel = PermissionErrorChannel()
        reported, errors = [], []
        channel.subscribe(reported.append)
        chat = RoomChat(store, "r1", PATIENT, permission_errors=channel, on_error=errors.append)
        chat.start()
        error = StorePermissionError("list", MESSAGES)
        store.emit_error(MESSAGES, error)

        assert reported == [error]
        assert errors == [error]
        assert chat.error is error

    def test_other_listener_errors_stay_off_channel(self, store, room):
        """Connection failures are kept on the chat, not reported as permission problems."""
        channel = PermissionErrorChannel(development=True)
        reported, errors = [], []
        channel.subscribe(reported.append)
        chat = RoomChat(store, "r1", PATIENT, permission_errors=channel, on_error=errors.append)
        chat.start()
        error = ConnectionError("stream reset")
        store.emit_error(MESSAGES, error)

        assert reported == []
        assert errors == [error]
        assert chat.error is error

    def test_restart_clears_error(self, store, chat):
        """A new subscription starts without the previous failure."""
        chat.start()
        store.emit_error(MESSAGES, ConnectionError("stream reset"))
        chat.stop()
        chat.start()

        assert chat.error is None


class TestSend:
    """Tests for RoomChat.send."""

    def test_send_writes_message_and_preview(self, store, chat):
        """A send appends the message and refreshes lastMessage."""
        assert chat.send("Oi, doutora")

        messages = [data for path, data in store.docs.items() if path.startswith(MESSAGES + "/")]
        assert messages[0]["senderName"] == "Ana"
        assert messages[0]["isProfessional"] is False
        assert store.docs[ROOM]["lastMessage"]["text"] == "Oi, doutora"
        assert store.docs[ROOM]["lastMessage"]["senderId"] == "patient-1"

    def test_own_message_read_after_reopening(self, store, chat):
        """Preview and lastRead share the server clock, so reopening clears the badge."""
        store.docs[ROOM].update(
            {
                "tenantId": "clinic-x",
                "roomName": "Ana",
                "patientInfo": {"name": "Ana", "email": "a@example.com"},
                "activePlan": {"calorieGoal": 2000, "hydrationGoal": 2000},
            }
        )
        RoomChat(store, "r1", PROFESSIONAL).send("Como foi o almoço?")
        chat.start()
        room = Room.model_validate(store.get(ROOM).to_dict())

        assert room.last_message.created_at < room.last_read["patient-1"]
        assert not has_unread(room, "patient-1")

    def test_blank_text_is_skipped(self, store, chat):
        """Blank messages are not sent."""
        assert not chat.send("   ")
        assert store.writes == []

    def test_single_flight(self, store, chat):
        """A send while another is in flight is skipped."""
        attempts = []

        def send_again(_snapshots):
            if chat.is_sending:
                attempts.append(chat.send("segunda"))

        store.watch_query(MESSAGES, send_again, lambda error: None)
        assert chat.send("primeira")

        assert attempts == [False]
        assert not chat.is_sending
        texts = [data["text"] for path, data in store.docs.items() if path.startswith(MESSAGES + "/")]
        assert texts == ["primeira"]

    def test_preview_failure_is_reported(self, store, chat):
        """If the preview write fails the send fails, but the message stays."""
        store.fail("update", ROOM)

        with pytest.raises(StoreError):
            chat.send("Oi")
        assert not chat.is_sending
        assert any(path.startswith(MESSAGES + "/") for path in store.docs)

    def test_permission_failure_reported(self, store, room):
        """A rejected send reaches the permission channel and the caller."""
        channel = PermissionErrorChannel()
        reported = []
        channel.subscribe(reported.append)
        chat = RoomChat(store, "r1", PATIENT, permission_errors=channel)
        error = StorePermissionError("update", ROOM)
        store.fail("update", ROOM, error)

        with pytest.raises(StorePermissionError):
            chat.send("Oi")
        assert reported == [error]
