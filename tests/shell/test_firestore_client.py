"""Tests for the Firestore-backed DocumentStore with a mocked client."""

from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as api_exceptions

from nutrismart.shell.errors import StoreError, StorePermissionError
from nutrismart.shell.firestore_client import FirestoreConfig, FirestoreStore, translate_error


@pytest.fixture
def mock_client():
    """Mock Firestore client for testing."""
    with patch("nutrismart.shell.firestore_client.firestore") as mock_fs:
        client = MagicMock()
        mock_fs.Client.return_value = client
        yield client


@pytest.fixture
def store(mock_client):
    return FirestoreStore(FirestoreConfig(project_id="nutrismart-test"))


def document(path, data):
    doc = MagicMock()
    doc.reference.path = path
    doc.exists = data is not None
    doc.to_dict.return_value = data
    return doc


class TestTranslateError:
    """Tests for translate_error."""

    def test_permission_denied(self):
        """Permission failures become StorePermissionError."""
        error = translate_error(api_exceptions.PermissionDenied("no"), "get", "users/u1")
        assert isinstance(error, StorePermissionError)
        assert error.path == "users/u1"

    def test_other_api_errors(self):
        """Other API errors become StoreError."""
        error = translate_error(api_exceptions.NotFound("gone"), "update", "users/u1")
        assert type(error) is StoreError

    def test_non_api_errors_pass_through(self):
        """Programming errors are not wrapped."""
        error = KeyError("x")
        assert translate_error(error, "get", "users/u1") is error


class TestPointOperations:
    """Tests for get/update with the mocked client."""

    def test_get_existing(self, store, mock_client):
        """Documents are wrapped in Snapshots with their id."""
        mock_client.document.return_value.get.return_value = document("users/u1", {"fullName": "Ana"})
        snapshot = store.get("users/u1")

        assert snapshot.exists
        assert snapshot.to_dict() == {"fullName": "Ana", "id": "u1"}
        mock_client.document.assert_called_with("users/u1")

    def test_get_missing(self, store, mock_client):
        """Missing documents have no data."""
        mock_client.document.return_value.get.return_value = document("users/u1", None)
        snapshot = store.get("users/u1")

        assert not snapshot.exists
        assert snapshot.data == {}

    def test_update_permission_denied(self, store, mock_client):
        """Rejected writes raise StorePermissionError."""
        mock_client.document.return_value.update.side_effect = api_exceptions.PermissionDenied("no")
        with pytest.raises(StorePermissionError):
            store.update("users/u1", {"age": 30})


class TestWatchDocument:
    """Tests for watch_document."""

    def test_missing_document_snapshot(self, store, mock_client):
        """An empty docs list is reported as a missing document."""
        seen = []
        store.watch_document("users/u1", seen.append, lambda error: None)
        handle = mock_client.document.return_value.on_snapshot.call_args.args[0]
        handle([], [], None)

        assert len(seen) == 1
        assert not seen[0].exists
        assert seen[0].path == "users/u1"

    def test_registration_failure(self, store, mock_client):
        """A listener that cannot be opened reports through on_error."""
        mock_client.document.return_value.on_snapshot.side_effect = api_exceptions.PermissionDenied("no")
        errors = []
        unsubscribe = store.watch_document("users/u1", lambda s: None, errors.append)
        unsubscribe()

        assert isinstance(errors[0], StorePermissionError)
