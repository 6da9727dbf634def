"""Authentication - session events, token verification and account admin.

The auth provider itself is external. This module covers what the
application needs from it: a stream of session changes, verification of the
ID tokens clients send, and privileged deletion of accounts.
"""

import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import id_token, service_account

from ..core.rooms import SHARE_CODE_LENGTH


logger = logging.getLogger(__name__)

# No 0/O/1/I so codes survive being read aloud
SHARE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

IDENTITY_TOOLKIT_SCOPE = "https://www.googleapis.com/auth/identitytoolkit"
IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"


def generate_share_code() -> str:
    """Generate the invite code a patient hands to a professional.

    Returns:
        8 characters drawn from SHARE_CODE_ALPHABET
    """
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))


def validate_share_code_format(code: str) -> bool:
    """Check if a share code has a valid format.

    Args:
        code: The code to validate

    Returns:
        True if format is valid
    """
    if not code or len(code) != SHARE_CODE_LENGTH:
        return False
    return all(c in SHARE_CODE_ALPHABET for c in code)


@dataclass(frozen=True)
class AuthUser:
    """Identity reported by the auth provider."""

    uid: str
    email: Optional[str] = None


AuthListener = Callable[[Optional[AuthUser]], None]
AuthErrorListener = Callable[[Exception], None]


class AuthEvents:
    """In-process source of auth session changes.

    The host feeds it (after verifying a token, on logout) and session
    synchronizers listen to it. A new listener is told the current user
    immediately once the first event has happened.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[tuple[AuthListener, Optional[AuthErrorListener]]] = []
        self._current: Optional[AuthUser] = None
        self._known = False

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    def on_auth_state_changed(
        self, listener: AuthListener, on_error: Optional[AuthErrorListener] = None
    ) -> Callable[[], None]:
        entry = (listener, on_error)
        with self._lock:
            self._listeners.append(entry)
            known, current = self._known, self._current
        if known:
            listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def _emit(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            self._current = user
            self._known = True
            listeners = list(self._listeners)
        for listener, _ in listeners:
            listener(user)

    def sign_in(self, user: AuthUser) -> None:
        logger.info("Auth session started: %s", user.uid[:8])
        self._emit(user)

    def sign_out(self) -> None:
        logger.info("Auth session ended")
        self._emit(None)

    def fail(self, error: Exception) -> None:
        logger.error("Auth provider error: %s", str(error))
        with self._lock:
            self._current = None
            self._known = True
            listeners = list(self._listeners)
        for _, on_error in listeners:
            if on_error is not None:
                on_error(error)


def verify_id_token(token: str, project_id: Optional[str]) -> Optional[AuthUser]:
    """Verify a Firebase ID token sent by a client.

    Args:
        token: The bearer token
        project_id: Firebase project the token must be issued for

    Returns:
        AuthUser if the token is valid, None otherwise
    """
    if not token:
        return None
    if not project_id:
        # google-auth skips the audience check without one
        logger.error("No Firebase project configured; rejecting ID token")
        return None
    try:
        claims = id_token.verify_firebase_token(token, Request(), audience=project_id)
    except ValueError as e:
        logger.warning("Rejected ID token: %s", str(e))
        return None
    if not claims or not claims.get("sub"):
        return None
    if claims.get("aud") != project_id or claims.get("iss") != f"{FIREBASE_ISSUER_PREFIX}{project_id}":
        logger.warning("Rejected ID token issued for another project")
        return None
    return AuthUser(uid=claims["sub"], email=claims.get("email"))


class AuthAdminClient:
    """Privileged account operations through the Identity Toolkit REST API.

    Uses service-account credentials from google-auth; no admin SDK.
    """

    def __init__(
        self,
        service_account_info: dict[str, Any],
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize admin client.

        Args:
            service_account_info: Parsed service-account JSON
            http_client: Optional preconfigured httpx client
        """
        self._project_id = service_account_info.get("project_id")
        if not self._project_id:
            raise ValueError("Service account JSON missing 'project_id'")
        self._credentials = service_account.Credentials.from_service_account_info(
            service_account_info, scopes=[IDENTITY_TOOLKIT_SCOPE]
        )
        self._http = http_client or httpx.Client(timeout=15.0)

    def _access_token(self) -> str:
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    def delete_user(self, uid: str) -> None:
        """Delete an auth account. An account that no longer exists counts as deleted.

        Raises:
            httpx.HTTPError: If the provider rejects the call
        """
        logger.info("Deleting auth account: %s", uid[:8])
        response = self._http.post(
            f"{IDENTITY_TOOLKIT_URL}/projects/{self._project_id}/accounts:delete",
            headers={"Authorization": f"Bearer {self._access_token()}"},
            json={"localId": uid},
        )
        if response.status_code == 400 and "USER_NOT_FOUND" in response.text:
            logger.warning("Auth account already gone: %s", uid[:8])
            return
        response.raise_for_status()
