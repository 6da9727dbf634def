"""Session/Profile Synchronizer - who is signed in and what their profile says.

Follows the auth provider's session events and keeps a live subscription on
the signed-in user's profile document. Every state change is published to
subscribers as an immutable SessionState.

Only one profile subscription is ever open. Switching users closes the old
one first, and a generation counter drops any callback that still arrives
from it, so B's session never shows A's profile.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from google.cloud.firestore import SERVER_TIMESTAMP
from pydantic import BaseModel, ValidationError

from ..core.models import ProfileType, Role, SubscriptionStatus, UserProfile
from ..core.rooms import DEFAULT_CALORIE_GOAL, DEFAULT_PROTEIN_GOAL, DEFAULT_WATER_GOAL
from . import paths
from .auth import AuthEvents, AuthUser, generate_share_code
from .errors import NotAuthenticatedError, PermissionErrorChannel, StorePermissionError
from .store import DocumentStore, Snapshot, Unsubscribe


logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    INITIALIZING = "initializing"
    SIGNED_OUT = "signed_out"
    PROFILE_LOADING = "profile_loading"
    PROFILE_READY = "profile_ready"
    PROFILE_MISSING = "profile_missing"  # auth account exists, profile not written yet
    PROFILE_ERROR = "profile_error"


@dataclass(frozen=True)
class SessionState:
    """Observable session state.

    Attributes:
        user: Signed-in identity, None when signed out or not yet known
        profile: The user's profile once it has loaded
        is_loading: True until auth and profile have both settled
        error: Failure behind PROFILE_ERROR (or an auth-provider error)
        phase: Where the session is in its lifecycle
    """

    user: Optional[AuthUser] = None
    profile: Optional[UserProfile] = None
    is_loading: bool = True
    error: Optional[Exception] = None
    phase: SessionPhase = SessionPhase.INITIALIZING


SessionListener = Callable[[SessionState], None]


def _profile_document(partial: dict[str, Any]) -> dict[str, Any]:
    """Map attribute names to stored field names and dump nested models."""
    fields = UserProfile.model_fields
    document: dict[str, Any] = {}
    for key, value in partial.items():
        field = fields.get(key)
        name = field.alias if field is not None and field.alias else key
        if isinstance(value, BaseModel):
            value = value.model_dump(by_alias=True, exclude_none=True)
        elif isinstance(value, Enum):
            value = value.value
        document[name] = value
    return document


class SessionSynchronizer:
    """Publish SessionState for the current auth session."""

    def __init__(
        self,
        store: DocumentStore,
        auth_events: AuthEvents,
        permission_errors: Optional[PermissionErrorChannel] = None,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            store: Document store holding users/{uid}
            auth_events: Source of auth session changes
            permission_errors: Channel for permission-denied failures
        """
        self._store = store
        self._auth_events = auth_events
        self._permission_errors = permission_errors

        # Guards state and handles; never held while calling out.
        self._lock = threading.RLock()
        # Serialises delivery so listeners never see an older state after a newer one.
        self._deliver_lock = threading.RLock()
        self._state = SessionState()
        self._version = 0
        self._listeners: list[SessionListener] = []
        self._generation = 0
        self._unsubscribe_auth: Optional[Unsubscribe] = None
        self._unsubscribe_profile: Optional[Unsubscribe] = None

    @property
    def state(self) -> SessionState:
        return self._state

    def start(self) -> None:
        """Begin following auth events. Idempotent."""
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self._auth_events.on_auth_state_changed(
                self._on_auth_state, self._on_auth_error
            )

    def stop(self) -> None:
        """Close every subscription. Late callbacks are ignored afterwards."""
        with self._lock:
            handles = [self._unsubscribe_auth, self._take_profile()]
            self._unsubscribe_auth = None
            self._generation += 1
        for unsubscribe in handles:
            if unsubscribe is not None:
                unsubscribe()

    def subscribe(self, listener: SessionListener) -> Unsubscribe:
        """Receive the current state immediately and every change after it."""
        with self._deliver_lock:
            with self._lock:
                self._listeners.append(listener)
                state = self._state
            listener(state)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def update_profile(self, partial: dict[str, Any]) -> None:
        """Write a partial update to the signed-in user's profile.

        Local state is not touched; the change arrives through the live
        profile subscription.

        Args:
            partial: Fields to change, by attribute or stored name

        Raises:
            NotAuthenticatedError: If nobody is signed in
            StoreError: If the write fails
        """
        user = self._state.user
        if user is None:
            raise NotAuthenticatedError()
        if not partial:
            return

        path = paths.user(user.uid)
        try:
            self._store.update(path, _profile_document(partial))
        except StorePermissionError as e:
            self._report_permission(e)
            raise
        logger.info("Updated profile %s: %s", user.uid[:8], sorted(partial))

    # ==================== Internals ====================

    def _set_state(self, state: SessionState) -> int:
        # Caller holds the lock.
        self._state = state
        self._version += 1
        return self._version

    def _deliver(self, version: int) -> None:
        """Hand the state set at `version` to listeners unless a newer one exists."""
        with self._deliver_lock:
            with self._lock:
                if version != self._version:
                    return
                state = self._state
                listeners = list(self._listeners)
            for listener in listeners:
                if version != self._version:
                    return
                listener(state)

    def _take_profile(self) -> Optional[Unsubscribe]:
        # Caller holds the lock and calls the returned handle after releasing it.
        unsubscribe, self._unsubscribe_profile = self._unsubscribe_profile, None
        return unsubscribe

    def _report_permission(self, error: StorePermissionError) -> None:
        if self._permission_errors is not None:
            self._permission_errors.emit(error)

    def _on_auth_error(self, error: Exception) -> None:
        with self._lock:
            stale = self._take_profile()
            self._generation += 1
            version = self._set_state(
                SessionState(is_loading=False, error=error, phase=SessionPhase.SIGNED_OUT)
            )
        if stale is not None:
            stale()
        self._deliver(version)

    def _on_auth_state(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            current = self._state.user
            if user is not None and current is not None and user.uid == current.uid:
                if self._unsubscribe_profile is not None:
                    return

            stale = self._take_profile()
            self._generation += 1
            generation = self._generation
            if user is None:
                version = self._set_state(
                    SessionState(is_loading=False, phase=SessionPhase.SIGNED_OUT)
                )
            else:
                version = self._set_state(
                    SessionState(user=user, phase=SessionPhase.PROFILE_LOADING)
                )

        if stale is not None:
            stale()
        self._deliver(version)
        if user is None:
            return

        logger.debug("Loading profile of %s", user.uid[:8])
        unsubscribe = self._store.watch_document(
            paths.user(user.uid),
            lambda snapshot: self._on_profile(generation, user, snapshot),
            lambda error: self._on_profile_error(generation, user, error),
        )
        with self._lock:
            if generation == self._generation:
                self._unsubscribe_profile = unsubscribe
                return
        # Superseded while subscribing.
        unsubscribe()

    def _on_profile(self, generation: int, user: AuthUser, snapshot: Snapshot) -> None:
        state = self._profile_state(user, snapshot)
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale profile snapshot of %s", user.uid[:8])
                return
            version = self._set_state(state)
        self._deliver(version)

    def _profile_state(self, user: AuthUser, snapshot: Snapshot) -> SessionState:
        if not snapshot.exists:
            logger.debug("Profile of %s not written yet", user.uid[:8])
            return SessionState(user=user, is_loading=False, phase=SessionPhase.PROFILE_MISSING)
        try:
            profile = UserProfile.model_validate(snapshot.to_dict())
        except ValidationError as e:
            logger.error("Invalid profile document for %s: %d errors", user.uid[:8], e.error_count())
            return SessionState(
                user=user, is_loading=False, error=e, phase=SessionPhase.PROFILE_ERROR
            )
        return SessionState(
            user=user, profile=profile, is_loading=False, phase=SessionPhase.PROFILE_READY
        )

    def _on_profile_error(self, generation: int, user: AuthUser, error: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            logger.error("Profile listener failed for %s: %s", user.uid[:8], str(error))
            version = self._set_state(
                SessionState(
                    user=user, is_loading=False, error=error, phase=SessionPhase.PROFILE_ERROR
                )
            )
        self._deliver(version)
        if isinstance(error, StorePermissionError):
            self._report_permission(error)


def register_profile(
    store: DocumentStore,
    user: AuthUser,
    full_name: str,
    profile_type: ProfileType = ProfileType.PATIENT,
    tenant_id: Optional[str] = None,
) -> dict[str, Any]:
    """Write the initial profile right after the auth account is created.

    Until this write lands the session reports PROFILE_MISSING for the user.
    An independent patient is their own tenant; a professional must belong
    to an existing tenant.

    Args:
        store: Document store
        user: The freshly created auth identity
        full_name: Display name
        profile_type: Patient or professional
        tenant_id: Clinic the account belongs to

    Returns:
        The document written

    Raises:
        ValueError: If a professional is registered without a tenant
    """
    if profile_type == ProfileType.PROFESSIONAL and not tenant_id:
        raise ValueError("Professionals must be registered under a tenant")

    document: dict[str, Any] = {
        "id": user.uid,
        "tenantId": tenant_id or user.uid,
        "fullName": full_name,
        "email": user.email or "",
        "profileType": profile_type.value,
        "createdAt": SERVER_TIMESTAMP,
    }
    if profile_type == ProfileType.PATIENT:
        document.update(
            {
                "dashboardShareCode": generate_share_code(),
                "calorieGoal": DEFAULT_CALORIE_GOAL,
                "waterGoal": DEFAULT_WATER_GOAL,
                "proteinGoal": DEFAULT_PROTEIN_GOAL,
                "subscriptionStatus": SubscriptionStatus.INACTIVE.value,
            }
        )
    else:
        document.update({"role": Role.PROFESSIONAL.value, "professionalRoomIds": []})

    store.set(paths.user(user.uid), document)
    logger.info("Registered %s profile %s", profile_type.value, user.uid[:8])
    return document


def load_profile(store: DocumentStore, uid: str) -> Optional[UserProfile]:
    """One-shot profile read for request handlers. None if missing or invalid."""
    snapshot = store.get(paths.user(uid))
    if not snapshot.exists:
        return None
    try:
        return UserProfile.model_validate(snapshot.to_dict())
    except ValidationError as e:
        logger.error("Invalid profile document for %s: %d errors", uid[:8], e.error_count())
        return None
