"""App Context - composition root for the service layer.

Everything the surfaces need is built here from a Settings and a
DocumentStore. Tests build their own AppContext over a fake store; the
server uses the lazily created process context.
"""

import logging
from typing import Optional

from .auth import AuthAdminClient, AuthEvents
from .chat import ChatUser, ErrorListener, MessageListener, RoomChat
from .config_resolver import SiteConfigLoader, SiteConfigResolver
from .errors import PermissionErrorChannel
from .firestore_client import FirestoreConfig, FirestoreStore
from .library import LibraryRepository
from .payments import PixPaymentClient, SubscriptionService
from .rooms import RoomService
from .session import SessionSynchronizer
from .settings import Settings
from .store import DocumentStore
from .tenants import TenantAdmin
from .tracking import TrackingRepository
from .webhook import NutritionWebhookClient


logger = logging.getLogger(__name__)


class AppContext:
    """Services wired to one store and one configuration."""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        auth_admin: Optional[AuthAdminClient] = None,
        webhook: Optional[NutritionWebhookClient] = None,
        payments: Optional[PixPaymentClient] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.permission_errors = PermissionErrorChannel(development=settings.is_development)

        self.site_config = SiteConfigResolver(store)
        self.rooms = RoomService(store)
        self.tracking = TrackingRepository(store)
        self.library = LibraryRepository(store)
        self.tenants = TenantAdmin(store, auth_admin)
        self.webhook = webhook or NutritionWebhookClient(settings.webhook_url)
        self.payments = payments or PixPaymentClient(
            settings.payment_api_key, settings.payment_base_url
        )
        self.subscriptions = SubscriptionService(self.payments, store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        """Build the production context over Firestore."""
        store = FirestoreStore(FirestoreConfig(project_id=settings.project_id, database=settings.database))
        info = settings.service_account_info()
        auth_admin = AuthAdminClient(info) if info else None
        if auth_admin is None:
            logger.warning("No service account configured; account deletion disabled")
        return cls(settings, store, auth_admin=auth_admin)

    # ==================== Per-session objects ====================

    def session(self, auth_events: AuthEvents) -> SessionSynchronizer:
        return SessionSynchronizer(self.store, auth_events, self.permission_errors)

    def site_config_loader(
        self, session: SessionSynchronizer, hostname: Optional[str]
    ) -> SiteConfigLoader:
        return SiteConfigLoader(
            self.site_config, session, hostname, self.settings.platform_domains
        )

    def room_chat(
        self,
        room_id: str,
        user: ChatUser,
        on_new_message: Optional[MessageListener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> RoomChat:
        return RoomChat(
            self.store, room_id, user, on_new_message, self.permission_errors, on_error
        )


_context: Optional[AppContext] = None


def get_context() -> AppContext:
    """Get or create the process context from the environment."""
    global _context
    if _context is None:
        _context = AppContext.from_settings(Settings.from_env())
    return _context


def set_context(context: Optional[AppContext]) -> None:
    """Install a context (tests), or None to rebuild from the environment."""
    global _context
    _context = context
