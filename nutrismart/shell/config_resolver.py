"""Config Resolver - live, always-valid site configuration per tenant.

SiteConfigResolver turns the tenant override document into a fully
populated SiteConfig on every change. It never raises to its caller: an
invalid merge or a listener failure yields the pure default configuration.

SiteConfigLoader wires the tenant identity decision to the resolver and
follows the session, switching subscriptions when the tenant changes.
"""

import logging
import threading
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from ..core.site_config import (
    DEFAULT_SITE_CONFIG,
    DEFAULT_TENANT_ID,
    SiteConfig,
    build_site_config,
)
from ..core.tenancy import DEFAULT_PLATFORM_DOMAINS, resolve_tenant_id
from . import paths
from .session import SessionState, SessionSynchronizer
from .store import DocumentStore, Snapshot, Unsubscribe


logger = logging.getLogger(__name__)

ConfigCallback = Callable[[SiteConfig], None]


class SiteConfigResolver:
    """Resolve tenant site configuration from the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def _resolve_snapshot(self, tenant_id: str, override: Optional[dict[str, Any]]) -> SiteConfig:
        try:
            return build_site_config(override)
        except ValidationError as e:
            logger.error(
                "Invalid site config for tenant '%s', using defaults: %d errors",
                tenant_id,
                e.error_count(),
            )
            return DEFAULT_SITE_CONFIG

    def subscribe(self, tenant_id: Optional[str], on_change: ConfigCallback) -> Unsubscribe:
        """Follow a tenant's config, calling on_change with every resolved value.

        Args:
            tenant_id: Tenant whose config to follow ('default' when falsy)
            on_change: Receives a valid SiteConfig on every change

        Returns:
            Handle that stops the subscription
        """
        effective_id = tenant_id or DEFAULT_TENANT_ID

        def on_snapshot(snapshot: Snapshot) -> None:
            override = snapshot.data if snapshot.exists else None
            on_change(self._resolve_snapshot(effective_id, override))

        def on_error(error: Exception) -> None:
            logger.error("Error fetching site config for tenant %s: %s", effective_id, str(error))
            on_change(DEFAULT_SITE_CONFIG)

        logger.debug("Subscribing to site config of tenant %s", effective_id)
        return self._store.watch_document(paths.site_config(effective_id), on_snapshot, on_error)

    def resolve(self, tenant_id: Optional[str]) -> SiteConfig:
        """One-shot read with the same merge, validation and fallback rules."""
        effective_id = tenant_id or DEFAULT_TENANT_ID
        try:
            snapshot = self._store.get(paths.site_config(effective_id))
        except Exception as e:
            logger.error("Error fetching site config for tenant %s: %s", effective_id, str(e))
            return DEFAULT_SITE_CONFIG
        return self._resolve_snapshot(effective_id, snapshot.data if snapshot.exists else None)


class SiteConfigLoader:
    """Keep the visitor's site config in step with who they are.

    Re-evaluates the tenant whenever the session changes. When the tenant
    changes, the previous config subscription is closed before the new one
    opens, and the published config resets to None until the first config of
    the new tenant arrives.
    """

    def __init__(
        self,
        resolver: SiteConfigResolver,
        session: SessionSynchronizer,
        hostname: Optional[str] = None,
        platform_domains: Iterable[str] = DEFAULT_PLATFORM_DOMAINS,
    ) -> None:
        self._resolver = resolver
        self._session = session
        self._hostname = hostname
        self._platform_domains = tuple(platform_domains)

        self._lock = threading.RLock()
        self._listeners: list[Callable[[Optional[SiteConfig]], None]] = []
        self._tenant_id: Optional[str] = None
        self._config: Optional[SiteConfig] = None
        self._unsubscribe_config: Optional[Unsubscribe] = None
        self._unsubscribe_session: Optional[Unsubscribe] = None
        self._generation = 0
        self._active = False

    @property
    def tenant_id(self) -> Optional[str]:
        return self._tenant_id

    @property
    def config(self) -> Optional[SiteConfig]:
        return self._config

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
        unsubscribe = self._session.subscribe(self._on_session)
        with self._lock:
            if self._active:
                self._unsubscribe_session = unsubscribe
                return
        unsubscribe()

    def stop(self) -> None:
        with self._lock:
            self._active = False
            handles = [self._unsubscribe_session, self._take_config()]
            self._unsubscribe_session = None
            self._tenant_id = None
            self._generation += 1
        # Called unlocked: the session may be delivering to us on another thread.
        for unsubscribe in handles:
            if unsubscribe is not None:
                unsubscribe()

    def subscribe(self, listener: Callable[[Optional[SiteConfig]], None]) -> Unsubscribe:
        """Receive the current config immediately and on every change."""
        with self._lock:
            self._listeners.append(listener)
            current = self._config
        listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _take_config(self) -> Optional[Unsubscribe]:
        unsubscribe, self._unsubscribe_config = self._unsubscribe_config, None
        return unsubscribe

    def _publish(self, config: Optional[SiteConfig]) -> None:
        with self._lock:
            self._config = config
            listeners = list(self._listeners)
        for listener in listeners:
            listener(config)

    def _on_session(self, state: SessionState) -> None:
        tenant_id = resolve_tenant_id(
            self._hostname, state.profile, state.is_loading, self._platform_domains
        )
        if tenant_id is None:
            return

        with self._lock:
            if not self._active or tenant_id == self._tenant_id:
                return
            logger.info("Switching site config to tenant %s", tenant_id)
            stale = self._take_config()
            self._tenant_id = tenant_id
            self._generation += 1
            generation = self._generation

        if stale is not None:
            stale()
        self._publish(None)

        def on_change(config: SiteConfig) -> None:
            if generation != self._generation:
                return
            self._publish(config)

        unsubscribe = self._resolver.subscribe(tenant_id, on_change)
        with self._lock:
            if generation == self._generation:
                self._unsubscribe_config = unsubscribe
                return
        # Superseded while subscribing.
        unsubscribe()
