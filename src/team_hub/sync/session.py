"""HubSession: one client's lifecycle against the shared team hub.

Order of operations on ``start()``:

1. Identity bootstrap (never raises; may degrade to a placeholder).
2. Seeding coordinator (skipped for a degraded identity).
3. Roster and settings subscriptions, feeding the session's ``ViewState``.

``stop()`` cancels both subscriptions; an identity change from the provider
tears the session down and, when a new identity is present, starts it again
against a fresh view.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Union

from .auth import HttpIdentityProvider, IdentityBootstrap, IdentityProvider
from .client import WebSocketDocumentStore
from .config import HubConfig
from .models import PlayerProfile, ProfileFields
from .profile import ProfileGateway, ProfileUpdateResult
from .roster import RosterCallback, RosterSync
from .seeding import SeedingCoordinator, SeedOutcome
from .settings import SettingsCallback, SettingsSync
from .state import HubView, ViewState
from .store import DocumentStore, HubPaths, Subscription

logger = logging.getLogger(__name__)


@dataclass
class HubSession:
    """Wires identity, seeding, subscriptions and mutations for one client."""

    store: DocumentStore
    bootstrap: IdentityBootstrap
    paths: HubPaths
    view: ViewState = field(default_factory=ViewState)
    identity: Optional[str] = None
    seed_outcome: Optional[SeedOutcome] = None
    started: bool = False
    on_roster: Optional[RosterCallback] = field(default=None, repr=False)
    on_settings: Optional[SettingsCallback] = field(default=None, repr=False)
    _subscriptions: list[Subscription] = field(default_factory=list, init=False, repr=False)
    _cleanups: list[Callable[[], None]] = field(default_factory=list, init=False, repr=False)
    _identity_tasks: set = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self.roster = RosterSync(self.store, self.paths, self.view)
        self.settings = SettingsSync(self.store, self.paths, self.view)
        self.seeding = SeedingCoordinator(self.store, self.paths, self.roster)
        self.profiles = ProfileGateway(self.store, self.paths, self.view)

    @property
    def provider(self) -> IdentityProvider:
        return self.bootstrap.provider

    @property
    def degraded(self) -> bool:
        return self.bootstrap.degraded

    async def start(self) -> str:
        """Bring the session to its ready state (idempotent). Returns the identity."""
        if self.started and self.identity is not None:
            return self.identity

        identity = await self.bootstrap.acquire_identity()
        self.identity = identity
        self.settings.identity = identity

        if self.bootstrap.degraded:
            logger.warning("Skipping seeding for placeholder identity %s", identity)
        else:
            self.seed_outcome = await self.seeding.ensure_seeded(identity)

        self._subscriptions = [
            self.roster.subscribe_roster(self.on_roster),
            self.settings.subscribe_settings(self.on_settings),
        ]
        self._cleanups.append(self.provider.on_state_changed(self._identity_changed))
        if isinstance(self.store, WebSocketDocumentStore):
            self._cleanups.append(self.store.on_reconnect(self.view.reset))

        self.started = True
        logger.debug("HubSession started for %s", identity)
        return identity

    def stop(self) -> None:
        """Cancel subscriptions and listeners. Safe to call multiple times."""
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups = []
        self.started = False
        logger.debug("HubSession stopped")

    async def sign_out(self) -> None:
        """End the provider session and tear this session down."""
        self.stop()
        await self.provider.sign_out()
        self.bootstrap.reset()
        self.identity = None
        self.settings.identity = None
        self.view.reset()

    async def restart(self) -> str:
        """Tear down and start again from a fresh view under the provider's current identity."""
        self.stop()
        self.bootstrap.reset()
        self.view.reset()
        return await self.start()

    def _identity_changed(self, uid: Optional[str]) -> None:
        if not self.started or uid == self.identity:
            return
        logger.info("Identity changed from %s to %s; restarting session", self.identity, uid)
        self.stop()
        self.view.reset()
        self.bootstrap.reset()
        self.identity = None
        self.settings.identity = None
        if uid is not None:
            task = asyncio.ensure_future(self.start())
            self._identity_tasks.add(task)
            task.add_done_callback(self._identity_tasks.discard)

    # ── Reads ─────────────────────────────────────────────────────

    def snapshot(self) -> HubView:
        return self.view.snapshot()

    @property
    def is_admin(self) -> bool:
        return self.view.is_admin(self.identity)

    @property
    def own_profile(self) -> Optional[PlayerProfile]:
        return self.view.profile_for(self.identity) if self.identity else None

    async def wait_until_synced(self, timeout: float = 10.0) -> bool:
        """Wait until both subscriptions have delivered at least once."""
        loaded = asyncio.Event()

        def _check(_: Any = None) -> None:
            if self.view.roster_loaded and self.view.settings_loaded:
                loaded.set()

        remove = self.view.add_listener(_check)
        try:
            _check()
            await asyncio.wait_for(loaded.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            remove()

    # ── Mutations ─────────────────────────────────────────────────

    async def update_profile(
        self, fields: Union[ProfileFields, Mapping[str, Any]]
    ) -> ProfileUpdateResult:
        return await self.profiles.update_own_profile(self.identity or "", fields)

    async def add_admin(self, admin_id: str) -> None:
        await self.settings.add_admin(admin_id)

    async def remove_admin(self, admin_id: str) -> None:
        await self.settings.remove_admin(admin_id)

    async def update_coach_message(self, message: str) -> None:
        await self.settings.update_coach_message(message)


def build_session(
    config: Optional[HubConfig] = None,
    store: Optional[DocumentStore] = None,
    provider: Optional[IdentityProvider] = None,
) -> HubSession:
    """Assemble a session from configuration.

    Defaults to the HTTP identity provider and the WebSocket document store
    pointed at the configured server.
    """
    config = config or HubConfig()
    if provider is None:
        provider = HttpIdentityProvider(config=config)
    if store is None:
        token_provider = None
        if isinstance(provider, HttpIdentityProvider):
            http_provider = provider
            token_provider = lambda: http_provider.session_token  # noqa: E731
        store = WebSocketDocumentStore(
            server_url=config.get_server_url(),
            app_id=config.get_app_id(),
            token_provider=token_provider,
        )
    bootstrap = IdentityBootstrap(
        provider=provider,
        bootstrap_token=config.get_bootstrap_token(),
        timeout=config.get_identity_timeout(),
    )
    return HubSession(store=store, bootstrap=bootstrap, paths=HubPaths(config.get_app_id()))


@contextlib.asynccontextmanager
async def open_session(session: HubSession) -> AsyncIterator[HubSession]:
    """Bootstrap identity, connect the store if needed, start, and always tear down."""
    store = session.store
    try:
        await session.bootstrap.acquire_identity()
        if isinstance(store, WebSocketDocumentStore) and not store.connected:
            await store.connect()
        await session.start()
        yield session
    finally:
        session.stop()
        if isinstance(store, WebSocketDocumentStore):
            await store.close()
        provider = session.provider
        if isinstance(provider, HttpIdentityProvider):
            await provider.aclose()
