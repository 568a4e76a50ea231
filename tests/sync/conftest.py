"""Shared fixtures for sync module tests."""

from __future__ import annotations

import asyncio
from typing import Optional
from unittest.mock import MagicMock

import pytest

from team_hub.sync.auth import IdentityBootstrap, IdentityProvider, LocalIdentityProvider
from team_hub.sync.config import HubConfig
from team_hub.sync.models import TeamSettings, initial_settings_for
from team_hub.sync.session import HubSession
from team_hub.sync.state import ViewState
from team_hub.sync.store import HubPaths, MemoryDocumentStore


@pytest.fixture
def store() -> MemoryDocumentStore:
    """In-process store with conditional creates."""
    return MemoryDocumentStore()


@pytest.fixture
def plain_store() -> MemoryDocumentStore:
    """In-process store without conditional creates."""
    return MemoryDocumentStore(conditional_create=False)


@pytest.fixture
def paths() -> HubPaths:
    return HubPaths("test-app")


@pytest.fixture
def view() -> ViewState:
    return ViewState()


@pytest.fixture
def mock_config() -> MagicMock:
    """Mock HubConfig that returns a test server URL."""
    config = MagicMock(spec=HubConfig)
    config.get_server_url.return_value = "https://test.example.com"
    config.get_app_id.return_value = "test-app"
    config.get_bootstrap_token.return_value = None
    config.get_identity_timeout.return_value = 1.0
    return config


@pytest.fixture
def flush():
    """Let scheduled subscription deliveries run."""

    async def _flush(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _flush


@pytest.fixture
def make_session(store, paths):
    """Build a HubSession against the shared store."""

    def _make(
        uid: Optional[str] = None,
        provider: Optional[IdentityProvider] = None,
        timeout: float = 1.0,
    ) -> HubSession:
        provider = provider or LocalIdentityProvider(uid=uid)
        bootstrap = IdentityBootstrap(provider=provider, timeout=timeout)
        return HubSession(store=store, bootstrap=bootstrap, paths=paths)

    return _make


@pytest.fixture
def seed_settings(store, paths, view):
    """Write seed settings with one sole admin and mirror them into the view."""

    async def _seed(admin: str) -> TeamSettings:
        settings = initial_settings_for(admin)
        await store.set(paths.settings_document, settings.to_dict())
        view.replace_settings(settings)
        return settings

    return _seed
