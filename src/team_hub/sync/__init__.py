"""
Sync core for the team hub.

Keeps a shared roster and dashboard settings consistent across clients via:
- Identity bootstrap with a degraded placeholder fallback
- Live roster and settings subscriptions feeding a local view state
- Race-tolerant first-contact seeding
- Admin-set mutations with an advisory capability check
- Optimistic profile edits

Heavy dependencies (httpx, websockets) are lazily imported via __getattr__
so that lightweight imports like ``from team_hub.sync.models import ...``
do not pull in network packages.
"""

from .errors import (
    HubError,
    IdentityUnavailable,
    NotAuthorized,
    NotFound,
    StoreError,
    SubscriptionError,
    ValidationRejected,
    WriteFailed,
)
from .models import PlayerProfile, ProfileFields, TeamSettings
from .state import ABSENT, HubView, ViewState
from .store import DocumentStore, HubPaths, MemoryDocumentStore, Subscription

# Lazy-loaded names (require 'httpx' or 'websockets' at runtime)
_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "AuthenticationError": (".auth", "AuthenticationError"),
    "CredentialStore": (".auth", "CredentialStore"),
    "HttpIdentityProvider": (".auth", "HttpIdentityProvider"),
    "IdentityBootstrap": (".auth", "IdentityBootstrap"),
    "LocalIdentityProvider": (".auth", "LocalIdentityProvider"),
    "WebSocketDocumentStore": (".client", "WebSocketDocumentStore"),
    "HubConfig": (".config", "HubConfig"),
    "HubSession": (".session", "HubSession"),
    "build_session": (".session", "build_session"),
    "open_session": (".session", "open_session"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        import importlib

        mod = importlib.import_module(module_path, __name__)
        return getattr(mod, attr)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ABSENT",
    "AuthenticationError",
    "CredentialStore",
    "DocumentStore",
    "HttpIdentityProvider",
    "HubConfig",
    "HubError",
    "HubPaths",
    "HubSession",
    "HubView",
    "IdentityBootstrap",
    "IdentityUnavailable",
    "LocalIdentityProvider",
    "MemoryDocumentStore",
    "NotAuthorized",
    "NotFound",
    "PlayerProfile",
    "ProfileFields",
    "StoreError",
    "Subscription",
    "SubscriptionError",
    "TeamSettings",
    "ValidationRejected",
    "ViewState",
    "WebSocketDocumentStore",
    "WriteFailed",
    "build_session",
    "open_session",
]
