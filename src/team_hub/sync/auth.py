"""Identity bootstrap and identity providers for the team hub."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx
import toml
from filelock import FileLock, Timeout
from rich.console import Console

from .config import DEFAULT_IDENTITY_TIMEOUT, HubConfig, team_hub_dir
from .errors import HubError, IdentityUnavailable

logger = logging.getLogger(__name__)

# Identity used when no provider session can be established.
DEGRADED_IDENTITY = "mock-user"
# Identity used when a session exists but the provider reports no uid.
ANONYMOUS_IDENTITY = "anonymous"

StateListener = Callable[[Optional[str]], None]


class CredentialStore:
    """Manages storage of the provider session in TOML format."""

    def __init__(self, credentials_path: Optional[Path] = None):
        self.credentials_path = credentials_path or team_hub_dir() / "credentials"
        self.lock_path = self.credentials_path.with_suffix(".lock")

    def _ensure_directory(self):
        self.credentials_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    def _acquire_lock(self) -> FileLock:
        """Create a file lock with a timeout."""
        return FileLock(self.lock_path, timeout=10)

    def load(self) -> Optional[dict]:
        """Load credentials from TOML file. Returns None if not exists or invalid."""
        if not self.credentials_path.exists():
            return None

        try:
            with self._acquire_lock():
                with open(self.credentials_path, "r") as handle:
                    return toml.load(handle)
        except (toml.TomlDecodeError, OSError, Timeout):
            return None

    def save(self, uid: str, session_token: str, provider: str, server_url: str):
        """Save the session to TOML file with 600 permissions."""
        self._ensure_directory()

        data = {
            "session": {
                "uid": uid,
                "token": session_token,
                "provider": provider,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            "server": {
                "url": server_url,
            },
        }

        try:
            with self._acquire_lock():
                with open(self.credentials_path, "w") as handle:
                    toml.dump(data, handle)
                if os.name != "nt":
                    os.chmod(self.credentials_path, 0o600)
        except Timeout as exc:
            raise RuntimeError(
                "Cannot acquire lock on credentials file. Another process may be using it."
            ) from exc

    def clear(self):
        """Delete the credentials file."""
        if not self.credentials_path.exists():
            return
        try:
            with self._acquire_lock():
                if self.credentials_path.exists():
                    self.credentials_path.unlink()
        except Timeout as exc:
            raise RuntimeError(
                "Cannot acquire lock on credentials file. Another process may be using it."
            ) from exc

    def _session_value(self, key: str) -> Optional[str]:
        data = self.load()
        if not data or not isinstance(data.get("session"), dict):
            return None
        value = data["session"].get(key)
        return str(value) if value else None

    def get_uid(self) -> Optional[str]:
        return self._session_value("uid")

    def get_session_token(self) -> Optional[str]:
        return self._session_value("token")

    def get_provider(self) -> Optional[str]:
        return self._session_value("provider")

    def get_server_url(self) -> Optional[str]:
        """Get stored server URL."""
        data = self.load()
        if not data or "server" not in data:
            return None
        return data["server"].get("url")


class AuthenticationError(HubError):
    """Raised when the identity provider rejects a session request."""


class IdentityProvider(ABC):
    """Abstract identity provider: issues a stable uid per session."""

    def __init__(self) -> None:
        self._listeners: list[StateListener] = []

    @abstractmethod
    async def current_user(self) -> Optional[str]:
        """uid of the current session, or None when signed out."""

    @abstractmethod
    async def sign_in_anonymously(self) -> Optional[str]:
        """Create an anonymous session and return its uid."""

    @abstractmethod
    async def sign_in_with_token(self, token: str) -> Optional[str]:
        """Create a session from a bootstrap credential and return its uid."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""

    def on_state_changed(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with the new uid (or None) on every session change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, uid: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(uid)
            except Exception:
                logger.exception("Identity state listener failed")


class HttpIdentityProvider(IdentityProvider):
    """Identity provider backed by the hub server's session API."""

    def __init__(
        self,
        config: Optional[HubConfig] = None,
        credential_store: Optional[CredentialStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.config = config or HubConfig()
        self.credential_store = credential_store or CredentialStore()
        self._http_client = http_client
        self._session_token: Optional[str] = None

    def _validate_server_url(self, url: str) -> str:
        parsed = urlparse(url)
        if parsed.scheme != "https":
            raise AuthenticationError(
                "Sessions require an HTTPS server URL. Please update the hub server URL to use https://"
            )
        return url

    @property
    def server_url(self) -> str:
        """Get server URL from config."""
        return self._validate_server_url(self.config.get_server_url())

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def aclose(self):
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def session_token(self) -> Optional[str]:
        return self.credential_store.get_session_token() or self._session_token

    async def current_user(self) -> Optional[str]:
        stored_server = self.credential_store.get_server_url()
        if stored_server and stored_server.rstrip("/") != self.config.get_server_url():
            # Session belongs to another deployment.
            return None
        return self.credential_store.get_uid()

    async def sign_in_anonymously(self) -> Optional[str]:
        return await self._open_session("anonymous", "/api/v1/sessions/anonymous/", {})

    async def sign_in_with_token(self, token: str) -> Optional[str]:
        return await self._open_session("token", "/api/v1/sessions/token/", {"token": token})

    async def sign_out(self) -> None:
        token = self.session_token
        if token:
            try:
                await self._get_http_client().post(
                    f"{self.server_url}/api/v1/sessions/revoke/",
                    headers={"Authorization": f"Bearer {token}"},
                )
            except (httpx.RequestError, AuthenticationError) as exc:
                logger.warning("Session revoke failed; clearing local session anyway: %s", exc)
        self._session_token = None
        self.credential_store.clear()
        self._notify(None)

    async def _open_session(self, provider: str, endpoint: str, payload: dict) -> Optional[str]:
        client = self._get_http_client()
        url = f"{self.server_url}{endpoint}"

        try:
            response = await client.post(url, json=payload)
        except httpx.RequestError as exc:
            raise IdentityUnavailable(f"Cannot reach server: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthenticationError("Session request rejected")
        if response.status_code not in (200, 201):
            raise AuthenticationError(f"Server error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthenticationError("Invalid server response") from exc

        try:
            uid = data["uid"]
            session_token = data["session_token"]
        except (KeyError, TypeError) as exc:
            raise AuthenticationError("Invalid server response") from exc

        if uid:
            self._session_token = str(session_token)
            try:
                self.credential_store.save(
                    uid=str(uid),
                    session_token=str(session_token),
                    provider=provider,
                    server_url=self.server_url,
                )
            except (OSError, RuntimeError) as exc:
                logger.warning("Could not persist session; it will last for this run only: %s", exc)
        self._notify(str(uid) if uid else None)
        return str(uid) if uid else None


class LocalIdentityProvider(IdentityProvider):
    """In-process identity provider.

    Anonymous sessions get a random uid; token sessions derive the uid from
    the token so the same credential always maps to the same identity.
    ``unavailable`` simulates an unreachable provider.
    """

    def __init__(self, uid: Optional[str] = None, unavailable: bool = False):
        super().__init__()
        self._uid = uid
        self.unavailable = unavailable
        self.rejected_tokens: set[str] = set()

    def _check_available(self) -> None:
        if self.unavailable:
            raise IdentityUnavailable("Identity provider unavailable")

    async def current_user(self) -> Optional[str]:
        await asyncio.sleep(0)
        self._check_available()
        return self._uid

    async def sign_in_anonymously(self) -> Optional[str]:
        await asyncio.sleep(0)
        self._check_available()
        self._uid = uuid.uuid4().hex
        self._notify(self._uid)
        return self._uid

    async def sign_in_with_token(self, token: str) -> Optional[str]:
        await asyncio.sleep(0)
        self._check_available()
        if token in self.rejected_tokens:
            raise AuthenticationError("Session request rejected")
        self._uid = hashlib.sha256(token.encode()).hexdigest()[:28]
        self._notify(self._uid)
        return self._uid

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        self._uid = None
        self._notify(None)


@dataclass
class IdentityBootstrap:
    """Establishes exactly one identity per session.

    Never raises: an unreachable or rejecting provider, or one slower than
    ``timeout``, yields ``DEGRADED_IDENTITY`` so the session still reaches
    its ready state.
    """

    provider: IdentityProvider
    bootstrap_token: Optional[str] = None
    timeout: float = DEFAULT_IDENTITY_TIMEOUT
    _identity: Optional[str] = field(default=None, init=False, repr=False)
    _degraded: bool = field(default=False, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def degraded(self) -> bool:
        return self._degraded

    async def acquire_identity(self) -> str:
        """Return the session identity, creating a provider session if needed."""
        async with self._lock:
            if self._identity is not None:
                return self._identity
            try:
                identity = await asyncio.wait_for(self._establish(), timeout=self.timeout)
                self._degraded = False
            except asyncio.TimeoutError:
                identity = self._degrade(IdentityUnavailable("Identity provider timed out"))
            except (IdentityUnavailable, AuthenticationError, httpx.HTTPError) as exc:
                identity = self._degrade(exc)
            self._identity = identity
            logger.debug("Session identity established: %s", identity)
            return identity

    def reset(self) -> None:
        """Forget the identity so the next acquire consults the provider again."""
        self._identity = None
        self._degraded = False

    async def _establish(self) -> str:
        uid = await self.provider.current_user()
        if uid is None:
            uid = await self._sign_in()
        return uid or ANONYMOUS_IDENTITY

    async def _sign_in(self) -> Optional[str]:
        if self.bootstrap_token:
            try:
                return await self.provider.sign_in_with_token(self.bootstrap_token)
            except AuthenticationError as exc:
                logger.warning(f"Bootstrap credential rejected, falling back to anonymous: {exc}")
        return await self.provider.sign_in_anonymously()

    def _degrade(self, exc: Exception) -> str:
        self._degraded = True
        logger.warning(f"Identity provider unavailable; using placeholder identity: {exc}")
        _warn_degraded()
        return DEGRADED_IDENTITY


def _warn_degraded() -> None:
    """Tell the user the session runs on a placeholder identity."""
    console = Console(stderr=True)
    console.print(
        f"[yellow]Warning: identity provider unavailable; continuing as '{DEGRADED_IDENTITY}'[/yellow]"
    )
