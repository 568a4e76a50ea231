"""Hub configuration management"""
import os
from pathlib import Path
from typing import Any, Optional

import toml  # type: ignore[import-untyped]

DEFAULT_APP_ID = "default-app-id"
DEFAULT_SERVER_URL = "https://team-hub.example.com"
DEFAULT_IDENTITY_TIMEOUT = 10.0

APP_ID_ENV_VAR = "TEAM_HUB_APP_ID"
SERVER_URL_ENV_VAR = "TEAM_HUB_SERVER_URL"
AUTH_TOKEN_ENV_VAR = "TEAM_HUB_AUTH_TOKEN"
IDENTITY_TIMEOUT_ENV_VAR = "TEAM_HUB_IDENTITY_TIMEOUT"


def team_hub_dir() -> Path:
    """Return ~/.team-hub for the current HOME."""
    return Path.home() / ".team-hub"


class HubConfig:
    """Manage hub configuration.

    Values come from ``~/.team-hub/config.toml`` (``[hub]`` table) and are
    overridden by ``TEAM_HUB_*`` environment variables. The bootstrap auth
    token is only ever read from the environment.
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = config_dir or team_hub_dir()
        self.config_file = self.config_dir / "config.toml"

    def _hub_section(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            config: dict[str, Any] = toml.load(self.config_file)
        except (toml.TomlDecodeError, OSError):
            return {}
        section = config.get("hub")
        return section if isinstance(section, dict) else {}

    def _get_str(self, key: str, env_var: str, default: str) -> str:
        env_value = os.environ.get(env_var, "").strip()
        if env_value:
            return env_value
        value = self._hub_section().get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    def get_app_id(self) -> str:
        """Get the deployment identifier that namespaces every document path"""
        return self._get_str("app_id", APP_ID_ENV_VAR, DEFAULT_APP_ID)

    def get_server_url(self) -> str:
        """Get server URL from config"""
        return self._get_str("server_url", SERVER_URL_ENV_VAR, DEFAULT_SERVER_URL).rstrip("/")

    def get_bootstrap_token(self) -> Optional[str]:
        """Bootstrap credential for token-based sign-in, if one is supplied"""
        return os.environ.get(AUTH_TOKEN_ENV_VAR, "").strip() or None

    def get_identity_timeout(self) -> float:
        """Seconds to wait for the identity provider before degrading"""
        raw: Any = os.environ.get(IDENTITY_TIMEOUT_ENV_VAR) or self._hub_section().get(
            "identity_timeout_seconds"
        )
        if raw is None:
            return DEFAULT_IDENTITY_TIMEOUT
        try:
            timeout = float(raw)
        except (TypeError, ValueError):
            return DEFAULT_IDENTITY_TIMEOUT
        return timeout if timeout > 0 else DEFAULT_IDENTITY_TIMEOUT

    def _write(self, key: str, value: Any) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)

        config: dict[str, Any] = {}
        if self.config_file.exists():
            config = toml.load(self.config_file)

        hub_section = config.get("hub")
        if not isinstance(hub_section, dict):
            hub_section = {}
            config["hub"] = hub_section

        hub_section[key] = value

        with open(self.config_file, "w", encoding="utf-8") as f:
            toml.dump(config, f)

    def set_server_url(self, url: str) -> None:
        """Set server URL in config"""
        self._write("server_url", url)

    def set_app_id(self, app_id: str) -> None:
        """Set deployment identifier in config"""
        self._write("app_id", app_id)
