"""Tests for HubConfig."""

from __future__ import annotations

import pytest
import toml

from team_hub.sync.config import (
    APP_ID_ENV_VAR,
    AUTH_TOKEN_ENV_VAR,
    DEFAULT_APP_ID,
    DEFAULT_IDENTITY_TIMEOUT,
    DEFAULT_SERVER_URL,
    IDENTITY_TIMEOUT_ENV_VAR,
    SERVER_URL_ENV_VAR,
    HubConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (APP_ID_ENV_VAR, SERVER_URL_ENV_VAR, AUTH_TOKEN_ENV_VAR, IDENTITY_TIMEOUT_ENV_VAR):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    return HubConfig(config_dir=tmp_path / ".team-hub")


def _write(config, hub):
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.config_file.write_text(toml.dumps({"hub": hub}), encoding="utf-8")


def test_defaults_without_file(config):
    assert config.get_app_id() == DEFAULT_APP_ID
    assert config.get_server_url() == DEFAULT_SERVER_URL
    assert config.get_identity_timeout() == DEFAULT_IDENTITY_TIMEOUT
    assert config.get_bootstrap_token() is None


def test_values_from_file(config):
    _write(config, {"app_id": "team-7", "server_url": "https://hub.local/", "identity_timeout_seconds": 3})

    assert config.get_app_id() == "team-7"
    assert config.get_server_url() == "https://hub.local"
    assert config.get_identity_timeout() == 3.0


def test_environment_overrides_file(config, monkeypatch):
    _write(config, {"app_id": "team-7", "server_url": "https://hub.local"})
    monkeypatch.setenv(APP_ID_ENV_VAR, "team-env")
    monkeypatch.setenv(SERVER_URL_ENV_VAR, "https://env.example.com")
    monkeypatch.setenv(IDENTITY_TIMEOUT_ENV_VAR, "2.5")

    assert config.get_app_id() == "team-env"
    assert config.get_server_url() == "https://env.example.com"
    assert config.get_identity_timeout() == 2.5


def test_bootstrap_token_only_from_environment(config, monkeypatch):
    _write(config, {"auth_token": "from-file"})
    assert config.get_bootstrap_token() is None

    monkeypatch.setenv(AUTH_TOKEN_ENV_VAR, " tok ")
    assert config.get_bootstrap_token() == "tok"


@pytest.mark.parametrize("raw", ["abc", "0", "-4"])
def test_invalid_timeout_falls_back_to_default(config, monkeypatch, raw):
    monkeypatch.setenv(IDENTITY_TIMEOUT_ENV_VAR, raw)
    assert config.get_identity_timeout() == DEFAULT_IDENTITY_TIMEOUT


def test_malformed_file_is_ignored(config):
    config.config_dir.mkdir(parents=True)
    config.config_file.write_text("this is not toml\n", encoding="utf-8")
    assert config.get_app_id() == DEFAULT_APP_ID


def test_setters_persist_and_keep_other_keys(config):
    _write(config, {"identity_timeout_seconds": 4})

    config.set_server_url("https://new.example.com")
    config.set_app_id("team-9")

    stored = toml.load(config.config_file)
    assert stored["hub"] == {
        "identity_timeout_seconds": 4,
        "server_url": "https://new.example.com",
        "app_id": "team-9",
    }
    assert HubConfig(config_dir=config.config_dir).get_app_id() == "team-9"
