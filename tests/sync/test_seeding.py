"""Tests for first-contact seeding, including concurrent clients."""

from __future__ import annotations

import asyncio
import logging

import pytest

from team_hub.sync.errors import StoreError
from team_hub.sync.roster import RosterSync
from team_hub.sync.seeding import SeedingCoordinator
from team_hub.sync.state import ViewState


def _coordinator(store, paths):
    return SeedingCoordinator(store, paths, RosterSync(store, paths, ViewState()))


async def _player_ids(store, paths):
    return sorted(doc.id for doc in await store.list_documents(paths.players_collection))


class TestEmptyDeployment:
    @pytest.mark.asyncio
    async def test_first_client_seeds_everything(self, store, paths):
        outcome = await _coordinator(store, paths).ensure_seeded("alice")

        assert outcome.profile_created is True
        assert outcome.settings_created is True
        assert outcome.examples_created == 3
        assert outcome.error is None

        settings = await store.get(paths.settings_document)
        assert settings["admin_user_ids"] == ["alice"]
        assert await _player_ids(store, paths) == ["mock-0", "mock-1", "mock-2", "user-alice"]

    @pytest.mark.asyncio
    async def test_later_client_only_creates_profile(self, store, paths):
        await _coordinator(store, paths).ensure_seeded("alice")

        outcome = await _coordinator(store, paths).ensure_seeded("bob")

        assert outcome.profile_created is True
        assert outcome.settings_created is False
        assert outcome.examples_created == 0
        assert (await store.get(paths.settings_document))["admin_user_ids"] == ["alice"]
        assert "user-bob" in await _player_ids(store, paths)

    @pytest.mark.asyncio
    async def test_returning_client_writes_nothing(self, store, paths):
        coordinator = _coordinator(store, paths)
        await coordinator.ensure_seeded("alice")
        writes = len(store.writes)

        outcome = await coordinator.ensure_seeded("alice")

        assert outcome.profile_created is False
        assert len(store.writes) == writes


class TestConcurrentSeeding:
    @pytest.mark.asyncio
    async def test_two_clients_on_empty_store(self, store, paths):
        outcomes = await asyncio.gather(
            _coordinator(store, paths).ensure_seeded("alice"),
            _coordinator(store, paths).ensure_seeded("bob"),
        )

        assert all(outcome.error is None for outcome in outcomes)
        assert sum(outcome.settings_created for outcome in outcomes) == 1

        admins = (await store.get(paths.settings_document))["admin_user_ids"]
        assert len(admins) == 1
        assert admins[0] in {"alice", "bob"}

        ids = await _player_ids(store, paths)
        assert ids == ["mock-0", "mock-1", "mock-2", "user-alice", "user-bob"]

    @pytest.mark.asyncio
    async def test_two_clients_without_conditional_create(self, plain_store, paths):
        outcomes = await asyncio.gather(
            _coordinator(plain_store, paths).ensure_seeded("alice"),
            _coordinator(plain_store, paths).ensure_seeded("bob"),
        )

        assert all(outcome.error is None for outcome in outcomes)
        admins = (await plain_store.get(paths.settings_document))["admin_user_ids"]
        assert len(admins) == 1
        assert admins[0] in {"alice", "bob"}

        docs = await plain_store.list_documents(paths.players_collection)
        assert sorted(d.id for d in docs if d.id.startswith("mock-")) == ["mock-0", "mock-1", "mock-2"]
        assert sorted(d.data["userId"] for d in docs if not d.id.startswith("mock-")) == ["alice", "bob"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self, store, paths, caplog):
        store.write_error = StoreError("permission denied")

        with caplog.at_level(logging.ERROR):
            outcome = await _coordinator(store, paths).ensure_seeded("alice")

        assert outcome.error is not None
        assert "permission denied" in outcome.error
        assert "Error ensuring user or seeding data" in caplog.text
        assert await store.get(paths.settings_document) is None
