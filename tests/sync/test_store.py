"""Tests for the in-process document store and its merge contract."""

from __future__ import annotations

import pytest

from team_hub.sync.errors import DocumentMissing, StoreError
from team_hub.sync.store import (
    HubPaths,
    MemoryDocumentStore,
    Subscription,
    apply_fields,
    array_remove,
    array_union,
    split_path,
)


class TestPaths:
    def test_namespaced_under_app_id(self):
        paths = HubPaths("team-42")

        assert paths.players_collection == "artifacts/team-42/public/data/players"
        assert paths.settings_document == "artifacts/team-42/public/data/team_settings/hub_data"
        assert paths.player_document("p1") == "artifacts/team-42/public/data/players/p1"

    def test_split_path(self):
        assert split_path("a/b/c") == ("a/b", "c")

    @pytest.mark.parametrize("path", ["", "doc", "/doc", "coll/"])
    def test_split_path_rejects_non_document_paths(self, path):
        with pytest.raises(ValueError):
            split_path(path)


class TestApplyFields:
    def test_union_adds_missing_values_once(self):
        merged = apply_fields({"ids": ["a"]}, {"ids": array_union("a", "b")})
        assert merged["ids"] == ["a", "b"]

    def test_remove_drops_every_occurrence(self):
        merged = apply_fields({"ids": ["a", "b", "a"]}, {"ids": array_remove("a")})
        assert merged["ids"] == ["b"]

    def test_transforms_on_missing_field(self):
        assert apply_fields({}, {"ids": array_union("a")}) == {"ids": ["a"]}
        assert apply_fields({}, {"ids": array_remove("a")}) == {"ids": []}

    def test_input_is_not_mutated(self):
        current = {"ids": ["a"], "name": "x"}
        apply_fields(current, {"ids": array_union("b"), "name": "y"})
        assert current == {"ids": ["a"], "name": "x"}


class TestWrites:
    @pytest.mark.asyncio
    async def test_set_replaces_whole_document(self, store):
        await store.set("c/d", {"a": 1, "b": 2})
        await store.set("c/d", {"a": 3})
        assert await store.get("c/d") == {"a": 3}

    @pytest.mark.asyncio
    async def test_set_with_merge_keeps_other_fields(self, store):
        await store.set("c/d", {"a": 1, "b": 2})
        await store.set("c/d", {"a": 3}, merge=True)
        assert await store.get("c/d") == {"a": 3, "b": 2}

    @pytest.mark.asyncio
    async def test_update_missing_document_raises(self, store):
        with pytest.raises(DocumentMissing):
            await store.update("c/missing", {"a": 1})
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_update_applies_array_transforms(self, store):
        await store.set("c/d", {"ids": ["a"]})
        await store.update("c/d", {"ids": array_union("b")})
        await store.update("c/d", {"ids": array_union("b")})
        await store.update("c/d", {"ids": array_remove("zzz")})
        assert (await store.get("c/d"))["ids"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, store):
        doc_id = await store.create("c", {"a": 1})
        assert doc_id
        assert await store.get(f"c/{doc_id}") == {"a": 1}

    @pytest.mark.asyncio
    async def test_create_if_absent_only_once(self, store):
        assert await store.create_if_absent("c/d", {"a": 1}) is True
        assert await store.create_if_absent("c/d", {"a": 2}) is False
        assert await store.get("c/d") == {"a": 1}

    @pytest.mark.asyncio
    async def test_create_if_absent_without_conditional_support_overwrites(self, plain_store):
        assert await plain_store.create_if_absent("c/d", {"a": 1}) is True
        assert await plain_store.create_if_absent("c/d", {"a": 2}) is True
        assert await plain_store.get("c/d") == {"a": 2}

    @pytest.mark.asyncio
    async def test_query_filters_by_field(self, store):
        await store.set("c/1", {"userId": "u1"})
        await store.set("c/2", {"userId": "u2"})

        docs = await store.query("c", "userId", "u2")
        assert [d.id for d in docs] == ["2"]

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store):
        await store.delete("c/missing")
        assert await store.get("c/missing") is None

    @pytest.mark.asyncio
    async def test_write_error_blocks_mutation(self, store):
        store.write_error = StoreError("permission denied")

        with pytest.raises(StoreError):
            await store.set("c/d", {"a": 1})

        store.write_error = None
        assert await store.get("c/d") is None
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, store):
        await store.set("c/d", {"ids": ["a"]})
        data = await store.get("c/d")
        data["ids"].append("b")
        assert await store.get("c/d") == {"ids": ["a"]}


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_collection_delivers_initial_and_full_snapshots(self, store, flush):
        deliveries = []
        store.subscribe_collection("c", lambda docs: deliveries.append(sorted(d.id for d in docs)))
        await flush()

        await store.set("c/1", {"a": 1})
        await store.set("c/2", {"a": 2})
        await flush()

        assert deliveries == [[], ["1"], ["1", "2"]]

    @pytest.mark.asyncio
    async def test_document_delivers_none_when_missing(self, store, flush):
        deliveries = []
        store.subscribe_document("c/d", deliveries.append)
        await flush()
        await store.set("c/d", {"a": 1})
        await flush()

        assert deliveries == [None, {"a": 1}]

    @pytest.mark.asyncio
    async def test_cancel_stops_delivery(self, store, flush):
        deliveries = []
        subscription = store.subscribe_collection("c", deliveries.append)
        await flush()
        subscription.cancel()
        subscription.cancel()
        await store.set("c/1", {"a": 1})
        await flush()

        assert len(deliveries) == 1
        assert store.listener_count() == 0
        assert subscription.active is False

    @pytest.mark.asyncio
    async def test_cancel_before_first_delivery(self, store, flush):
        deliveries = []
        subscription = store.subscribe_document("c/d", deliveries.append)
        subscription.cancel()
        await flush()
        assert deliveries == []

    @pytest.mark.asyncio
    async def test_emit_error_reaches_error_callback(self, store, flush):
        errors = []
        store.subscribe_collection("c", lambda docs: None, errors.append)
        store.emit_error("c", StoreError("stream broke"))
        await flush()

        assert len(errors) == 1
        assert "stream broke" in str(errors[0])

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_other_listeners(self, store, flush):
        seen = []

        def boom(_docs):
            raise RuntimeError("listener bug")

        store.subscribe_collection("c", boom)
        store.subscribe_collection("c", seen.append)
        await flush()
        assert len(seen) == 1


def test_subscription_cancel_runs_callback_once():
    calls = []
    subscription = Subscription(lambda: calls.append(1))
    subscription.cancel()
    subscription.cancel()
    assert calls == [1]


def test_memory_store_reports_conditional_support():
    assert MemoryDocumentStore().supports_conditional_create is True
    assert MemoryDocumentStore(conditional_create=False).supports_conditional_create is False
