"""Document store contract and the in-process implementation.

Merge contract every adapter honours:

- ``set(path, data)`` replaces the whole document.
- ``set(path, data, merge=True)`` and ``update(path, fields)`` merge at the
  field level; ``ArrayUnion`` / ``ArrayRemove`` values are applied by the
  store against its current copy, so concurrent admin-set edits compose.
- ``create_if_absent`` is the only conditional primitive. There are no
  versions or preconditions beyond it; concurrent writers to the same
  document get last-write-wins per field.

Subscriptions deliver the full current result on every change, never a diff.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

import ulid

from .errors import DocumentMissing

logger = logging.getLogger(__name__)

SETTINGS_DOC_ID = "hub_data"

ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class HubPaths:
    """Collection and document paths, namespaced under the deployment id."""

    app_id: str

    @property
    def root(self) -> str:
        return f"artifacts/{self.app_id}/public/data"

    @property
    def players_collection(self) -> str:
        return f"{self.root}/players"

    @property
    def settings_collection(self) -> str:
        return f"{self.root}/team_settings"

    @property
    def settings_document(self) -> str:
        return f"{self.settings_collection}/{SETTINGS_DOC_ID}"

    def player_document(self, profile_id: str) -> str:
        return f"{self.players_collection}/{profile_id}"


def split_path(path: str) -> tuple[str, str]:
    """Split ``collection/.../doc_id`` into ``(collection, doc_id)``."""
    collection, sep, doc_id = path.rpartition("/")
    if not sep or not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def generate_document_id() -> str:
    return str(ulid.ULID())


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class ArrayUnion:
    """Add each value to an array field unless already present."""

    values: tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    """Remove every occurrence of each value from an array field."""

    values: tuple[Any, ...]


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(tuple(values))


def array_remove(*values: Any) -> ArrayRemove:
    return ArrayRemove(tuple(values))


def apply_fields(current: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Field-level merge of ``fields`` into a copy of ``current``."""
    merged = dict(current)
    for key, value in fields.items():
        existing = merged.get(key)
        existing_list = list(existing) if isinstance(existing, list) else []
        if isinstance(value, ArrayUnion):
            for item in value.values:
                if item not in existing_list:
                    existing_list.append(item)
            merged[key] = existing_list
        elif isinstance(value, ArrayRemove):
            merged[key] = [item for item in existing_list if item not in value.values]
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def strip_transforms(data: dict[str, Any]) -> dict[str, Any]:
    """Resolve transforms against an empty document (for creates and replaces)."""
    return apply_fields({}, data)


class Subscription:
    """Handle for a live subscription. ``cancel()`` is idempotent."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()


class DocumentStore(ABC):
    """Abstract remote document store with push-based change notification."""

    #: Whether ``create_if_absent`` is atomic against concurrent writers.
    supports_conditional_create: bool = True

    @abstractmethod
    async def get(self, path: str) -> Optional[dict[str, Any]]:
        """Point read. Returns ``None`` when the document does not exist."""

    @abstractmethod
    async def list_documents(self, collection: str) -> list[DocumentSnapshot]:
        """Every document currently in ``collection``."""

    @abstractmethod
    async def query(self, collection: str, field: str, value: Any) -> list[DocumentSnapshot]:
        """Documents in ``collection`` whose ``field`` equals ``value``."""

    @abstractmethod
    async def create(
        self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        """Create (or overwrite) a document; returns its id."""

    @abstractmethod
    async def create_if_absent(self, path: str, data: dict[str, Any]) -> bool:
        """Create ``path`` only if it does not exist. True if this call created it."""

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Replace the document, or field-merge into it when ``merge`` is set."""

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Partial update of an existing document; raises ``DocumentMissing``."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    @abstractmethod
    def subscribe_collection(
        self,
        collection: str,
        on_next: Callable[[list[DocumentSnapshot]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Deliver the full collection now and after every change."""

    @abstractmethod
    def subscribe_document(
        self,
        path: str,
        on_next: Callable[[Optional[dict[str, Any]]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Deliver the document (or ``None``) now and after every change."""


@dataclass
class _Listener:
    on_next: Callable[[Any], None]
    on_error: Optional[ErrorCallback]
    subscription: Subscription


@dataclass(frozen=True)
class WriteRecord:
    op: str
    path: str
    data: dict[str, Any]


class MemoryDocumentStore(DocumentStore):
    """In-process document store.

    Every operation yields to the event loop before touching data, so
    concurrent sessions interleave the way they would against a remote
    store. Notifications are scheduled with ``loop.call_soon`` and arrive
    in write order per subscription.

    ``writes`` records every mutation for inspection. Setting
    ``write_error`` makes subsequent mutations raise it; ``emit_error``
    pushes an error to the listeners of a path.
    """

    def __init__(self, conditional_create: bool = True) -> None:
        self.supports_conditional_create = conditional_create
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._collection_listeners: dict[str, list[_Listener]] = {}
        self._document_listeners: dict[str, list[_Listener]] = {}
        self.writes: list[WriteRecord] = []
        self.write_error: Optional[Exception] = None

    # ── Reads ─────────────────────────────────────────────────────

    async def get(self, path: str) -> Optional[dict[str, Any]]:
        await asyncio.sleep(0)
        return self._read(path)

    async def list_documents(self, collection: str) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return self._snapshot(collection)

    async def query(self, collection: str, field: str, value: Any) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return [doc for doc in self._snapshot(collection) if doc.data.get(field) == value]

    # ── Writes ────────────────────────────────────────────────────

    async def create(
        self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        await asyncio.sleep(0)
        doc_id = doc_id or generate_document_id()
        path = f"{collection}/{doc_id}"
        self._record("create", path, data)
        self._collections.setdefault(collection, {})[doc_id] = strip_transforms(data)
        self._notify(path)
        return doc_id

    async def create_if_absent(self, path: str, data: dict[str, Any]) -> bool:
        await asyncio.sleep(0)
        if self.supports_conditional_create and self._read(path) is not None:
            return False
        self._record("create_if_absent", path, data)
        collection, doc_id = split_path(path)
        self._collections.setdefault(collection, {})[doc_id] = strip_transforms(data)
        self._notify(path)
        return True

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await asyncio.sleep(0)
        self._record("set", path, data)
        collection, doc_id = split_path(path)
        docs = self._collections.setdefault(collection, {})
        current = docs.get(doc_id) if merge else None
        docs[doc_id] = apply_fields(current or {}, data)
        self._notify(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        collection, doc_id = split_path(path)
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentMissing(f"No document at {path}")
        self._record("update", path, fields)
        docs[doc_id] = apply_fields(docs[doc_id], fields)
        self._notify(path)

    async def delete(self, path: str) -> None:
        await asyncio.sleep(0)
        collection, doc_id = split_path(path)
        self._record("delete", path, {})
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            self._notify(path)

    # ── Subscriptions ─────────────────────────────────────────────

    def subscribe_collection(
        self,
        collection: str,
        on_next: Callable[[list[DocumentSnapshot]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self._add_listener(self._collection_listeners, collection, on_next, on_error)
        self._schedule(listener, self._snapshot(collection))
        return listener.subscription

    def subscribe_document(
        self,
        path: str,
        on_next: Callable[[Optional[dict[str, Any]]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        split_path(path)
        listener = self._add_listener(self._document_listeners, path, on_next, on_error)
        self._schedule(listener, self._read(path))
        return listener.subscription

    def listener_count(self) -> int:
        """Number of live listeners across all paths."""
        return sum(len(v) for v in self._collection_listeners.values()) + sum(
            len(v) for v in self._document_listeners.values()
        )

    def emit_error(self, path: str, error: Exception) -> None:
        """Deliver ``error`` to every listener of a collection or document path."""
        loop = asyncio.get_running_loop()
        listeners = list(self._collection_listeners.get(path, [])) + list(
            self._document_listeners.get(path, [])
        )
        for listener in listeners:
            loop.call_soon(self._deliver_error, listener, error)

    # ── Internal ──────────────────────────────────────────────────

    def _record(self, op: str, path: str, data: dict[str, Any]) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(WriteRecord(op=op, path=path, data=dict(data)))

    def _read(self, path: str) -> Optional[dict[str, Any]]:
        collection, doc_id = split_path(path)
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def _snapshot(self, collection: str) -> list[DocumentSnapshot]:
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

    def _add_listener(
        self,
        registry: dict[str, list[_Listener]],
        key: str,
        on_next: Callable[[Any], None],
        on_error: Optional[ErrorCallback],
    ) -> _Listener:
        listener: _Listener

        def _remove() -> None:
            listeners = registry.get(key, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                registry.pop(key, None)

        listener = _Listener(on_next=on_next, on_error=on_error, subscription=Subscription(_remove))
        registry.setdefault(key, []).append(listener)
        return listener

    def _notify(self, path: str) -> None:
        collection, _ = split_path(path)
        for listener in list(self._collection_listeners.get(collection, [])):
            self._schedule(listener, self._snapshot(collection))
        for listener in list(self._document_listeners.get(path, [])):
            self._schedule(listener, self._read(path))

    def _schedule(self, listener: _Listener, payload: Any) -> None:
        asyncio.get_running_loop().call_soon(self._deliver, listener, payload)

    @staticmethod
    def _deliver(listener: _Listener, payload: Any) -> None:
        if not listener.subscription.active:
            return
        try:
            listener.on_next(payload)
        except Exception:
            logger.exception("Subscription callback failed")

    @staticmethod
    def _deliver_error(listener: _Listener, error: Exception) -> None:
        if not listener.subscription.active or listener.on_error is None:
            return
        listener.on_error(error)
