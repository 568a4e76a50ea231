"""WebSocket document store adapter with exponential backoff reconnection.

Protocol (JSON text frames):

- client request: ``{"type": "request", "request_id", "op", ...}``
- server reply: ``{"type": "result", "request_id", "ok", "data" | "error"}``
- subscribe / unsubscribe: ``{"type": "subscribe", "subscription_id", "kind",
  "path"}`` and ``{"type": "unsubscribe", "subscription_id"}``
- server push: ``{"type": "snapshot", "subscription_id", "data"}`` and
  ``{"type": "subscription_error", "subscription_id", "error"}``
- heartbeat: server ``ping`` answered with ``pong``

Array transforms travel as ``{"__transform__": "arrayUnion" | "arrayRemove",
"values": [...]}`` and are applied by the server.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

import websockets
from websockets import ConnectionClosed

from .errors import DocumentMissing, StoreError, SubscriptionError
from .store import (
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    Subscription,
    generate_document_id,
)

logger = logging.getLogger(__name__)


class ConnectionStatus:
    """Connection status constants"""
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    OFFLINE = "Offline"


def encode_value(value: Any) -> Any:
    if isinstance(value, ArrayUnion):
        return {"__transform__": "arrayUnion", "values": list(value.values)}
    if isinstance(value, ArrayRemove):
        return {"__transform__": "arrayRemove", "values": list(value.values)}
    return value


def encode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in fields.items()}


def websocket_url(server_url: str) -> str:
    """Map an http(s) server URL onto its ws(s) equivalent."""
    if server_url.startswith("https://"):
        return "wss://" + server_url[len("https://"):]
    if server_url.startswith("http://"):
        return "ws://" + server_url[len("http://"):]
    return server_url


@dataclass
class _RemoteSubscription:
    subscription_id: str
    kind: str
    path: str
    on_next: Callable[[Any], None]
    on_error: Optional[ErrorCallback]
    handle: Subscription


class WebSocketDocumentStore(DocumentStore):
    """
    Document store client for the hub sync protocol.

    Handles:
    - Connection management and bearer-token authentication
    - Request/response correlation
    - Live subscriptions (re-established after reconnect)
    - Heartbeat (pong responses)
    - Automatic reconnection with exponential backoff
    """

    # Reconnection configuration
    MAX_RECONNECT_ATTEMPTS = 10
    BASE_DELAY_SECONDS = 0.5  # 500ms
    MAX_DELAY_SECONDS = 30.0
    JITTER_RANGE = 1.0  # +/- 1 second
    REQUEST_TIMEOUT_SECONDS = 15.0

    def __init__(
        self,
        server_url: str,
        app_id: str,
        token: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        conditional_create: bool = True,
        auto_reconnect: bool = True,
    ):
        """
        Args:
            server_url: Server URL (e.g., https://team-hub.example.com)
            app_id: Deployment identifier sent with the connection
            token: Fixed session token
            token_provider: Called on every connect to obtain a fresh token;
                takes precedence over ``token``
            conditional_create: Whether the server implements
                ``create_if_absent`` atomically
            auto_reconnect: Reconnect in the background when the server
                closes the connection
        """
        self.server_url = server_url.rstrip("/")
        self.app_id = app_id
        self._token = token
        self._token_provider = token_provider
        self.supports_conditional_create = conditional_create
        self.auto_reconnect = auto_reconnect
        self.ws: Optional[websockets.ClientConnection] = None
        self.connected = False
        self.status = ConnectionStatus.OFFLINE
        self.reconnect_attempts = 0
        self._pending: dict[str, asyncio.Future] = {}
        self._subscriptions: dict[str, _RemoteSubscription] = {}
        self._listen_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._closing = False
        self._reconnect_listeners: list[Callable[[], None]] = []

    # ── Connection lifecycle ──────────────────────────────────────

    def _get_token(self) -> Optional[str]:
        if self._token_provider is not None:
            return self._token_provider()
        return self._token

    async def connect(self) -> None:
        """Establish the connection and (re)attach every live subscription."""
        await self._open()
        await self._resubscribe_all()

    async def _open(self) -> None:
        uri = f"{websocket_url(self.server_url)}/ws/v1/documents/?app_id={self.app_id}"
        token = self._get_token()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._closing = False

        try:
            self.ws = await websockets.connect(
                uri,
                additional_headers=headers,
                ping_interval=None,  # We handle heartbeat manually
                ping_timeout=None,
            )
        except websockets.InvalidStatus as e:
            self.connected = False
            self.status = ConnectionStatus.OFFLINE
            raise StoreError(f"Connection failed: HTTP {e.response.status_code}") from e
        except (OSError, websockets.WebSocketException) as e:
            self.connected = False
            self.status = ConnectionStatus.OFFLINE
            raise StoreError(f"Connection failed: {e}") from e

        self.connected = True
        self.status = ConnectionStatus.CONNECTED
        self._listen_task = asyncio.create_task(self._listen())
        logger.info("Connected to document store at %s", self.server_url)

    async def disconnect(self) -> None:
        """Close the connection; live subscriptions stay registered for reconnect."""
        self._closing = True
        if self._listen_task is not None:
            self._listen_task.cancel()
            self._listen_task = None
        if self.ws is not None:
            await self.ws.close()
            self.ws = None
        self._mark_offline()
        self._fail_pending(StoreError("Disconnected"))
        logger.debug("Disconnected from document store")

    async def close(self) -> None:
        """Cancel every subscription and disconnect."""
        for record in list(self._subscriptions.values()):
            record.handle.cancel()
        for task in list(self._background):
            task.cancel()
        await self.disconnect()

    def on_reconnect(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener`` after a reconnect, before subscriptions re-deliver."""
        self._reconnect_listeners.append(listener)

        def _remove() -> None:
            if listener in self._reconnect_listeners:
                self._reconnect_listeners.remove(listener)

        return _remove

    async def reconnect(self) -> bool:
        """
        Reconnect with exponential backoff.

        Formula: delay = min(500ms * 2^attempt, 30s) + jitter

        Returns:
            True if reconnected successfully, False if max attempts reached
        """
        self.status = ConnectionStatus.RECONNECTING

        while self.reconnect_attempts < self.MAX_RECONNECT_ATTEMPTS:
            delay = self.get_reconnect_delay(self.reconnect_attempts)
            # Jitter keeps reconnecting clients from arriving together.
            jitter = random.uniform(-self.JITTER_RANGE, self.JITTER_RANGE)
            delay = max(0, delay + jitter)

            attempt_num = self.reconnect_attempts + 1
            logger.info(f"Reconnecting... ({attempt_num}/{self.MAX_RECONNECT_ATTEMPTS})")

            await asyncio.sleep(delay)

            try:
                await self._open()
            except StoreError:
                self.reconnect_attempts += 1
                continue

            self.reconnect_attempts = 0
            for listener in list(self._reconnect_listeners):
                try:
                    listener()
                except Exception:
                    logger.exception("Reconnect listener failed")
            await self._resubscribe_all()
            return True

        self.status = ConnectionStatus.OFFLINE
        logger.warning("Max reconnection attempts reached; document store offline")
        return False

    def reset_reconnect_attempts(self) -> None:
        """Reset the reconnection attempt counter"""
        self.reconnect_attempts = 0

    def get_reconnect_delay(self, attempt: int) -> float:
        """
        Calculate reconnect delay for a given attempt number.

        Args:
            attempt: The attempt number (0-indexed)

        Returns:
            Delay in seconds (without jitter)
        """
        return min(
            self.BASE_DELAY_SECONDS * (2 ** attempt),
            self.MAX_DELAY_SECONDS
        )

    def get_status(self) -> str:
        """Get current connection status"""
        return self.status

    # ── Document operations ───────────────────────────────────────

    async def get(self, path: str) -> Optional[dict[str, Any]]:
        return await self._request("get", path=path)

    async def list_documents(self, collection: str) -> list[DocumentSnapshot]:
        data = await self._request("list", collection=collection)
        return _decode_snapshots(data)

    async def query(self, collection: str, field: str, value: Any) -> list[DocumentSnapshot]:
        data = await self._request("query", collection=collection, field=field, value=value)
        return _decode_snapshots(data)

    async def create(
        self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        doc_id = doc_id or generate_document_id()
        result = await self._request(
            "create", collection=collection, doc_id=doc_id, data=encode_fields(data)
        )
        if isinstance(result, dict) and result.get("id"):
            return str(result["id"])
        return doc_id

    async def create_if_absent(self, path: str, data: dict[str, Any]) -> bool:
        result = await self._request("create_if_absent", path=path, data=encode_fields(data))
        return bool(isinstance(result, dict) and result.get("created"))

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self._request("set", path=path, data=encode_fields(data), merge=merge)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._request("update", path=path, data=encode_fields(fields))

    async def delete(self, path: str) -> None:
        await self._request("delete", path=path)

    # ── Subscriptions ─────────────────────────────────────────────

    def subscribe_collection(
        self,
        collection: str,
        on_next: Callable[[list[DocumentSnapshot]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self._subscribe("collection", collection, on_next, on_error)

    def subscribe_document(
        self,
        path: str,
        on_next: Callable[[Optional[dict[str, Any]]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self._subscribe("document", path, on_next, on_error)

    def _subscribe(
        self,
        kind: str,
        path: str,
        on_next: Callable[[Any], None],
        on_error: Optional[ErrorCallback],
    ) -> Subscription:
        subscription_id = generate_document_id()
        handle = Subscription(lambda: self._unsubscribe(subscription_id))
        record = _RemoteSubscription(subscription_id, kind, path, on_next, on_error, handle)
        self._subscriptions[subscription_id] = record
        if self.connected:
            self._spawn(self._send_subscribe(record))
        return handle

    def _unsubscribe(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is None:
            return
        if self.connected:
            self._spawn(self._send({"type": "unsubscribe", "subscription_id": subscription_id}))

    async def _send_subscribe(self, record: _RemoteSubscription) -> None:
        try:
            await self._send({
                "type": "subscribe",
                "subscription_id": record.subscription_id,
                "kind": record.kind,
                "path": record.path,
            })
        except StoreError as exc:
            self._deliver_error(record, exc)

    async def _resubscribe_all(self) -> None:
        for record in list(self._subscriptions.values()):
            if record.handle.active:
                await self._send_subscribe(record)

    # ── Internal ──────────────────────────────────────────────────

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send(self, message: dict[str, Any]) -> None:
        if not self.connected or not self.ws:
            raise StoreError("Not connected to document store")
        try:
            await self.ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            self._mark_offline()
            raise StoreError("Connection closed") from exc

    async def _request(self, op: str, **payload: Any) -> Any:
        request_id = generate_document_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({"type": "request", "request_id": request_id, "op": op, **payload})
            return await asyncio.wait_for(future, timeout=self.REQUEST_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as exc:
            raise StoreError(f"Request '{op}' timed out") from exc
        finally:
            self._pending.pop(request_id, None)

    async def _listen(self) -> None:
        """Listen for messages from server"""
        try:
            async for message in self.ws:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning("Ignoring malformed frame from document store")
                    continue
                if not isinstance(data, dict):
                    logger.warning("Ignoring non-object frame from document store")
                    continue
                try:
                    await self._handle_message(data)
                except StoreError as exc:
                    logger.warning("Could not answer document store frame: %s", exc)
        except ConnectionClosed:
            logger.warning("Connection closed by document store")
        finally:
            self._mark_offline()
            self._fail_pending(StoreError("Connection closed"))
            if not self._closing:
                self._spawn(self._drop_connection(self.ws))

    async def _drop_connection(self, stale) -> None:
        """Close a socket whose listener stopped, then reconnect if enabled."""
        if self.ws is stale:
            self.ws = None
        if stale is not None:
            try:
                await stale.close()
            except (OSError, websockets.WebSocketException) as exc:
                logger.debug("Closing stale socket failed: %s", exc)
        if self.auto_reconnect:
            await self.reconnect()

    async def _handle_message(self, data: dict[str, Any]) -> None:
        """Handle incoming message"""
        msg_type = data.get("type")

        if msg_type == "result":
            self._handle_result(data)
        elif msg_type == "snapshot":
            self._handle_snapshot(data)
        elif msg_type == "subscription_error":
            record = self._subscriptions.get(str(data.get("subscription_id")))
            if record is not None:
                self._deliver_error(record, SubscriptionError(_error_message(data)))
        elif msg_type == "ping":
            await self._send({"type": "pong", "timestamp": data.get("timestamp")})
        else:
            logger.debug("Ignoring unknown message type %r", msg_type)

    def _handle_result(self, data: dict[str, Any]) -> None:
        future = self._pending.get(str(data.get("request_id")))
        if future is None or future.done():
            return
        if data.get("ok"):
            future.set_result(data.get("data"))
            return
        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        message = _error_message(data)
        if error.get("code") == "not_found":
            future.set_exception(DocumentMissing(message))
        else:
            future.set_exception(StoreError(message))

    def _handle_snapshot(self, data: dict[str, Any]) -> None:
        record = self._subscriptions.get(str(data.get("subscription_id")))
        if record is None or not record.handle.active:
            return
        payload = data.get("data")
        if record.kind == "collection":
            payload = _decode_snapshots(payload)
        elif not isinstance(payload, dict):
            payload = None
        try:
            record.on_next(payload)
        except Exception:
            logger.exception("Subscription callback failed")

    @staticmethod
    def _deliver_error(record: _RemoteSubscription, error: Exception) -> None:
        if record.handle.active and record.on_error is not None:
            record.on_error(error)

    def _mark_offline(self) -> None:
        self.connected = False
        self.status = ConnectionStatus.OFFLINE

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


def _decode_snapshots(data: Any) -> list[DocumentSnapshot]:
    if not isinstance(data, list):
        return []
    snapshots = []
    for item in data:
        if isinstance(item, dict) and item.get("id") and isinstance(item.get("data"), dict):
            snapshots.append(DocumentSnapshot(id=str(item["id"]), data=item["data"]))
    return snapshots


def _error_message(data: dict[str, Any]) -> str:
    error = data.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or "Unknown error")
    return str(error or "Unknown error")
