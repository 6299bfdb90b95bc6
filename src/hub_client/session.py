"""
Transport session: one persistent Socket.IO connection from a node to the hub.

Each node process creates and owns exactly one TransportSession and passes it
to whatever needs to talk to the hub. Nothing here is module-global.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from events import names
from events.errors import AuthError, TransportError

from .backoff import ReconnectPolicy

if TYPE_CHECKING:
    from .config import HubSettings

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]

# Events that are fired locally by the session instead of arriving from the hub
LOCAL_EVENTS = frozenset({names.CONNECT, names.DISCONNECT, names.RECONNECT_FAILED})

# connect_error messages that mean "your credential is bad", not "try again"
_AUTH_REJECTION_HINTS = ("auth", "token", "unauthorized", "forbidden", "credential")


class ConnectionStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"


def _is_auth_rejection(reason: Any) -> bool:
    if isinstance(reason, dict):
        reason = reason.get("message", "")
    text = str(reason or "").lower()
    return any(hint in text for hint in _AUTH_REJECTION_HINTS)


class TransportSession:
    """
    Duplex pub/sub session with the hub.

    - connect() is idempotent while connected (no second handshake)
    - send() never raises; it returns False and logs instead
    - on()/off() manage local handlers; one dispatcher per event is bound on
      the underlying client and fans out to them
    - after an unexpected drop the session reconnects on its own, following
      its ReconnectPolicy; exhaustion leaves it DISCONNECTED until the owner
      calls connect() again
    """

    def __init__(
        self,
        url: str,
        *,
        socketio_path: str = "socket.io",
        transports: Optional[list[str]] = None,
        connect_timeout: float = 5.0,
        policy: Optional[ReconnectPolicy] = None,
        client_factory: Optional[Callable[..., Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url
        self.socketio_path = socketio_path
        self.transports = transports or ["websocket", "polling"]
        self.connect_timeout = connect_timeout
        self.policy = policy or ReconnectPolicy()

        self._client_factory = client_factory or socketio.AsyncClient
        self._sleep = sleep
        self._client: Any = None
        self._token: Optional[str] = None

        self._handlers: dict[str, list[Handler]] = {}
        self._bound: set[str] = set()

        self._status = ConnectionStatus.DISCONNECTED
        self._closing = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._last_connect_error: Any = None
        self._handshakes = 0
        self._unreachable = asyncio.Event()

    @classmethod
    def from_settings(cls, cfg: "HubSettings", **kwargs) -> "TransportSession":
        return cls(
            cfg.hub_url,
            socketio_path=cfg.socketio_path,
            transports=list(cfg.transports),
            connect_timeout=cfg.connect_timeout_sec,
            policy=cfg.reconnect_policy(),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def sid(self) -> Optional[str]:
        if self._client is None or not self.is_connected():
            return None
        return getattr(self._client, "sid", None)

    @property
    def handshakes(self) -> int:
        """Number of network handshakes attempted so far."""
        return self._handshakes

    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is not self._status:
            logger.debug("Transport status %s -> %s", self._status.value, status.value)
            self._status = status

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, token: Optional[str]) -> "TransportSession":
        """
        Open the session with the given credential token.

        Raises AuthError without touching the network when the token is
        missing, AuthError when the hub rejects it, and TransportError once the
        reconnect policy is exhausted.
        """
        if not token:
            raise AuthError("Cannot connect: no credential token provided")

        if self.is_connected():
            logger.info("Transport already connected (sid=%s)", self.sid)
            return self

        self._cancel_reconnect()
        self._token = token
        self._closing = False
        self._unreachable.clear()
        client = self._ensure_client()

        logger.info("Connecting to hub %s", self.url)
        self._set_status(ConnectionStatus.CONNECTING)

        waits = [0.0, *self.policy.delays()]
        last_error: Optional[TransportError] = None
        for attempt, wait in enumerate(waits):
            if attempt:
                logger.info(
                    "Retrying hub connection in %.1fs (attempt %d/%d)",
                    wait, attempt, self.policy.max_attempts,
                )
                await self._sleep(wait)
            try:
                await self._handshake(client)
                return self
            except AuthError:
                self._set_status(ConnectionStatus.DISCONNECTED)
                raise
            except TransportError as e:
                last_error = e

        self._set_status(ConnectionStatus.DISCONNECTED)
        raise TransportError(
            f"Could not connect to {self.url} after {len(waits)} attempts"
        ) from last_error

    async def disconnect(self) -> None:
        """Close the session on purpose. No automatic reconnect follows."""
        self._closing = True
        self._cancel_reconnect()
        if self.is_connected():
            logger.info("Disconnecting from hub")
            await self._client.disconnect()
        self._set_status(ConnectionStatus.DISCONNECTED)

    def _ensure_client(self) -> Any:
        if self._client is None:
            # Reconnection is driven by our own policy, not the library's.
            self._client = self._client_factory(reconnection=False, logger=False, engineio_logger=False)
            self._client.on("connect", self._on_connect)
            self._client.on("disconnect", self._on_disconnect)
            self._client.on("connect_error", self._on_connect_error)
            for event in self._handlers:
                self._bind(event)
        return self._client

    async def _handshake(self, client: Any) -> None:
        self._last_connect_error = None
        self._handshakes += 1
        try:
            await client.connect(
                self.url,
                auth={"token": self._token},
                transports=self.transports,
                socketio_path=self.socketio_path,
                wait_timeout=self.connect_timeout,
            )
        except SocketIOConnectionError as e:
            reason = self._last_connect_error or str(e)
            if _is_auth_rejection(reason):
                raise AuthError(f"Hub rejected credential: {reason}") from e
            logger.warning("Hub connection failed: %s", reason)
            raise TransportError(str(reason)) from e

    async def _reconnect(self) -> None:
        self._set_status(ConnectionStatus.RECONNECTING)
        for attempt, wait in enumerate(self.policy.delays(), start=1):
            logger.info(
                "Reconnecting to hub in %.1fs (attempt %d/%d)",
                wait, attempt, self.policy.max_attempts,
            )
            await self._sleep(wait)
            if self._closing:
                return
            try:
                await self._handshake(self._client)
                return
            except AuthError as e:
                logger.error("Reconnect aborted: %s", e)
                break
            except TransportError:
                continue

        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.error("Gave up reconnecting to %s; explicit reconnect required", self.url)
        self._unreachable.set()
        await self._dispatch(names.RECONNECT_FAILED)

    async def wait_unreachable(self) -> None:
        """Block until automatic reconnection has given up on the hub."""
        await self._unreachable.wait()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Client callbacks
    # ------------------------------------------------------------------

    async def _on_connect(self) -> None:
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Connected to hub %s (sid=%s)", self.url, self.sid)
        await self._dispatch(names.CONNECT)

    async def _on_disconnect(self, *args: Any) -> None:
        reason = args[0] if args else None
        logger.info("Disconnected from hub (reason=%s)", reason)
        self._set_status(ConnectionStatus.DISCONNECTED)
        await self._dispatch(names.DISCONNECT)

        if not self._closing and self._token and self._reconnect_task is None:
            self._reconnect_task = asyncio.ensure_future(self._reconnect())
            self._reconnect_task.add_done_callback(self._reconnect_done)

    def _reconnect_done(self, task: asyncio.Task) -> None:
        if self._reconnect_task is task:
            self._reconnect_task = None

    async def _on_connect_error(self, data: Any = None) -> None:
        self._last_connect_error = data
        logger.warning("Hub connect_error: %s", data)

    # ------------------------------------------------------------------
    # Pub/sub
    # ------------------------------------------------------------------

    async def send(self, event: str, payload: Any = None) -> bool:
        """Emit one event. Returns False (and logs) instead of raising."""
        if not self.is_connected():
            logger.warning("Not connected to hub; dropping '%s'", event)
            return False
        try:
            await self._client.emit(event, payload)
        except Exception as e:
            logger.warning("Failed to send '%s': %s", event, e)
            return False
        return True

    def on(self, event: str, handler: Handler) -> Handler:
        self._handlers.setdefault(event, []).append(handler)
        if self._client is not None:
            self._bind(event)
        return handler

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event, None)

    def _bind(self, event: str) -> None:
        if event in LOCAL_EVENTS or event in self._bound:
            return

        async def dispatcher(*args: Any) -> None:
            await self._dispatch(event, *args)

        self._client.on(event, dispatcher)
        self._bound.add(event)

    async def _dispatch(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # One broken handler must not starve the others.
                logger.exception("Handler for '%s' failed", event)
