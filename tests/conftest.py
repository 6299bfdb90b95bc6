import asyncio
import inspect
import time

import numpy as np
import pytest
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from events.errors import DeviceError
from hub_client import ReconnectPolicy, TransportSession


async def _settle(rounds: int = 20) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSocketClient:
    """
    Stands in for socketio.AsyncClient.

    fail_connects: number of upcoming connect() calls that fail at the network level
    reject: when set, connect() fails with this connect_error message
    """

    def __init__(self):
        self.connected = False
        self.sid = None
        self.handlers = {}
        self.emitted = []
        self.connect_calls = []
        self.fail_connects = 0
        self.reject = None
        self.factory_kwargs = None

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def _fire(self, event, *args):
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result

    async def connect(self, url, auth=None, transports=None, socketio_path=None, wait_timeout=None):
        self.connect_calls.append({"url": url, "auth": auth})
        if self.reject is not None:
            await self._fire("connect_error", {"message": self.reject})
            raise SocketIOConnectionError(self.reject)
        if self.fail_connects > 0:
            self.fail_connects -= 1
            await self._fire("connect_error", {"message": "Connection refused"})
            raise SocketIOConnectionError("Connection refused")
        self.connected = True
        self.sid = f"sid-{len(self.connect_calls)}"
        await self._fire("connect")

    async def disconnect(self):
        if self.connected:
            self.connected = False
            await self._fire("disconnect", "client disconnect")

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def drop(self):
        """Simulate the hub going away."""
        self.connected = False
        await self._fire("disconnect", "transport close")

    async def push(self, event, data=None):
        """Simulate the hub pushing an event."""
        if data is None:
            await self._fire(event)
        else:
            await self._fire(event, data)

    def emitted_events(self):
        return [event for event, _ in self.emitted]


class FakeDevice:
    """CaptureDevice double that counts acquisitions and releases."""

    def __init__(self, size=(640, 480), fail=False, open_delay=0.0, frames=True):
        self.size = size
        self.fail = fail
        self.open_delay = open_delay
        self.frames = frames
        self.opens = 0
        self.releases = 0
        self.reads = 0
        self._open = False

    @property
    def is_open(self):
        return self._open

    def open(self, width, height, fps):
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.fail:
            raise DeviceError("Camera access denied")
        self.opens += 1
        self._open = True
        return self.size

    def read(self):
        self.reads += 1
        if not self._open or not self.frames:
            return None
        width, height = self.size
        return np.full((height, width, 3), 127, dtype=np.uint8)

    def release(self):
        if self._open:
            self._open = False
            self.releases += 1


@pytest.fixture
def socket_client():
    return FakeSocketClient()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def transport(socket_client, sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    def factory(**kwargs):
        socket_client.factory_kwargs = kwargs
        return socket_client

    return TransportSession(
        "http://hub.test:8000",
        policy=ReconnectPolicy(),
        client_factory=factory,
        sleep=fake_sleep,
    )


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def make_device():
    return FakeDevice
