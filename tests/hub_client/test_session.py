import asyncio

import pytest

from events import names
from events.errors import AuthError, TransportError
from hub_client import ConnectionStatus, TransportSession


@pytest.mark.asyncio
async def test_missing_token_fails_before_any_network_activity(socket_client):
    created = []
    session = TransportSession("http://hub.test", client_factory=lambda **kw: created.append(kw) or socket_client)

    with pytest.raises(AuthError):
        await session.connect("")

    assert created == []
    assert session.status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_presents_token_and_disables_library_reconnection(transport, socket_client):
    await transport.connect("tok-123")

    assert transport.status is ConnectionStatus.CONNECTED
    assert transport.sid == "sid-1"
    assert socket_client.connect_calls[0]["auth"] == {"token": "tok-123"}
    assert socket_client.factory_kwargs["reconnection"] is False


@pytest.mark.asyncio
async def test_connect_twice_is_one_handshake(transport, socket_client):
    first = await transport.connect("tok")
    second = await transport.connect("tok")

    assert first is second is transport
    assert transport.handshakes == 1
    assert len(socket_client.connect_calls) == 1


@pytest.mark.asyncio
async def test_send_while_disconnected_returns_false(transport, socket_client):
    assert await transport.send(names.CAMERA_FRAME, {"frame": "x"}) is False
    assert socket_client.emitted == []


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_raised(transport, socket_client):
    await transport.connect("tok")

    async def broken_emit(event, data=None):
        raise RuntimeError("socket closed")

    socket_client.emit = broken_emit
    assert await transport.send(names.CAMERA_FRAME, {"frame": "x"}) is False


@pytest.mark.asyncio
async def test_handlers_receive_pushed_events(transport, socket_client):
    received = []
    transport.on(names.DEPLOY_SUCCESS, received.append)
    await transport.connect("tok")

    await socket_client.push(names.DEPLOY_SUCCESS, {"camera_sid": "s1"})
    assert received == [{"camera_sid": "s1"}]

    transport.off(names.DEPLOY_SUCCESS, received.append)
    await socket_client.push(names.DEPLOY_SUCCESS, {"camera_sid": "s2"})
    assert received == [{"camera_sid": "s1"}]


@pytest.mark.asyncio
async def test_failing_handler_does_not_starve_others(transport, socket_client):
    received = []

    def broken(data):
        raise ValueError("bad handler")

    async def good(data):
        received.append(data)

    transport.on(names.CAMERA_LIST, broken)
    transport.on(names.CAMERA_LIST, good)
    await transport.connect("tok")

    await socket_client.push(names.CAMERA_LIST, {"cameras": []})
    assert received == [{"cameras": []}]


@pytest.mark.asyncio
async def test_rejected_credential_is_not_retried(transport, socket_client, sleeps):
    socket_client.reject = "Authentication failed: invalid token"

    with pytest.raises(AuthError):
        await transport.connect("bad")

    assert transport.handshakes == 1
    assert sleeps == []
    assert transport.status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_initial_connect_retries_then_gives_up(transport, socket_client, sleeps):
    socket_client.fail_connects = 100

    with pytest.raises(TransportError):
        await transport.connect("tok")

    assert sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert transport.handshakes == 6
    assert transport.status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_initial_connect_succeeds_after_transient_failure(transport, socket_client, sleeps):
    socket_client.fail_connects = 1

    await transport.connect("tok")

    assert sleeps == [1.0]
    assert transport.is_connected()


@pytest.mark.asyncio
async def test_reconnects_after_drop(transport, socket_client, sleeps, settle):
    events = []
    transport.on(names.CONNECT, lambda: events.append("connect"))
    transport.on(names.DISCONNECT, lambda: events.append("disconnect"))
    await transport.connect("tok")

    socket_client.fail_connects = 2
    await socket_client.drop()
    assert transport.status is ConnectionStatus.DISCONNECTED

    await settle()

    assert sleeps == [1.0, 2.0, 4.0]
    assert transport.status is ConnectionStatus.CONNECTED
    assert events == ["connect", "disconnect", "connect"]


@pytest.mark.asyncio
async def test_reconnect_exhaustion_leaves_session_disconnected(transport, socket_client, sleeps, settle):
    failed = []
    transport.on(names.RECONNECT_FAILED, lambda: failed.append(True))
    await transport.connect("tok")

    socket_client.fail_connects = 100
    await socket_client.drop()
    await settle()

    assert sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert transport.handshakes == 6
    assert transport.status is ConnectionStatus.DISCONNECTED
    assert failed == [True]

    # An explicit connect starts over.
    socket_client.fail_connects = 0
    await transport.connect("tok")
    assert transport.is_connected()


@pytest.mark.asyncio
async def test_explicit_disconnect_does_not_reconnect(transport, socket_client, sleeps, settle):
    await transport.connect("tok")

    await transport.disconnect()
    await settle()

    assert sleeps == []
    assert transport.handshakes == 1
    assert transport.status is ConnectionStatus.DISCONNECTED
    assert transport.sid is None


@pytest.mark.asyncio
async def test_wait_unreachable_returns_after_reconnect_exhaustion(transport, socket_client, settle):
    await transport.connect("tok")
    waiter = asyncio.ensure_future(transport.wait_unreachable())

    socket_client.fail_connects = 100
    await socket_client.drop()
    await settle()

    assert waiter.done()

    # a fresh connect re-arms it
    socket_client.fail_connects = 0
    await transport.connect("tok")
    waiter = asyncio.ensure_future(transport.wait_unreachable())
    await settle()
    assert not waiter.done()
    waiter.cancel()
