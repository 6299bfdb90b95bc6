# These imports should work once the package is installed with its declared dependencies
import aiohttp
import socketio


def test_async_client_transport_is_installed():
    """AsyncClient connects through aiohttp; both must come with the package."""
    assert hasattr(aiohttp, "ClientSession")
    assert hasattr(socketio, "AsyncClient")
