"""
Hub client package.

Owns the single duplex connection a node keeps to the hub:
- TransportSession wraps a python-socketio AsyncClient
- ReconnectPolicy bounds automatic reconnection
- HubSettings carries the endpoint/credential every node needs
"""
from .backoff import ReconnectPolicy
from .session import ConnectionStatus, TransportSession

__all__ = ["ReconnectPolicy", "ConnectionStatus", "TransportSession"]
