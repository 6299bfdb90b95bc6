"""
Error taxonomy for the camera and admin nodes.
"""


class GuardError(Exception):
    """Base class for all node errors."""


class AuthError(GuardError):
    """Missing or rejected credential. Fatal, never retried."""


class TransportError(GuardError):
    """Connect/send failure after the reconnect policy gave up."""


class DeviceError(GuardError):
    """Capture device unavailable or access denied."""


class DecodeError(GuardError):
    """Inbound frame bytes could not be decoded into an image."""
