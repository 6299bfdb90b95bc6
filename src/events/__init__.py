# Wire vocabulary shared by camera and admin nodes
from .errors import AuthError, DecodeError, DeviceError, GuardError, TransportError
from .models import (
    CameraConnected,
    CameraDisconnected,
    CameraList,
    CameraRecord,
    DeployCommand,
    DeployError,
    DetectionPayload,
    DetectionSet,
    FrameMessage,
    Stats,
)
from . import names

__all__ = [
    # Errors
    "GuardError",
    "AuthError",
    "TransportError",
    "DeviceError",
    "DecodeError",
    # Models
    "CameraRecord",
    "CameraList",
    "CameraConnected",
    "CameraDisconnected",
    "DeployCommand",
    "DeployError",
    "DetectionSet",
    "DetectionPayload",
    "FrameMessage",
    "Stats",
    # Event names
    "names",
]
