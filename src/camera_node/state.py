"""
Camera session states and the transitions allowed between them.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    DEPLOYED = "DEPLOYED"
    STREAMING = "STREAMING"
    STOPPED = "STOPPED"
    ERROR = "ERROR"


S = SessionState

TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    S.DISCONNECTED: frozenset({S.CONNECTED}),
    S.CONNECTED: frozenset({S.DEPLOYED, S.DISCONNECTED}),
    S.DEPLOYED: frozenset({S.STREAMING, S.STOPPED, S.ERROR, S.DISCONNECTED}),
    S.STREAMING: frozenset({S.STOPPED, S.DISCONNECTED}),
    S.STOPPED: frozenset({S.CONNECTED, S.DISCONNECTED}),
    S.ERROR: frozenset({S.DEPLOYED, S.CONNECTED, S.DISCONNECTED}),
}

# States in which a deploy command is accepted
DEPLOYABLE = frozenset({S.CONNECTED, S.ERROR})
# States in which a stop command is accepted
STOPPABLE = frozenset({S.DEPLOYED, S.STREAMING, S.ERROR})


class InvalidTransition(RuntimeError):
    def __init__(self, current: SessionState, target: SessionState):
        super().__init__(f"Illegal transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: SessionState, target: SessionState) -> bool:
    return target in TRANSITIONS[current]


class CameraStatus(BaseModel):
    """Snapshot behind the camera node's status indicator."""

    state: SessionState
    camera_id: str
    sid: Optional[str] = None
    connected: bool = False
    fps: int = 0
    frames_sent: int = 0
    frames_dropped: int = 0
    last_error: Optional[str] = None
