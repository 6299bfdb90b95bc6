"""
Camera node: the session state machine wired to the hub and the capture loop.

    DISCONNECTED --connect--> CONNECTED --deploy--> DEPLOYED --loop up--> STREAMING
    DEPLOYED/STREAMING --stop--> STOPPED --> CONNECTED
    any connected state --transport drop--> DISCONNECTED
    DEPLOYED --device failure--> ERROR (redeploy or stop to recover)

The capture loop runs iff the state is STREAMING. Leaving DEPLOYED/STREAMING
always tears the loop down (timer cancelled, device released) before the new
state is published.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import numpy as np
from pydantic import ValidationError

from events import names
from events.errors import AuthError, DeviceError
from events.models import DeployError, DetectionPayload
from hub_client import TransportSession
from overlay import render_payload

from .capture_loop import CaptureLoop
from .config import CameraSettings
from .device import CaptureDevice, make_device
from .state import (
    DEPLOYABLE,
    STOPPABLE,
    CameraStatus,
    InvalidTransition,
    SessionState,
    can_transition,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState, SessionState], None]
Notifier = Callable[[str], None]


def _log_notification(message: str) -> None:
    logger.error("NOTIFY: %s", message)


class CameraNode:
    def __init__(
        self,
        cfg: CameraSettings,
        transport: TransportSession,
        device_factory: Optional[Callable[[], CaptureDevice]] = None,
        notify: Optional[Notifier] = None,
    ):
        self.cfg = cfg
        self.transport = transport
        self.camera_id = cfg.resolved_camera_id

        self._device_factory = device_factory or (
            lambda: make_device(cfg.device_source, camera_id=self.camera_id)
        )
        self._notify = notify or _log_notification

        self._state = SessionState.DISCONNECTED
        self._listeners: list[StateListener] = []

        self._capture: Optional[CaptureLoop] = None
        # Held for the whole acquire; a redeploy waits here until the previous
        # acquisition has either started a loop or released its device.
        self._device_lock = asyncio.Lock()
        self._generation = 0

        self._fps = 0
        self._frames_sent = 0
        self._frames_dropped = 0
        self._last_error: Optional[str] = None
        self._latest: Optional[DetectionPayload] = None

        transport.on(names.CONNECT, self._on_connect)
        transport.on(names.DISCONNECT, self._on_disconnect)
        transport.on(names.DEPLOY_ASSIGNED, self._on_deploy_assigned)
        transport.on(names.DEPLOY_STOPPED, self._on_deploy_stop)
        transport.on(names.DETECTION_RESULT, self._on_detection_result)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def capture(self) -> Optional[CaptureLoop]:
        return self._capture

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _transition(self, target: SessionState) -> None:
        current = self._state
        if not can_transition(current, target):
            raise InvalidTransition(current, target)
        self._state = target
        logger.info("Camera %s: %s -> %s", self.camera_id, current.value, target.value)
        for listener in list(self._listeners):
            try:
                listener(current, target)
            except Exception:
                logger.exception("State listener failed")

    def status(self) -> CameraStatus:
        sent, dropped = self._frames_sent, self._frames_dropped
        if self._capture is not None:
            sent += self._capture.stats.frames_sent
            dropped += self._capture.stats.frames_dropped
        return CameraStatus(
            state=self._state,
            camera_id=self.camera_id,
            sid=self.transport.sid,
            connected=self.transport.is_connected(),
            fps=self._fps,
            frames_sent=sent,
            frames_dropped=dropped,
            last_error=self._last_error,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        try:
            await self.transport.connect(self.cfg.token)
        except AuthError as e:
            self._last_error = str(e)
            self._notify(f"Authentication failed: {e}")
            raise

    async def deploy(self) -> bool:
        """Acquire the device and start streaming. Returns True once STREAMING."""
        if self._state not in DEPLOYABLE:
            logger.warning("Ignoring deploy command in state %s", self._state.value)
            return False

        self._generation += 1
        generation = self._generation
        self._transition(SessionState.DEPLOYED)

        async with self._device_lock:
            if generation != self._generation:
                return False

            device = self._device_factory()
            try:
                await asyncio.to_thread(
                    device.open, self.cfg.capture_width, self.cfg.capture_height, self.cfg.capture_fps
                )
            except DeviceError as e:
                if generation == self._generation and self._state is SessionState.DEPLOYED:
                    await self._device_failed(str(e))
                return False

            if generation != self._generation or self._state is not SessionState.DEPLOYED:
                logger.info("Deploy cancelled while acquiring the device; releasing it")
                device.release()
                return False

            self._capture = CaptureLoop(
                device,
                self.transport.send,
                interval=self.cfg.frame_interval_sec,
                target_size=self.cfg.target_size,
                jpeg_quality=self.cfg.jpeg_quality,
                on_fps=self._on_fps,
            )
            self._capture.start()
            self._last_error = None
            self._transition(SessionState.STREAMING)
        return True

    def stop(self) -> bool:
        """Stop streaming and return to CONNECTED; the device is released before this returns."""
        if self._state not in STOPPABLE:
            logger.warning("Ignoring stop command in state %s", self._state.value)
            return False

        self._generation += 1
        self._teardown()
        if self._state is not SessionState.ERROR:
            self._transition(SessionState.STOPPED)
        self._transition(SessionState.CONNECTED)
        return True

    async def close(self) -> None:
        """Shut the node down: stop capturing and close the transport."""
        self._generation += 1
        self._teardown()
        await self.transport.disconnect()
        if self._state is not SessionState.DISCONNECTED:
            self._transition(SessionState.DISCONNECTED)

    def preview(self) -> Optional[np.ndarray]:
        """The latest detection result for this camera, rendered."""
        if self._latest is None:
            return None
        return render_payload(self._latest)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _teardown(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.stop()
            self._frames_sent += capture.stats.frames_sent
            self._frames_dropped += capture.stats.frames_dropped
        self._fps = 0
        self._latest = None

    async def _device_failed(self, message: str) -> None:
        self._last_error = message
        self._transition(SessionState.ERROR)
        self._notify(f"Failed to access capture device: {message}")
        await self.transport.send(
            names.DEPLOY_ERROR,
            DeployError(camera_id=self.camera_id, message=message).model_dump(),
        )

    def _on_fps(self, fps: int) -> None:
        self._fps = fps

    # ------------------------------------------------------------------
    # Transport handlers
    # ------------------------------------------------------------------

    def _on_connect(self) -> None:
        if self._state is SessionState.DISCONNECTED:
            self._transition(SessionState.CONNECTED)

    def _on_disconnect(self) -> None:
        self._generation += 1
        self._teardown()
        if self._state is not SessionState.DISCONNECTED:
            self._transition(SessionState.DISCONNECTED)

    async def _on_deploy_assigned(self, data: Any = None) -> None:
        logger.info("Deploy command received: %s", data)
        await self.deploy()

    def _on_deploy_stop(self, data: Any = None) -> None:
        logger.info("Stop command received: %s", data)
        self.stop()

    def _on_detection_result(self, data: Any) -> None:
        try:
            payload = DetectionPayload.model_validate(data)
        except ValidationError as e:
            logger.warning("Dropping malformed detection result: %s", e.errors()[:1])
            return

        sid = self.transport.sid
        if sid is not None and payload.camera_sid != sid:
            return
        if self._state is SessionState.STREAMING:
            self._latest = payload
