"""
Admin node: hub events in, deploy/stop commands out, one overlay tile per camera.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Type, TypeVar

import numpy as np
from pydantic import BaseModel, ValidationError

from events import names
from events.errors import AuthError
from events.models import (
    CameraConnected,
    CameraDisconnected,
    CameraList,
    DeployCommand,
    DeployError,
    DetectionPayload,
)
from hub_client import TransportSession
from overlay import render_payload

from .aggregator import AdminAggregator
from .config import AdminSettings

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
Notifier = Callable[[str], None]


def _log_notification(message: str) -> None:
    logger.error("NOTIFY: %s", message)


def _parse(model: Type[M], data: Any, event: str) -> Optional[M]:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("Dropping malformed '%s' event: %s", event, e.errors()[:1])
        return None


class AdminNode:
    def __init__(
        self,
        cfg: AdminSettings,
        transport: TransportSession,
        aggregator: Optional[AdminAggregator] = None,
        notify: Optional[Notifier] = None,
    ):
        self.cfg = cfg
        self.transport = transport
        self.aggregator = aggregator or AdminAggregator()
        self._notify = notify or _log_notification

        transport.on(names.CONNECT, self._on_connect)
        transport.on(names.DISCONNECT, self._on_disconnect)
        transport.on(names.CAMERA_LIST, self._on_camera_list)
        transport.on(names.CAMERA_CONNECTED, self._on_camera_connected)
        transport.on(names.CAMERA_DISCONNECT, self._on_camera_disconnect)
        transport.on(names.DEPLOY_SUCCESS, self._on_deploy_success)
        transport.on(names.DEPLOY_ERROR, self._on_deploy_error)
        transport.on(names.DETECTION_RESULT, self._on_detection_result)

    @property
    def connected(self) -> bool:
        return self.transport.is_connected()

    async def connect(self) -> None:
        if not self.cfg.is_admin:
            message = f"Admin clearance required (role={self.cfg.role!r})"
            self._notify(message)
            raise AuthError(message)
        try:
            await self.transport.connect(self.cfg.token)
        except AuthError as e:
            self._notify(f"Authentication failed: {e}")
            raise

    async def close(self) -> None:
        await self.transport.disconnect()

    async def deploy(self, sid: str) -> bool:
        """Ask the hub to deploy a camera. The registry flips on deploy:success."""
        if not self.connected:
            logger.warning("Not connected to hub; ignoring deploy for sid=%s", sid)
            return False
        if self.aggregator.camera(sid) is None:
            logger.warning("Ignoring deploy for unknown camera sid=%s", sid)
            return False
        logger.info("Deploying camera sid=%s", sid)
        return await self.transport.send(names.DEPLOY_START, DeployCommand(camera_sid=sid).model_dump())

    async def stop(self, sid: str) -> bool:
        """
        Ask the hub to stop a camera and mark it IDLE right away.

        The local flip does not wait for the camera: the registry may claim IDLE
        while frames are still in flight, until the next event corrects it.
        """
        logger.info("Stopping camera sid=%s", sid)
        sent = await self.transport.send(names.DEPLOY_STOP, DeployCommand(camera_sid=sid).model_dump())
        self.aggregator.local_stop(sid)
        return sent

    def tile(self, sid: str) -> Optional[np.ndarray]:
        """Latest frame for a camera with its detections drawn, or None."""
        payload = self.aggregator.latest(sid)
        if payload is None:
            return None
        return render_payload(payload)

    # ------------------------------------------------------------------
    # Transport handlers
    # ------------------------------------------------------------------

    def _on_connect(self) -> None:
        logger.info("Admin connected to hub (sid=%s)", self.transport.sid)

    def _on_disconnect(self) -> None:
        logger.info("Admin disconnected from hub")

    def _on_camera_list(self, data: Any) -> None:
        camera_list = _parse(CameraList, data, names.CAMERA_LIST)
        if camera_list is not None:
            self.aggregator.load_camera_list(camera_list.cameras)

    def _on_camera_connected(self, data: Any) -> None:
        event = _parse(CameraConnected, data, names.CAMERA_CONNECTED)
        if event is not None:
            self.aggregator.camera_connected(event.to_record())

    def _on_camera_disconnect(self, data: Any) -> None:
        event = _parse(CameraDisconnected, data, names.CAMERA_DISCONNECT)
        if event is not None:
            self.aggregator.camera_disconnected(event.sid)

    def _on_deploy_success(self, data: Any) -> None:
        event = _parse(DeployCommand, data, names.DEPLOY_SUCCESS)
        if event is not None:
            self.aggregator.deploy_succeeded(event.camera_sid)

    def _on_deploy_error(self, data: Any) -> None:
        event = _parse(DeployError, data, names.DEPLOY_ERROR)
        if event is not None:
            self._notify(f"Camera {event.camera_id} failed to deploy: {event.message}")

    def _on_detection_result(self, data: Any) -> None:
        payload = _parse(DetectionPayload, data, names.DETECTION_RESULT)
        if payload is not None:
            self.aggregator.detection_received(payload)
