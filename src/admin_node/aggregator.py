"""
Admin-side registry of cameras and their latest detection results.

Mutated only from the admin node's own event handlers, all on one event loop,
so every method runs to completion without interleaving and needs no locks.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from events.models import CameraRecord, DetectionPayload, Stats

logger = logging.getLogger(__name__)


class RegistryState(str, Enum):
    IDLE = "IDLE"
    DEPLOYED = "DEPLOYED"


class AdminAggregator:
    """
    Cameras keyed by sid plus the most recent DetectionPayload per sid.

    total_detections only ever grows (sum of counts of every accepted
    arrival); active_threats is recomputed from the held payloads each time.
    """

    def __init__(self):
        self._cameras: dict[str, CameraRecord] = {}
        self._payloads: dict[str, DetectionPayload] = {}
        self._total_detections = 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def cameras(self) -> list[CameraRecord]:
        return list(self._cameras.values())

    def camera(self, sid: str) -> Optional[CameraRecord]:
        return self._cameras.get(sid)

    def latest(self, sid: str) -> Optional[DetectionPayload]:
        return self._payloads.get(sid)

    def payload_sids(self) -> set[str]:
        return set(self._payloads)

    def registry_state(self, sid: str) -> Optional[RegistryState]:
        record = self._cameras.get(sid)
        if record is None:
            return None
        return RegistryState.DEPLOYED if record.deployed else RegistryState.IDLE

    def active_threats(self) -> int:
        return sum(payload.threat_count for payload in self._payloads.values())

    @property
    def stats(self) -> Stats:
        return Stats(
            total_cameras=len(self._cameras),
            deployed_cameras=sum(1 for record in self._cameras.values() if record.deployed),
            total_detections=self._total_detections,
            active_threats=self.active_threats(),
        )

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def load_camera_list(self, records: Iterable[CameraRecord]) -> None:
        """Replace the registry with the hub's snapshot (sent when the admin joins)."""
        self._cameras = {record.sid: record.model_copy() for record in records}
        for sid in list(self._payloads):
            if sid not in self._cameras:
                del self._payloads[sid]
        logger.info("Camera list loaded: %d cameras", len(self._cameras))

    def camera_connected(self, record: CameraRecord) -> None:
        self._cameras[record.sid] = record.model_copy(update={"deployed": False})
        logger.info("Camera connected: %s (sid=%s)", record.camera_id, record.sid)

    def camera_disconnected(self, sid: str) -> bool:
        """Drop the record and its payload together. Returns False for unknown sids."""
        record = self._cameras.pop(sid, None)
        payload = self._payloads.pop(sid, None)
        if record is None and payload is None:
            logger.debug("Disconnect for unknown camera sid=%s", sid)
            return False
        logger.info("Camera disconnected: %s (sid=%s)", record.camera_id if record else "?", sid)
        return True

    def deploy_succeeded(self, sid: str) -> bool:
        record = self._cameras.get(sid)
        if record is None:
            logger.warning("deploy:success for unknown camera sid=%s", sid)
            return False
        record.deployed = True
        logger.info("Camera deployed: %s (sid=%s)", record.camera_id, sid)
        return True

    def detection_received(self, payload: DetectionPayload) -> bool:
        """
        Store payload as the latest for its camera (last write wins).

        No timestamp check: a late result may briefly replace a newer one.
        Results for cameras not in the registry are dropped so a disconnect
        can never be followed by an orphaned payload.
        """
        if payload.camera_sid not in self._cameras:
            logger.debug("Dropping detection for unknown camera sid=%s", payload.camera_sid)
            return False
        self._payloads[payload.camera_sid] = payload
        self._total_detections += payload.threat_count
        return True

    def local_stop(self, sid: str) -> None:
        """Apply a stop issued by this admin without waiting for the camera's ack."""
        record = self._cameras.get(sid)
        if record is not None:
            record.deployed = False
        self._payloads.pop(sid, None)
