"""
Capture devices for the camera node.

A device is opened once per deploy, read from on every tick, and released
exactly once when the capture loop stops. open() blocks (OpenCV probes the
hardware), so the node runs it off the event loop; read() and release() are
fast and run inline.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from events.errors import DeviceError

logger = logging.getLogger(__name__)

SYNTHETIC_SOURCE = "synthetic"


class CaptureDevice(ABC):
    """Exclusive handle on one video source."""

    @abstractmethod
    def open(self, width: int, height: int, fps: int) -> Tuple[int, int]:
        """
        Acquire the device, requesting a resolution/fps hint.

        Returns the actual (width, height) delivered, which may differ from
        the hint. Raises DeviceError when the device is unavailable.
        """

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """Grab one BGR frame, or None when no frame is ready."""

    @abstractmethod
    def release(self) -> None:
        """Give the hardware handle back. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...


class OpenCVCamera(CaptureDevice):
    """Webcam index, video file or stream URL read through cv2.VideoCapture."""

    def __init__(self, source: Union[int, str]):
        self.source = source
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self, width: int, height: int, fps: int) -> Tuple[int, int]:
        if self._capture is not None:
            raise DeviceError(f"Capture device {self.source!r} is already open")

        try:
            cap = cv2.VideoCapture(self.source)
        except cv2.error as e:
            raise DeviceError(f"Could not open capture device {self.source!r}: {e}") from e

        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Capture device {self.source!r} unavailable or access denied")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        cap.set(cv2.CAP_PROP_FPS, fps)

        actual = (int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)), int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)))
        self._capture = cap

        logger.info(
            "Opened capture device %r: requested %dx%d@%d, got %dx%d",
            self.source, width, height, fps, actual[0], actual[1],
        )
        return actual

    def read(self) -> Optional[np.ndarray]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        return frame if ok else None

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Released capture device %r", self.source)


class SyntheticCamera(CaptureDevice):
    """
    Generated test pattern: colour gradient, moving green box and a timestamp.

    Lets a camera node run end-to-end on machines without a webcam.
    """

    def __init__(self, camera_id: str = "synthetic", resolution: Tuple[int, int] = (640, 480)):
        self.camera_id = camera_id
        self.resolution = resolution
        self._open = False
        self._frame_number = 0
        self._background: Optional[np.ndarray] = None

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, width: int, height: int, fps: int) -> Tuple[int, int]:
        # Fixed resolution; the requested hint is ignored.
        width, height = self.resolution
        ramp = np.linspace(0, 255, height, dtype=np.float32)[:, None]
        background = np.zeros((height, width, 3), dtype=np.uint8)
        background[:, :, 0] = ramp.astype(np.uint8)          # blue grows downwards
        background[:, :, 2] = (255 - ramp).astype(np.uint8)  # red fades downwards
        self._background = background
        self._frame_number = 0
        self._open = True
        return self.resolution

    def read(self) -> Optional[np.ndarray]:
        if not self._open or self._background is None:
            return None

        width, height = self.resolution
        frame = self._background.copy()

        box = 50
        x = (self._frame_number * 5) % max(1, width - box)
        y = max(0, height // 2 - box // 2)
        frame[y:y + box, x:x + box] = (0, 255, 0)

        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        cv2.putText(frame, f"{self.camera_id} {stamp}", (10, 30),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)

        self._frame_number += 1
        return frame

    def release(self) -> None:
        self._open = False
        self._background = None


def make_device(source: str, camera_id: str = "synthetic") -> CaptureDevice:
    """
    Build a device from a config string.

    "synthetic" -> SyntheticCamera, "0"/"1"/... -> local webcam index,
    anything else -> file path or stream URL.
    """
    source = source.strip()
    if source.lower() == SYNTHETIC_SOURCE:
        return SyntheticCamera(camera_id=camera_id)
    if source.isdigit():
        return OpenCVCamera(int(source))
    return OpenCVCamera(source)
