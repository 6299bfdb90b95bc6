"""
Rate-bounded capture -> downscale -> JPEG -> transmit loop.

The loop is driven by an event-loop timer at a fixed wall-clock cadence.
Freshness beats completeness:
- a tick that runs late skips the deadlines it missed instead of catching up
- a new frame supersedes a send that is still in flight, so at most one
  frame is ever pending
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

import cv2
import numpy as np

from events import names
from events.models import FrameMessage
from overlay import encode_jpeg

from .device import CaptureDevice

logger = logging.getLogger(__name__)

SendFn = Callable[[str, Any], Awaitable[bool]]


class RateCounter:
    """Counts events and reports how many happened in each one-second window."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._count = 0
        self._window_start = clock()
        self.rate = 0

    def tick(self) -> Optional[int]:
        """Count one event; returns the new rate when a window rolls over."""
        self._count += 1
        now = self._clock()
        if now - self._window_start >= 1.0:
            self.rate = self._count
            self._count = 0
            self._window_start = now
            return self.rate
        return None

    def reset(self) -> None:
        self._count = 0
        self._window_start = self._clock()
        self.rate = 0


@dataclass
class LoopStats:
    ticks: int = 0
    frames_sent: int = 0
    frames_superseded: int = 0   # in-flight send cancelled by a newer frame
    ticks_skipped: int = 0       # deadlines missed because a tick ran late
    empty_reads: int = 0
    tick_errors: int = 0
    send_failures: int = 0

    @property
    def frames_dropped(self) -> int:
        return self.frames_superseded + self.ticks_skipped + self.empty_reads + self.send_failures


class CaptureLoop:
    """
    Owns one opened CaptureDevice for the lifetime of a deploy.

    start() schedules the first tick; stop() cancels the timer, cancels the
    pending send and releases the device before returning.
    """

    def __init__(
        self,
        device: CaptureDevice,
        send: SendFn,
        *,
        interval: float = 0.02,
        target_size: Tuple[int, int] = (640, 480),
        jpeg_quality: int = 30,
        on_fps: Optional[Callable[[int], None]] = None,
    ):
        self.device = device
        self.interval = interval
        self.target_size = target_size
        self.jpeg_quality = jpeg_quality
        self.stats = LoopStats()

        self._send = send
        self._on_fps = on_fps
        self._rate = RateCounter()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._next_deadline = 0.0
        self._send_task: Optional[asyncio.Task] = None
        self._running = False
        self._released = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_sends(self) -> int:
        """Frames handed to the transport and not yet delivered (0 or 1)."""
        return int(self._send_task is not None and not self._send_task.done())

    @property
    def fps(self) -> int:
        return self._rate.rate

    def start(self) -> None:
        if self._running:
            return
        if self._released:
            raise RuntimeError("CaptureLoop cannot be restarted after stop(); build a new one")

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._rate.reset()
        self._next_deadline = self._loop.time()
        self._timer = self._loop.call_at(self._next_deadline, self._on_timer)
        logger.info(
            "Capture loop started: every %.0f ms, %dx%d, JPEG q=%d",
            self.interval * 1000, self.target_size[0], self.target_size[1], self.jpeg_quality,
        )

    def stop(self) -> None:
        """Synchronously cancel everything and release the device."""
        self._running = False

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self._send_task is not None and not self._send_task.done():
            self._send_task.cancel()
        self._send_task = None

        if not self._released:
            self._released = True
            self.device.release()
            logger.info(
                "Capture loop stopped: sent=%d dropped=%d errors=%d",
                self.stats.frames_sent, self.stats.frames_dropped, self.stats.tick_errors,
            )
        self._rate.reset()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _on_timer(self) -> None:
        self._timer = None
        if not self._running:
            return
        try:
            self.tick()
        finally:
            if self._running:
                self._schedule_next()

    def _schedule_next(self) -> None:
        now = self._loop.time()
        self._next_deadline += self.interval
        if self._next_deadline <= now:
            missed = int((now - self._next_deadline) // self.interval) + 1
            self.stats.ticks_skipped += missed
            self._next_deadline += missed * self.interval
        self._timer = self._loop.call_at(self._next_deadline, self._on_timer)

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Capture, encode and hand one frame to the transport. Never raises."""
        self.stats.ticks += 1
        try:
            frame = self.device.read()
            if frame is None:
                self.stats.empty_reads += 1
                return
            message = FrameMessage(frame=self.encode(frame))
            self._dispatch(message.model_dump())
        except Exception as e:
            self.stats.tick_errors += 1
            logger.warning("Capture tick failed: %s", e)

    def encode(self, frame: np.ndarray) -> str:
        """Downscale to the target size and return the JPEG as base64 text."""
        height, width = frame.shape[:2]
        if (width, height) != self.target_size:
            frame = cv2.resize(frame, self.target_size, interpolation=cv2.INTER_AREA)
        jpeg = encode_jpeg(frame, self.jpeg_quality)
        return base64.b64encode(jpeg).decode("ascii")

    def _dispatch(self, message: dict) -> None:
        pending = self._send_task
        if pending is not None and not pending.done():
            pending.cancel()
            self.stats.frames_superseded += 1
        self._send_task = asyncio.ensure_future(self._send_frame(message))

    async def _send_frame(self, message: dict) -> None:
        if not await self._send(names.CAMERA_FRAME, message):
            self.stats.send_failures += 1
            return
        self.stats.frames_sent += 1
        fps = self._rate.tick()
        if fps is not None:
            logger.debug("Streaming at %d fps (%d sent)", fps, self.stats.frames_sent)
            if self._on_fps is not None:
                self._on_fps(fps)
