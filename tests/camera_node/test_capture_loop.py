import asyncio

import numpy as np
import pytest

from camera_node.capture_loop import CaptureLoop, RateCounter
from events import names
from overlay import decode_frame


class Recorder:
    def __init__(self, block=False, ok=True):
        self.block = block
        self.ok = ok
        self.sent = []
        self._gate = asyncio.Event()

    async def __call__(self, event, payload):
        if self.block:
            await self._gate.wait()
        self.sent.append((event, payload))
        return self.ok


def test_rate_counter_reports_per_second_window():
    now = [0.0]
    counter = RateCounter(clock=lambda: now[0])

    for _ in range(4):
        now[0] += 0.2
        assert counter.tick() is None
    now[0] += 0.2
    assert counter.tick() == 5
    assert counter.rate == 5

    counter.reset()
    assert counter.rate == 0


@pytest.mark.asyncio
async def test_new_frame_supersedes_pending_send(device, settle):
    device.open(640, 480, 20)
    send = Recorder(block=True)
    loop = CaptureLoop(device, send)

    for _ in range(3):
        loop.tick()
        # the tick itself never waits on the transport
        assert loop.pending_sends == 1

    await settle()
    assert loop.pending_sends == 1
    assert loop.stats.frames_superseded == 2
    assert send.sent == []

    loop.stop()
    await settle()
    assert loop.pending_sends == 0
    assert device.releases == 1


@pytest.mark.asyncio
async def test_loop_streams_at_cadence_and_stops_synchronously(device):
    device.open(640, 480, 20)
    send = Recorder()
    loop = CaptureLoop(device, send, interval=0.02)

    loop.start()
    await asyncio.sleep(0.3)
    loop.stop()

    assert not loop.running
    assert device.releases == 1
    assert loop.stats.frames_sent >= 5
    assert all(event == names.CAMERA_FRAME for event, _ in send.sent)

    sent = len(send.sent)
    await asyncio.sleep(0.1)
    assert len(send.sent) == sent

    # stop is idempotent and never double-releases
    loop.stop()
    assert device.releases == 1


@pytest.mark.asyncio
async def test_stopped_loop_cannot_restart(device):
    device.open(640, 480, 20)
    loop = CaptureLoop(device, Recorder())
    loop.start()
    loop.stop()

    with pytest.raises(RuntimeError):
        loop.start()


@pytest.mark.asyncio
async def test_tick_errors_are_contained(device, settle):
    device.open(640, 480, 20)
    real_read = device.read
    calls = []

    def flaky_read():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("device hiccup")
        return real_read()

    device.read = flaky_read
    send = Recorder()
    loop = CaptureLoop(device, send)

    loop.tick()
    loop.tick()
    await settle()

    assert loop.stats.tick_errors == 1
    assert loop.stats.frames_sent == 1
    assert len(send.sent) == 1


@pytest.mark.asyncio
async def test_empty_reads_and_failed_sends_count_as_dropped(device, settle):
    device.open(640, 480, 20)
    device.frames = False
    loop = CaptureLoop(device, Recorder(ok=False))

    loop.tick()
    device.frames = True
    loop.tick()
    await settle()

    assert loop.stats.empty_reads == 1
    assert loop.stats.send_failures == 1
    assert loop.stats.frames_sent == 0
    assert loop.stats.frames_dropped == 2


@pytest.mark.asyncio
async def test_frames_are_downscaled_to_target_jpeg(make_device, settle):
    device = make_device(size=(1280, 720))
    device.open(1280, 720, 20)
    send = Recorder()
    loop = CaptureLoop(device, send, target_size=(640, 480), jpeg_quality=30)

    loop.tick()
    await settle()

    event, payload = send.sent[0]
    assert event == names.CAMERA_FRAME
    image = decode_frame(payload["frame"])
    assert image.shape == (480, 640, 3)


def test_encode_keeps_frames_already_at_target_size(device):
    loop = CaptureLoop(device, Recorder(), target_size=(320, 240))
    frame = np.zeros((240, 320, 3), dtype=np.uint8)

    assert decode_frame(loop.encode(frame)).shape == (240, 320, 3)
