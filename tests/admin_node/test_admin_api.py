import asyncio
import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

from admin_node.admin_api import create_app
from admin_node.aggregator import AdminAggregator
from admin_node.config import AdminSettings
from admin_node.node import AdminNode
from events.models import CameraRecord, DetectionPayload, DetectionSet
from overlay import encode_jpeg


@pytest.fixture
def admin(transport):
    node = AdminNode(AdminSettings(token="tok", role="ADMIN"), transport)
    node.aggregator.load_camera_list(
        [
            CameraRecord(sid="s1", camera_id="cam1", username="u1", deployed=True),
            CameraRecord(sid="s2", camera_id="cam2", username="u2"),
        ]
    )
    frame = base64.b64encode(encode_jpeg(np.zeros((48, 64, 3), dtype=np.uint8), 80)).decode("ascii")
    node.aggregator.detection_received(
        DetectionPayload(
            camera_id="cam1",
            camera_sid="s1",
            frame=frame,
            detections=DetectionSet(boxes=[(1, 25, 30, 40)], labels=["Human"], confidences=[0.7]),
            timestamp=1700000000.0,
        )
    )
    return node


@pytest.fixture
def client(admin):
    return TestClient(create_app(admin))


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert data["connected"] is False


def test_stats_endpoint(client):
    data = client.get("/stats").json()
    assert data == {"total_cameras": 2, "deployed_cameras": 1, "total_detections": 1, "active_threats": 1}


def test_cameras_endpoint(client):
    cameras = {camera["sid"]: camera for camera in client.get("/cameras").json()}

    assert cameras["s1"]["state"] == "DEPLOYED"
    assert cameras["s1"]["threats"] == 1
    assert cameras["s1"]["last_update"] == 1700000000.0
    assert cameras["s2"]["state"] == "IDLE"
    assert cameras["s2"]["last_update"] is None


def test_tile_endpoint(client):
    response = client.get("/cameras/s1/tile.jpg")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.content[:2] == b"\xff\xd8"

    assert client.get("/cameras/s2/tile.jpg").status_code == 404
    assert client.get("/cameras/nope/tile.jpg").status_code == 404


def test_deploy_requires_hub_connection(client):
    assert client.post("/cameras/s2/deploy").status_code == 409
    assert client.post("/cameras/nope/deploy").status_code == 404


def test_stop_flips_camera_to_idle(client):
    response = client.post("/cameras/s1/stop")
    assert response.status_code == 200

    data = response.json()
    assert data == {"camera_sid": "s1", "sent": False, "state": "IDLE"}
    assert client.get("/stats").json()["deployed_cameras"] == 0


class LoopOnlyAggregator(AdminAggregator):
    """Fails any registry read made outside an event loop thread."""

    def __init__(self):
        super().__init__()
        self.reads = 0

    def _check(self):
        asyncio.get_running_loop()
        self.reads += 1

    @property
    def stats(self):
        self._check()
        return super().stats

    @property
    def cameras(self):
        self._check()
        return super().cameras

    def latest(self, sid):
        self._check()
        return super().latest(sid)


def test_registry_reads_run_on_the_event_loop(transport):
    aggregator = LoopOnlyAggregator()
    aggregator.load_camera_list([CameraRecord(sid="s1", camera_id="cam1")])
    node = AdminNode(AdminSettings(token="tok", role="ADMIN"), transport, aggregator=aggregator)
    client = TestClient(create_app(node))

    assert client.get("/stats").status_code == 200
    assert client.get("/cameras").status_code == 200
    assert client.get("/cameras/s1/tile.jpg").status_code == 404
    assert aggregator.reads >= 3
