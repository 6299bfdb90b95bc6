from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from events.models import Stats
from overlay import encode_jpeg

from .aggregator import RegistryState
from .node import AdminNode


class HealthOut(BaseModel):
    status: str
    connected: bool
    time_utc: datetime


class CameraOut(BaseModel):
    sid: str
    camera_id: str
    username: str
    state: RegistryState
    threats: int = 0
    last_update: Optional[float] = None


class CommandOut(BaseModel):
    camera_sid: str
    sent: bool
    state: Optional[RegistryState] = None


def create_app(node: AdminNode) -> FastAPI:
    """
    Create the admin dashboard API: camera registry, stats, tiles and commands.
    """
    app = FastAPI(
        title="Guard-X Admin Node",
        version="0.1.0",
        description="Command and control for deployed camera nodes.",
    )

    # Registry reads stay on the node's event loop: handlers touching it are async.

    def _require_camera(sid: str) -> None:
        if node.aggregator.camera(sid) is None:
            raise HTTPException(status_code=404, detail=f"Unknown camera sid {sid}")

    @app.get("/health", response_model=HealthOut, tags=["health"])
    async def health() -> HealthOut:
        """Liveness check plus hub connection flag."""
        return HealthOut(status="ok", connected=node.connected, time_utc=datetime.now(timezone.utc))

    @app.get("/stats", response_model=Stats, tags=["cameras"])
    async def stats() -> Stats:
        return node.aggregator.stats

    @app.get("/cameras", response_model=List[CameraOut], tags=["cameras"])
    async def cameras() -> List[CameraOut]:
        out = []
        for record in node.aggregator.cameras:
            payload = node.aggregator.latest(record.sid)
            out.append(
                CameraOut(
                    sid=record.sid,
                    camera_id=record.camera_id,
                    username=record.username,
                    state=node.aggregator.registry_state(record.sid),
                    threats=payload.threat_count if payload else 0,
                    last_update=payload.timestamp if payload else None,
                )
            )
        return out

    @app.get("/cameras/{sid}/tile.jpg", tags=["cameras"])
    async def tile(sid: str) -> Response:
        """Latest frame of one camera with detection overlay."""
        _require_camera(sid)
        image = node.tile(sid)
        if image is None:
            raise HTTPException(status_code=404, detail="No frame received yet")
        return Response(content=encode_jpeg(image, node.cfg.tile_jpeg_quality), media_type="image/jpeg")

    @app.post("/cameras/{sid}/deploy", response_model=CommandOut, tags=["commands"])
    async def deploy(sid: str) -> CommandOut:
        _require_camera(sid)
        if not node.connected:
            raise HTTPException(status_code=409, detail="Not connected to hub")
        sent = await node.deploy(sid)
        return CommandOut(camera_sid=sid, sent=sent, state=node.aggregator.registry_state(sid))

    @app.post("/cameras/{sid}/stop", response_model=CommandOut, tags=["commands"])
    async def stop(sid: str) -> CommandOut:
        _require_camera(sid)
        sent = await node.stop(sid)
        return CommandOut(camera_sid=sid, sent=sent, state=node.aggregator.registry_state(sid))

    return app
