from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from overlay import encode_jpeg

from .node import CameraNode
from .state import CameraStatus


class HealthOut(BaseModel):
    status: str
    time_utc: datetime

    model_config = {"json_schema_extra": {"examples": [{"status": "ok", "time_utc": "2026-02-18T12:00:00Z"}]}}


def create_app(node: CameraNode) -> FastAPI:
    """
    Create the camera node's local status API.
    """
    app = FastAPI(
        title="Guard-X Camera Node",
        version="0.1.0",
        description="Connection/capture status and detection preview for one camera node.",
    )

    @app.get("/health", response_model=HealthOut, tags=["health"])
    def health() -> HealthOut:
        """Liveness check: returns OK if the camera node process is running."""
        return HealthOut(status="ok", time_utc=datetime.now(timezone.utc))

    @app.get("/status", response_model=CameraStatus, tags=["status"])
    async def status() -> CameraStatus:
        """Session state, connection and streaming counters."""
        return node.status()

    @app.get("/preview.jpg", tags=["status"])
    async def preview() -> Response:
        """Latest detection result for this camera with boxes drawn on."""
        image = node.preview()
        if image is None:
            raise HTTPException(status_code=404, detail="No detection result to preview")
        return Response(content=encode_jpeg(image, node.cfg.preview_jpeg_quality), media_type="image/jpeg")

    return app
