from __future__ import annotations

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from hub_client.config import HubSettings


class CameraSettings(HubSettings):
    """
    Configuration for a camera node. Environment variables use the CAMERA_
    prefix (CAMERA_HUB_URL, CAMERA_TOKEN, CAMERA_DEVICE_SOURCE, ...).
    """

    model_config = SettingsConfigDict(
        env_prefix="CAMERA_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Identity (falls back to username when empty) ---
    camera_id: str = ""

    # --- Capture device ---
    # "0", "1", ... for a local webcam, a file path / RTSP URL, or "synthetic".
    device_source: str = "0"
    capture_width: int = 640   # resolution/fps are hints; devices may ignore them
    capture_height: int = 480
    capture_fps: int = 20

    # --- Transmit loop ---
    target_width: int = 640
    target_height: int = 480
    jpeg_quality: int = Field(30, ge=1, le=100)  # low quality, high throughput
    frame_interval_ms: int = Field(20, ge=1)

    # --- Local status API ---
    http_host: str = "127.0.0.1"
    http_port: int = 8130
    preview_jpeg_quality: int = Field(80, ge=1, le=100)

    @property
    def resolved_camera_id(self) -> str:
        return self.camera_id or self.username

    @property
    def target_size(self) -> tuple[int, int]:
        return (self.target_width, self.target_height)

    @property
    def frame_interval_sec(self) -> float:
        return self.frame_interval_ms / 1000.0
