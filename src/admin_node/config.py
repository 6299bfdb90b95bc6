from __future__ import annotations

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from hub_client.config import HubSettings

ADMIN_ROLE = "ADMIN"


class AdminSettings(HubSettings):
    """
    Configuration for the admin node. Environment variables use the ADMIN_
    prefix (ADMIN_HUB_URL, ADMIN_TOKEN, ADMIN_ROLE, ...).
    """

    model_config = SettingsConfigDict(
        env_prefix="ADMIN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Role reported by the login flow; only ADMIN may run this node.
    role: str = ADMIN_ROLE

    # --- Dashboard API ---
    http_host: str = "127.0.0.1"
    http_port: int = 8131
    tile_jpeg_quality: int = Field(80, ge=1, le=100)

    @property
    def is_admin(self) -> bool:
        return self.role.strip().upper() == ADMIN_ROLE
