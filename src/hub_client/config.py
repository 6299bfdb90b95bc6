from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from .backoff import ReconnectPolicy


class HubSettings(BaseSettings):
    """
    Settings every node needs to reach the hub.

    Subclasses add their own env_prefix; these fields are then read as
    e.g. CAMERA_HUB_URL / ADMIN_HUB_URL.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # ignore unknown env vars
    )

    # --- Hub endpoint ---
    hub_url: str = "http://127.0.0.1:8000"
    socketio_path: str = "socket.io"
    transports: list[str] = ["websocket", "polling"]
    connect_timeout_sec: float = 5.0

    # --- Credential (issued by the external login flow) ---
    token: str = ""
    username: str = ""

    # --- Reconnection: 1s initial, 5s cap, 5 attempts ---
    reconnect_initial_delay_sec: float = 1.0
    reconnect_max_delay_sec: float = 5.0
    reconnect_attempts: int = 5

    # --- Logging ---
    log_level: str = "INFO"
    debug: bool = False

    def reconnect_policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            initial_delay=self.reconnect_initial_delay_sec,
            max_delay=self.reconnect_max_delay_sec,
            max_attempts=self.reconnect_attempts,
        )
