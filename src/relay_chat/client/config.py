from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    BASE_URL: str = "http://localhost:8000"
    WS_PATH: str = "/ws"
    AUTH_COOKIE_NAME: str = "authToken"

    RECONNECT_DELAY: float = 3.0

    TYPING_DEBOUNCE: float = 0.3
    TYPING_IDLE_TIMEOUT: float = 3.0
    REMOTE_TYPING_EXPIRY: float = 2.0

    DISPLAY_CAP: int = 50
    WORKING_SET_CAP: int = 100
    MESSAGE_MAX_CHARS: int = 2000
    REPLY_PREVIEW_CHARS: int = 200

    @property
    def ws_url(self) -> str:
        base = self.BASE_URL.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + self.WS_PATH

    model_config = ConfigDict(
        env_prefix="RELAY_CLIENT_",
        env_file=".env",
        extra="ignore",
    )
