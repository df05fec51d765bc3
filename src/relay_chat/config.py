from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str = "relay"
    POSTGRES_PASSWORD: str = "relay"
    POSTGRES_DB: str = "relay_chat"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    JWT_SECRET: str = "dev-secret-key-change-me-in-production-0123456789"
    JWT_ALGORITHM: str = "HS256"
    JWT_TTL_SECONDS: int = 7 * 24 * 60 * 60

    AUTH_COOKIE_NAME: str = "authToken"
    AUTH_COOKIE_SECURE: bool = False
    AUTH_CACHE_TTL_SECONDS: float = 300.0
    AUTH_CACHE_MAX_ENTRIES: int = 1024

    CORS_ORIGINS: list[str] = ["*"]

    HISTORY_LIMIT: int = 50
    MESSAGE_MAX_CHARS: int = 2000
    REPLY_PREVIEW_CHARS: int = 200
    ATTACHMENT_MAX_BYTES: int = 300 * 1024 * 1024

    WS_AUTH_TIMEOUT_SECONDS: float = 10.0
    WS_SEND_TIMEOUT_SECONDS: float = 5.0
    WS_HEARTBEAT_SECONDS: int = 30
    # 4 bytes per char for content plus a reply snapshot, with room for the envelope.
    WS_MAX_FRAME_BYTES: int = 20_000

    LOG_LEVEL: str = "info"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
