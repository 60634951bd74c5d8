"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Video Relay API"
    APP_VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8787
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    # First-party access (X-APP-TOKEN header). Empty means every request is rejected.
    APP_TOKEN: str = ""

    # Generation provider
    PROVIDER_API_KEY: str = ""
    PROVIDER_BASE_URL: str = "https://api.kie.ai"
    PROVIDER_T2V_MODEL: str = "sora-2-text-to-video"
    PROVIDER_I2V_MODEL: str = "sora-2-image-to-video"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Artifact re-hosting
    PUBLIC_BASE_URL: str = "http://localhost:8787"
    FILES_DIR: str = "files"
    PUBLIC_FILES_PATH: str = "/files"
    DOWNLOAD_TIMEOUT_SECONDS: float = 300.0
    DOWNLOAD_CONCURRENCY: int = 4

    # Task store
    STORE_BACKEND: str = "mongo"  # "mongo" or "memory"
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "video_relay"
    TASK_TTL_SECONDS: int = 60 * 60 * 24 * 7  # 7 days

    # Batch / listing bounds
    BATCH_DEFAULT_CONCURRENCY: int = 10
    BATCH_MAX_CONCURRENCY: int = 30
    LIST_DEFAULT_LIMIT: int = 50
    LIST_MAX_LIMIT: int = 200

    # Abuse protection
    RATE_LIMIT_PER_MINUTE: int = 120
    MAX_REQUEST_BODY_BYTES: int = 1_000_000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def public_files_path(self) -> str:
        path = (self.PUBLIC_FILES_PATH or "/files").strip()
        path = path if path.startswith("/") else f"/{path}"
        return path.rstrip("/") or "/files"

    @property
    def callback_url(self) -> str:
        base = self.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}{self.API_PREFIX}/callback"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in (self.CORS_ORIGINS or "").split(",") if o.strip()]

    def public_video_url(self, local_task_id: str) -> str:
        base = self.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}{self.public_files_path}/{local_task_id}.mp4"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
