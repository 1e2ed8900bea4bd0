"""Configuration module for the catalog backend."""

from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

MB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings.

    Deployments differ only in CORS origins and body limits, so those are
    plain knobs here.
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Music Catalog API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 5000

    # Storage
    DATABASE_PATH: Path = Path("catalog.db")
    UPLOADS_DIR: Path = Path("uploads")

    # CORS
    CORS_ORIGINS: set[str] = {"http://localhost:5173"}

    # Request limits
    MAX_BODY_SIZE: int = 200 * MB
    MAX_UPLOAD_FILE_SIZE: int = 100 * MB
    MAX_UPLOAD_FILE_COUNT: int = 10

    # Admin guard (unset disables it)
    ADMIN_TOKEN: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
