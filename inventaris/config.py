"""Application configuration."""
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Environment variables take precedence over the .env file, so the same
    code runs in Docker (env vars only) and in local development.
    """

    APP_NAME: str = "Sistem Manajemen Inventaris Sekolah"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./inventaris.db"

    # JWT Settings
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    BCRYPT_ROUNDS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_ROTATION: str = "1 day"
    LOG_RETENTION: str = "7 days"

    # Pagination
    PAGINATION_DEFAULT_LIMIT: int = 10
    PAGINATION_MAX_LIMIT: int = 100

    # Loans
    # 0 disables the per-borrower cap on open (pending + active) loans
    MAX_ACTIVE_LOANS_PER_USER: int = 0

    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
