"""
backend/doit/core/config.py

Application Configuration Loader

Loads and manages application settings from environment variables
using Pydantic's BaseSettings with `.env` support.
Only the composition root (core/dependencies.py, main.py) reads `settings`;
services receive the values they need through their constructors.
"""

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------
# Logger Configuration
# ---------------------------------------------------
logger = logging.getLogger(__name__)

# ---------------------------------------------------
# Base Directory Calculation
# ---------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_DOTENV_PATH = BASE_DIR / ".env"


# ---------------------------------------------------
# Settings Definition
# ---------------------------------------------------
class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    """

    # --- Pydantic Settings Configuration ---
    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_DOTENV_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- General Application Settings ---
    APP_NAME: str = "DoIt"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Document Store Settings ---
    DATABASE_URL: str = f"sqlite+aiosqlite:///{BASE_DIR / 'doit.db'}"
    MAX_DOCUMENT_BYTES: int = 1024 * 1024

    # --- Identity Token Verification (issued by the managed auth provider) ---
    AUTH_SECRET_KEY: str = "change-me"
    AUTH_ALGORITHM: str = "HS256"

    # --- Image Storage Strategy ---
    USE_OBJECT_STORAGE: bool = False
    INLINE_IMAGE_SAFETY_MARGIN_BYTES: int = int(0.9 * 1024 * 1024)

    # --- AWS S3 Storage Settings ---
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    AWS_REGION: str = "eu-central-1"
    AWS_S3_BUCKET: str | None = None

    # --- HTTP Settings ---
    CORS_ALLOWED_ORIGINS: str = ""
    RATE_LIMIT_ENABLED: bool = True

    # --- Calculated Properties ---
    @property
    def cors_origins(self) -> list[str]:
        """Parses the CORS_ALLOWED_ORIGINS string into a list."""
        if not self.CORS_ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def effective_log_level(self) -> str:
        """Development mode always logs at DEBUG."""
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()


def validate_settings(values: Settings) -> None:
    """Rejects configurations that cannot work at runtime."""
    if values.USE_OBJECT_STORAGE and not values.AWS_S3_BUCKET:
        error_message = "USE_OBJECT_STORAGE is enabled but AWS_S3_BUCKET is not configured"
        logger.error(error_message)
        raise ValueError(error_message)
    if values.INLINE_IMAGE_SAFETY_MARGIN_BYTES >= values.MAX_DOCUMENT_BYTES:
        error_message = (
            f"INLINE_IMAGE_SAFETY_MARGIN_BYTES ({values.INLINE_IMAGE_SAFETY_MARGIN_BYTES}) "
            f"must be below MAX_DOCUMENT_BYTES ({values.MAX_DOCUMENT_BYTES})"
        )
        logger.error(error_message)
        raise ValueError(error_message)


# ---------------------------------------------------
# Instantiate Settings Globally
# ---------------------------------------------------
settings = Settings()

# ---------------------------------------------------
# Post-Instantiation Validation
# ---------------------------------------------------
validate_settings(settings)
logger.info(
    f"[CONFIG] {settings.APP_NAME} using "
    f"{'object storage' if settings.USE_OBJECT_STORAGE else 'inline'} image strategy"
)
