from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings

BG_REMOVAL_MODELS = ("small", "medium", "large")


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./wardrobe.db"

    # Image storage
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    UPLOAD_MAX_BYTES: int = 8 * 1024 * 1024
    IMPORT_ARCHIVE_MAX_BYTES: int = 100 * 1024 * 1024

    # Background removal
    BG_REMOVAL_ENABLED: bool = True
    BG_REMOVAL_BACKEND: str = "rembg"
    BG_REMOVAL_MODEL: str = "small"

    # Standardized canvas
    IMAGE_CANVAS_WIDTH: int = 900
    IMAGE_CANVAS_HEIGHT: int = 1200
    IMAGE_BRIGHTNESS: float = 1.03
    IMAGE_SATURATION: float = 1.05
    IMAGE_BACKGROUND_TOP: str = "#f2f4f7"
    IMAGE_BACKGROUND_BOTTOM: str = "#dfe5ec"

    # Bulk import
    DUPLICATE_HASH_THRESHOLD: int = 6
    IMPORT_JOB_TTL_SECONDS: int = 86400
    IMPORT_MAX_IMAGES: int = 25

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    @field_validator("BG_REMOVAL_MODEL", mode="before")
    @classmethod
    def _known_model(cls, value: object) -> str:
        model = str(value or "").strip().lower()
        return model if model in BG_REMOVAL_MODELS else "small"


settings = Settings()
