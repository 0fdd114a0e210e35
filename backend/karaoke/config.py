import sys
import warnings
from functools import lru_cache
from typing import Any, Literal

from pydantic import ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Karaoke Together"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"  # TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL
    LOG_TO_FILE: bool = True
    LOG_DIR: str = "logs"

    # Redis (rate limiter only, rooms live in process memory)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_USE_REDIS: bool = False

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Public frontend origin, embedded in control links and QR codes
    FRONTEND_ORIGIN: str = "http://localhost:3000"

    # YouTube search proxy
    YOUTUBE_API_KEY: str = ""
    YOUTUBE_API_URL: str = "https://www.googleapis.com/youtube/v3/search"
    SEARCH_MAX_RESULTS: int = 10
    SEARCH_TIMEOUT_SECONDS: float = 8.0

    # Room limits
    MAX_ROOMS: int = 1000
    MAX_CONTROLLERS_PER_ROOM: int = 50
    MAX_QUEUE_LENGTH: int = 200
    MAX_USERNAME_LENGTH: int = 32
    MAX_TITLE_LENGTH: int = 200
    MAX_VIDEO_ID_LENGTH: int = 64
    MAX_QUERY_LENGTH: int = 200
    MAX_MESSAGE_SIZE: int = 16 * 1024  # bytes per inbound websocket frame

    # Credentials
    TOKEN_MAX_ATTEMPTS: int = 10

    # Room expiry
    ROOM_RETENTION_MINUTES: int = 24 * 60
    ROOM_EXPIRY_BASIS: Literal["created", "last_activity"] = "last_activity"
    CLEANUP_INTERVAL_SECONDS: int = 300

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator(
        "SEARCH_MAX_RESULTS",
        "MAX_ROOMS",
        "MAX_CONTROLLERS_PER_ROOM",
        "MAX_QUEUE_LENGTH",
        "MAX_USERNAME_LENGTH",
        "MAX_TITLE_LENGTH",
        "MAX_VIDEO_ID_LENGTH",
        "MAX_QUERY_LENGTH",
        "MAX_MESSAGE_SIZE",
        "TOKEN_MAX_ATTEMPTS",
        "ROOM_RETENTION_MINUTES",
        "CLEANUP_INTERVAL_SECONDS",
        mode="wrap",
    )
    @classmethod
    def fallback_to_default_limit(cls, v: Any, handler, info: ValidationInfo) -> int:
        """Invalid or non-positive limits fall back to the documented default."""
        default = cls.model_fields[info.field_name].default
        try:
            value = handler(v)
        except ValidationError:
            value = None
        if value is None or value < 1:
            warnings.warn(
                f"{info.field_name}={v!r} is not a positive integer, using default {default}",
                RuntimeWarning,
                stacklevel=2,
            )
            return default
        return value

    @field_validator("SEARCH_TIMEOUT_SECONDS", mode="wrap")
    @classmethod
    def fallback_to_default_timeout(cls, v: Any, handler, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        try:
            value = handler(v)
        except ValidationError:
            value = None
        if value is None or value <= 0:
            warnings.warn(
                f"{info.field_name}={v!r} is not a positive number, using default {default}",
                RuntimeWarning,
                stacklevel=2,
            )
            return default
        return value

    @field_validator("FRONTEND_ORIGIN")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def get_cors_origins(self) -> list[str]:
        origins = list(self.CORS_ORIGINS)
        if self.FRONTEND_ORIGIN not in origins:
            origins.append(self.FRONTEND_ORIGIN)
        return origins


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Exits the process if configuration cannot be loaded at all.
    """
    try:
        return Settings()
    except Exception as e:
        print(f"\n{'='*70}")
        print(f"CONFIGURATION ERROR: {e}")
        print(f"{'='*70}\n")
        sys.exit(1)


settings = get_settings()
