# lifelog/core/config.py
import secrets
from typing import List, Literal, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment settings
    ENVIRONMENT: Literal["development", "testing", "production"] = "development"

    # API settings
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8  # 8 days

    # CORS settings
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost",
        "http://localhost:3000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None  # Path to log file if file logging is enabled

    # Database settings
    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./lifelog.db"

    # JWT settings
    JWT_ALGORITHM: str = "HS256"

    # Achievement engine
    ACHIEVEMENT_WORKER_POOL_SIZE: int = 1  # >1 fans records out to worker threads
    ACHIEVEMENT_BACKFILL_BATCH_SIZE: int = 200
    ESTIMATION_WINDOW: int = 5  # history entries used for completion estimates
    EARLY_BIRD_HOUR: int = 6
    NIGHT_OWL_HOUR: int = 23

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT: float = 5.0  # seconds

    # Background maintenance (window expiry + notification retries)
    MAINTENANCE_INTERVAL_SECONDS: int = 900
    ENABLE_MAINTENANCE_LOOP: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )


# Create settings instance
settings = Settings()
