"""Application configuration using pydantic-settings."""

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./fms.db"

    # FMS provider access
    FMS_PROVIDER_TIMEOUT_SECONDS: float = 30.0
    FMS_SIMULATED_DATA_PATH: str = "./config/fms-simulated-data.json"

    # Sync history pagination
    FMS_SYNC_HISTORY_DEFAULT_LIMIT: int = 50
    FMS_SYNC_HISTORY_MAX_LIMIT: int = 200

    # Recorded as the performer when no user triggered an action
    FMS_SYSTEM_ACTOR_ID: str = "fms-system"

    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("FMS_PROVIDER_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the provider timeout is positive."""
        if v <= 0:
            raise ValueError("FMS_PROVIDER_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("LOG_LEVEL", "FMS_PROVIDER_LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | None, info: ValidationInfo) -> str | None:
        """Validate and normalize a level name to an uppercase Python logging level."""
        if v is None or v == "":
            if info.field_name == "LOG_LEVEL":
                raise ValueError("LOG_LEVEL must not be empty")
            return None
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"{info.field_name} must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    # Level for provider client loggers; unset means LOG_LEVEL
    FMS_PROVIDER_LOG_LEVEL: str | None = None


settings = Settings()
