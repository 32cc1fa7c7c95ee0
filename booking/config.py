# booking/config.py

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide settings, read from BOOKING_* env vars or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Security
    jwt_secret: SecretStr = Field(..., description="Signing key for access tokens")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=24 * 60, ge=1)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # Database
    database_url: str = Field(default="sqlite:///./booking.db")
    db_echo: bool = Field(default=False, description="Log SQL queries")

    # Scheduling
    lock_timeout_seconds: float = Field(default=10.0, gt=0)

    log_level: str = Field(default="INFO")


@lru_cache()
def get_settings() -> Settings:
    """Load settings once; the instance is frozen for the process lifetime."""
    return Settings()
