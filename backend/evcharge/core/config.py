# backend/evcharge/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./evcharge.db",
        description="SQLAlchemy URL (PostgreSQL in production, SQLite for local/test)",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Auth (tokens are issued elsewhere, verified here)
    secret_key: SecretStr = Field(
        default=SecretStr("dev-secret-key-change-me"),
        description="Secret key for JWT tokens",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    # Stripe Configuration
    stripe_publishable_key: str = Field(
        default="", description="Stripe publishable key for frontend"
    )
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_currency: str = Field(default="inr", description="Currency for all charges")
    stripe_timeout_seconds: int = Field(default=8, ge=1, description="Stripe HTTP timeout")

    # Booking rules
    cancellation_cutoff_hours: float = Field(
        default=1.0, ge=0, description="Minimum notice before start for EV-owner cancellation"
    )
    min_booking_duration_hours: float = Field(default=0.5, gt=0)
    default_search_radius_km: float = Field(default=10.0, gt=0)

    # Observability
    slow_operation_threshold_seconds: float = Field(default=1.0, gt=0)
    metrics_enabled: bool = True

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return (value or "inr").strip().lower()

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def is_testing(self) -> bool:
        return self.environment == "test" or is_running_tests()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key.get_secret_value())


settings = Settings()
logger.info(
    "[CONFIG] environment=%s database=%s stripe_configured=%s",
    settings.environment,
    "sqlite" if settings.is_sqlite else "postgresql",
    settings.stripe_configured,
)
