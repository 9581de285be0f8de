# backend/tutormarket/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import ALLOWED_DURATIONS, BRAND_NAME

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)

_DEFAULT_SECRET_KEY = SecretStr("dev-only-secret-key-change-me")


def is_running_tests() -> bool:
    """Detect if code is running under pytest."""
    return os.getenv("PYTEST_CURRENT_TEST") is not None


class Settings(BaseSettings):
    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Auth
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key for JWT tokens",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours
    cron_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer secret required by internal scheduled endpoints",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./tutormarket.db",
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )
    db_pool_size: int = Field(default=10, description="Persistent pool connections (PostgreSQL)")
    db_max_overflow: int = Field(default=10, description="Overflow pool connections (PostgreSQL)")
    db_serialization_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for a booking write that hits a serialization failure or deadlock",
    )

    # Booking time rules
    booking_min_lead_hours: int = Field(
        default=24, ge=0, description="Bookings must start strictly after now + this many hours"
    )
    booking_max_advance_days: int = Field(
        default=90, ge=1, description="Bookings may start at most this many days ahead"
    )
    booking_slot_granularity_minutes: int = Field(
        default=30, ge=1, description="Start times must align to this many minutes"
    )
    booking_allowed_durations: List[int] = Field(
        default_factory=lambda: list(ALLOWED_DURATIONS),
        description="Session lengths (minutes) a student may book",
    )
    reschedule_min_notice_hours: int = Field(
        default=4, ge=0, description="Reschedules need at least this much notice before start"
    )

    # Cancellation policy
    late_cancellation_cutoff_hours: int = Field(
        default=12, ge=0, description="Cancelling with less notice than this counts as late"
    )
    late_cancellation_threshold: int = Field(
        default=2,
        ge=0,
        description="Penalty applies once a student's late cancellations exceed this count",
    )
    late_cancellation_window_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Only count late cancellations within this many days (None = all-time)",
    )
    penalty_duration_days: int = Field(
        default=7, ge=1, description="Length of a cancellation penalty"
    )

    # Refund settlement
    refund_claim_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="A refund claim older than this is considered abandoned and may be retried",
    )
    expired_refund_batch_size: int = Field(
        default=100, ge=1, description="Expired pending bookings processed per sweep"
    )

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )

    # Email
    email_provider: Literal["console", "resend"] = Field(
        default="console",
        description="Email provider name",
    )
    resend_api_key: Optional[str] = Field(
        default=None,
        description="API key for Resend provider (optional)",
    )
    from_email: str = Field(
        default=f"{BRAND_NAME} <bookings@tutormarket.example>",
        description="Sender used for transactional email",
    )
    notification_workers: int = Field(
        default=2, ge=1, description="Threads delivering post-commit notifications"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("booking_allowed_durations")
    @classmethod
    def _validate_durations(cls, value: List[int]) -> List[int]:
        if not value or any(d <= 0 for d in value):
            raise ValueError("booking_allowed_durations must be a non-empty list of positive ints")
        return sorted(set(value))


settings = Settings()
