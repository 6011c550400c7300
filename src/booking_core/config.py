"""Immutable runtime settings for the booking core.

Settings are read once from environment variables and handed to every
service at construction time. Secrets are never read here: they live in SSM
Parameter Store under ``/booking/{environment}/...`` and are fetched lazily
by the component that needs them.

Usage:
    from booking_core.config import get_settings

    settings = get_settings()
    payments = PaymentService(db, settings, gateways)
"""

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator

MINUTES_PER_DAY = 24 * 60


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class BookingSettings(BaseModel):
    """Configuration shared by all booking services."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Deployment environment")
    table_prefix: str = Field(default="booking-dev", description="DynamoDB table prefix")
    default_currency: str = Field(default="ILS")
    base_url: str = Field(
        default="http://localhost:3000",
        description="Public site used for payment return URLs",
    )
    catalog_source: str = Field(
        default="static",
        description="Service catalog provider: \"static\" or \"dynamodb\"",
    )

    # Settlement
    platform_fee_percentage: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    default_gateway: str = Field(default="stripe")
    enabled_gateways: tuple[str, ...] = ("stripe", "mock")
    mock_gateway_secret: str = Field(
        default="mock-callback-secret",
        description="HMAC key for the mock gateway callbacks",
    )
    payment_page_ttl_minutes: int = Field(default=30, ge=30)
    processing_timeout_minutes: int = Field(default=30, gt=0)
    gateway_status_retries: int = Field(default=3, ge=1)
    gateway_retry_backoff_seconds: float = Field(default=0.5, ge=0)
    gateway_network_retries: int = Field(default=2, ge=0)

    # Calendar
    slot_granularity_minutes: int = Field(default=5, gt=0)
    max_slot_buckets: int = Field(
        default=96,
        gt=0,
        le=99,
        description="Buckets claimed per transaction, bounded by the 100 item limit",
    )
    reminder_window_hours: int = Field(default=24, gt=0)

    # Notifications
    email_providers: tuple[str, ...] = ("ses", "smtp")
    sms_providers: tuple[str, ...] = ("twilio", "log")
    ses_from_email: str | None = None
    ses_region: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_use_tls: bool = True
    smtp_from_email: str | None = None
    twilio_account_sid: str | None = None
    twilio_from_number: str | None = None

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_slot_granularity(cls, v: int) -> int:
        """Every day must start on the same bucket grid."""
        if MINUTES_PER_DAY % v:
            raise ValueError(f"slot_granularity_minutes must divide {MINUTES_PER_DAY}, got {v}")
        return v

    def ssm_path(self, name: str) -> str:
        """Build an SSM parameter path for this environment.

        Args:
            name: Path below the environment, e.g. "stripe/secret_key"

        Returns:
            Full parameter name.
        """
        return f"/booking/{self.environment}/{name}"

    @classmethod
    def from_env(cls) -> "BookingSettings":
        """Build settings from environment variables."""
        environment = os.getenv("ENVIRONMENT", "dev")
        return cls(
            environment=environment,
            table_prefix=os.getenv("DYNAMODB_TABLE_PREFIX", f"booking-{environment}"),
            default_currency=os.getenv("DEFAULT_CURRENCY", "ILS"),
            base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000"),
            catalog_source=os.getenv("CATALOG_SOURCE", "static"),
            platform_fee_percentage=Decimal(os.getenv("PLATFORM_FEE_PERCENTAGE", "5")),
            default_gateway=os.getenv("DEFAULT_PAYMENT_GATEWAY", "stripe"),
            enabled_gateways=_env_list("PAYMENT_GATEWAYS", "stripe,mock"),
            mock_gateway_secret=os.getenv("MOCK_GATEWAY_SECRET", "mock-callback-secret"),
            processing_timeout_minutes=int(os.getenv("PAYMENT_PROCESSING_TIMEOUT_MINUTES", "30")),
            gateway_status_retries=int(os.getenv("GATEWAY_STATUS_RETRIES", "3")),
            gateway_retry_backoff_seconds=float(os.getenv("GATEWAY_RETRY_BACKOFF_SECONDS", "0.5")),
            gateway_network_retries=int(os.getenv("GATEWAY_NETWORK_RETRIES", "2")),
            slot_granularity_minutes=int(os.getenv("SLOT_GRANULARITY_MINUTES", "5")),
            reminder_window_hours=int(os.getenv("REMINDER_WINDOW_HOURS", "24")),
            email_providers=_env_list("EMAIL_PROVIDERS", "ses,smtp"),
            sms_providers=_env_list("SMS_PROVIDERS", "twilio,log"),
            ses_from_email=os.getenv("SES_FROM_EMAIL"),
            ses_region=os.getenv("SES_REGION"),
            smtp_host=os.getenv("SMTP_HOST"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_username=os.getenv("SMTP_USERNAME"),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            smtp_from_email=os.getenv("SMTP_FROM_EMAIL"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
            twilio_from_number=os.getenv("TWILIO_FROM_NUMBER"),
        )


@lru_cache(maxsize=1)
def get_settings() -> BookingSettings:
    """Get the process-wide settings (read once).

    Returns:
        BookingSettings built from the environment.
    """
    return BookingSettings.from_env()
