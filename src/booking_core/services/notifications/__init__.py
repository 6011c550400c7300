"""Customer notifications over email and SMS."""

from booking_core.config import BookingSettings

from ..ssm_service import SSMService, get_ssm_service
from . import messages
from .providers import (
    LogProvider,
    NotificationError,
    NotificationProvider,
    SesEmailProvider,
    SmtpEmailProvider,
    TwilioSmsProvider,
    build_email_providers,
    build_sms_providers,
    format_phone_number,
)
from .service import NotificationService


def build_notification_service(
    settings: BookingSettings,
    ssm: SSMService | None = None,
) -> NotificationService:
    """Create a NotificationService from the configured provider lists."""
    ssm = ssm or get_ssm_service()
    return NotificationService(
        email_providers=build_email_providers(settings, ssm),
        sms_providers=build_sms_providers(settings, ssm),
    )


__all__ = [
    "LogProvider",
    "NotificationError",
    "NotificationProvider",
    "NotificationService",
    "SesEmailProvider",
    "SmtpEmailProvider",
    "TwilioSmsProvider",
    "build_notification_service",
    "format_phone_number",
    "messages",
]
