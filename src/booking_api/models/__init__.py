"""API request/response models."""

from .bookings import (
    AppointmentRequest,
    CustomerRequest,
    RegistrationRequest,
)
from .payments import PaymentResponse, RefundRequest, WebhookResponse

__all__ = [
    "AppointmentRequest",
    "CustomerRequest",
    "PaymentResponse",
    "RefundRequest",
    "RegistrationRequest",
    "WebhookResponse",
]
