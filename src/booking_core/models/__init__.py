"""Pydantic models for booking and settlement entities."""

from .business import BusinessProfile
from .callback import CallbackEventLog
from .catalog import ServiceDefinition
from .enums import (
    MANUAL_PAYMENT_METHODS,
    OPEN_PAYMENT_STATUSES,
    TERMINAL_PAYMENT_STATUSES,
    CallbackResult,
    EventStatus,
    NotificationChannel,
    OccupantStatus,
    PaymentMethod,
    PaymentStatus,
    ReservationKind,
    ReservationStatus,
    SettlementMode,
)
from .errors import (
    BookingError,
    ErrorCategory,
    ErrorCode,
    ErrorResponse,
    get_error_message,
    is_stripe_error_retryable,
)
from .event import EventDefinition
from .invoice import Invoice
from .notification import NotificationAttempt, NotificationContent, NotificationResult
from .payment import GatewayCallback, GatewaySession, Payment, RefundOutcome, SplitInfo
from .reservation import BookingConfirmation, CustomerInfo, Reservation

__all__ = [
    # Enums
    "CallbackResult",
    "EventStatus",
    "NotificationChannel",
    "OccupantStatus",
    "PaymentMethod",
    "PaymentStatus",
    "ReservationKind",
    "ReservationStatus",
    "SettlementMode",
    "MANUAL_PAYMENT_METHODS",
    "OPEN_PAYMENT_STATUSES",
    "TERMINAL_PAYMENT_STATUSES",
    # Errors
    "BookingError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorResponse",
    "get_error_message",
    "is_stripe_error_retryable",
    # Entities
    "BookingConfirmation",
    "BusinessProfile",
    "CallbackEventLog",
    "CustomerInfo",
    "EventDefinition",
    "GatewayCallback",
    "GatewaySession",
    "Invoice",
    "NotificationAttempt",
    "NotificationContent",
    "NotificationResult",
    "Payment",
    "RefundOutcome",
    "Reservation",
    "ServiceDefinition",
    "SplitInfo",
]
