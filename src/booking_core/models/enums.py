"""Enumeration types for booking and settlement data models."""

from enum import Enum


class ReservationKind(str, Enum):
    """What a reservation holds."""

    APPOINTMENT = "appointment"
    EVENT_SEAT = "event_seat"


class ReservationStatus(str, Enum):
    """Status of a reservation."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class OccupantStatus(str, Enum):
    """Payment sub-status of an event participant."""

    PENDING_PAYMENT = "pending_payment"
    FREE = "free"
    PAID = "paid"


class EventStatus(str, Enum):
    """Lifecycle of an event definition."""

    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Status of a payment record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PAYMENT_STATUSES


TERMINAL_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.REFUNDED,
    }
)

OPEN_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    CREDIT_CARD = "credit_card"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    BIT = "bit"


# Methods settled outside any gateway; confirmed by the business.
MANUAL_PAYMENT_METHODS = frozenset(
    {PaymentMethod.CASH, PaymentMethod.BANK_TRANSFER, PaymentMethod.BIT}
)


class SettlementMode(str, Enum):
    """How a payment gets settled."""

    MANUAL = "manual"
    GATEWAY = "gateway"


class NotificationChannel(str, Enum):
    """Delivery medium for customer notifications."""

    EMAIL = "email"
    SMS = "sms"


class CallbackResult(str, Enum):
    """Outcome recorded for each gateway callback."""

    SUCCESS = "success"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ERROR = "error"
