"""Standard error codes for booking and settlement operations.

Every failure a caller can see is a ``BookingError`` carrying a stable
``ErrorCode``. Codes are grouped into categories so transports can map them
without knowing every code, and messages are localized for the two locales
the product ships with.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""

    # Reservation error codes (ERR_001-ERR_009)
    UNKNOWN_SERVICE = "ERR_001"
    INVALID_WINDOW = "ERR_002"
    SLOT_CONFLICT = "ERR_003"
    CAPACITY_EXCEEDED = "ERR_004"
    EVENT_NOT_FOUND = "ERR_005"
    EVENT_NOT_OPEN = "ERR_006"
    RESERVATION_NOT_FOUND = "ERR_007"
    BUSINESS_NOT_FOUND = "ERR_008"
    INVALID_CUSTOMER = "ERR_009"

    # Payment error codes (ERR_PAY_001-ERR_PAY_008)
    PAYMENT_NOT_FOUND = "ERR_PAY_001"
    PAYMENT_NOT_REFUNDABLE = "ERR_PAY_002"
    INVALID_REFUND_AMOUNT = "ERR_PAY_003"
    UNKNOWN_PAYMENT_PROVIDER = "ERR_PAY_004"
    INVALID_CALLBACK_SIGNATURE = "ERR_PAY_005"
    GATEWAY_UNAVAILABLE = "ERR_PAY_006"
    PAYMENT_NOT_CONFIRMABLE = "ERR_PAY_007"
    REFUND_FAILED = "ERR_PAY_008"

    # Infrastructure
    STORE_UNAVAILABLE = "ERR_SYS_001"


class ErrorCategory(str, Enum):
    """Coarse grouping used for transport mapping and log levels."""

    VALIDATION = "validation"
    CONTENTION = "contention"
    NOT_FOUND = "not_found"
    GATEWAY = "gateway"
    CONSISTENCY = "consistency"
    SYSTEM = "system"


ERROR_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.UNKNOWN_SERVICE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_WINDOW: ErrorCategory.VALIDATION,
    ErrorCode.SLOT_CONFLICT: ErrorCategory.CONTENTION,
    ErrorCode.CAPACITY_EXCEEDED: ErrorCategory.CONTENTION,
    ErrorCode.EVENT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.EVENT_NOT_OPEN: ErrorCategory.VALIDATION,
    ErrorCode.RESERVATION_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.BUSINESS_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.INVALID_CUSTOMER: ErrorCategory.VALIDATION,
    ErrorCode.PAYMENT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.PAYMENT_NOT_REFUNDABLE: ErrorCategory.CONSISTENCY,
    ErrorCode.INVALID_REFUND_AMOUNT: ErrorCategory.VALIDATION,
    ErrorCode.UNKNOWN_PAYMENT_PROVIDER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_CALLBACK_SIGNATURE: ErrorCategory.VALIDATION,
    ErrorCode.GATEWAY_UNAVAILABLE: ErrorCategory.GATEWAY,
    ErrorCode.PAYMENT_NOT_CONFIRMABLE: ErrorCategory.CONSISTENCY,
    ErrorCode.REFUND_FAILED: ErrorCategory.GATEWAY,
    ErrorCode.STORE_UNAVAILABLE: ErrorCategory.SYSTEM,
}

# Codes a caller may reasonably retry with the same input
RETRYABLE_ERRORS: set[ErrorCode] = {
    ErrorCode.GATEWAY_UNAVAILABLE,
    ErrorCode.REFUND_FAILED,
    ErrorCode.STORE_UNAVAILABLE,
}

DEFAULT_LOCALE = "en"

# Human-readable error messages per locale
ERROR_MESSAGES: dict[str, dict[ErrorCode, str]] = {
    "en": {
        ErrorCode.UNKNOWN_SERVICE: "The requested service does not exist",
        ErrorCode.INVALID_WINDOW: "The requested time is not bookable",
        ErrorCode.SLOT_CONFLICT: "The requested time slot is already taken",
        ErrorCode.CAPACITY_EXCEEDED: "The event is full",
        ErrorCode.EVENT_NOT_FOUND: "Event not found",
        ErrorCode.EVENT_NOT_OPEN: "The event is not open for registration",
        ErrorCode.RESERVATION_NOT_FOUND: "Reservation not found",
        ErrorCode.BUSINESS_NOT_FOUND: "Business not found",
        ErrorCode.INVALID_CUSTOMER: "Customer details are incomplete",
        ErrorCode.PAYMENT_NOT_FOUND: "Payment not found",
        ErrorCode.PAYMENT_NOT_REFUNDABLE: "Only completed payments can be refunded",
        ErrorCode.INVALID_REFUND_AMOUNT: "Refund amount must be positive and at most the paid amount",
        ErrorCode.UNKNOWN_PAYMENT_PROVIDER: "Unknown payment provider",
        ErrorCode.INVALID_CALLBACK_SIGNATURE: "Invalid payment callback signature",
        ErrorCode.GATEWAY_UNAVAILABLE: "The payment provider is temporarily unavailable",
        ErrorCode.PAYMENT_NOT_CONFIRMABLE: "The payment cannot be confirmed in its current state",
        ErrorCode.REFUND_FAILED: "The payment provider rejected the refund",
        ErrorCode.STORE_UNAVAILABLE: "The booking store is temporarily unavailable",
    },
    "he": {
        ErrorCode.UNKNOWN_SERVICE: "השירות המבוקש אינו קיים",
        ErrorCode.INVALID_WINDOW: "לא ניתן להזמין את המועד המבוקש",
        ErrorCode.SLOT_CONFLICT: "המועד המבוקש כבר תפוס",
        ErrorCode.CAPACITY_EXCEEDED: "האירוע מלא",
        ErrorCode.EVENT_NOT_FOUND: "האירוע לא נמצא",
        ErrorCode.EVENT_NOT_OPEN: "ההרשמה לאירוע אינה פתוחה",
        ErrorCode.RESERVATION_NOT_FOUND: "ההזמנה לא נמצאה",
        ErrorCode.BUSINESS_NOT_FOUND: "העסק לא נמצא",
        ErrorCode.INVALID_CUSTOMER: "פרטי הלקוח חסרים",
        ErrorCode.PAYMENT_NOT_FOUND: "התשלום לא נמצא",
        ErrorCode.PAYMENT_NOT_REFUNDABLE: "ניתן לזכות רק תשלומים שהושלמו",
        ErrorCode.INVALID_REFUND_AMOUNT: "סכום הזיכוי חייב להיות חיובי ולא לעלות על הסכום ששולם",
        ErrorCode.UNKNOWN_PAYMENT_PROVIDER: "ספק תשלום לא מוכר",
        ErrorCode.INVALID_CALLBACK_SIGNATURE: "חתימת ההודעה מספק התשלום אינה תקינה",
        ErrorCode.GATEWAY_UNAVAILABLE: "ספק התשלום אינו זמין כרגע",
        ErrorCode.PAYMENT_NOT_CONFIRMABLE: "לא ניתן לאשר את התשלום במצבו הנוכחי",
        ErrorCode.REFUND_FAILED: "ספק התשלום דחה את הזיכוי",
        ErrorCode.STORE_UNAVAILABLE: "מערכת ההזמנות אינה זמינה כרגע",
    },
}

# Recovery suggestions for callers
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.UNKNOWN_SERVICE: "Choose a service from the published catalog",
    ErrorCode.INVALID_WINDOW: "Pick a future start time aligned to the booking grid",
    ErrorCode.SLOT_CONFLICT: "Choose a different time slot",
    ErrorCode.CAPACITY_EXCEEDED: "Choose another event or join a later date",
    ErrorCode.EVENT_NOT_FOUND: "Verify the event ID",
    ErrorCode.EVENT_NOT_OPEN: "Wait until the event is published",
    ErrorCode.RESERVATION_NOT_FOUND: "Verify the reservation ID",
    ErrorCode.BUSINESS_NOT_FOUND: "Verify the business ID",
    ErrorCode.INVALID_CUSTOMER: "Provide first name, last name, email and phone",
    ErrorCode.PAYMENT_NOT_FOUND: "Verify the payment ID",
    ErrorCode.PAYMENT_NOT_REFUNDABLE: "Check the payment status before refunding",
    ErrorCode.INVALID_REFUND_AMOUNT: "Use an amount between 1 and the paid amount",
    ErrorCode.UNKNOWN_PAYMENT_PROVIDER: "Use one of the configured payment providers",
    ErrorCode.INVALID_CALLBACK_SIGNATURE: "Verify the callback secret configuration",
    ErrorCode.GATEWAY_UNAVAILABLE: "Try again in a few moments",
    ErrorCode.PAYMENT_NOT_CONFIRMABLE: "Check the payment status",
    ErrorCode.REFUND_FAILED: "Try again or refund through the provider dashboard",
    ErrorCode.STORE_UNAVAILABLE: "Try again in a few moments",
}


def get_error_message(code: ErrorCode, locale: Optional[str] = None) -> str:
    """Get the message for a code, falling back to the default locale.

    Args:
        code: The error code
        locale: Requested locale such as "he" or "en-US"

    Returns:
        Localized message text.
    """
    lang = (locale or DEFAULT_LOCALE).split("-")[0].lower()
    messages = ERROR_MESSAGES.get(lang, ERROR_MESSAGES[DEFAULT_LOCALE])
    return messages[code]


class ErrorResponse(BaseModel):
    """Standard error body returned to callers."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    category: ErrorCategory
    message: str
    recovery: str
    retryable: bool = False
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
        locale: Optional[str] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error
            locale: Locale for the message text

        Returns:
            An ErrorResponse with message, category and recovery hint.
        """
        return cls(
            error_code=code,
            category=ERROR_CATEGORIES[code],
            message=get_error_message(code, locale),
            recovery=ERROR_RECOVERY[code],
            retryable=code in RETRYABLE_ERRORS,
            details=details,
        )


class BookingError(Exception):
    """Exception raised by booking and settlement operations."""

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.category = ERROR_CATEGORIES[code]
        self.message = get_error_message(code)
        self.recovery = ERROR_RECOVERY[code]
        self.retryable = code in RETRYABLE_ERRORS
        self.details = details
        super().__init__(self.message)

    def to_error_response(self, locale: Optional[str] = None) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details, locale)


# Stripe error codes that indicate the request may succeed on retry
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable.

    Args:
        stripe_error_code: The Stripe error code.

    Returns:
        True if the error may be resolved by retrying.
    """
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
