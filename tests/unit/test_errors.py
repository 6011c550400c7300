"""Unit tests for error codes, categories and localized messages."""

import pytest

from booking_core.models import (
    BookingError,
    ErrorCategory,
    ErrorCode,
    ErrorResponse,
    get_error_message,
)
from booking_core.models.errors import (
    ERROR_CATEGORIES,
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    is_stripe_error_retryable,
)


class TestErrorTables:
    """Every code has a category, a recovery hint and a message per locale."""

    @pytest.mark.parametrize("code", list(ErrorCode))
    def test_code_is_fully_described(self, code: ErrorCode) -> None:
        assert code in ERROR_CATEGORIES
        assert code in ERROR_RECOVERY
        for messages in ERROR_MESSAGES.values():
            assert messages[code]


class TestBookingError:
    """Tests for BookingError attributes and conversion."""

    def test_contention_error_is_not_retryable(self) -> None:
        error = BookingError(ErrorCode.SLOT_CONFLICT, {"window_start": "2026-01-01T10:00:00+00:00"})

        assert error.category == ErrorCategory.CONTENTION
        assert error.retryable is False
        assert str(error) == "The requested time slot is already taken"

    def test_gateway_unavailable_is_retryable(self) -> None:
        error = BookingError(ErrorCode.GATEWAY_UNAVAILABLE)

        assert error.category == ErrorCategory.GATEWAY
        assert error.retryable is True

    def test_to_error_response_localizes(self) -> None:
        error = BookingError(ErrorCode.CAPACITY_EXCEEDED, {"event_id": "EVT-1"})

        response = error.to_error_response("he-IL")

        assert isinstance(response, ErrorResponse)
        assert response.success is False
        assert response.error_code == ErrorCode.CAPACITY_EXCEEDED
        assert response.message == ERROR_MESSAGES["he"][ErrorCode.CAPACITY_EXCEEDED]
        assert response.details == {"event_id": "EVT-1"}


class TestMessages:
    """Tests for locale fallback."""

    def test_unknown_locale_falls_back_to_english(self) -> None:
        assert get_error_message(ErrorCode.EVENT_NOT_FOUND, "fr") == "Event not found"

    def test_default_locale_is_english(self) -> None:
        assert get_error_message(ErrorCode.EVENT_NOT_FOUND) == "Event not found"


class TestStripeRetryable:
    """Tests for Stripe error classification."""

    def test_rate_limit_is_retryable(self) -> None:
        assert is_stripe_error_retryable("rate_limit") is True

    def test_card_declined_is_not_retryable(self) -> None:
        assert is_stripe_error_retryable("card_declined") is False

    def test_none_is_not_retryable(self) -> None:
        assert is_stripe_error_retryable(None) is False
