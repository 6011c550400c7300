"""Payment gateway protocol shared by all provider variants."""

from typing import Protocol

from booking_core.models import (
    GatewayCallback,
    GatewaySession,
    Payment,
    PaymentStatus,
    RefundOutcome,
)


class GatewayError(Exception):
    """Raised when a gateway call fails."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        provider_code: str | None = None,
    ) -> None:
        """Initialize with message and retry hint.

        Args:
            message: Human-readable error message.
            retryable: Whether the same call may succeed later.
            provider_code: Provider-specific error code if available.
        """
        super().__init__(message)
        self.retryable = retryable
        self.provider_code = provider_code


class PaymentGateway(Protocol):
    """Operations every hosted-payment provider supports."""

    name: str

    def create_payment_page(
        self,
        payment: Payment,
        *,
        description: str,
        customer_email: str | None,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession: ...

    def get_status(self, transaction_id: str) -> str: ...

    def map_status(self, provider_status: str) -> PaymentStatus: ...

    def refund(
        self, transaction_id: str, amount: int, reason: str | None = None
    ) -> RefundOutcome: ...

    def validate_callback(self, payload: bytes, signature: str | None) -> bool: ...

    def parse_callback(self, payload: bytes) -> GatewayCallback: ...

    def cancel(self, transaction_id: str) -> None: ...
