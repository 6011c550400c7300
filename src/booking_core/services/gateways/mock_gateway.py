"""In-memory gateway for development and tests.

Callbacks are JSON bodies signed with HMAC-SHA256 over the raw payload:

    {"event_id": "...", "event_type": "payment.updated",
     "transaction_id": "MOCK-...", "status": "paid"}
"""

import hashlib
import hmac
import json
import logging
import uuid

from booking_core.config import BookingSettings
from booking_core.models import (
    GatewayCallback,
    GatewaySession,
    Payment,
    PaymentStatus,
    RefundOutcome,
)

from .base import GatewayError

logger = logging.getLogger(__name__)

MOCK_STATUS_MAP: dict[str, PaymentStatus] = {
    "paid": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "open": PaymentStatus.PROCESSING,
}


class MockGateway:
    """Gateway that keeps sessions in memory and never leaves the process."""

    name = "mock"

    def __init__(self, settings: BookingSettings) -> None:
        self._settings = settings
        self._secret = settings.mock_gateway_secret.encode()
        self.sessions: dict[str, str] = {}
        self.amounts: dict[str, int] = {}
        self.refunded: dict[str, int] = {}

    def create_payment_page(
        self,
        payment: Payment,
        *,
        description: str,
        customer_email: str | None,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession:
        transaction_id = f"MOCK-{uuid.uuid4().hex[:12].upper()}"
        self.sessions[transaction_id] = "open"
        self.amounts[transaction_id] = payment.amount
        logger.info("Mock payment page %s for payment %s", transaction_id, payment.payment_id)
        return GatewaySession(
            transaction_id=transaction_id,
            payment_url=f"{self._settings.base_url}/mock-pay/{transaction_id}",
        )

    def set_status(self, transaction_id: str, status: str) -> None:
        """Simulate the customer finishing (or failing) on the hosted page."""
        self.sessions[transaction_id] = status

    def get_status(self, transaction_id: str) -> str:
        if transaction_id not in self.sessions:
            raise GatewayError(f"Unknown mock transaction {transaction_id}", retryable=False)
        return self.sessions[transaction_id]

    def map_status(self, provider_status: str) -> PaymentStatus:
        return MOCK_STATUS_MAP.get(provider_status, PaymentStatus.PROCESSING)

    def refund(
        self, transaction_id: str, amount: int, reason: str | None = None
    ) -> RefundOutcome:
        if self.sessions.get(transaction_id) != "paid":
            return RefundOutcome(success=False, error="Transaction is not paid")
        already = self.refunded.get(transaction_id, 0)
        if already + amount > self.amounts.get(transaction_id, 0):
            return RefundOutcome(success=False, error="Refund exceeds paid amount")
        self.refunded[transaction_id] = already + amount
        return RefundOutcome(
            success=True, refund_id=f"MOCK-REFUND-{uuid.uuid4().hex[:8]}", amount=amount
        )

    def sign(self, payload: bytes) -> str:
        """Compute the signature a genuine mock callback carries."""
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def validate_callback(self, payload: bytes, signature: str | None) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature)

    def parse_callback(self, payload: bytes) -> GatewayCallback:
        body = json.loads(payload)
        return GatewayCallback(
            event_id=body["event_id"],
            event_type=body.get("event_type", "payment.updated"),
            transaction_id=body.get("transaction_id"),
            payment_reference=body.get("payment_id"),
            provider_status=body.get("status"),
        )

    def cancel(self, transaction_id: str) -> None:
        if transaction_id in self.sessions:
            self.sessions[transaction_id] = "cancelled"
