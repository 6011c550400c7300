"""Stripe gateway: hosted Checkout sessions with Connect fee splits.

Uses the v8+ StripeClient. The secret key and webhook signing secret are read
lazily from SSM Parameter Store.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import stripe
from stripe import StripeClient

from booking_core.config import BookingSettings
from booking_core.models import (
    GatewayCallback,
    GatewaySession,
    Payment,
    PaymentStatus,
    RefundOutcome,
    is_stripe_error_retryable,
)

from ..ssm_service import SSMService, SSMServiceError
from .base import GatewayError

logger = logging.getLogger(__name__)

# Normalized Stripe vocabulary produced by get_status/parse_callback
STRIPE_STATUS_MAP: dict[str, PaymentStatus] = {
    "paid": PaymentStatus.COMPLETED,
    "no_payment_required": PaymentStatus.COMPLETED,
    "expired": PaymentStatus.FAILED,
    "failed": PaymentStatus.FAILED,
    "open": PaymentStatus.PROCESSING,
    "unpaid": PaymentStatus.PROCESSING,
}

# Checkout event type -> normalized status (None means read payment_status)
CALLBACK_EVENT_STATUS: dict[str, str | None] = {
    "checkout.session.completed": None,
    "checkout.session.async_payment_succeeded": "paid",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "expired",
}


def _session_status(session: Any) -> str:
    if session.get("status") == "expired":
        return "expired"
    payment_status = session.get("payment_status")
    if payment_status in ("paid", "no_payment_required"):
        return payment_status
    return "unpaid" if session.get("status") == "complete" else "open"


class StripeGateway:
    """Stripe Checkout implementation of the payment gateway protocol."""

    name = "stripe"

    def __init__(self, settings: BookingSettings, ssm: SSMService) -> None:
        """Initialize the gateway.

        Args:
            settings: Immutable booking settings
            ssm: SSM service used for the API key and webhook secret
        """
        self._settings = settings
        self._ssm = ssm
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            GatewayError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(
                    self._settings.ssm_path("stripe/secret_key")
                )
            except SSMServiceError as e:
                raise GatewayError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(
                secret_key,
                max_network_retries=self._settings.gateway_network_retries,
            )
            logger.info("Stripe client initialized for environment: %s", self._settings.environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    self._settings.ssm_path("stripe/webhook_secret")
                )
            except SSMServiceError as e:
                raise GatewayError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    @staticmethod
    def _wrap(action: str, e: stripe.StripeError) -> GatewayError:
        error_code = getattr(e, "code", None)
        retryable = isinstance(
            e, (stripe.APIConnectionError, stripe.RateLimitError)
        ) or is_stripe_error_retryable(error_code)
        logger.error("Stripe %s failed: %s (code: %s)", action, e, error_code)
        return GatewayError(
            f"Stripe {action} failed: {e}", retryable=retryable, provider_code=error_code
        )

    def create_payment_page(
        self,
        payment: Payment,
        *,
        description: str,
        customer_email: str | None,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession:
        """Create a Checkout session for a payment.

        The payment ID doubles as idempotency key, so a retried call returns
        the same session instead of opening a second one.

        Args:
            payment: Pending payment record
            description: Line item description
            customer_email: Optional customer email for the Stripe receipt
            success_url: Redirect after payment
            cancel_url: Redirect when the customer abandons checkout

        Returns:
            GatewaySession with the hosted page URL

        Raises:
            GatewayError: If session creation fails.
        """
        client = self._get_client()
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=self._settings.payment_page_ttl_minutes
        )

        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": payment.currency.lower(),
                        "unit_amount": payment.amount,
                        "product_data": {"name": description},
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {
                "payment_id": payment.payment_id,
                "reservation_id": payment.reservation_id,
                "business_id": payment.business_id,
            },
            "expires_at": int(expires_at.timestamp()),
        }
        if customer_email:
            params["customer_email"] = customer_email
        if payment.split_info:
            params["payment_intent_data"] = {
                "application_fee_amount": payment.split_info.platform_fee_amount,
                "transfer_data": {"destination": payment.split_info.payee_account_id},
            }

        try:
            logger.info(
                "Creating Stripe checkout session for payment %s, amount %d",
                payment.payment_id,
                payment.amount,
            )
            session = client.checkout.sessions.create(
                params=params,  # type: ignore[arg-type]
                options={"idempotency_key": f"checkout_{payment.payment_id}"},
            )
        except stripe.StripeError as e:
            raise self._wrap("checkout session creation", e) from e

        return GatewaySession(
            transaction_id=session.id,
            payment_url=session.url or "",
            expires_at=datetime.fromtimestamp(session.expires_at, tz=timezone.utc),
        )

    def get_status(self, transaction_id: str) -> str:
        """Fetch the normalized status of a Checkout session."""
        try:
            session = self._get_client().checkout.sessions.retrieve(transaction_id)
        except stripe.StripeError as e:
            raise self._wrap("session retrieval", e) from e
        return _session_status(session)

    def map_status(self, provider_status: str) -> PaymentStatus:
        return STRIPE_STATUS_MAP.get(provider_status, PaymentStatus.PROCESSING)

    def refund(
        self, transaction_id: str, amount: int, reason: str | None = None
    ) -> RefundOutcome:
        """Refund a paid Checkout session.

        Args:
            transaction_id: Checkout Session ID
            amount: Amount to refund in minor units
            reason: Reason stored in refund metadata

        Returns:
            RefundOutcome; Stripe errors become a failed outcome
        """
        client = self._get_client()
        try:
            session = client.checkout.sessions.retrieve(transaction_id)
            payment_intent = session.get("payment_intent")
            if not payment_intent:
                return RefundOutcome(success=False, error="Session has no payment intent")

            params: dict[str, Any] = {"payment_intent": payment_intent, "amount": amount}
            if reason:
                params["metadata"] = {"reason": reason}
            refund = client.refunds.create(params=params)  # type: ignore[arg-type]
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for %s: %s", transaction_id, e)
            return RefundOutcome(success=False, error=str(e))

        logger.info("Refund created: %s for session %s", refund.id, transaction_id)
        return RefundOutcome(success=True, refund_id=refund.id, amount=refund.amount)

    def validate_callback(self, payload: bytes, signature: str | None) -> bool:
        """Verify the Stripe-Signature header against the raw payload."""
        if not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self._get_webhook_secret())
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            return False
        except ValueError as e:
            logger.warning("Unparseable webhook payload: %s", e)
            return False
        return True

    def parse_callback(self, payload: bytes) -> GatewayCallback:
        """Normalize a Stripe event into a GatewayCallback."""
        event = json.loads(payload)
        event_type = event.get("type", "")
        session = event.get("data", {}).get("object", {})

        provider_status: str | None = None
        if event_type in CALLBACK_EVENT_STATUS:
            provider_status = CALLBACK_EVENT_STATUS[event_type] or _session_status(session)

        return GatewayCallback(
            event_id=event.get("id", ""),
            event_type=event_type,
            transaction_id=session.get("id") if event_type.startswith("checkout.session") else None,
            payment_reference=(session.get("metadata") or {}).get("payment_id"),
            provider_status=provider_status,
        )

    def cancel(self, transaction_id: str) -> None:
        """Expire an open Checkout session so it can no longer be paid."""
        try:
            self._get_client().checkout.sessions.expire(transaction_id)
        except stripe.StripeError as e:
            raise self._wrap("session expiry", e) from e
