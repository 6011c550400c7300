"""Reconciliation of asynchronous gateway callbacks.

Provides the business logic behind the webhook endpoint, separate from HTTP
routing so it can be reused by any transport and unit tested directly.
Callbacks are authenticated by the gateway, deduplicated by provider event
ID, and applied through the payment service's conditional transitions.
"""

import datetime as dt
import hashlib
from typing import Any

from pydantic import BaseModel, ConfigDict

from booking_core.models import (
    BookingError,
    CallbackEventLog,
    CallbackResult,
    ErrorCode,
    GatewayCallback,
    Payment,
)
from booking_core.utils.logging import get_logger, log_callback_event

from .payment_service import PaymentService

logger = get_logger(__name__)


class CallbackOutcome(BaseModel):
    """What processing a callback amounted to."""

    model_config = ConfigDict(strict=True)

    result: CallbackResult
    event_id: str | None = None
    event_type: str | None = None
    payment: Payment | None = None
    message: str | None = None


class WebhookHandler:
    """Handler for payment gateway callbacks."""

    CALLBACK_EVENTS_TABLE = "callback-events"

    def __init__(self, payments: PaymentService) -> None:
        """Initialize webhook handler.

        Args:
            payments: Payment service owning gateways and transitions
        """
        self.payments = payments
        self._db = payments.db

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """SHA-256 of the raw payload for the audit trail."""
        return hashlib.sha256(payload).hexdigest()

    def _event_key(self, provider: str, event_id: str) -> str:
        return f"{provider}:{event_id}"

    def is_event_already_processed(self, provider: str, event_id: str) -> bool:
        """Check if a callback event was already processed (idempotency)."""
        existing = self._db.get_item(
            self.CALLBACK_EVENTS_TABLE, {"event_key": self._event_key(provider, event_id)}
        )
        return existing is not None

    def log_event(self, entry: CallbackEventLog) -> None:
        """Store a callback event for idempotency and audit trail."""
        item: dict[str, Any] = {
            "event_key": self._event_key(entry.provider, entry.event_id),
            "event_id": entry.event_id,
            "provider": entry.provider,
            "event_type": entry.event_type,
            "payload_hash": entry.payload_hash,
            "processing_result": entry.processing_result.value,
            "processed_at": entry.processed_at.isoformat(),
        }
        if entry.payment_id:
            item["payment_id"] = entry.payment_id
        if entry.error_message:
            item["error_message"] = entry.error_message

        # First writer wins; a concurrent duplicate delivery changes nothing
        self._db.put_item(
            self.CALLBACK_EVENTS_TABLE,
            item,
            condition_expression="attribute_not_exists(event_key)",
        )

    def _find_payment(self, callback: GatewayCallback) -> Payment | None:
        if callback.transaction_id:
            payment = self.payments.find_by_transaction_id(callback.transaction_id)
            if payment is not None:
                return payment
        if callback.payment_reference:
            return self.payments.get_payment(callback.payment_reference)
        return None

    def reconcile(
        self,
        provider: str,
        payload: bytes,
        signature: str | None,
    ) -> CallbackOutcome:
        """Authenticate a callback and apply the status it reports.

        Args:
            provider: Gateway name from the callback URL
            payload: Raw request body
            signature: Provider signature header

        Returns:
            CallbackOutcome describing what happened

        Raises:
            BookingError: UNKNOWN_PAYMENT_PROVIDER, INVALID_CALLBACK_SIGNATURE,
                or PAYMENT_NOT_FOUND (left unlogged so the provider retries)
        """
        gateway = self.payments.get_gateway(provider)
        if not gateway.validate_callback(payload, signature):
            logger.warning("Rejected %s callback with invalid signature", provider)
            raise BookingError(ErrorCode.INVALID_CALLBACK_SIGNATURE, {"provider": provider})

        try:
            callback = gateway.parse_callback(payload)
        except (ValueError, KeyError) as e:
            logger.error("Unparseable %s callback: %s", provider, e)
            return CallbackOutcome(result=CallbackResult.ERROR, message="Unparseable payload")

        payload_hash = self.compute_payload_hash(payload)
        now = dt.datetime.now(dt.UTC)

        if self.is_event_already_processed(provider, callback.event_id):
            payment = self._find_payment(callback)
            log_callback_event(
                logger,
                provider,
                callback.event_type,
                callback.event_id,
                payment_id=payment.payment_id if payment else None,
                result=CallbackResult.DUPLICATE.value,
            )
            return CallbackOutcome(
                result=CallbackResult.DUPLICATE,
                event_id=callback.event_id,
                event_type=callback.event_type,
                payment=payment,
                message="Event already processed",
            )

        if callback.provider_status is None:
            self.log_event(
                CallbackEventLog(
                    event_id=callback.event_id,
                    provider=provider,
                    event_type=callback.event_type,
                    payload_hash=payload_hash,
                    processing_result=CallbackResult.SKIPPED,
                    processed_at=now,
                )
            )
            log_callback_event(
                logger,
                provider,
                callback.event_type,
                callback.event_id,
                result=CallbackResult.SKIPPED.value,
            )
            return CallbackOutcome(
                result=CallbackResult.SKIPPED,
                event_id=callback.event_id,
                event_type=callback.event_type,
                message=f"Event type {callback.event_type} not handled",
            )

        payment = self._find_payment(callback)
        if payment is None:
            log_callback_event(
                logger,
                provider,
                callback.event_type,
                callback.event_id,
                result=CallbackResult.ERROR.value,
                error="payment not found",
            )
            raise BookingError(
                ErrorCode.PAYMENT_NOT_FOUND,
                {"transaction_id": callback.transaction_id or ""},
            )

        new_status = gateway.map_status(callback.provider_status)
        updated, transitioned = self.payments.apply_gateway_status(
            payment, new_status, reason=f"{provider}:{callback.provider_status}"
        )

        self.log_event(
            CallbackEventLog(
                event_id=callback.event_id,
                provider=provider,
                event_type=callback.event_type,
                payload_hash=payload_hash,
                payment_id=payment.payment_id,
                processing_result=CallbackResult.SUCCESS,
                processed_at=now,
            )
        )
        log_callback_event(
            logger,
            provider,
            callback.event_type,
            callback.event_id,
            payment_id=payment.payment_id,
            result=CallbackResult.SUCCESS.value,
            status=updated.status.value,
            transitioned=transitioned,
        )
        return CallbackOutcome(
            result=CallbackResult.SUCCESS,
            event_id=callback.event_id,
            event_type=callback.event_type,
            payment=updated,
        )
