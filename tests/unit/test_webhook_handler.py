"""Unit tests for WebhookHandler.

Tests cover signature checks, deduplication by provider event ID, and
application of reported statuses through the payment service.
"""

import json
from typing import Any, Callable

import pytest

from booking_core.models import (
    BookingError,
    BusinessProfile,
    CallbackResult,
    ErrorCode,
    PaymentMethod,
    PaymentStatus,
)
from booking_core.services.webhook_handler import WebhookHandler


@pytest.fixture
def handler(payment_service: Any) -> WebhookHandler:
    return WebhookHandler(payment_service)


@pytest.fixture
def open_payment(payment_service: Any, business: BusinessProfile) -> Any:
    return payment_service.open_payment(
        reservation_id="RES-WEBHOOK01",
        business=business,
        amount=12000,
        currency="ILS",
        method=PaymentMethod.CREDIT_CARD,
        description="Massage - Test Clinic",
    )


def _payload(**fields: Any) -> bytes:
    body = {"event_type": "payment.updated"}
    body.update(fields)
    return json.dumps(body).encode()


# === Happy Path ===


class TestReconcile:
    """Tests for reconcile() applying statuses."""

    def test_paid_callback_completes_payment(
        self,
        handler: WebhookHandler,
        mock_gateway: Any,
        open_payment: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payload = _payload(
            event_id="evt_1", transaction_id=open_payment.gateway_transaction_id, status="paid"
        )

        outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert outcome.result == CallbackResult.SUCCESS
        assert outcome.payment is not None
        assert outcome.payment.status == PaymentStatus.COMPLETED
        events = scan_table("callback-events")
        assert len(events) == 1
        assert events[0]["event_key"] == "mock:evt_1"
        assert events[0]["payment_id"] == open_payment.payment_id
        assert events[0]["payload_hash"] == WebhookHandler.compute_payload_hash(payload)

    def test_failed_callback_fails_payment(
        self, handler: WebhookHandler, mock_gateway: Any, open_payment: Any
    ) -> None:
        payload = _payload(
            event_id="evt_f", transaction_id=open_payment.gateway_transaction_id, status="failed"
        )

        outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert outcome.payment is not None
        assert outcome.payment.status == PaymentStatus.FAILED
        assert outcome.payment.failure_reason == "mock:failed"

    def test_payment_reference_is_used_without_transaction_id(
        self, handler: WebhookHandler, mock_gateway: Any, open_payment: Any
    ) -> None:
        payload = _payload(event_id="evt_ref", payment_id=open_payment.payment_id, status="paid")

        outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert outcome.payment is not None
        assert outcome.payment.payment_id == open_payment.payment_id
        assert outcome.payment.status == PaymentStatus.COMPLETED


# === Idempotency ===


class TestIdempotency:
    """Replayed deliveries must not repeat side effects."""

    def test_same_event_twice_is_duplicate(
        self,
        handler: WebhookHandler,
        mock_gateway: Any,
        open_payment: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payload = _payload(
            event_id="evt_dup", transaction_id=open_payment.gateway_transaction_id, status="paid"
        )
        signature = mock_gateway.sign(payload)

        handler.reconcile("mock", payload, signature)
        second = handler.reconcile("mock", payload, signature)

        assert second.result == CallbackResult.DUPLICATE
        assert second.payment is not None
        assert second.payment.status == PaymentStatus.COMPLETED
        assert len(scan_table("invoices")) == 1
        assert len(scan_table("callback-events")) == 1

    def test_new_event_for_completed_payment_issues_no_second_invoice(
        self,
        handler: WebhookHandler,
        mock_gateway: Any,
        open_payment: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        txn = open_payment.gateway_transaction_id
        for event_id in ("evt_a", "evt_b"):
            payload = _payload(event_id=event_id, transaction_id=txn, status="paid")
            outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))
            assert outcome.result == CallbackResult.SUCCESS

        assert len(scan_table("invoices")) == 1
        assert len(scan_table("callback-events")) == 2

    def test_late_failure_does_not_undo_completion(
        self, handler: WebhookHandler, mock_gateway: Any, open_payment: Any
    ) -> None:
        txn = open_payment.gateway_transaction_id
        paid = _payload(event_id="evt_paid", transaction_id=txn, status="paid")
        failed = _payload(event_id="evt_late", transaction_id=txn, status="failed")

        handler.reconcile("mock", paid, mock_gateway.sign(paid))
        outcome = handler.reconcile("mock", failed, mock_gateway.sign(failed))

        assert outcome.payment is not None
        assert outcome.payment.status == PaymentStatus.COMPLETED


# === Rejections ===


class TestRejections:
    """Callbacks that must not change any payment."""

    def test_invalid_signature(
        self,
        handler: WebhookHandler,
        open_payment: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payload = _payload(
            event_id="evt_x", transaction_id=open_payment.gateway_transaction_id, status="paid"
        )

        with pytest.raises(BookingError) as exc_info:
            handler.reconcile("mock", payload, "not-a-signature")

        assert exc_info.value.code == ErrorCode.INVALID_CALLBACK_SIGNATURE
        assert scan_table("callback-events") == []

    def test_missing_signature(self, handler: WebhookHandler, dynamodb_tables: Any) -> None:
        with pytest.raises(BookingError) as exc_info:
            handler.reconcile("mock", _payload(event_id="evt_x"), None)

        assert exc_info.value.code == ErrorCode.INVALID_CALLBACK_SIGNATURE

    def test_unknown_provider(self, handler: WebhookHandler, dynamodb_tables: Any) -> None:
        with pytest.raises(BookingError) as exc_info:
            handler.reconcile("paypal", b"{}", "sig")

        assert exc_info.value.code == ErrorCode.UNKNOWN_PAYMENT_PROVIDER

    def test_unknown_payment_is_not_logged(
        self,
        handler: WebhookHandler,
        mock_gateway: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payload = _payload(event_id="evt_orphan", transaction_id="MOCK-NOPE", status="paid")

        with pytest.raises(BookingError) as exc_info:
            handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_FOUND
        # Not recorded, so the provider's retry is processed once the payment exists
        assert scan_table("callback-events") == []

    def test_event_without_status_is_skipped(
        self,
        handler: WebhookHandler,
        mock_gateway: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payload = _payload(event_id="evt_info", event_type="account.updated")

        outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert outcome.result == CallbackResult.SKIPPED
        assert outcome.payment is None
        assert scan_table("callback-events")[0]["processing_result"] == "skipped"

    def test_malformed_body_is_an_error(
        self, handler: WebhookHandler, mock_gateway: Any, dynamodb_tables: Any
    ) -> None:
        payload = b"not json"

        outcome = handler.reconcile("mock", payload, mock_gateway.sign(payload))

        assert outcome.result == CallbackResult.ERROR
