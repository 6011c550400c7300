"""Unit tests for PaymentService.

Tests verify the service correctly:
- Splits the platform fee from the payee's share
- Opens gateway and manual payments
- Leaves no payment record when the gateway cannot open a page
- Applies gateway statuses exactly once (invoice and hook run once)
- Cancels, confirms and refunds only from the allowed states

Test categories:
- Fee split
- Opening payments
- Status transitions
- Refunds
- Lookups
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from booking_core.models import (
    BookingError,
    BusinessProfile,
    ErrorCode,
    PaymentMethod,
    PaymentStatus,
    SettlementMode,
)
from booking_core.services.gateways import GatewayError
from booking_core.services.payment_service import PaymentService, compute_split

TEST_RESERVATION_ID = "RES-UNITTEST01"


def _open(
    payment_service: PaymentService,
    business: BusinessProfile,
    method: PaymentMethod = PaymentMethod.CREDIT_CARD,
    amount: int = 20000,
    provider: str | None = None,
) -> Any:
    return payment_service.open_payment(
        reservation_id=TEST_RESERVATION_ID,
        business=business,
        amount=amount,
        currency="ILS",
        method=method,
        description="Treatment - Test Clinic",
        provider=provider,
        customer_email="dana@example.com",
    )


# === Fee Split Tests ===


class TestComputeSplit:
    """Tests for compute_split()."""

    def test_five_percent_of_200(self) -> None:
        split = compute_split(20000, "acct_1", Decimal("5"))

        assert split is not None
        assert split.platform_fee_amount == 1000
        assert split.amount_to_transfer == 19000

    def test_fee_rounds_half_up(self) -> None:
        split = compute_split(10010, "acct_1", Decimal("5"))

        assert split is not None
        assert split.platform_fee_amount == 501
        assert split.amount_to_transfer == 9509

    def test_no_payee_means_no_split(self) -> None:
        assert compute_split(20000, None, Decimal("5")) is None

    def test_parts_always_sum_to_amount(self) -> None:
        for amount in (1, 99, 12345, 99999):
            split = compute_split(amount, "acct_1", Decimal("7.5"))
            assert split is not None
            assert split.platform_fee_amount + split.amount_to_transfer == amount


# === Opening Payments ===


class TestOpenPayment:
    """Tests for open_payment()."""

    def test_gateway_payment_moves_to_processing(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = _open(payment_service, business)

        assert payment.status == PaymentStatus.PROCESSING
        assert payment.settlement_mode == SettlementMode.GATEWAY
        assert payment.provider == "mock"
        assert payment.gateway_transaction_id in mock_gateway.sessions
        assert payment.payment_url.startswith("https://book.example.com/mock-pay/")

    def test_split_and_fee_percentage_are_recorded(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        assert payment.fee_percentage == Decimal("5")
        assert payment.platform_fee_amount == 1000
        assert payment.amount_to_transfer == 19000
        assert payment.split_info is not None
        assert payment.split_info.payee_account_id == "acct_test123"

    def test_fee_percentage_is_pinned_at_creation(
        self,
        db: Any,
        settings: Any,
        payment_service: PaymentService,
        business: BusinessProfile,
        mock_gateway: Any,
        invoice_service: Any,
    ) -> None:
        payment = _open(payment_service, business)
        repriced = PaymentService(
            db,
            settings.model_copy(update={"platform_fee_percentage": Decimal("10")}),
            {"mock": mock_gateway},
            invoice_service,
        )

        stored = repriced.require_payment(payment.payment_id)

        assert stored.fee_percentage == Decimal("5")
        assert stored.platform_fee_amount == 1000

    def test_manual_payment_stays_pending(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = _open(payment_service, business, method=PaymentMethod.CASH)

        assert payment.status == PaymentStatus.PENDING
        assert payment.settlement_mode == SettlementMode.MANUAL
        assert payment.provider == "manual"
        assert payment.payment_url is None
        assert mock_gateway.sessions == {}

    def test_unknown_provider(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        with pytest.raises(BookingError) as exc_info:
            _open(payment_service, business, provider="paypal")

        assert exc_info.value.code == ErrorCode.UNKNOWN_PAYMENT_PROVIDER

    def test_gateway_failure_leaves_no_payment(
        self,
        db: Any,
        settings: Any,
        business: BusinessProfile,
        invoice_service: Any,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        failing = MagicMock()
        failing.create_payment_page.side_effect = GatewayError("connection reset")
        service = PaymentService(db, settings, {"mock": failing}, invoice_service)

        with pytest.raises(BookingError) as exc_info:
            _open(service, business)

        assert exc_info.value.code == ErrorCode.GATEWAY_UNAVAILABLE
        assert exc_info.value.retryable is True
        assert scan_table("payments") == []


# === Status Transitions ===


class TestApplyGatewayStatus:
    """Tests for apply_gateway_status() idempotency."""

    def test_completion_issues_one_invoice_and_runs_hook_once(
        self,
        payment_service: PaymentService,
        business: BusinessProfile,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        hook = MagicMock()
        payment_service.on_completed = hook
        payment = _open(payment_service, business)

        first, first_transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.COMPLETED
        )
        second, second_transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.COMPLETED
        )

        assert first_transitioned is True
        assert second_transitioned is False
        assert first.status == second.status == PaymentStatus.COMPLETED
        assert first.completed_at is not None
        hook.assert_called_once()
        invoices = scan_table("invoices")
        assert len(invoices) == 1
        assert invoices[0]["invoice_number"].startswith("RCP-")
        assert int(invoices[0]["platform_fee_amount"]) == 1000

    def test_invoice_failure_is_retried_on_replay(
        self,
        payment_service: PaymentService,
        business: BusinessProfile,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        hook = MagicMock()
        payment_service.on_completed = hook
        payment = _open(payment_service, business)
        store_fault = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "PutItem"
        )

        with patch.object(
            payment_service.invoices, "issue_for_payment", side_effect=store_fault
        ):
            with pytest.raises(ClientError):
                payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)

        stored = payment_service.require_payment(payment.payment_id)
        assert stored.status == PaymentStatus.COMPLETED
        assert scan_table("invoices") == []
        hook.assert_not_called()

        replayed, transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.COMPLETED
        )
        payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)

        assert transitioned is False
        assert replayed.status == PaymentStatus.COMPLETED
        assert len(scan_table("invoices")) == 1
        hook.assert_called_once()

    def test_failing_hook_does_not_undo_completion(
        self,
        payment_service: PaymentService,
        business: BusinessProfile,
        scan_table: Callable[[str], list[dict[str, Any]]],
    ) -> None:
        payment_service.on_completed = MagicMock(side_effect=RuntimeError("receipt bug"))
        payment = _open(payment_service, business)

        completed, transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.COMPLETED
        )

        assert transitioned is True
        assert completed.status == PaymentStatus.COMPLETED
        assert len(scan_table("invoices")) == 1

    def test_failure_records_reason(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        failed, transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.FAILED, reason="mock:failed"
        )

        assert transitioned is True
        assert failed.status == PaymentStatus.FAILED
        assert failed.failure_reason == "mock:failed"

    def test_completed_payment_cannot_fail(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)
        payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)

        after, transitioned = payment_service.apply_gateway_status(payment, PaymentStatus.FAILED)

        assert transitioned is False
        assert after.status == PaymentStatus.COMPLETED

    def test_processing_status_changes_nothing(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        after, transitioned = payment_service.apply_gateway_status(
            payment, PaymentStatus.PROCESSING
        )

        assert transitioned is False
        assert after.status == PaymentStatus.PROCESSING


class TestCancelPayment:
    """Tests for cancel_payment() compensation."""

    def test_cancels_open_payment_and_expires_page(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = _open(payment_service, business)

        cancelled = payment_service.cancel_payment(payment.payment_id, "seat_not_reserved")

        assert cancelled is not None
        assert cancelled.status == PaymentStatus.CANCELLED
        assert cancelled.failure_reason == "seat_not_reserved"
        assert mock_gateway.sessions[payment.gateway_transaction_id] == "cancelled"

    def test_completed_payment_is_not_cancelled(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)
        payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)

        after = payment_service.cancel_payment(payment.payment_id, "too_late")

        assert after is not None
        assert after.status == PaymentStatus.COMPLETED

    def test_gateway_cancel_error_is_not_fatal(
        self,
        db: Any,
        settings: Any,
        business: BusinessProfile,
        mock_gateway: Any,
        invoice_service: Any,
    ) -> None:
        flaky = MagicMock(wraps=mock_gateway)
        flaky.cancel.side_effect = GatewayError("timeout")
        service = PaymentService(db, settings, {"mock": flaky}, invoice_service)
        payment = _open(service, business)

        cancelled = service.cancel_payment(payment.payment_id, "seat_not_reserved")

        assert cancelled is not None
        assert cancelled.status == PaymentStatus.CANCELLED

    def test_cancel_unknown_payment_returns_none(
        self, payment_service: PaymentService, dynamodb_tables: Any
    ) -> None:
        assert payment_service.cancel_payment("PAY-NOPE", "x") is None


class TestConfirmManualPayment:
    """Tests for confirm_manual_payment()."""

    def test_confirms_cash_payment(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business, method=PaymentMethod.CASH)

        confirmed = payment_service.confirm_manual_payment(payment.payment_id)

        assert confirmed.status == PaymentStatus.COMPLETED

    def test_confirming_twice_returns_completed(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business, method=PaymentMethod.BIT)
        payment_service.confirm_manual_payment(payment.payment_id)

        again = payment_service.confirm_manual_payment(payment.payment_id)

        assert again.status == PaymentStatus.COMPLETED

    def test_gateway_payment_cannot_be_confirmed_manually(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        with pytest.raises(BookingError) as exc_info:
            payment_service.confirm_manual_payment(payment.payment_id)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_CONFIRMABLE

    def test_cancelled_manual_payment_cannot_be_confirmed(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business, method=PaymentMethod.BANK_TRANSFER)
        payment_service.cancel_payment(payment.payment_id, "reservation_cancelled")

        with pytest.raises(BookingError) as exc_info:
            payment_service.confirm_manual_payment(payment.payment_id)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_CONFIRMABLE


# === Refund Tests ===


class TestRefundPayment:
    """Tests for refund_payment()."""

    def _completed(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> Any:
        payment = _open(payment_service, business)
        mock_gateway.set_status(payment.gateway_transaction_id, "paid")
        completed, _ = payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)
        return completed

    def test_full_refund(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = self._completed(payment_service, business, mock_gateway)

        refunded = payment_service.refund_payment(payment.payment_id, reason="customer request")

        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.refund_amount == 20000
        assert refunded.refund_reason == "customer request"
        assert refunded.refund_id is not None
        assert refunded.refund_id.startswith("MOCK-REFUND-")
        assert refunded.refunded_at is not None

    def test_partial_refund(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = self._completed(payment_service, business, mock_gateway)

        refunded = payment_service.refund_payment(payment.payment_id, amount=5000)

        assert refunded.refund_amount == 5000
        assert mock_gateway.refunded[payment.gateway_transaction_id] == 5000

    def test_processing_payment_is_not_refundable(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        with pytest.raises(BookingError) as exc_info:
            payment_service.refund_payment(payment.payment_id)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_REFUNDABLE

    @pytest.mark.parametrize("amount", [0, -100, 20001])
    def test_invalid_refund_amount(
        self,
        payment_service: PaymentService,
        business: BusinessProfile,
        mock_gateway: Any,
        amount: int,
    ) -> None:
        payment = self._completed(payment_service, business, mock_gateway)

        with pytest.raises(BookingError) as exc_info:
            payment_service.refund_payment(payment.payment_id, amount=amount)

        assert exc_info.value.code == ErrorCode.INVALID_REFUND_AMOUNT

    def test_gateway_rejection_keeps_payment_completed(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)
        # Completed locally but the mock session was never paid
        payment_service.apply_gateway_status(payment, PaymentStatus.COMPLETED)

        with pytest.raises(BookingError) as exc_info:
            payment_service.refund_payment(payment.payment_id)

        assert exc_info.value.code == ErrorCode.REFUND_FAILED
        assert payment_service.require_payment(payment.payment_id).status == PaymentStatus.COMPLETED

    def test_second_refund_is_rejected(
        self, payment_service: PaymentService, business: BusinessProfile, mock_gateway: Any
    ) -> None:
        payment = self._completed(payment_service, business, mock_gateway)
        payment_service.refund_payment(payment.payment_id)

        with pytest.raises(BookingError) as exc_info:
            payment_service.refund_payment(payment.payment_id)

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_REFUNDABLE

    def test_manual_refund_gets_local_id(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business, method=PaymentMethod.CASH)
        payment_service.confirm_manual_payment(payment.payment_id)

        refunded = payment_service.refund_payment(payment.payment_id)

        assert refunded.refund_id is not None
        assert refunded.refund_id.startswith("RFD-")


# === Lookup Tests ===


class TestLookups:
    """Tests for payment lookups."""

    def test_find_by_transaction_id(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)

        found = payment_service.find_by_transaction_id(payment.gateway_transaction_id)

        assert found is not None
        assert found.payment_id == payment.payment_id

    def test_payments_for_reservation(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        _open(payment_service, business)
        _open(payment_service, business, method=PaymentMethod.CASH)

        payments = payment_service.get_payments_for_reservation(TEST_RESERVATION_ID)

        assert len(payments) == 2

    def test_require_missing_payment(
        self, payment_service: PaymentService, dynamodb_tables: Any
    ) -> None:
        with pytest.raises(BookingError) as exc_info:
            payment_service.require_payment("PAY-NOPE")

        assert exc_info.value.code == ErrorCode.PAYMENT_NOT_FOUND

    def test_list_stale_processing_uses_cutoff(
        self, payment_service: PaymentService, business: BusinessProfile
    ) -> None:
        payment = _open(payment_service, business)
        _open(payment_service, business, method=PaymentMethod.CASH)
        now = dt.datetime.now(dt.UTC)

        stale = payment_service.list_stale_processing(now + dt.timedelta(minutes=1))
        fresh = payment_service.list_stale_processing(now - dt.timedelta(hours=1))

        assert [p.payment_id for p in stale] == [payment.payment_id]
        assert fresh == []
