"""Payment settlement: opening, reconciling, cancelling and refunding payments.

Payment status only moves through conditional writes:

    pending --gateway page--> processing --callback/sweep--> completed | failed
    pending/processing --compensation--> cancelled
    completed --refund--> refunded

A transition that loses its condition is a replay and changes nothing, so
side effects of completion (invoice, occupant flag, receipt) run once.
"""

import datetime as dt
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Callable

from boto3.dynamodb.conditions import Key

from booking_core.config import BookingSettings
from booking_core.models import (
    MANUAL_PAYMENT_METHODS,
    BookingError,
    BusinessProfile,
    ErrorCode,
    Payment,
    PaymentMethod,
    PaymentStatus,
    SettlementMode,
    SplitInfo,
)
from booking_core.utils.logging import get_logger, log_payment_operation

from .gateways import GatewayError, PaymentGateway

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .invoice_service import InvoiceService

logger = get_logger(__name__)

MANUAL_PROVIDER = "manual"


def compute_split(
    amount: int,
    payee_account_id: str | None,
    fee_percentage: Decimal,
) -> SplitInfo | None:
    """Split an amount between the platform and a registered payee.

    The fee is ``amount * fee_percentage / 100`` rounded half-up to whole
    minor units. Without a payee there is no split.

    Args:
        amount: Payment amount in minor units
        payee_account_id: Downstream payee account, if registered
        fee_percentage: Platform fee percentage

    Returns:
        SplitInfo or None
    """
    if not payee_account_id:
        return None
    fee = int(
        (Decimal(amount) * fee_percentage / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return SplitInfo(
        payee_account_id=payee_account_id,
        platform_fee_amount=fee,
        amount_to_transfer=amount - fee,
    )


class PaymentService:
    """Service for the payment lifecycle of reservations."""

    PAYMENTS_TABLE = "payments"

    def __init__(
        self,
        db: "DynamoDBService",
        settings: BookingSettings,
        gateways: dict[str, PaymentGateway],
        invoices: "InvoiceService",
        on_completed: Callable[[Payment], None] | None = None,
    ) -> None:
        """Initialize payment service.

        Args:
            db: DynamoDB service instance
            settings: Immutable booking settings (fee percentage, gateway)
            gateways: Configured gateways by name
            invoices: Invoice issuer, called once per completed payment
            on_completed: Hook run once after a payment completes
        """
        self.db = db
        self.settings = settings
        self.gateways = gateways
        self.invoices = invoices
        self.on_completed = on_completed

    def _generate_payment_id(self, prefix: str = "PAY") -> str:
        """Generate a unique payment ID like PAY-ABC123DEF456."""
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"

    def get_gateway(self, name: str) -> PaymentGateway:
        """Look up a configured gateway.

        Raises:
            BookingError: UNKNOWN_PAYMENT_PROVIDER
        """
        gateway = self.gateways.get(name)
        if gateway is None:
            raise BookingError(ErrorCode.UNKNOWN_PAYMENT_PROVIDER, {"provider": name})
        return gateway

    # =========================================================================
    # Opening and compensation
    # =========================================================================

    def open_payment(
        self,
        *,
        reservation_id: str,
        business: BusinessProfile,
        amount: int,
        currency: str,
        method: PaymentMethod,
        description: str,
        provider: str | None = None,
        customer_email: str | None = None,
    ) -> Payment:
        """Create a payment for a reservation.

        Manual methods stay ``pending`` until the business confirms them.
        Other methods get a hosted payment page and move to ``processing``.

        Args:
            reservation_id: Reservation being paid for (may not be written yet)
            business: Business receiving the money
            amount: Server-resolved amount in minor units
            currency: ISO currency code
            method: Payment method chosen by the customer
            description: Line item text for the payment page
            provider: Gateway name; defaults to the configured gateway
            customer_email: Email passed to the gateway for its receipt

        Returns:
            The stored payment

        Raises:
            BookingError: UNKNOWN_PAYMENT_PROVIDER or GATEWAY_UNAVAILABLE.
                On GATEWAY_UNAVAILABLE no payment record remains.
        """
        mode = SettlementMode.MANUAL if method in MANUAL_PAYMENT_METHODS else SettlementMode.GATEWAY
        gateway: PaymentGateway | None = None
        provider_name = MANUAL_PROVIDER
        if mode == SettlementMode.GATEWAY:
            provider_name = provider or self.settings.default_gateway
            gateway = self.get_gateway(provider_name)

        fee_percentage = self.settings.platform_fee_percentage
        now = dt.datetime.now(dt.UTC)
        payment = Payment(
            payment_id=self._generate_payment_id(),
            reservation_id=reservation_id,
            business_id=business.business_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            method=method,
            settlement_mode=mode,
            provider=provider_name,
            fee_percentage=fee_percentage,
            split_info=compute_split(amount, business.payee_account_id, fee_percentage),
            created_at=now,
        )
        self.db.put_item(
            self.PAYMENTS_TABLE,
            self._payment_to_item(payment),
            condition_expression="attribute_not_exists(payment_id)",
        )
        log_payment_operation(
            logger,
            "open_payment",
            payment_id=payment.payment_id,
            reservation_id=reservation_id,
            amount=amount,
            status=payment.status.value,
            mode=mode.value,
            provider=provider_name,
        )

        if gateway is None:
            return payment

        try:
            session = gateway.create_payment_page(
                payment,
                description=description,
                customer_email=customer_email,
                success_url=f"{self.settings.base_url}/payments/{payment.payment_id}/success",
                cancel_url=f"{self.settings.base_url}/payments/{payment.payment_id}/cancel",
            )
        except GatewayError as e:
            self.db.delete_item(self.PAYMENTS_TABLE, {"payment_id": payment.payment_id})
            log_payment_operation(
                logger,
                "open_payment",
                payment_id=payment.payment_id,
                reservation_id=reservation_id,
                error=str(e),
                provider=provider_name,
            )
            raise BookingError(
                ErrorCode.GATEWAY_UNAVAILABLE, {"provider": provider_name}
            ) from e

        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment.payment_id},
            "SET #status = :processing, gateway_transaction_id = :txn, payment_url = :url, updated_at = :now",
            {
                ":processing": PaymentStatus.PROCESSING.value,
                ":pending": PaymentStatus.PENDING.value,
                ":txn": session.transaction_id,
                ":url": session.payment_url,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            {"#status": "status"},
            condition_expression="#status = :pending",
        )
        if attrs is None:
            # Cancelled while the page was being created
            return self.require_payment(payment.payment_id)
        return self._item_to_payment(attrs)

    def cancel_payment(self, payment_id: str, reason: str) -> Payment | None:
        """Force a still-open payment into ``cancelled``.

        This is the compensation for a reservation that lost its race after
        the payment was opened. The gateway page is expired best-effort.

        Args:
            payment_id: Payment to cancel
            reason: Stored as failure reason

        Returns:
            The payment after the call, or None if it does not exist
        """
        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            "SET #status = :cancelled, failure_reason = :reason, updated_at = :now",
            {
                ":cancelled": PaymentStatus.CANCELLED.value,
                ":pending": PaymentStatus.PENDING.value,
                ":processing": PaymentStatus.PROCESSING.value,
                ":reason": reason,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            {"#status": "status"},
            condition_expression="#status IN (:pending, :processing)",
        )
        if attrs is None:
            return self.get_payment(payment_id)

        payment = self._item_to_payment(attrs)
        log_payment_operation(
            logger,
            "cancel_payment",
            payment_id=payment_id,
            reservation_id=payment.reservation_id,
            status=payment.status.value,
            reason=reason,
        )

        if payment.settlement_mode == SettlementMode.GATEWAY and payment.gateway_transaction_id:
            gateway = self.gateways.get(payment.provider)
            if gateway is not None:
                try:
                    gateway.cancel(payment.gateway_transaction_id)
                except GatewayError as e:
                    logger.warning(
                        "Could not expire gateway page for %s: %s", payment_id, e
                    )
        return payment

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def apply_gateway_status(
        self,
        payment: Payment,
        new_status: PaymentStatus,
        reason: str | None = None,
    ) -> tuple[Payment, bool]:
        """Apply a gateway-reported status to an open payment.

        Only ``completed`` and ``failed`` change anything, and only from
        ``pending``/``processing``.

        Args:
            payment: Payment the status refers to
            new_status: Status mapped from the gateway vocabulary
            reason: Failure detail for ``failed``

        Returns:
            Tuple of (payment after the call, whether this call transitioned it)
        """
        if new_status == PaymentStatus.COMPLETED:
            return self._complete(payment.payment_id)
        if new_status == PaymentStatus.FAILED:
            return self._fail(payment.payment_id, reason or "Declined by gateway")
        return payment, False

    def confirm_manual_payment(self, payment_id: str) -> Payment:
        """Mark a manual (cash, transfer, bit) payment as received.

        Raises:
            BookingError: PAYMENT_NOT_FOUND or PAYMENT_NOT_CONFIRMABLE
        """
        payment = self.require_payment(payment_id)
        if payment.settlement_mode != SettlementMode.MANUAL:
            raise BookingError(
                ErrorCode.PAYMENT_NOT_CONFIRMABLE,
                {"payment_id": payment_id, "reason": "gateway_payment"},
            )
        if payment.status == PaymentStatus.COMPLETED:
            return payment

        confirmed, transitioned = self._complete(payment_id)
        if not transitioned:
            raise BookingError(
                ErrorCode.PAYMENT_NOT_CONFIRMABLE,
                {"payment_id": payment_id, "status": confirmed.status.value},
            )
        return confirmed

    def _complete(self, payment_id: str) -> tuple[Payment, bool]:
        now = dt.datetime.now(dt.UTC).isoformat()
        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            "SET #status = :completed, completed_at = :now, updated_at = :now",
            {
                ":completed": PaymentStatus.COMPLETED.value,
                ":pending": PaymentStatus.PENDING.value,
                ":processing": PaymentStatus.PROCESSING.value,
                ":now": now,
            },
            {"#status": "status"},
            condition_expression="#status IN (:pending, :processing)",
        )
        if attrs is None:
            current = self.require_payment(payment_id)
            log_payment_operation(
                logger,
                "complete_payment_replay",
                payment_id=payment_id,
                status=current.status.value,
            )
            if (
                current.status == PaymentStatus.COMPLETED
                and self.invoices.get_for_payment(payment_id) is None
            ):
                logger.warning(
                    "Payment %s completed without an invoice, finishing completion", payment_id
                )
                self._run_completion_effects(current)
            return current, False

        payment = self._item_to_payment(attrs)
        log_payment_operation(
            logger,
            "complete_payment",
            payment_id=payment_id,
            reservation_id=payment.reservation_id,
            amount=payment.amount,
            status=payment.status.value,
        )
        self._run_completion_effects(payment)
        return payment, True

    def _run_completion_effects(self, payment: Payment) -> None:
        # An issued invoice marks the effects as done; a failure to issue it
        # propagates and the next completion replay retries.
        self.invoices.issue_for_payment(payment)
        if self.on_completed is None:
            return
        try:
            self.on_completed(payment)
        except Exception:
            logger.exception("Completion hook failed for payment %s", payment.payment_id)

    def _fail(self, payment_id: str, reason: str) -> tuple[Payment, bool]:
        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            "SET #status = :failed, failure_reason = :reason, updated_at = :now",
            {
                ":failed": PaymentStatus.FAILED.value,
                ":pending": PaymentStatus.PENDING.value,
                ":processing": PaymentStatus.PROCESSING.value,
                ":reason": reason,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            {"#status": "status"},
            condition_expression="#status IN (:pending, :processing)",
        )
        if attrs is None:
            return self.require_payment(payment_id), False

        payment = self._item_to_payment(attrs)
        log_payment_operation(
            logger,
            "fail_payment",
            payment_id=payment_id,
            reservation_id=payment.reservation_id,
            status=payment.status.value,
            reason=reason,
        )
        return payment, True

    # =========================================================================
    # Refunds
    # =========================================================================

    def refund_payment(
        self,
        payment_id: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> Payment:
        """Refund a completed payment, fully or partially.

        The reservation is left as it is; cancelling it is a separate call.

        Args:
            payment_id: Payment to refund
            amount: Amount in minor units; defaults to the full amount
            reason: Optional refund reason

        Returns:
            The refunded payment

        Raises:
            BookingError: PAYMENT_NOT_FOUND, PAYMENT_NOT_REFUNDABLE,
                INVALID_REFUND_AMOUNT or REFUND_FAILED
        """
        payment = self.require_payment(payment_id)
        if payment.status != PaymentStatus.COMPLETED:
            raise BookingError(
                ErrorCode.PAYMENT_NOT_REFUNDABLE,
                {"payment_id": payment_id, "status": payment.status.value},
            )

        refund_amount = payment.amount if amount is None else amount
        if refund_amount <= 0 or refund_amount > payment.amount:
            raise BookingError(
                ErrorCode.INVALID_REFUND_AMOUNT,
                {"payment_id": payment_id, "amount": str(refund_amount)},
            )

        if payment.settlement_mode == SettlementMode.GATEWAY and payment.gateway_transaction_id:
            gateway = self.get_gateway(payment.provider)
            outcome = gateway.refund(payment.gateway_transaction_id, refund_amount, reason)
            if not outcome.success:
                log_payment_operation(
                    logger,
                    "refund_payment",
                    payment_id=payment_id,
                    amount=refund_amount,
                    error=outcome.error or "refund rejected",
                )
                raise BookingError(
                    ErrorCode.REFUND_FAILED,
                    {"payment_id": payment_id, "error": outcome.error or "refund rejected"},
                )
            refund_id = outcome.refund_id or self._generate_payment_id("RFD")
        else:
            refund_id = self._generate_payment_id("RFD")

        now = dt.datetime.now(dt.UTC).isoformat()
        values: dict[str, Any] = {
            ":refunded": PaymentStatus.REFUNDED.value,
            ":completed": PaymentStatus.COMPLETED.value,
            ":amount": refund_amount,
            ":rid": refund_id,
            ":now": now,
        }
        update = "SET #status = :refunded, refund_amount = :amount, refund_id = :rid, refunded_at = :now, updated_at = :now"
        if reason:
            update += ", refund_reason = :reason"
            values[":reason"] = reason

        attrs = self.db.update_item(
            self.PAYMENTS_TABLE,
            {"payment_id": payment_id},
            update,
            values,
            {"#status": "status"},
            condition_expression="#status = :completed",
        )
        if attrs is None:
            # A concurrent refund won; the gateway call above needs manual review
            logger.error(
                "Refund %s recorded at gateway but payment %s was no longer completed",
                refund_id,
                payment_id,
            )
            raise BookingError(ErrorCode.PAYMENT_NOT_REFUNDABLE, {"payment_id": payment_id})

        refunded = self._item_to_payment(attrs)
        log_payment_operation(
            logger,
            "refund_payment",
            payment_id=payment_id,
            reservation_id=refunded.reservation_id,
            amount=refund_amount,
            status=refunded.status.value,
            refund_id=refund_id,
        )
        return refunded

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_payment(self, payment_id: str) -> Payment | None:
        """Get a payment by ID, or None if not found."""
        item = self.db.get_item(self.PAYMENTS_TABLE, {"payment_id": payment_id})
        return self._item_to_payment(item) if item else None

    def require_payment(self, payment_id: str) -> Payment:
        """Get a payment by ID.

        Raises:
            BookingError: PAYMENT_NOT_FOUND
        """
        payment = self.get_payment(payment_id)
        if payment is None:
            raise BookingError(ErrorCode.PAYMENT_NOT_FOUND, {"payment_id": payment_id})
        return payment

    def get_payments_for_reservation(self, reservation_id: str) -> list[Payment]:
        """Get all payments for a reservation."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            "reservation-index",
            "reservation_id",
            reservation_id,
        )
        return [self._item_to_payment(item) for item in items]

    def find_by_transaction_id(self, transaction_id: str) -> Payment | None:
        """Find the payment a gateway transaction belongs to."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            "transaction-index",
            "gateway_transaction_id",
            transaction_id,
        )
        return self._item_to_payment(items[0]) if items else None

    def list_stale_processing(self, older_than: dt.datetime) -> list[Payment]:
        """List payments still ``processing`` that were created before a cutoff."""
        items = self.db.query_by_gsi(
            self.PAYMENTS_TABLE,
            "status-index",
            "status",
            PaymentStatus.PROCESSING.value,
            sort_key_condition=Key("created_at").lt(older_than.astimezone(dt.UTC).isoformat()),
        )
        return [self._item_to_payment(item) for item in items]

    # Conversion helpers

    def _payment_to_item(self, payment: Payment) -> dict[str, Any]:
        """Convert Payment model to DynamoDB item."""
        item: dict[str, Any] = {
            "payment_id": payment.payment_id,
            "reservation_id": payment.reservation_id,
            "business_id": payment.business_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status.value,
            "method": payment.method.value,
            "settlement_mode": payment.settlement_mode.value,
            "provider": payment.provider,
            "fee_percentage": payment.fee_percentage,
            "created_at": payment.created_at.isoformat(),
        }
        if payment.split_info:
            item["split_info"] = {
                "payee_account_id": payment.split_info.payee_account_id,
                "platform_fee_amount": payment.split_info.platform_fee_amount,
                "amount_to_transfer": payment.split_info.amount_to_transfer,
            }
        if payment.gateway_transaction_id:
            item["gateway_transaction_id"] = payment.gateway_transaction_id
        if payment.payment_url:
            item["payment_url"] = payment.payment_url
        if payment.failure_reason:
            item["failure_reason"] = payment.failure_reason
        if payment.completed_at:
            item["completed_at"] = payment.completed_at.isoformat()
        return item

    def _item_to_payment(self, item: dict[str, Any]) -> Payment:
        """Convert DynamoDB item to Payment model."""

        def ts(name: str) -> dt.datetime | None:
            return dt.datetime.fromisoformat(item[name]) if item.get(name) else None

        split = item.get("split_info")
        return Payment(
            payment_id=item["payment_id"],
            reservation_id=item["reservation_id"],
            business_id=item["business_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "ILS"),
            status=PaymentStatus(item["status"]),
            method=PaymentMethod(item["method"]),
            settlement_mode=SettlementMode(item["settlement_mode"]),
            provider=item["provider"],
            fee_percentage=Decimal(str(item["fee_percentage"])),
            split_info=(
                SplitInfo(
                    payee_account_id=split["payee_account_id"],
                    platform_fee_amount=int(split["platform_fee_amount"]),
                    amount_to_transfer=int(split["amount_to_transfer"]),
                )
                if split
                else None
            ),
            gateway_transaction_id=item.get("gateway_transaction_id"),
            payment_url=item.get("payment_url"),
            failure_reason=item.get("failure_reason"),
            refund_id=item.get("refund_id"),
            refund_amount=(
                int(item["refund_amount"]) if item.get("refund_amount") is not None else None
            ),
            refund_reason=item.get("refund_reason"),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            updated_at=ts("updated_at"),
            completed_at=ts("completed_at"),
            refunded_at=ts("refunded_at"),
        )
