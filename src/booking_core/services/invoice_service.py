"""Invoice issuing for completed payments."""

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any

from booking_core.models import Invoice, Payment
from booking_core.utils.logging import get_logger

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


class InvoiceService:
    """Issues at most one invoice per payment.

    The ``invoices`` table is keyed by ``payment_id`` and written with
    ``attribute_not_exists``, so a replayed completion cannot issue twice.
    """

    TABLE = "invoices"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def _generate_invoice_number(self, issued_at: dt.datetime) -> str:
        return f"RCP-{issued_at:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"

    def issue_for_payment(self, payment: Payment) -> Invoice:
        """Issue the invoice for a completed payment.

        Args:
            payment: The completed payment

        Returns:
            The newly issued invoice, or the existing one on replay
        """
        now = dt.datetime.now(dt.UTC)
        invoice = Invoice(
            payment_id=payment.payment_id,
            invoice_number=self._generate_invoice_number(now),
            reservation_id=payment.reservation_id,
            business_id=payment.business_id,
            amount=payment.amount,
            currency=payment.currency,
            platform_fee_amount=payment.platform_fee_amount,
            amount_to_transfer=payment.amount_to_transfer,
            issued_at=now,
        )
        created = self.db.put_item(
            self.TABLE,
            self._invoice_to_item(invoice),
            condition_expression="attribute_not_exists(payment_id)",
        )
        if not created:
            existing = self.get_for_payment(payment.payment_id)
            logger.info("Invoice already issued for payment %s", payment.payment_id)
            if existing is not None:
                return existing
        else:
            logger.info(
                "Issued invoice %s for payment %s", invoice.invoice_number, payment.payment_id
            )
        return invoice

    def get_for_payment(self, payment_id: str) -> Invoice | None:
        """Get the invoice of a payment, if one was issued."""
        item = self.db.get_item(self.TABLE, {"payment_id": payment_id})
        return self._item_to_invoice(item) if item else None

    def _invoice_to_item(self, invoice: Invoice) -> dict[str, Any]:
        return {
            "payment_id": invoice.payment_id,
            "invoice_number": invoice.invoice_number,
            "reservation_id": invoice.reservation_id,
            "business_id": invoice.business_id,
            "amount": invoice.amount,
            "currency": invoice.currency,
            "platform_fee_amount": invoice.platform_fee_amount,
            "amount_to_transfer": invoice.amount_to_transfer,
            "issued_at": invoice.issued_at.isoformat(),
        }

    def _item_to_invoice(self, item: dict[str, Any]) -> Invoice:
        return Invoice(
            payment_id=item["payment_id"],
            invoice_number=item["invoice_number"],
            reservation_id=item["reservation_id"],
            business_id=item["business_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "ILS"),
            platform_fee_amount=int(item.get("platform_fee_amount", 0)),
            amount_to_transfer=int(item["amount_to_transfer"]),
            issued_at=dt.datetime.fromisoformat(item["issued_at"]),
        )
