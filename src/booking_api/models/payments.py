"""API models for payment, refund and webhook endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from booking_core.models import (
    CallbackResult,
    Payment,
    PaymentMethod,
    PaymentStatus,
    SettlementMode,
)


class RefundRequest(BaseModel):
    """Request to refund a completed payment."""

    model_config = ConfigDict(strict=False, extra="ignore")

    amount: int | None = Field(
        default=None,
        gt=0,
        description="Amount in minor units; omit for a full refund",
        examples=[5000],
    )
    reason: str | None = Field(default=None, max_length=500)


class PaymentResponse(BaseModel):
    """Payment as exposed to clients, including the fee split."""

    model_config = ConfigDict(strict=True)

    payment_id: str
    reservation_id: str
    business_id: str
    amount: int
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    settlement_mode: SettlementMode
    provider: str
    fee_percentage: Decimal
    platform_fee_amount: int
    amount_to_transfer: int
    payment_url: str | None = None
    failure_reason: str | None = None
    refund_id: str | None = None
    refund_amount: int | None = None
    created_at: datetime
    completed_at: datetime | None = None
    refunded_at: datetime | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            payment_id=payment.payment_id,
            reservation_id=payment.reservation_id,
            business_id=payment.business_id,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status,
            method=payment.method,
            settlement_mode=payment.settlement_mode,
            provider=payment.provider,
            fee_percentage=payment.fee_percentage,
            platform_fee_amount=payment.platform_fee_amount,
            amount_to_transfer=payment.amount_to_transfer,
            payment_url=payment.payment_url,
            failure_reason=payment.failure_reason,
            refund_id=payment.refund_id,
            refund_amount=payment.refund_amount,
            created_at=payment.created_at,
            completed_at=payment.completed_at,
            refunded_at=payment.refunded_at,
        )


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    received: bool = True
    event_id: str | None = None
    event_type: str | None = None
    processing_result: CallbackResult
    payment_status: PaymentStatus | None = None
    message: str | None = None
