"""Payment models for settlement records."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import PaymentMethod, PaymentStatus, SettlementMode


class SplitInfo(BaseModel):
    """Platform fee split, computed once when the payment is opened."""

    model_config = ConfigDict(strict=True, frozen=True)

    payee_account_id: str = Field(..., description="Downstream payee account")
    platform_fee_amount: int = Field(..., ge=0, description="Fee kept by the platform")
    amount_to_transfer: int = Field(..., ge=0, description="Amount owed to the payee")


class Payment(BaseModel):
    """A payment attempt for a reservation.

    Amounts are stored in minor currency units. ``reservation_id`` is a weak
    reference: a payment may outlive a reservation that was never written.
    """

    model_config = ConfigDict(strict=True)

    payment_id: str = Field(..., description="Unique payment ID")
    reservation_id: str = Field(..., description="Reservation this payment is for")
    business_id: str = Field(..., description="Business receiving the money")
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str = Field(default="ILS", description="ISO currency code")
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    method: PaymentMethod = Field(..., description="Payment method chosen")
    settlement_mode: SettlementMode = Field(..., description="Manual or gateway")
    provider: str = Field(..., description="Gateway name or 'manual'")
    fee_percentage: Decimal = Field(
        ..., ge=0, description="Platform fee percentage at creation time"
    )
    split_info: SplitInfo | None = None
    gateway_transaction_id: str | None = Field(
        default=None,
        description="Provider reference (Checkout Session ID for Stripe)",
        examples=["cs_test_abc123def456"],
    )
    payment_url: str | None = Field(default=None, description="Hosted payment page")
    failure_reason: str | None = None
    refund_id: str | None = None
    refund_amount: int | None = Field(default=None, ge=0)
    refund_reason: str | None = None
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    refunded_at: datetime | None = None

    @property
    def platform_fee_amount(self) -> int:
        return self.split_info.platform_fee_amount if self.split_info else 0

    @property
    def amount_to_transfer(self) -> int:
        return self.split_info.amount_to_transfer if self.split_info else self.amount


class GatewaySession(BaseModel):
    """Hosted payment page returned by a gateway."""

    model_config = ConfigDict(strict=True)

    transaction_id: str
    payment_url: str
    expires_at: datetime | None = None


class GatewayCallback(BaseModel):
    """Provider-neutral view of a payment callback."""

    model_config = ConfigDict(strict=True)

    event_id: str = Field(..., description="Provider event ID used for dedup")
    event_type: str
    transaction_id: str | None = None
    payment_reference: str | None = Field(
        default=None, description="Our payment ID echoed back by the provider"
    )
    provider_status: str | None = None


class RefundOutcome(BaseModel):
    """Result of a refund request at the gateway."""

    model_config = ConfigDict(strict=True)

    success: bool
    refund_id: str | None = None
    amount: int | None = None
    error: str | None = None
