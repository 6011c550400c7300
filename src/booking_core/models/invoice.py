"""Invoice (receipt) model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Invoice(BaseModel):
    """Receipt issued once per completed payment."""

    model_config = ConfigDict(strict=True)

    payment_id: str = Field(..., description="Payment this invoice settles")
    invoice_number: str = Field(..., description="Unique receipt number")
    reservation_id: str
    business_id: str
    amount: int = Field(..., ge=0)
    currency: str = "ILS"
    platform_fee_amount: int = Field(default=0, ge=0)
    amount_to_transfer: int = Field(..., ge=0)
    issued_at: datetime
