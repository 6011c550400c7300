"""API models for appointment and event registration requests.

Request bodies never carry price or duration. Unknown fields such as
``price`` are dropped during validation, so the amount charged always comes
from the server-held catalog or event.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from booking_core.models import CustomerInfo, PaymentMethod


class CustomerRequest(BaseModel):
    """Customer contact details as submitted by the client."""

    model_config = ConfigDict(strict=False, extra="ignore")

    first_name: str = Field(..., min_length=1, max_length=100, examples=["Dana"])
    last_name: str = Field(..., min_length=1, max_length=100, examples=["Levi"])
    email: str = Field(..., min_length=3, max_length=254, examples=["dana@example.com"])
    phone: str = Field(..., min_length=6, max_length=32, examples=["050-1234567"])
    notes: str | None = Field(default=None, max_length=500)

    def to_customer(self) -> CustomerInfo:
        return CustomerInfo(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip(),
            phone=self.phone.strip(),
            notes=self.notes,
        )


class AppointmentRequest(BaseModel):
    """Request to book an appointment slot."""

    model_config = ConfigDict(
        # strict=False allows ISO strings for datetimes and enum values
        strict=False,
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "business_id": "biz-clinic",
                    "service_id": "consultation",
                    "window_start": "2026-11-02T10:00:00+00:00",
                    "customer": {
                        "first_name": "Dana",
                        "last_name": "Levi",
                        "email": "dana@example.com",
                        "phone": "050-1234567",
                    },
                    "payment_method": "credit_card",
                }
            ]
        },
    )

    business_id: str = Field(..., min_length=1, description="Business to book with")
    service_id: str = Field(..., min_length=1, description="Service from the catalog")
    window_start: datetime = Field(
        ..., description="Requested start, ISO 8601 with timezone offset"
    )
    customer: CustomerRequest
    payment_method: PaymentMethod = Field(default=PaymentMethod.CREDIT_CARD)
    provider: str | None = Field(
        default=None, description="Payment gateway; defaults to the configured one"
    )


class RegistrationRequest(BaseModel):
    """Request to register for an event."""

    model_config = ConfigDict(strict=False, extra="ignore")

    customer: CustomerRequest
    payment_method: PaymentMethod = Field(default=PaymentMethod.CREDIT_CARD)
    provider: str | None = None
