"""Reservation models for appointments and event seats."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import OccupantStatus, ReservationKind, ReservationStatus


class CustomerInfo(BaseModel):
    """Contact details of the person booking."""

    model_config = ConfigDict(strict=True)

    first_name: str = Field(..., description="Customer first name")
    last_name: str = Field(..., description="Customer last name")
    email: str = Field(..., description="Customer email address")
    phone: str = Field(..., description="Customer phone number")
    notes: str | None = Field(default=None, description="Free text from the customer")


class Reservation(BaseModel):
    """A claim on a finite resource.

    Appointments carry a half-open time window ``[window_start, window_end)``;
    event seats carry an occupant sub-status instead.
    """

    model_config = ConfigDict(strict=True)

    reservation_id: str = Field(..., description="Unique reservation ID")
    kind: ReservationKind = Field(..., description="Appointment or event seat")
    business_id: str = Field(..., description="Owning business")
    resource_key: str = Field(
        ..., description="Service ID for appointments, event ID for seats"
    )
    status: ReservationStatus = Field(default=ReservationStatus.PENDING)
    customer: CustomerInfo
    window_start: datetime | None = Field(default=None, description="Slot start")
    window_end: datetime | None = Field(default=None, description="Slot end (exclusive)")
    occupant_status: OccupantStatus | None = Field(
        default=None, description="Payment sub-status for event seats"
    )
    amount: int = Field(..., ge=0, description="Charged amount in minor units")
    currency: str = Field(default="ILS")
    payment_id: str | None = Field(default=None, description="Linked payment")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    reminder_sent_at: datetime | None = Field(
        default=None, description="When the upcoming-visit reminder went out"
    )


class BookingConfirmation(BaseModel):
    """What a successful booking returns to the caller."""

    model_config = ConfigDict(strict=True)

    reservation: Reservation
    payment_id: str | None = None
    payment_url: str | None = Field(
        default=None, description="Hosted payment page to redirect the customer to"
    )
    requires_payment: bool = False
    amount: int = Field(..., ge=0)
    currency: str = "ILS"
