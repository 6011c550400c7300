"""Event definition model for capacity-limited registrations."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import EventStatus


class EventDefinition(BaseModel):
    """An event with a fixed number of seats.

    ``occupant_count`` mirrors the number of live registrations and is only
    ever changed through conditional writes.
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(..., description="Event identifier")
    business_id: str = Field(..., description="Owning business")
    name: str = Field(..., description="Event title")
    capacity: int = Field(..., gt=0, description="Maximum participants")
    occupant_count: int = Field(default=0, ge=0, description="Seats taken")
    price: int = Field(default=0, ge=0, description="Seat price in minor units")
    currency: str = Field(default="ILS", description="ISO currency code")
    status: EventStatus = Field(default=EventStatus.DRAFT)
    starts_at: datetime = Field(..., description="Event start")
    ends_at: datetime | None = Field(default=None, description="Event end")
    created_at: datetime = Field(..., description="Creation timestamp")

    @property
    def seats_left(self) -> int:
        return max(self.capacity - self.occupant_count, 0)
