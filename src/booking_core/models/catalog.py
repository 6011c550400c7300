"""Service catalog model: the only source of truth for what a booking costs."""

from pydantic import BaseModel, ConfigDict, Field


class ServiceDefinition(BaseModel):
    """A bookable service with its canonical duration and price.

    Prices are stored in minor currency units (agorot, cents).
    """

    model_config = ConfigDict(strict=True, frozen=True)

    service_id: str = Field(..., description="Stable service identifier")
    display_name: str = Field(..., description="Name shown to customers")
    duration_minutes: int = Field(..., gt=0, description="Appointment length")
    price: int = Field(..., ge=0, description="Price in minor currency units")
    currency: str = Field(default="ILS", description="ISO currency code")
    description: str | None = Field(default=None, description="Optional blurb")
