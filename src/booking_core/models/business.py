"""Business profile model."""

from pydantic import BaseModel, ConfigDict, Field


class BusinessProfile(BaseModel):
    """Settings of a business that owns calendars and events."""

    model_config = ConfigDict(strict=True, frozen=True)

    business_id: str = Field(..., description="Business identifier")
    display_name: str = Field(..., description="Business name used in messages")
    payee_account_id: str | None = Field(
        default=None,
        description="Registered downstream payee account for split payments",
        examples=["acct_1ABCDEF"],
    )
    contact_email: str | None = Field(default=None, description="Owner email")
    min_lead_minutes: int = Field(
        default=60, ge=0, description="Earliest bookable offset from now"
    )
    max_advance_days: int = Field(
        default=90, gt=0, description="Latest bookable offset from now"
    )
