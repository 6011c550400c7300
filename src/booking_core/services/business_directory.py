"""Business profiles: payee accounts and booking bounds."""

import datetime as dt
from typing import TYPE_CHECKING, Any

from booking_core.models import BookingError, BusinessProfile, ErrorCode

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


class BusinessDirectory:
    """Read access to business profiles stored in the ``businesses`` table."""

    TABLE = "businesses"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize the directory.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def get(self, business_id: str) -> BusinessProfile:
        """Get a business profile.

        Args:
            business_id: Business identifier

        Returns:
            The business profile

        Raises:
            BookingError: BUSINESS_NOT_FOUND if no profile exists
        """
        item = self.db.get_item(self.TABLE, {"business_id": business_id})
        if not item:
            raise BookingError(ErrorCode.BUSINESS_NOT_FOUND, {"business_id": business_id})
        return self._item_to_business(item)

    def put(self, business: BusinessProfile) -> None:
        """Create or replace a business profile."""
        item: dict[str, Any] = {
            "business_id": business.business_id,
            "display_name": business.display_name,
            "min_lead_minutes": business.min_lead_minutes,
            "max_advance_days": business.max_advance_days,
            "updated_at": dt.datetime.now(dt.UTC).isoformat(),
        }
        if business.payee_account_id:
            item["payee_account_id"] = business.payee_account_id
        if business.contact_email:
            item["contact_email"] = business.contact_email
        self.db.put_item(self.TABLE, item)

    def _item_to_business(self, item: dict[str, Any]) -> BusinessProfile:
        """Convert DynamoDB item to BusinessProfile model."""
        return BusinessProfile(
            business_id=item["business_id"],
            display_name=item.get("display_name", item["business_id"]),
            payee_account_id=item.get("payee_account_id"),
            contact_email=item.get("contact_email"),
            min_lead_minutes=int(item.get("min_lead_minutes", 60)),
            max_advance_days=int(item.get("max_advance_days", 90)),
        )
