"""Unit tests for the pricing authority and catalog providers.

Test categories:
- Static catalog resolution
- Unknown services are a validation error, never a crash
- DynamoDB-backed catalog
"""

from typing import Any

import pytest

from booking_core.models import BookingError, ErrorCategory, ErrorCode, ServiceDefinition
from booking_core.services.pricing import (
    DEFAULT_SERVICES,
    DynamoCatalog,
    PricingAuthority,
    StaticCatalog,
)


# === Static Catalog Tests ===


class TestStaticCatalog:
    """Tests for the deploy-time catalog."""

    def test_resolves_canonical_price_and_duration(self) -> None:
        authority = PricingAuthority(StaticCatalog())

        service = authority.resolve("consultation")

        assert service.price == 15000
        assert service.duration_minutes == 30

    def test_default_catalog_has_five_services(self) -> None:
        authority = PricingAuthority(StaticCatalog())

        ids = {s.service_id for s in authority.list_services()}

        assert ids == {"consultation", "treatment", "followup", "workshop", "assessment"}

    def test_custom_service_list(self) -> None:
        catalog = StaticCatalog(
            (
                ServiceDefinition(
                    service_id="massage", display_name="Massage", duration_minutes=50, price=25000
                ),
            )
        )

        assert PricingAuthority(catalog).resolve("massage").price == 25000
        assert catalog.lookup("consultation") is None


# === Unknown Service Tests ===


class TestUnknownService:
    """Unknown service IDs are rejected with a user-visible error."""

    def test_unknown_service_raises_validation_error(self) -> None:
        authority = PricingAuthority(StaticCatalog())

        with pytest.raises(BookingError) as exc_info:
            authority.resolve("does-not-exist")

        assert exc_info.value.code == ErrorCode.UNKNOWN_SERVICE
        assert exc_info.value.category == ErrorCategory.VALIDATION
        assert exc_info.value.details == {"service_id": "does-not-exist"}


# === DynamoDB Catalog Tests ===


class TestDynamoCatalog:
    """Tests for the service-catalog table provider."""

    def test_put_and_lookup(self, db: Any) -> None:
        catalog = DynamoCatalog(db)
        for service in DEFAULT_SERVICES:
            catalog.put(service)

        service = PricingAuthority(catalog).resolve("treatment")

        assert service.price == 30000
        assert service.duration_minutes == 60
        assert service.currency == "ILS"

    def test_all_is_sorted_by_service_id(self, db: Any) -> None:
        catalog = DynamoCatalog(db)
        for service in DEFAULT_SERVICES:
            catalog.put(service)

        ids = [s.service_id for s in catalog.all()]

        assert ids == sorted(ids)
        assert len(ids) == len(DEFAULT_SERVICES)

    def test_missing_service_is_unknown(self, db: Any) -> None:
        with pytest.raises(BookingError) as exc_info:
            PricingAuthority(DynamoCatalog(db)).resolve("consultation")

        assert exc_info.value.code == ErrorCode.UNKNOWN_SERVICE
