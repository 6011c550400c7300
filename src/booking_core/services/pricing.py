"""Pricing authority: server-held prices and durations for bookable services.

Nothing a client sends ever reaches a price. Every charge is looked up here
by service ID, from a catalog selected at construction time:

- ``StaticCatalog``: services fixed at deploy time (defaults below)
- ``DynamoCatalog``: services stored in the ``service-catalog`` table
"""

import logging
from typing import TYPE_CHECKING, Any, Protocol

from booking_core.models import BookingError, ErrorCode, ServiceDefinition

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

# Deploy-time catalog; prices in agorot
DEFAULT_SERVICES: tuple[ServiceDefinition, ...] = (
    ServiceDefinition(
        service_id="consultation",
        display_name="Consultation",
        duration_minutes=30,
        price=15000,
        description="Initial consultation session",
    ),
    ServiceDefinition(
        service_id="treatment",
        display_name="Treatment",
        duration_minutes=60,
        price=30000,
        description="Full treatment session",
    ),
    ServiceDefinition(
        service_id="followup",
        display_name="Follow-up",
        duration_minutes=45,
        price=20000,
        description="Follow-up meeting",
    ),
    ServiceDefinition(
        service_id="workshop",
        display_name="Workshop",
        duration_minutes=120,
        price=50000,
        description="Group workshop",
    ),
    ServiceDefinition(
        service_id="assessment",
        display_name="Assessment",
        duration_minutes=90,
        price=40000,
        description="In-depth assessment",
    ),
)


class ServiceCatalog(Protocol):
    """Read-only source of service definitions."""

    def lookup(self, service_id: str) -> ServiceDefinition | None: ...

    def all(self) -> list[ServiceDefinition]: ...


class StaticCatalog:
    """In-process catalog built once from a fixed list of services."""

    def __init__(self, services: tuple[ServiceDefinition, ...] = DEFAULT_SERVICES) -> None:
        self._services = {s.service_id: s for s in services}

    def lookup(self, service_id: str) -> ServiceDefinition | None:
        return self._services.get(service_id)

    def all(self) -> list[ServiceDefinition]:
        return list(self._services.values())


class DynamoCatalog:
    """Catalog backed by the ``service-catalog`` table."""

    TABLE = "service-catalog"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize the catalog.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    def lookup(self, service_id: str) -> ServiceDefinition | None:
        item = self.db.get_item(self.TABLE, {"service_id": service_id})
        return self._item_to_service(item) if item else None

    def all(self) -> list[ServiceDefinition]:
        services = [self._item_to_service(item) for item in self.db.scan(self.TABLE)]
        return sorted(services, key=lambda s: s.service_id)

    def put(self, service: ServiceDefinition) -> None:
        """Store a service definition (deploy-time seeding)."""
        item: dict[str, Any] = {
            "service_id": service.service_id,
            "display_name": service.display_name,
            "duration_minutes": service.duration_minutes,
            "price": service.price,
            "currency": service.currency,
        }
        if service.description:
            item["description"] = service.description
        self.db.put_item(self.TABLE, item)

    def _item_to_service(self, item: dict[str, Any]) -> ServiceDefinition:
        """Convert DynamoDB item to ServiceDefinition model."""
        return ServiceDefinition(
            service_id=item["service_id"],
            display_name=item["display_name"],
            duration_minutes=int(item["duration_minutes"]),
            price=int(item["price"]),
            currency=item.get("currency", "ILS"),
            description=item.get("description"),
        )


class PricingAuthority:
    """Resolves the canonical price and duration for a service."""

    def __init__(self, catalog: ServiceCatalog) -> None:
        self.catalog = catalog

    def resolve(self, service_id: str) -> ServiceDefinition:
        """Look up a service by ID.

        Args:
            service_id: Service identifier from the request

        Returns:
            The server-held service definition

        Raises:
            BookingError: UNKNOWN_SERVICE if the catalog has no such service
        """
        service = self.catalog.lookup(service_id)
        if service is None:
            logger.info("Unknown service requested: %s", service_id)
            raise BookingError(ErrorCode.UNKNOWN_SERVICE, {"service_id": service_id})
        return service

    def list_services(self) -> list[ServiceDefinition]:
        """Get every bookable service."""
        return self.catalog.all()
