"""FastAPI dependency injection providers for booking services.

Services are built lazily on first use and cached with @lru_cache, so one
Lambda container (or uvicorn process) shares a single instance of each.

Service Dependency Graph:
    BookingSettings (get_settings)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── PaymentService ── gateways, InvoiceService
        │       ├── ReconciliationSweep
        │       └── BookingService ── PricingAuthority, BusinessDirectory,
        │                             SlotReservationEngine, NotificationService

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from booking_core.config import get_settings
from booking_core.services.booking import BookingService
from booking_core.services.business_directory import BusinessDirectory
from booking_core.services.dynamodb import get_dynamodb_service
from booking_core.services.gateways import PaymentGateway, build_gateways
from booking_core.services.invoice_service import InvoiceService
from booking_core.services.notifications import (
    NotificationService,
    build_notification_service,
)
from booking_core.services.payment_service import PaymentService
from booking_core.services.pricing import DynamoCatalog, PricingAuthority, StaticCatalog
from booking_core.services.reconciliation import ReconciliationSweep
from booking_core.services.slot_reservation import SlotReservationEngine


@lru_cache
def get_gateways() -> dict[str, PaymentGateway]:
    """Get the configured payment gateways by name."""
    return build_gateways(get_settings())


@lru_cache
def get_pricing_authority() -> PricingAuthority:
    """Get cached PricingAuthority.

    Uses the ``service-catalog`` table when CATALOG_SOURCE=dynamodb, the
    deploy-time static catalog otherwise.
    """
    if get_settings().catalog_source == "dynamodb":
        return PricingAuthority(DynamoCatalog(get_dynamodb_service()))
    return PricingAuthority(StaticCatalog())


@lru_cache
def get_notification_service() -> NotificationService:
    """Get cached NotificationService with the configured provider chains."""
    return build_notification_service(get_settings())


@lru_cache
def get_payment_service() -> PaymentService:
    """Get cached PaymentService instance."""
    db = get_dynamodb_service()
    return PaymentService(db, get_settings(), get_gateways(), InvoiceService(db))


@lru_cache
def get_booking_service() -> BookingService:
    """Get cached BookingService instance.

    Returns:
        BookingService configured with all required dependencies.
    """
    db = get_dynamodb_service()
    settings = get_settings()
    return BookingService(
        settings=settings,
        pricing=get_pricing_authority(),
        businesses=BusinessDirectory(db),
        engine=SlotReservationEngine(db, settings),
        payments=get_payment_service(),
        notifications=get_notification_service(),
    )


@lru_cache
def get_reconciliation_sweep() -> ReconciliationSweep:
    """Get cached ReconciliationSweep sharing the booking service's payments."""
    # Built after the booking service so completion hooks are wired
    return ReconciliationSweep(get_booking_service().payments)


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the settings cache and the DynamoDB singleton.
    """
    from booking_core.services.dynamodb import reset_dynamodb_service

    get_gateways.cache_clear()
    get_pricing_authority.cache_clear()
    get_notification_service.cache_clear()
    get_payment_service.cache_clear()
    get_booking_service.cache_clear()
    get_reconciliation_sweep.cache_clear()
    get_settings.cache_clear()

    reset_dynamodb_service()
