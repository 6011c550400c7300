"""Pytest configuration and fixtures for booking and settlement tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all tables and GSIs the services use)
- Settings, services and a mock payment gateway wired together
- Sample business, customer and event data
"""

import datetime as dt
import os
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set before any booking_core import reads the environment
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-booking")
os.environ.setdefault("PAYMENT_GATEWAYS", "mock")
os.environ.setdefault("DEFAULT_PAYMENT_GATEWAY", "mock")
os.environ.setdefault("EMAIL_PROVIDERS", "log")
os.environ.setdefault("SMS_PROVIDERS", "log")
os.environ.setdefault("GATEWAY_RETRY_BACKOFF_SECONDS", "0")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from booking_core.config import BookingSettings  # noqa: E402
from booking_core.models import (  # noqa: E402
    BusinessProfile,
    CustomerInfo,
    EventDefinition,
    EventStatus,
)

TABLE_PREFIX = "test-booking"
TEST_BUSINESS_ID = "biz-clinic"
TEST_PAYEE_ACCOUNT = "acct_test123"


# === Table Definitions ===


def _simple_table(name: str, key: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


TABLE_DEFINITIONS: list[dict[str, Any]] = [
    _simple_table("service-catalog", "service_id"),
    _simple_table("businesses", "business_id"),
    _simple_table("calendar-slots", "slot_key"),
    _simple_table("invoices", "payment_id"),
    _simple_table("callback-events", "event_key"),
    {
        "TableName": f"{TABLE_PREFIX}-events",
        "KeySchema": [{"AttributeName": "event_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "event_id", "AttributeType": "S"},
            {"AttributeName": "business_id", "AttributeType": "S"},
            {"AttributeName": "starts_at", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "business-index",
                "KeySchema": [
                    {"AttributeName": "business_id", "KeyType": "HASH"},
                    {"AttributeName": "starts_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": f"{TABLE_PREFIX}-reservations",
        "KeySchema": [{"AttributeName": "reservation_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "reservation_id", "AttributeType": "S"},
            {"AttributeName": "business_id", "AttributeType": "S"},
            {"AttributeName": "window_start", "AttributeType": "S"},
            {"AttributeName": "resource_key", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "business-index",
                "KeySchema": [
                    {"AttributeName": "business_id", "KeyType": "HASH"},
                    {"AttributeName": "window_start", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "resource-index",
                "KeySchema": [{"AttributeName": "resource_key", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": f"{TABLE_PREFIX}-payments",
        "KeySchema": [{"AttributeName": "payment_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "payment_id", "AttributeType": "S"},
            {"AttributeName": "reservation_id", "AttributeType": "S"},
            {"AttributeName": "gateway_transaction_id", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "reservation-index",
                "KeySchema": [{"AttributeName": "reservation_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "transaction-index",
                "KeySchema": [{"AttributeName": "gateway_transaction_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "status-index",
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
]


def create_tables(client: Any) -> None:
    """Create every booking table in the mocked account."""
    for definition in TABLE_DEFINITIONS:
        client.create_table(**definition)


# === DynamoDB Fixtures ===


@pytest.fixture(autouse=True)
def reset_dynamodb_singleton() -> Generator[None, None, None]:
    """Reset the DynamoDB singleton so each test binds inside its own mock."""
    from booking_core.services.dynamodb import reset_dynamodb_service

    reset_dynamodb_service()
    yield
    reset_dynamodb_service()


@pytest.fixture
def dynamodb_tables() -> Generator[Any, None, None]:
    """Mocked AWS account with all booking tables created."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        create_tables(client)
        yield client


@pytest.fixture
def settings() -> BookingSettings:
    """Settings pointing at the mocked tables with the mock gateway only."""
    return BookingSettings(
        environment="test",
        table_prefix=TABLE_PREFIX,
        base_url="https://book.example.com",
        enabled_gateways=("mock",),
        default_gateway="mock",
        email_providers=("log",),
        sms_providers=("log",),
        gateway_retry_backoff_seconds=0,
    )


@pytest.fixture
def db(dynamodb_tables: Any, settings: BookingSettings) -> Any:
    """DynamoDBService bound to the mocked tables."""
    from booking_core.services.dynamodb import DynamoDBService

    return DynamoDBService(settings)


@pytest.fixture
def scan_table(dynamodb_tables: Any) -> Callable[[str], list[dict[str, Any]]]:
    """Return every item of a table (name without prefix)."""

    def _scan(table: str) -> list[dict[str, Any]]:
        resource = boto3.resource("dynamodb", region_name="eu-west-1")
        return resource.Table(f"{TABLE_PREFIX}-{table}").scan()["Items"]

    return _scan


# === Service Fixtures ===


@pytest.fixture
def mock_gateway(settings: BookingSettings) -> Any:
    from booking_core.services.gateways import MockGateway

    return MockGateway(settings)


@pytest.fixture
def invoice_service(db: Any) -> Any:
    from booking_core.services.invoice_service import InvoiceService

    return InvoiceService(db)


@pytest.fixture
def payment_service(
    db: Any, settings: BookingSettings, mock_gateway: Any, invoice_service: Any
) -> Any:
    from booking_core.services.payment_service import PaymentService

    return PaymentService(db, settings, {"mock": mock_gateway}, invoice_service)


@pytest.fixture
def engine(db: Any, settings: BookingSettings) -> Any:
    from booking_core.services.slot_reservation import SlotReservationEngine

    return SlotReservationEngine(db, settings)


@pytest.fixture
def notification_service() -> Any:
    from booking_core.services.notifications import LogProvider, NotificationService

    return NotificationService(email_providers=[LogProvider()], sms_providers=[LogProvider()])


@pytest.fixture
def booking_service(
    db: Any,
    settings: BookingSettings,
    engine: Any,
    payment_service: Any,
    notification_service: Any,
    business: BusinessProfile,
) -> Any:
    from booking_core.services.booking import BookingService
    from booking_core.services.business_directory import BusinessDirectory
    from booking_core.services.pricing import PricingAuthority, StaticCatalog

    return BookingService(
        settings=settings,
        pricing=PricingAuthority(StaticCatalog()),
        businesses=BusinessDirectory(db),
        engine=engine,
        payments=payment_service,
        notifications=notification_service,
    )


# === Sample Data Fixtures ===


@pytest.fixture
def business(db: Any) -> BusinessProfile:
    """A stored business with a registered payee account."""
    from booking_core.services.business_directory import BusinessDirectory

    profile = BusinessProfile(
        business_id=TEST_BUSINESS_ID,
        display_name="Test Clinic",
        payee_account_id=TEST_PAYEE_ACCOUNT,
        contact_email="owner@clinic.example.com",
    )
    BusinessDirectory(db).put(profile)
    return profile


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(
        first_name="Dana",
        last_name="Levi",
        email="dana@example.com",
        phone="050-1234567",
    )


@pytest.fixture
def other_customer() -> CustomerInfo:
    return CustomerInfo(
        first_name="Yossi",
        last_name="Cohen",
        email="yossi@example.com",
        phone="052-7654321",
    )


@pytest.fixture
def slot_at() -> Callable[..., dt.datetime]:
    """Build an aligned UTC start time a few days from now.

    Usage: ``slot_at(10, 15)`` is 10:15 UTC two days from today.
    """

    def _slot_at(hour: int, minute: int = 0, days_ahead: int = 2) -> dt.datetime:
        day = dt.datetime.now(dt.UTC).date() + dt.timedelta(days=days_ahead)
        return dt.datetime(day.year, day.month, day.day, hour, minute, tzinfo=dt.UTC)

    return _slot_at


@pytest.fixture
def make_event(engine: Any, business: BusinessProfile) -> Callable[..., EventDefinition]:
    """Create and store an event; published unless told otherwise."""

    def _make_event(
        event_id: str = "EVT-WORKSHOP",
        capacity: int = 2,
        price: int = 10000,
        status: EventStatus = EventStatus.PUBLISHED,
        starts_in: dt.timedelta = dt.timedelta(days=7),
    ) -> EventDefinition:
        now = dt.datetime.now(dt.UTC)
        return engine.create_event(
            EventDefinition(
                event_id=event_id,
                business_id=business.business_id,
                name="Breathing Workshop",
                capacity=capacity,
                price=price,
                status=status,
                starts_at=now + starts_in,
                created_at=now,
            )
        )

    return _make_event
