"""Backend services for booking and payment settlement."""

from .booking import BookingService, build_booking_service
from .business_directory import BusinessDirectory
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .gateways import GatewayError, MockGateway, PaymentGateway, StripeGateway, build_gateways
from .invoice_service import InvoiceService
from .notifications import NotificationService, build_notification_service
from .payment_service import PaymentService, compute_split
from .pricing import DynamoCatalog, PricingAuthority, StaticCatalog
from .reconciliation import ReconciliationSweep, SweepReport
from .slot_reservation import SlotReservationEngine
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .webhook_handler import CallbackOutcome, WebhookHandler

__all__ = [
    "BookingService",
    "build_booking_service",
    "BusinessDirectory",
    "CallbackOutcome",
    "DynamoCatalog",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "GatewayError",
    "MockGateway",
    "PaymentGateway",
    "StripeGateway",
    "build_gateways",
    "InvoiceService",
    "NotificationService",
    "build_notification_service",
    "PaymentService",
    "compute_split",
    "PricingAuthority",
    "StaticCatalog",
    "ReconciliationSweep",
    "SweepReport",
    "SlotReservationEngine",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "WebhookHandler",
]
