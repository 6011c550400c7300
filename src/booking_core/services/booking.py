"""Booking facade: the operations exposed to transports.

Appointment booking
    price/duration from the pricing authority -> atomic slot reservation ->
    payment opened and linked to the reservation. If either step fails, the
    slot is released again.

Event registration
    price from the stored event -> payment opened -> atomic seat claim. If
    the seat claim loses its race, the payment is cancelled before the
    error reaches the caller.

Notifications are best-effort and never undo a reservation or a payment.
"""

import datetime as dt
from typing import TYPE_CHECKING

from booking_core.config import BookingSettings
from booking_core.models import (
    BookingConfirmation,
    BookingError,
    CustomerInfo,
    ErrorCode,
    EventStatus,
    NotificationContent,
    OccupantStatus,
    Payment,
    PaymentMethod,
    Reservation,
    ReservationKind,
    ReservationStatus,
    ServiceDefinition,
)
from booking_core.utils.logging import get_logger

from .business_directory import BusinessDirectory
from .invoice_service import InvoiceService
from .notifications import NotificationService, messages
from .payment_service import PaymentService
from .pricing import PricingAuthority, StaticCatalog
from .slot_reservation import SlotReservationEngine
from .webhook_handler import CallbackOutcome, WebhookHandler

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .gateways import PaymentGateway

logger = get_logger(__name__)

REQUIRED_CUSTOMER_FIELDS = ("first_name", "last_name", "email", "phone")


def validate_customer(customer: CustomerInfo) -> None:
    """Reject customers with blank required fields.

    Raises:
        BookingError: INVALID_CUSTOMER listing the missing fields
    """
    missing = [f for f in REQUIRED_CUSTOMER_FIELDS if not getattr(customer, f).strip()]
    if missing:
        raise BookingError(ErrorCode.INVALID_CUSTOMER, {"missing": ",".join(missing)})


class BookingService:
    """Entry point for booking, registration, reconciliation and refunds."""

    def __init__(
        self,
        settings: BookingSettings,
        pricing: PricingAuthority,
        businesses: BusinessDirectory,
        engine: SlotReservationEngine,
        payments: PaymentService,
        notifications: NotificationService,
    ) -> None:
        """Initialize the facade and hook payment completion.

        Args:
            settings: Immutable booking settings
            pricing: Pricing authority for service prices and durations
            businesses: Business profile lookup
            engine: Slot reservation engine
            payments: Payment settlement service
            notifications: Notification fallback chain
        """
        self.settings = settings
        self.pricing = pricing
        self.businesses = businesses
        self.engine = engine
        self.payments = payments
        self.notifications = notifications
        self.webhooks = WebhookHandler(payments)
        if payments.on_completed is None:
            payments.on_completed = self._on_payment_completed

    # =========================================================================
    # Booking
    # =========================================================================

    def list_services(self) -> list[ServiceDefinition]:
        """Get the public service catalog."""
        return self.pricing.list_services()

    def book_appointment(
        self,
        business_id: str,
        service_id: str,
        window_start: dt.datetime,
        customer: CustomerInfo,
        payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD,
        provider: str | None = None,
    ) -> BookingConfirmation:
        """Book an appointment slot.

        Args:
            business_id: Business whose calendar to book
            service_id: Service from the catalog; price and duration come from it
            window_start: Requested start (timezone-aware)
            customer: Customer contact details
            payment_method: Payment method chosen by the customer
            provider: Gateway name for gateway-settled methods

        Returns:
            BookingConfirmation, with a payment page URL when one was opened

        Raises:
            BookingError: INVALID_CUSTOMER, UNKNOWN_SERVICE, BUSINESS_NOT_FOUND,
                INVALID_WINDOW, SLOT_CONFLICT, UNKNOWN_PAYMENT_PROVIDER or
                GATEWAY_UNAVAILABLE
        """
        validate_customer(customer)
        service = self.pricing.resolve(service_id)
        business = self.businesses.get(business_id)

        reservation = self.engine.reserve_appointment(business, service, window_start, customer)

        payment: Payment | None = None
        if service.price > 0:
            try:
                payment = self.payments.open_payment(
                    reservation_id=reservation.reservation_id,
                    business=business,
                    amount=service.price,
                    currency=service.currency,
                    method=payment_method,
                    description=f"{service.display_name} - {business.display_name}",
                    provider=provider,
                    customer_email=customer.email,
                )
                self.engine.attach_payment(reservation.reservation_id, payment.payment_id)
            except Exception:
                self.engine.release_appointment(reservation)
                if payment is not None:
                    self.payments.cancel_payment(payment.payment_id, "slot_not_held")
                raise
            reservation = reservation.model_copy(update={"payment_id": payment.payment_id})

        self._notify(
            reservation,
            messages.booking_confirmation(
                reservation, business, payment.payment_url if payment else None
            ),
        )
        return self._confirmation(reservation, payment)

    def register_for_event(
        self,
        event_id: str,
        customer: CustomerInfo,
        payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD,
        provider: str | None = None,
    ) -> BookingConfirmation:
        """Register a participant for an event.

        Args:
            event_id: Event to register for
            customer: Participant details
            payment_method: Payment method chosen by the participant
            provider: Gateway name for gateway-settled methods

        Returns:
            BookingConfirmation for the seat

        Raises:
            BookingError: INVALID_CUSTOMER, EVENT_NOT_FOUND, EVENT_NOT_OPEN,
                CAPACITY_EXCEEDED, UNKNOWN_PAYMENT_PROVIDER or GATEWAY_UNAVAILABLE
        """
        validate_customer(customer)
        event = self.engine.get_event(event_id)
        if event.status != EventStatus.PUBLISHED:
            raise BookingError(
                ErrorCode.EVENT_NOT_OPEN, {"event_id": event_id, "status": event.status.value}
            )
        if event.seats_left == 0:
            raise BookingError(ErrorCode.CAPACITY_EXCEEDED, {"event_id": event_id})

        business = self.businesses.get(event.business_id)
        reservation_id = self.engine.new_reservation_id()

        payment: Payment | None = None
        if event.price > 0:
            payment = self.payments.open_payment(
                reservation_id=reservation_id,
                business=business,
                amount=event.price,
                currency=event.currency,
                method=payment_method,
                description=f"{event.name} - {business.display_name}",
                provider=provider,
                customer_email=customer.email,
            )

        try:
            reservation = self.engine.claim_event_seat(
                event,
                customer,
                OccupantStatus.PENDING_PAYMENT if payment else OccupantStatus.FREE,
                payment_id=payment.payment_id if payment else None,
                reservation_id=reservation_id,
            )
        except Exception:
            if payment is not None:
                self.payments.cancel_payment(payment.payment_id, "seat_not_reserved")
            raise

        self._notify(
            reservation,
            messages.booking_confirmation(
                reservation, business, payment.payment_url if payment else None
            ),
        )
        return self._confirmation(reservation, payment)

    def get_reservation(self, reservation_id: str) -> Reservation:
        return self.engine.get_reservation(reservation_id)

    def cancel_reservation(self, reservation_id: str) -> Reservation:
        """Cancel a reservation, free its resource, and close open payments.

        Completed payments are not refunded here; use refund_payment.

        Raises:
            BookingError: RESERVATION_NOT_FOUND
        """
        reservation = self.engine.get_reservation(reservation_id)
        if reservation.status == ReservationStatus.CANCELLED:
            return reservation

        if reservation.kind == ReservationKind.APPOINTMENT:
            self.engine.release_appointment(reservation)
        else:
            self.engine.release_event_seat(reservation)

        for payment in self.payments.get_payments_for_reservation(reservation_id):
            if not payment.status.is_terminal:
                self.payments.cancel_payment(payment.payment_id, "reservation_cancelled")

        return self.engine.get_reservation(reservation_id)

    # =========================================================================
    # Settlement
    # =========================================================================

    def reconcile_payment_callback(
        self,
        provider: str,
        payload: bytes,
        signature: str | None,
    ) -> CallbackOutcome:
        """Apply an asynchronous gateway callback. See WebhookHandler.reconcile."""
        return self.webhooks.reconcile(provider, payload, signature)

    def refund_payment(
        self,
        payment_id: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> Payment:
        """Refund a completed payment. The reservation is not touched."""
        return self.payments.refund_payment(payment_id, amount, reason)

    def confirm_manual_payment(self, payment_id: str) -> Payment:
        """Record a cash/transfer/bit payment as received."""
        return self.payments.confirm_manual_payment(payment_id)

    def get_payment(self, payment_id: str) -> Payment:
        return self.payments.require_payment(payment_id)

    def send_upcoming_reminders(
        self,
        business_id: str,
        within_hours: int | None = None,
    ) -> int:
        """Remind appointment customers and event participants of what starts soon.

        Each reservation is reminded once. The marker is claimed before
        sending and cleared again when no channel delivered, so the next run
        retries that reservation.

        Args:
            business_id: Business whose calendar and events to scan
            within_hours: Look-ahead; defaults to ``reminder_window_hours``

        Returns:
            Number of reservations for which some channel delivered
        """
        business = self.businesses.get(business_id)
        now = dt.datetime.now(dt.UTC)
        horizon = now + dt.timedelta(hours=within_hours or self.settings.reminder_window_hours)

        sent = 0
        for reservation in self.engine.list_appointments(business_id, now, horizon):
            if self._remind(reservation, messages.appointment_reminder(reservation, business)):
                sent += 1
        for event in self.engine.list_upcoming_events(business_id, now, horizon):
            for seat in self.engine.list_event_seats(event.event_id):
                if self._remind(seat, messages.event_reminder(seat, event, business)):
                    sent += 1
        return sent

    # =========================================================================
    # Helpers
    # =========================================================================

    def _on_payment_completed(self, payment: Payment) -> None:
        """Side effects of a payment's first completion."""
        try:
            reservation = self.engine.get_reservation(payment.reservation_id)
        except BookingError:
            logger.warning(
                "Completed payment %s has no reservation %s",
                payment.payment_id,
                payment.reservation_id,
            )
            return

        if reservation.kind == ReservationKind.EVENT_SEAT:
            self.engine.mark_occupant_paid(reservation.reservation_id)

        try:
            business = self.businesses.get(payment.business_id)
        except BookingError:
            logger.warning("No business profile for receipt of %s", payment.payment_id)
            return

        invoice = self.payments.invoices.get_for_payment(payment.payment_id)
        self._notify(
            reservation,
            messages.payment_receipt(
                payment, business, invoice.invoice_number if invoice else None
            ),
        )

    def _remind(self, reservation: Reservation, content: NotificationContent) -> bool:
        if reservation.reminder_sent_at is not None:
            return False
        if not self.engine.claim_reminder(reservation.reservation_id):
            return False
        if self._notify(reservation, content):
            return True
        self.engine.release_reminder(reservation.reservation_id)
        return False

    def _notify(self, reservation: Reservation, content: NotificationContent) -> bool:
        results = self.notifications.send_multi_channel(
            email=reservation.customer.email,
            phone=reservation.customer.phone,
            content=content,
        )
        delivered = any(r.success for r in results.values())
        if not delivered:
            logger.warning(
                "No notification delivered for reservation %s: %s",
                reservation.reservation_id,
                {ch.value: r.error for ch, r in results.items()},
            )
        return delivered

    @staticmethod
    def _confirmation(reservation: Reservation, payment: Payment | None) -> BookingConfirmation:
        return BookingConfirmation(
            reservation=reservation,
            payment_id=payment.payment_id if payment else None,
            payment_url=payment.payment_url if payment else None,
            requires_payment=payment is not None,
            amount=reservation.amount,
            currency=reservation.currency,
        )


def build_booking_service(
    settings: BookingSettings,
    db: "DynamoDBService",
    gateways: dict[str, "PaymentGateway"],
    notifications: NotificationService,
    pricing: PricingAuthority | None = None,
) -> BookingService:
    """Wire a BookingService from its infrastructure dependencies.

    Args:
        settings: Immutable booking settings
        db: DynamoDB service instance
        gateways: Configured gateways by name
        notifications: Notification fallback chain
        pricing: Pricing authority; defaults to the static deploy-time catalog

    Returns:
        Ready-to-use BookingService
    """
    payments = PaymentService(db, settings, gateways, InvoiceService(db))
    return BookingService(
        settings=settings,
        pricing=pricing or PricingAuthority(StaticCatalog()),
        businesses=BusinessDirectory(db),
        engine=SlotReservationEngine(db, settings),
        payments=payments,
        notifications=notifications,
    )
