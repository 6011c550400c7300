"""Customer-facing message templates."""

import datetime as dt

from booking_core.models import (
    BusinessProfile,
    EventDefinition,
    NotificationContent,
    Payment,
    Reservation,
    ReservationKind,
)


def format_amount(amount: int, currency: str) -> str:
    """Render minor units as a display amount, e.g. 15000 ILS -> '150.00 ILS'."""
    return f"{amount / 100:.2f} {currency}"


def _when(reservation: Reservation) -> str:
    if reservation.window_start is None:
        return ""
    return reservation.window_start.strftime("%d/%m/%Y %H:%M UTC")


def booking_confirmation(
    reservation: Reservation,
    business: BusinessProfile,
    payment_url: str | None = None,
) -> NotificationContent:
    """Message sent right after a reservation is confirmed."""
    name = reservation.customer.first_name
    if reservation.kind == ReservationKind.APPOINTMENT:
        what = f"your appointment on {_when(reservation)}"
    else:
        what = "your event registration"

    lines = [
        f"Hi {name},",
        f"{business.display_name} confirmed {what}.",
        f"Reference: {reservation.reservation_id}",
    ]
    if reservation.amount:
        lines.append(f"Amount: {format_amount(reservation.amount, reservation.currency)}")
    if payment_url:
        lines.append(f"Complete your payment here: {payment_url}")

    return NotificationContent(
        subject=f"Booking confirmed - {business.display_name}",
        text="\n".join(lines),
    )


def payment_receipt(
    payment: Payment,
    business: BusinessProfile,
    invoice_number: str | None = None,
) -> NotificationContent:
    """Message sent once a payment completes."""
    lines = [
        f"Payment received by {business.display_name}.",
        f"Amount: {format_amount(payment.amount, payment.currency)}",
        f"Reservation: {payment.reservation_id}",
    ]
    if invoice_number:
        lines.append(f"Receipt number: {invoice_number}")
    return NotificationContent(
        subject=f"Payment receipt - {business.display_name}",
        text="\n".join(lines),
    )


def appointment_reminder(
    reservation: Reservation,
    business: BusinessProfile,
) -> NotificationContent:
    """Reminder before an upcoming appointment."""
    return NotificationContent(
        subject=f"Reminder: appointment with {business.display_name}",
        text=(
            f"Hi {reservation.customer.first_name}, a reminder of your appointment "
            f"with {business.display_name} on {_when(reservation)}. "
            f"Reference: {reservation.reservation_id}"
        ),
    )


def event_reminder(
    reservation: Reservation,
    event: EventDefinition,
    business: BusinessProfile,
) -> NotificationContent:
    """Reminder before an event the participant registered for."""
    return NotificationContent(
        subject=f"Reminder: {event.name} with {business.display_name}",
        text=(
            f"Hi {reservation.customer.first_name}, a reminder that {event.name} "
            f"starts on {event.starts_at.astimezone(dt.UTC).strftime('%d/%m/%Y %H:%M UTC')}. "
            f"Reference: {reservation.reservation_id}"
        ),
    )
