"""Slot reservation engine for appointments and event seats.

Both resource types are protected by DynamoDB transactions, never by
in-process locks or cached counts:

Appointments
    A window ``[start, end)`` is split into fixed-size calendar buckets
    (``slot_granularity_minutes``). The reservation and one item per bucket
    in ``calendar-slots`` are written in one transaction, each bucket with
    ``attribute_not_exists(slot_key)``. Two overlapping windows on the
    same grid always share a bucket, so at most one of them commits.

Event seats
    The event's ``occupant_count`` is incremented under the condition
    ``occupant_count < capacity`` in the same transaction that writes the
    participant's reservation.

A read-only overlap query runs first so obvious conflicts fail without a
transaction. It never decides a write.
"""

import datetime as dt
import math
import uuid
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from booking_core.config import BookingSettings
from booking_core.models import (
    BookingError,
    BusinessProfile,
    CustomerInfo,
    ErrorCode,
    EventDefinition,
    EventStatus,
    OccupantStatus,
    Reservation,
    ReservationKind,
    ReservationStatus,
    ServiceDefinition,
)
from booking_core.utils.logging import get_logger, log_reservation_decision

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

LIVE_STATUSES = [ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value]


def windows_overlap(
    a_start: dt.datetime,
    a_end: dt.datetime,
    b_start: dt.datetime,
    b_end: dt.datetime,
) -> bool:
    """Half-open interval overlap: touching windows do not overlap."""
    return a_start < b_end and a_end > b_start


def _iso(value: dt.datetime) -> str:
    # UTC isoformat keeps lexical order equal to time order
    return value.astimezone(dt.UTC).isoformat()


class SlotReservationEngine:
    """Atomic reservation of appointment slots and event seats."""

    RESERVATIONS_TABLE = "reservations"
    SLOTS_TABLE = "calendar-slots"
    EVENTS_TABLE = "events"

    def __init__(self, db: "DynamoDBService", settings: BookingSettings) -> None:
        """Initialize the engine.

        Args:
            db: DynamoDB service instance
            settings: Immutable booking settings
        """
        self.db = db
        self.settings = settings

    def new_reservation_id(self) -> str:
        return f"RES-{uuid.uuid4().hex[:12].upper()}"

    # =========================================================================
    # Appointments
    # =========================================================================

    def validate_window(
        self,
        business: BusinessProfile,
        window_start: dt.datetime,
        duration_minutes: int,
    ) -> tuple[dt.datetime, dt.datetime]:
        """Check that a requested window is bookable.

        Args:
            business: Business owning the calendar
            window_start: Requested start (timezone-aware)
            duration_minutes: Service duration from the pricing authority

        Returns:
            Tuple of (start, end) normalized to UTC

        Raises:
            BookingError: INVALID_WINDOW with a ``reason`` detail
        """

        def invalid(reason: str) -> BookingError:
            return BookingError(
                ErrorCode.INVALID_WINDOW,
                {"reason": reason, "window_start": window_start.isoformat()},
            )

        if window_start.tzinfo is None or window_start.utcoffset() is None:
            raise invalid("timezone_required")

        start = window_start.astimezone(dt.UTC)
        end = start + dt.timedelta(minutes=duration_minutes)
        now = dt.datetime.now(dt.UTC)

        if start < now + dt.timedelta(minutes=business.min_lead_minutes):
            raise invalid("too_soon")
        if start > now + dt.timedelta(days=business.max_advance_days):
            raise invalid("too_far_ahead")

        granularity = self.settings.slot_granularity_minutes
        minute_of_day = start.hour * 60 + start.minute
        if start.second or start.microsecond or minute_of_day % granularity:
            raise invalid("not_aligned")

        if math.ceil(duration_minutes / granularity) > self.settings.max_slot_buckets:
            raise invalid("too_long")

        return start, end

    def _bucket_starts(self, start: dt.datetime, end: dt.datetime) -> list[dt.datetime]:
        step = dt.timedelta(minutes=self.settings.slot_granularity_minutes)
        buckets = []
        current = start
        while current < end:
            buckets.append(current)
            current += step
        return buckets

    def _slot_key(self, business_id: str, bucket_start: dt.datetime) -> str:
        return f"{business_id}#{_iso(bucket_start)}"

    def find_overlapping(
        self,
        business_id: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> list[Reservation]:
        """Find live appointments of a business that overlap a window.

        Args:
            business_id: Business owning the calendar
            start: Window start (UTC)
            end: Window end, exclusive (UTC)

        Returns:
            Overlapping pending/confirmed appointments
        """
        items = self.db.query_by_gsi(
            self.RESERVATIONS_TABLE,
            "business-index",
            "business_id",
            business_id,
            sort_key_condition=Key("window_start").lt(_iso(end)),
            filter_expression=(
                Attr("window_end").gt(_iso(start)) & Attr("status").is_in(LIVE_STATUSES)
            ),
        )
        return [self._item_to_reservation(item) for item in items]

    def reserve_appointment(
        self,
        business: BusinessProfile,
        service: ServiceDefinition,
        window_start: dt.datetime,
        customer: CustomerInfo,
    ) -> Reservation:
        """Atomically reserve an appointment window.

        Args:
            business: Business owning the calendar
            service: Canonical service definition (price and duration)
            window_start: Requested start (timezone-aware)
            customer: Customer contact details

        Returns:
            The confirmed reservation

        Raises:
            BookingError: INVALID_WINDOW or SLOT_CONFLICT
        """
        start, end = self.validate_window(business, window_start, service.duration_minutes)

        if self.find_overlapping(business.business_id, start, end):
            log_reservation_decision(
                logger,
                "rejected",
                kind=ReservationKind.APPOINTMENT.value,
                resource_key=service.service_id,
                business_id=business.business_id,
                reason=ErrorCode.SLOT_CONFLICT.name,
                stage="precheck",
            )
            raise BookingError(ErrorCode.SLOT_CONFLICT, {"window_start": _iso(start)})

        now = dt.datetime.now(dt.UTC)
        reservation = Reservation(
            reservation_id=self.new_reservation_id(),
            kind=ReservationKind.APPOINTMENT,
            business_id=business.business_id,
            resource_key=service.service_id,
            status=ReservationStatus.PENDING,
            customer=customer,
            window_start=start,
            window_end=end,
            amount=service.price,
            currency=service.currency,
            created_at=now,
        )
        confirmed = reservation.model_copy(update={"status": ReservationStatus.CONFIRMED})

        transact_items: list[dict[str, Any]] = [
            {
                "Put": {
                    "TableName": self.db.table_name(self.RESERVATIONS_TABLE),
                    "Item": self.db.serialize(self._reservation_to_item(confirmed)),
                    "ConditionExpression": "attribute_not_exists(reservation_id)",
                }
            }
        ]
        for bucket in self._bucket_starts(start, end):
            transact_items.append(
                {
                    "Put": {
                        "TableName": self.db.table_name(self.SLOTS_TABLE),
                        "Item": self.db.serialize(
                            {
                                "slot_key": self._slot_key(business.business_id, bucket),
                                "business_id": business.business_id,
                                "bucket_start": _iso(bucket),
                                "reservation_id": confirmed.reservation_id,
                            }
                        ),
                        "ConditionExpression": "attribute_not_exists(slot_key)",
                    }
                }
            )

        if not self.db.transact_write(transact_items):
            log_reservation_decision(
                logger,
                "rejected",
                kind=ReservationKind.APPOINTMENT.value,
                resource_key=service.service_id,
                business_id=business.business_id,
                reason=ErrorCode.SLOT_CONFLICT.name,
                stage="atomic_write",
            )
            raise BookingError(ErrorCode.SLOT_CONFLICT, {"window_start": _iso(start)})

        log_reservation_decision(
            logger,
            "confirmed",
            kind=ReservationKind.APPOINTMENT.value,
            resource_key=service.service_id,
            reservation_id=confirmed.reservation_id,
            business_id=business.business_id,
        )
        return confirmed

    def release_appointment(self, reservation: Reservation) -> bool:
        """Cancel an appointment and free its calendar buckets.

        Bucket deletes are conditioned on this reservation holding them.

        Args:
            reservation: Appointment to release

        Returns:
            True if released, False if it was already cancelled
        """
        if reservation.window_start is None or reservation.window_end is None:
            raise ValueError("release_appointment requires an appointment reservation")

        now = dt.datetime.now(dt.UTC).isoformat()
        transact_items: list[dict[str, Any]] = [
            self._cancel_reservation_update(reservation.reservation_id, now)
        ]
        for bucket in self._bucket_starts(reservation.window_start, reservation.window_end):
            transact_items.append(
                {
                    "Delete": {
                        "TableName": self.db.table_name(self.SLOTS_TABLE),
                        "Key": {
                            "slot_key": {"S": self._slot_key(reservation.business_id, bucket)}
                        },
                        "ConditionExpression": "reservation_id = :rid",
                        "ExpressionAttributeValues": {
                            ":rid": {"S": reservation.reservation_id}
                        },
                    }
                }
            )

        released = self.db.transact_write(transact_items)
        if released:
            log_reservation_decision(
                logger,
                "released",
                kind=reservation.kind.value,
                resource_key=reservation.resource_key,
                reservation_id=reservation.reservation_id,
                business_id=reservation.business_id,
            )
        return released

    def list_appointments(
        self,
        business_id: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> list[Reservation]:
        """List confirmed appointments starting within ``[start, end)``."""
        items = self.db.query_by_gsi(
            self.RESERVATIONS_TABLE,
            "business-index",
            "business_id",
            business_id,
            sort_key_condition=Key("window_start").between(_iso(start), _iso(end)),
            filter_expression=Attr("status").eq(ReservationStatus.CONFIRMED.value),
        )
        reservations = [self._item_to_reservation(item) for item in items]
        return [r for r in reservations if r.window_start and r.window_start < end]

    def list_upcoming_events(
        self,
        business_id: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> list[EventDefinition]:
        """List published events starting within ``[start, end)``."""
        items = self.db.query_by_gsi(
            self.EVENTS_TABLE,
            "business-index",
            "business_id",
            business_id,
            sort_key_condition=Key("starts_at").between(_iso(start), _iso(end)),
            filter_expression=Attr("status").eq(EventStatus.PUBLISHED.value),
        )
        events = [self._item_to_event(item) for item in items]
        return [e for e in events if e.starts_at < end]

    def list_event_seats(self, event_id: str) -> list[Reservation]:
        """List the confirmed seats of an event."""
        items = self.db.query_by_gsi(
            self.RESERVATIONS_TABLE,
            "resource-index",
            "resource_key",
            event_id,
            filter_expression=(
                Attr("kind").eq(ReservationKind.EVENT_SEAT.value)
                & Attr("status").eq(ReservationStatus.CONFIRMED.value)
            ),
        )
        return [self._item_to_reservation(item) for item in items]

    def claim_reminder(self, reservation_id: str) -> bool:
        """Set the reminder marker of a confirmed reservation.

        Returns:
            True if this call set it, False if it was already set or the
            reservation is no longer confirmed
        """
        attrs = self.db.update_item(
            self.RESERVATIONS_TABLE,
            {"reservation_id": reservation_id},
            "SET reminder_sent_at = :now",
            {
                ":now": dt.datetime.now(dt.UTC).isoformat(),
                ":confirmed": ReservationStatus.CONFIRMED.value,
            },
            {"#status": "status"},
            condition_expression="attribute_not_exists(reminder_sent_at) AND #status = :confirmed",
        )
        return attrs is not None

    def release_reminder(self, reservation_id: str) -> None:
        """Clear the reminder marker so a later run sends it again."""
        self.db.update_item(
            self.RESERVATIONS_TABLE,
            {"reservation_id": reservation_id},
            "REMOVE reminder_sent_at SET updated_at = :now",
            {":now": dt.datetime.now(dt.UTC).isoformat()},
        )

    # =========================================================================
    # Events
    # =========================================================================

    def create_event(self, event: EventDefinition) -> EventDefinition:
        """Store a new event with no occupants.

        Args:
            event: Event definition; ``occupant_count`` is reset to 0

        Returns:
            The stored event
        """
        stored = event.model_copy(update={"occupant_count": 0})
        item: dict[str, Any] = {
            "event_id": stored.event_id,
            "business_id": stored.business_id,
            "name": stored.name,
            "capacity": stored.capacity,
            "occupant_count": 0,
            "price": stored.price,
            "currency": stored.currency,
            "status": stored.status.value,
            "starts_at": _iso(stored.starts_at),
            "created_at": _iso(stored.created_at),
        }
        if stored.ends_at:
            item["ends_at"] = _iso(stored.ends_at)

        self.db.put_item(
            self.EVENTS_TABLE, item, condition_expression="attribute_not_exists(event_id)"
        )
        return stored

    def get_event(self, event_id: str, consistent_read: bool = False) -> EventDefinition:
        """Get an event.

        Raises:
            BookingError: EVENT_NOT_FOUND
        """
        item = self.db.get_item(
            self.EVENTS_TABLE, {"event_id": event_id}, consistent_read=consistent_read
        )
        if not item:
            raise BookingError(ErrorCode.EVENT_NOT_FOUND, {"event_id": event_id})
        return self._item_to_event(item)

    def set_event_status(self, event_id: str, status: EventStatus) -> EventDefinition:
        """Change an event's lifecycle status."""
        attrs = self.db.update_item(
            self.EVENTS_TABLE,
            {"event_id": event_id},
            "SET #status = :status, updated_at = :now",
            {":status": status.value, ":now": dt.datetime.now(dt.UTC).isoformat()},
            {"#status": "status"},
            condition_expression="attribute_exists(event_id)",
        )
        if attrs is None:
            raise BookingError(ErrorCode.EVENT_NOT_FOUND, {"event_id": event_id})
        return self._item_to_event(attrs)

    def claim_event_seat(
        self,
        event: EventDefinition,
        customer: CustomerInfo,
        occupant_status: OccupantStatus,
        payment_id: str | None = None,
        reservation_id: str | None = None,
    ) -> Reservation:
        """Atomically take one seat of an event.

        ``event`` is only used for identifiers and price; capacity is checked
        against the stored count inside the transaction.

        Args:
            event: Event to register for
            customer: Participant details
            occupant_status: PENDING_PAYMENT or FREE
            payment_id: Payment opened for this seat, if any
            reservation_id: Pre-allocated reservation ID

        Returns:
            The confirmed seat reservation

        Raises:
            BookingError: CAPACITY_EXCEEDED when no seat was available
        """
        now = dt.datetime.now(dt.UTC)
        reservation = Reservation(
            reservation_id=reservation_id or self.new_reservation_id(),
            kind=ReservationKind.EVENT_SEAT,
            business_id=event.business_id,
            resource_key=event.event_id,
            status=ReservationStatus.CONFIRMED,
            customer=customer,
            occupant_status=occupant_status,
            amount=event.price,
            currency=event.currency,
            payment_id=payment_id,
            created_at=now,
        )

        transact_items: list[dict[str, Any]] = [
            {
                "Update": {
                    "TableName": self.db.table_name(self.EVENTS_TABLE),
                    "Key": {"event_id": {"S": event.event_id}},
                    "UpdateExpression": "SET occupant_count = occupant_count + :one, updated_at = :now",
                    "ConditionExpression": "occupant_count < capacity AND #status = :published",
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {
                        ":one": {"N": "1"},
                        ":now": {"S": now.isoformat()},
                        ":published": {"S": EventStatus.PUBLISHED.value},
                    },
                }
            },
            {
                "Put": {
                    "TableName": self.db.table_name(self.RESERVATIONS_TABLE),
                    "Item": self.db.serialize(self._reservation_to_item(reservation)),
                    "ConditionExpression": "attribute_not_exists(reservation_id)",
                }
            },
        ]

        if not self.db.transact_write(transact_items):
            log_reservation_decision(
                logger,
                "rejected",
                kind=ReservationKind.EVENT_SEAT.value,
                resource_key=event.event_id,
                business_id=event.business_id,
                reason=ErrorCode.CAPACITY_EXCEEDED.name,
                stage="atomic_write",
            )
            raise BookingError(ErrorCode.CAPACITY_EXCEEDED, {"event_id": event.event_id})

        log_reservation_decision(
            logger,
            "confirmed",
            kind=ReservationKind.EVENT_SEAT.value,
            resource_key=event.event_id,
            reservation_id=reservation.reservation_id,
            business_id=event.business_id,
        )
        return reservation

    def release_event_seat(self, reservation: Reservation) -> bool:
        """Cancel a seat reservation and give the seat back.

        Returns:
            True if released, False if it was already cancelled
        """
        now = dt.datetime.now(dt.UTC).isoformat()
        transact_items: list[dict[str, Any]] = [
            self._cancel_reservation_update(reservation.reservation_id, now),
            {
                "Update": {
                    "TableName": self.db.table_name(self.EVENTS_TABLE),
                    "Key": {"event_id": {"S": reservation.resource_key}},
                    "UpdateExpression": "SET occupant_count = occupant_count - :one, updated_at = :now",
                    "ConditionExpression": "occupant_count > :zero",
                    "ExpressionAttributeValues": {
                        ":one": {"N": "1"},
                        ":zero": {"N": "0"},
                        ":now": {"S": now},
                    },
                }
            },
        ]
        released = self.db.transact_write(transact_items)
        if released:
            log_reservation_decision(
                logger,
                "released",
                kind=reservation.kind.value,
                resource_key=reservation.resource_key,
                reservation_id=reservation.reservation_id,
                business_id=reservation.business_id,
            )
        return released

    # =========================================================================
    # Reservation records
    # =========================================================================

    def get_reservation(self, reservation_id: str) -> Reservation:
        """Get a reservation.

        Raises:
            BookingError: RESERVATION_NOT_FOUND
        """
        item = self.db.get_item(self.RESERVATIONS_TABLE, {"reservation_id": reservation_id})
        if not item:
            raise BookingError(
                ErrorCode.RESERVATION_NOT_FOUND, {"reservation_id": reservation_id}
            )
        return self._item_to_reservation(item)

    def attach_payment(self, reservation_id: str, payment_id: str) -> None:
        """Link a payment to an existing reservation."""
        self.db.update_item(
            self.RESERVATIONS_TABLE,
            {"reservation_id": reservation_id},
            "SET payment_id = :pid, updated_at = :now",
            {":pid": payment_id, ":now": dt.datetime.now(dt.UTC).isoformat()},
            condition_expression="attribute_exists(reservation_id)",
        )

    def mark_occupant_paid(self, reservation_id: str) -> bool:
        """Flip an event participant from pending payment to paid.

        Returns:
            True if updated, False if the seat is not awaiting payment
        """
        attrs = self.db.update_item(
            self.RESERVATIONS_TABLE,
            {"reservation_id": reservation_id},
            "SET occupant_status = :paid, updated_at = :now",
            {
                ":paid": OccupantStatus.PAID.value,
                ":pending": OccupantStatus.PENDING_PAYMENT.value,
                ":now": dt.datetime.now(dt.UTC).isoformat(),
            },
            condition_expression="occupant_status = :pending",
        )
        return attrs is not None

    def _cancel_reservation_update(self, reservation_id: str, now: str) -> dict[str, Any]:
        return {
            "Update": {
                "TableName": self.db.table_name(self.RESERVATIONS_TABLE),
                "Key": {"reservation_id": {"S": reservation_id}},
                "UpdateExpression": "SET #status = :cancelled, cancelled_at = :now, updated_at = :now",
                "ConditionExpression": "attribute_exists(reservation_id) AND #status <> :cancelled",
                "ExpressionAttributeNames": {"#status": "status"},
                "ExpressionAttributeValues": {
                    ":cancelled": {"S": ReservationStatus.CANCELLED.value},
                    ":now": {"S": now},
                },
            }
        }

    # Conversion helpers

    def _reservation_to_item(self, reservation: Reservation) -> dict[str, Any]:
        """Convert Reservation model to DynamoDB item."""
        customer: dict[str, Any] = {
            "first_name": reservation.customer.first_name,
            "last_name": reservation.customer.last_name,
            "email": reservation.customer.email,
            "phone": reservation.customer.phone,
        }
        if reservation.customer.notes:
            customer["notes"] = reservation.customer.notes

        item: dict[str, Any] = {
            "reservation_id": reservation.reservation_id,
            "kind": reservation.kind.value,
            "business_id": reservation.business_id,
            "resource_key": reservation.resource_key,
            "status": reservation.status.value,
            "customer": customer,
            "amount": reservation.amount,
            "currency": reservation.currency,
            "created_at": _iso(reservation.created_at),
        }
        # Sparse attributes: business-index only holds appointments
        if reservation.window_start:
            item["window_start"] = _iso(reservation.window_start)
        if reservation.window_end:
            item["window_end"] = _iso(reservation.window_end)
        if reservation.occupant_status:
            item["occupant_status"] = reservation.occupant_status.value
        if reservation.payment_id:
            item["payment_id"] = reservation.payment_id
        return item

    def _item_to_reservation(self, item: dict[str, Any]) -> Reservation:
        """Convert DynamoDB item to Reservation model."""

        def ts(name: str) -> dt.datetime | None:
            return dt.datetime.fromisoformat(item[name]) if item.get(name) else None

        raw_customer = item["customer"]
        return Reservation(
            reservation_id=item["reservation_id"],
            kind=ReservationKind(item["kind"]),
            business_id=item["business_id"],
            resource_key=item["resource_key"],
            status=ReservationStatus(item["status"]),
            customer=CustomerInfo(
                first_name=raw_customer["first_name"],
                last_name=raw_customer["last_name"],
                email=raw_customer["email"],
                phone=raw_customer["phone"],
                notes=raw_customer.get("notes"),
            ),
            window_start=ts("window_start"),
            window_end=ts("window_end"),
            occupant_status=(
                OccupantStatus(item["occupant_status"]) if item.get("occupant_status") else None
            ),
            amount=int(item["amount"]),
            currency=item.get("currency", "ILS"),
            payment_id=item.get("payment_id"),
            created_at=dt.datetime.fromisoformat(item["created_at"]),
            updated_at=ts("updated_at"),
            cancelled_at=ts("cancelled_at"),
            reminder_sent_at=ts("reminder_sent_at"),
        )

    def _item_to_event(self, item: dict[str, Any]) -> EventDefinition:
        """Convert DynamoDB item to EventDefinition model."""
        return EventDefinition(
            event_id=item["event_id"],
            business_id=item["business_id"],
            name=item["name"],
            capacity=int(item["capacity"]),
            occupant_count=int(item.get("occupant_count", 0)),
            price=int(item.get("price", 0)),
            currency=item.get("currency", "ILS"),
            status=EventStatus(item["status"]),
            starts_at=dt.datetime.fromisoformat(item["starts_at"]),
            ends_at=dt.datetime.fromisoformat(item["ends_at"]) if item.get("ends_at") else None,
            created_at=dt.datetime.fromisoformat(item["created_at"]),
        )
