"""Event registration endpoint."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_201_CREATED

from booking_api.dependencies import get_booking_service
from booking_api.models.bookings import RegistrationRequest
from booking_core.models import BookingConfirmation
from booking_core.services.booking import BookingService

router = APIRouter(tags=["events"])


@router.post(
    "/events/{event_id}/registrations",
    summary="Register for an event",
    description="""
Claim one seat in a published event.

The seat price is taken from the stored event. When the last seat is taken
concurrently, the opened payment is cancelled and 409 is returned.
""",
    response_model=BookingConfirmation,
    status_code=HTTP_201_CREATED,
    responses={
        201: {"description": "Seat reserved"},
        400: {"description": "Event not open or invalid customer"},
        404: {"description": "Event not found"},
        409: {"description": "Event is full"},
    },
)
async def register_for_event(
    event_id: str,
    body: RegistrationRequest,
    booking: BookingService = Depends(get_booking_service),
) -> BookingConfirmation:
    return await run_in_threadpool(
        booking.register_for_event,
        event_id,
        body.customer.to_customer(),
        body.payment_method,
        body.provider,
    )
