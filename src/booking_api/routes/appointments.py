"""Appointment booking endpoint."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_201_CREATED

from booking_api.dependencies import get_booking_service
from booking_api.models.bookings import AppointmentRequest
from booking_core.models import BookingConfirmation
from booking_core.services.booking import BookingService

router = APIRouter(tags=["appointments"])


@router.post(
    "/appointments",
    summary="Book an appointment",
    description="""
Reserve a time slot with a business for a catalog service.

**Notes:**
- Price and duration come from the service catalog; any `price` or
  `duration` in the body is ignored
- `window_start` must include a timezone offset
- For gateway payments the response carries a hosted `payment_url`
""",
    response_model=BookingConfirmation,
    status_code=HTTP_201_CREATED,
    responses={
        201: {"description": "Slot reserved"},
        400: {"description": "Unknown service, invalid window or customer"},
        404: {"description": "Business not found"},
        409: {"description": "Slot already taken"},
        503: {"description": "Payment gateway unavailable, retry later"},
    },
)
async def book_appointment(
    body: AppointmentRequest,
    booking: BookingService = Depends(get_booking_service),
) -> BookingConfirmation:
    return await run_in_threadpool(
        booking.book_appointment,
        body.business_id,
        body.service_id,
        body.window_start,
        body.customer.to_customer(),
        body.payment_method,
        body.provider,
    )
