"""Reservation lookup and cancellation endpoints."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from booking_api.dependencies import get_booking_service
from booking_core.models import Reservation
from booking_core.services.booking import BookingService

router = APIRouter(tags=["reservations"])


@router.get(
    "/reservations/{reservation_id}",
    summary="Get reservation",
    response_model=Reservation,
    responses={404: {"description": "Reservation not found"}},
)
async def get_reservation(
    reservation_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> Reservation:
    return await run_in_threadpool(booking.get_reservation, reservation_id)


@router.delete(
    "/reservations/{reservation_id}",
    summary="Cancel reservation",
    description="""
Cancel a reservation and free its slot or seat.

Open payments for the reservation are cancelled. Completed payments are left
as they are; refund them through `POST /payments/{payment_id}/refund`.
Cancelling twice is a no-op.
""",
    response_model=Reservation,
    responses={404: {"description": "Reservation not found"}},
)
async def cancel_reservation(
    reservation_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> Reservation:
    return await run_in_threadpool(booking.cancel_reservation, reservation_id)
