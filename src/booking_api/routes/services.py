"""Public service catalog endpoint."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from booking_api.dependencies import get_booking_service
from booking_core.models import ServiceDefinition
from booking_core.services.booking import BookingService

router = APIRouter(tags=["services"])


@router.get(
    "/services",
    summary="List bookable services",
    description="Services with their canonical duration and price (minor units).",
    response_model=list[ServiceDefinition],
)
async def list_services(
    booking: BookingService = Depends(get_booking_service),
) -> list[ServiceDefinition]:
    return await run_in_threadpool(booking.list_services)
