"""Payment status, refund and manual confirmation endpoints."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from booking_api.dependencies import get_booking_service
from booking_api.models.payments import PaymentResponse, RefundRequest
from booking_core.services.booking import BookingService

router = APIRouter(tags=["payments"])


@router.get(
    "/payments/{payment_id}",
    summary="Get payment status",
    response_model=PaymentResponse,
    responses={404: {"description": "Payment not found"}},
)
async def get_payment(
    payment_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> PaymentResponse:
    payment = await run_in_threadpool(booking.get_payment, payment_id)
    return PaymentResponse.from_payment(payment)


@router.post(
    "/payments/{payment_id}/refund",
    summary="Refund payment",
    description="""
Refund a completed payment in full or in part.

**Notes:**
- Only `completed` payments can be refunded
- The reservation is not cancelled by a refund
""",
    response_model=PaymentResponse,
    responses={
        400: {"description": "Invalid refund amount"},
        404: {"description": "Payment not found"},
        409: {"description": "Payment is not refundable"},
        503: {"description": "Gateway refund failed, retry later"},
    },
)
async def refund_payment(
    payment_id: str,
    body: RefundRequest,
    booking: BookingService = Depends(get_booking_service),
) -> PaymentResponse:
    payment = await run_in_threadpool(
        booking.refund_payment, payment_id, body.amount, body.reason
    )
    return PaymentResponse.from_payment(payment)


@router.post(
    "/payments/{payment_id}/confirm",
    summary="Confirm manual payment",
    description="Record a cash, bank transfer or bit payment as received.",
    response_model=PaymentResponse,
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment cannot be confirmed manually"},
    },
)
async def confirm_manual_payment(
    payment_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> PaymentResponse:
    payment = await run_in_threadpool(booking.confirm_manual_payment, payment_id)
    return PaymentResponse.from_payment(payment)
