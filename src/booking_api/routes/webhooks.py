"""Payment gateway callback endpoint.

No JWT or session auth: callbacks are authenticated by the gateway's own
signature scheme. Duplicate deliveries return 200 with result "duplicate".
"""

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from booking_api.dependencies import get_booking_service
from booking_api.models.payments import WebhookResponse
from booking_core.services.booking import BookingService
from booking_core.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

# Header carrying the provider's signature, per provider
SIGNATURE_HEADERS: dict[str, str] = {
    "stripe": "Stripe-Signature",
    "mock": "X-Mock-Signature",
}


@router.post(
    "/webhooks/{provider}",
    summary="Receive payment gateway callbacks",
    description="""
Endpoint for asynchronous payment status callbacks.

**Idempotent**: an already processed event returns 200 with `duplicate`.
Unknown payments return 404 so the gateway retries the delivery.
""",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Unknown provider or invalid signature"},
        404: {"description": "Payment not found yet"},
    },
)
async def handle_gateway_callback(
    provider: str,
    request: Request,
    booking: BookingService = Depends(get_booking_service),
) -> WebhookResponse:
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS.get(provider, "X-Signature"))

    outcome = await run_in_threadpool(
        booking.reconcile_payment_callback, provider, payload, signature
    )
    return WebhookResponse(
        event_id=outcome.event_id,
        event_type=outcome.event_type,
        processing_result=outcome.result,
        payment_status=outcome.payment.status if outcome.payment else None,
        message=outcome.message,
    )
