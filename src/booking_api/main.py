"""FastAPI application for the booking and settlement REST API.

Routes are mounted under /api, matching the CloudFront /api/* behaviour in
front of API Gateway. ``handler`` is the Lambda entry point.
"""

import logging
import os
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from booking_api.exceptions import register_exception_handlers
from booking_api.middleware.correlation import CorrelationIdMiddleware
from booking_api.routes.appointments import router as appointments_router
from booking_api.routes.events import router as events_router
from booking_api.routes.payments import router as payments_router
from booking_api.routes.reservations import router as reservations_router
from booking_api.routes.services import router as services_router
from booking_api.routes.webhooks import router as webhooks_router
from booking_core.utils.logging import configure_logging

configure_logging(logging.INFO)

app = FastAPI(
    title="Booking Settlement API",
    description="REST API for appointment booking, event registration and payments",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(services_router, prefix="/api")
app.include_router(appointments_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(reservations_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "booking-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run("booking_api.main:app", host=host, port=port, reload=True, reload_dirs=["src"])
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
