"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- A formatter that prefixes every line with the correlation ID
- Helpers for reservation, payment, callback and notification logging

Usage:
    from booking_core.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Opening payment", extra={"payment_id": "PAY-123"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Correlation ID prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; existing handlers get the formatter.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter(LOG_FORMAT))
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _join(prefix: str, context: dict[str, Any], skip: set[str]) -> str:
    parts = [prefix]
    for key, value in context.items():
        if key not in skip:
            parts.append(f"{key}={value}")
    return " | ".join(parts)


def log_reservation_decision(
    logger: logging.Logger,
    decision: str,
    *,
    kind: str,
    resource_key: str,
    reservation_id: str | None = None,
    business_id: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """Log the outcome of a reservation attempt.

    Lost races are expected under load and are logged at info level.

    Args:
        logger: Logger instance
        decision: "confirmed", "rejected" or "released"
        kind: Reservation kind (appointment, event_seat)
        resource_key: Service ID or event ID
        reservation_id: Reservation ID if one was allocated
        business_id: Owning business
        reason: Error code or short reason for rejections
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "decision": decision,
        "kind": kind,
        "resource_key": resource_key,
    }
    if reservation_id:
        context["reservation_id"] = reservation_id
    if business_id:
        context["business_id"] = business_id
    if reason:
        context["reason"] = reason
    context.update(extra)

    logger.info(
        _join(f"Reservation {decision}", context, {"decision"}),
        extra=context,
    )


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    payment_id: str | None = None,
    reservation_id: str | None = None,
    amount: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "open_payment", "refund_payment")
        payment_id: Payment ID if available
        reservation_id: Reservation ID if available
        amount: Amount in minor units if relevant
        status: Payment status
        error: Error message if operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if payment_id:
        context["payment_id"] = payment_id
    if reservation_id:
        context["reservation_id"] = reservation_id
    if amount is not None:
        context["amount"] = amount
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)

    message = _join(f"Payment operation: {operation}", context, {"operation"})

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_callback_event(
    logger: logging.Logger,
    provider: str,
    event_type: str,
    event_id: str,
    *,
    payment_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a gateway callback with structured context.

    Args:
        logger: Logger instance
        provider: Gateway name
        event_type: Provider event type (e.g., "checkout.session.completed")
        event_id: Provider event ID
        payment_id: Associated payment ID if available
        result: Processing result (success, duplicate, skipped, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "provider": provider,
        "event_type": event_type,
        "event_id": event_id,
    }

    if payment_id:
        context["payment_id"] = payment_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Callback event: {provider} {event_type} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if payment_id:
        msg_parts.append(f"payment={payment_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result == "duplicate" or result == "skipped":
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_notification_attempt(
    logger: logging.Logger,
    channel: str,
    provider_name: str,
    *,
    success: bool,
    error: str | None = None,
) -> None:
    """Log a single notification provider attempt.

    Recipients are left out of the log line.

    Args:
        logger: Logger instance
        channel: "email" or "sms"
        provider_name: Provider that was tried
        success: Whether the provider accepted the message
        error: Provider error for failed attempts
    """
    context: dict[str, Any] = {
        "channel": channel,
        "provider": provider_name,
        "success": success,
    }
    if error:
        context["error"] = error

    message = _join(f"Notification {channel} via {provider_name}", context, {"channel", "provider"})

    if success:
        logger.info(message, extra=context)
    else:
        logger.warning(message, extra=context)
