"""Scheduled Lambda jobs.

``sweep_handler`` runs from an EventBridge schedule and resolves payments
stuck in ``processing``. ``reminder_handler`` reminds appointment customers and
event participants for the businesses named in the schedule's input.
"""

from typing import Any

from booking_api.dependencies import get_booking_service, get_reconciliation_sweep
from booking_core.utils.logging import get_logger, set_correlation_id

logger = get_logger(__name__)


def sweep_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Run one reconciliation sweep.

    Returns:
        The sweep report as a dict
    """
    set_correlation_id(getattr(context, "aws_request_id", None))
    report = get_reconciliation_sweep().run()
    return report.model_dump()


def reminder_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Send reminders for upcoming appointments and events.

    Expects ``{"business_ids": [...], "within_hours": 24}``; ``within_hours``
    is optional.
    """
    set_correlation_id(getattr(context, "aws_request_id", None))
    booking = get_booking_service()
    within_hours = event.get("within_hours")

    sent: dict[str, int] = {}
    for business_id in event.get("business_ids", []):
        sent[business_id] = booking.send_upcoming_reminders(business_id, within_hours)
    logger.info("Reminders sent: %s", sent)
    return {"sent": sent}
