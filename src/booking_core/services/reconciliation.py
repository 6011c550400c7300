"""Sweep for payments stuck in ``processing``.

A callback can be lost. Payments that stay ``processing`` longer than
``processing_timeout_minutes`` are re-read from their gateway and moved only
when the gateway reports a terminal status. A gateway that cannot answer
leaves the payment untouched for the next run.
"""

import datetime as dt
import time

from pydantic import BaseModel, ConfigDict, Field

from booking_core.models import Payment, PaymentStatus, SettlementMode
from booking_core.utils.logging import get_logger

from .gateways import GatewayError, PaymentGateway
from .payment_service import PaymentService

logger = get_logger(__name__)


class SweepReport(BaseModel):
    """Counts from one sweep run."""

    model_config = ConfigDict(strict=True)

    examined: int = 0
    completed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class ReconciliationSweep:
    """Resolves stale processing payments against their gateways."""

    def __init__(self, payments: PaymentService) -> None:
        self.payments = payments
        self.settings = payments.settings

    def _status_with_retry(self, gateway: PaymentGateway, transaction_id: str) -> str:
        """Query a gateway, backing off exponentially on retryable errors."""
        attempts = self.settings.gateway_status_retries
        delay = self.settings.gateway_retry_backoff_seconds
        attempt = 1
        while True:
            try:
                return gateway.get_status(transaction_id)
            except GatewayError as e:
                if not e.retryable or attempt >= attempts:
                    raise
                logger.warning(
                    "Status check for %s failed (attempt %d/%d): %s",
                    transaction_id,
                    attempt,
                    attempts,
                    e,
                )
            time.sleep(delay)
            delay *= 2
            attempt += 1

    def reconcile_payment(self, payment: Payment) -> Payment:
        """Re-read one payment from its gateway and apply a terminal status.

        Raises:
            GatewayError: If the gateway cannot be reached after retries
        """
        if payment.settlement_mode != SettlementMode.GATEWAY or not payment.gateway_transaction_id:
            return payment
        gateway = self.payments.get_gateway(payment.provider)
        provider_status = self._status_with_retry(gateway, payment.gateway_transaction_id)
        new_status = gateway.map_status(provider_status)
        updated, _ = self.payments.apply_gateway_status(
            payment, new_status, reason=f"{payment.provider}:{provider_status}"
        )
        return updated

    def run(self, now: dt.datetime | None = None) -> SweepReport:
        """Sweep every processing payment older than the timeout.

        Args:
            now: Reference time; defaults to the current time

        Returns:
            SweepReport with the IDs in each outcome bucket
        """
        reference = now or dt.datetime.now(dt.UTC)
        cutoff = reference - dt.timedelta(minutes=self.settings.processing_timeout_minutes)
        stale = self.payments.list_stale_processing(cutoff)
        report = SweepReport(examined=len(stale))

        for payment in stale:
            try:
                updated = self.reconcile_payment(payment)
            except GatewayError as e:
                logger.error("Could not reconcile payment %s: %s", payment.payment_id, e)
                report.errors[payment.payment_id] = str(e)
                continue

            if updated.status == PaymentStatus.COMPLETED:
                report.completed.append(payment.payment_id)
            elif updated.status == PaymentStatus.FAILED:
                report.failed.append(payment.payment_id)
            else:
                report.unchanged.append(payment.payment_id)

        logger.info(
            "Reconciliation sweep: examined=%d completed=%d failed=%d unchanged=%d errors=%d",
            report.examined,
            len(report.completed),
            len(report.failed),
            len(report.unchanged),
            len(report.errors),
        )
        return report
