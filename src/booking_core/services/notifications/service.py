"""Notification fallback chain.

Providers are verified once, on first use. Only verified providers join a
channel's chain. Sending walks the chain in configured order and stops at the
first provider that accepts the message. The service never raises: an
exhausted or empty chain returns a failed ``NotificationResult``.
"""

import threading

from booking_core.models import (
    NotificationAttempt,
    NotificationChannel,
    NotificationContent,
    NotificationResult,
)
from booking_core.utils.logging import get_logger, log_notification_attempt

from .providers import NotificationError, NotificationProvider

logger = get_logger(__name__)


class NotificationService:
    """Email and SMS delivery with ordered provider fallback."""

    def __init__(
        self,
        email_providers: list[NotificationProvider],
        sms_providers: list[NotificationProvider],
    ) -> None:
        """Initialize the service.

        Args:
            email_providers: Email providers in preference order
            sms_providers: SMS providers in preference order
        """
        self._configured = {
            NotificationChannel.EMAIL: list(email_providers),
            NotificationChannel.SMS: list(sms_providers),
        }
        self._chains: dict[NotificationChannel, list[NotificationProvider]] | None = None
        self._lock = threading.Lock()

    def _verify(self, channel: NotificationChannel, provider: NotificationProvider) -> bool:
        try:
            verified = provider.verify()
        except Exception:
            logger.exception(
                "%s provider %s raised during verification, skipping",
                channel.value,
                provider.name,
            )
            return False
        if not verified:
            logger.warning(
                "%s provider %s failed verification, skipping", channel.value, provider.name
            )
        return verified

    def _active_chains(self) -> dict[NotificationChannel, list[NotificationProvider]]:
        with self._lock:
            if self._chains is None:
                chains: dict[NotificationChannel, list[NotificationProvider]] = {}
                for channel, providers in self._configured.items():
                    chains[channel] = [p for p in providers if self._verify(channel, p)]
                    logger.info(
                        "Active %s providers: %s",
                        channel.value,
                        [p.name for p in chains[channel]] or "none",
                    )
                self._chains = chains
            return self._chains

    def initialize(self) -> dict[NotificationChannel, list[str]]:
        """Verify every configured provider and build the active chains.

        A provider whose ``verify()`` raises is treated as unverified.

        Returns:
            Names of the verified providers per channel
        """
        return {ch: [p.name for p in chain] for ch, chain in self._active_chains().items()}

    def _send(
        self,
        channel: NotificationChannel,
        recipient: str | None,
        content: NotificationContent,
    ) -> NotificationResult:
        if not recipient:
            return NotificationResult(
                success=False, channel=channel, error="No recipient provided"
            )

        chain = self._active_chains()[channel]
        if not chain:
            logger.warning("No verified %s provider available", channel.value)
            return NotificationResult(
                success=False,
                channel=channel,
                error=f"No {channel.value} provider available",
            )

        attempts: list[NotificationAttempt] = []
        last_error: str | None = None
        for provider in chain:
            try:
                message_id = provider.send(recipient, content)
            except Exception as e:
                if isinstance(e, NotificationError):
                    last_error = str(e)
                else:
                    logger.exception(
                        "Unexpected error from %s provider %s", channel.value, provider.name
                    )
                    last_error = f"{type(e).__name__}: {e}"
                attempts.append(
                    NotificationAttempt(
                        channel=channel,
                        provider_name=provider.name,
                        recipient=recipient,
                        success=False,
                        error=last_error,
                    )
                )
                log_notification_attempt(
                    logger, channel.value, provider.name, success=False, error=last_error
                )
                continue

            attempts.append(
                NotificationAttempt(
                    channel=channel,
                    provider_name=provider.name,
                    recipient=recipient,
                    success=True,
                )
            )
            log_notification_attempt(logger, channel.value, provider.name, success=True)
            return NotificationResult(
                success=True,
                channel=channel,
                provider_name=provider.name,
                message_id=message_id,
                attempts=attempts,
            )

        return NotificationResult(
            success=False,
            channel=channel,
            error=last_error or f"All {channel.value} providers failed",
            attempts=attempts,
        )

    def send_email(self, to: str | None, content: NotificationContent) -> NotificationResult:
        """Send an email through the fallback chain."""
        return self._send(NotificationChannel.EMAIL, to, content)

    def send_sms(self, to: str | None, content: NotificationContent) -> NotificationResult:
        """Send an SMS through the fallback chain."""
        return self._send(NotificationChannel.SMS, to, content)

    def send_multi_channel(
        self,
        *,
        email: str | None,
        phone: str | None,
        content: NotificationContent,
    ) -> dict[NotificationChannel, NotificationResult]:
        """Send the same content by email and SMS.

        Returns:
            Result per channel
        """
        return {
            NotificationChannel.EMAIL: self.send_email(email, content),
            NotificationChannel.SMS: self.send_sms(phone, content),
        }
