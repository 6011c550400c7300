"""Unit tests for the notification fallback chain and its providers.

Test categories:
- Fallback order and exhaustion
- Provider verification
- Phone number normalization
- SES (moto), Twilio (patched httpx) and provider configuration
"""

from typing import Any
from unittest.mock import MagicMock, patch

import boto3
import httpx
import pytest
from moto import mock_aws

from booking_core.models import NotificationChannel, NotificationContent
from booking_core.services.notifications import (
    LogProvider,
    NotificationError,
    NotificationService,
    SesEmailProvider,
    SmtpEmailProvider,
    TwilioSmsProvider,
    format_phone_number,
)
from booking_core.services.notifications.providers import (
    build_email_providers,
    build_sms_providers,
)

CONTENT = NotificationContent(subject="Booking confirmed", text="See you soon")


class FakeProvider:
    """Provider whose verify/send outcome is set per test."""

    def __init__(
        self,
        name: str,
        verified: bool = True,
        fails: bool = False,
        raises: Exception | None = None,
        verify_raises: Exception | None = None,
    ) -> None:
        self.name = name
        self.verified = verified
        self.fails = fails
        self.raises = raises
        self.verify_raises = verify_raises
        self.verify_calls = 0
        self.sent: list[str] = []

    def verify(self) -> bool:
        self.verify_calls += 1
        if self.verify_raises:
            raise self.verify_raises
        return self.verified

    def send(self, recipient: str, content: NotificationContent) -> str:
        if self.raises:
            raise self.raises
        if self.fails:
            raise NotificationError(f"{self.name} is down")
        self.sent.append(recipient)
        return f"{self.name}-msg"


# === Fallback Chain Tests ===


class TestFallbackChain:
    """Tests for NotificationService ordering and fallback."""

    def test_first_provider_delivers(self) -> None:
        first, second = FakeProvider("primary"), FakeProvider("backup")
        service = NotificationService(email_providers=[first, second], sms_providers=[])

        result = service.send_email("dana@example.com", CONTENT)

        assert result.success is True
        assert result.provider_name == "primary"
        assert second.sent == []

    def test_falls_back_to_next_provider(self) -> None:
        first, second = FakeProvider("primary", fails=True), FakeProvider("backup")
        service = NotificationService(email_providers=[first, second], sms_providers=[])

        result = service.send_email("dana@example.com", CONTENT)

        assert result.success is True
        assert result.provider_name == "backup"
        assert [a.success for a in result.attempts] == [False, True]
        assert result.attempts[0].error == "primary is down"

    def test_exhausted_chain_returns_failure(self) -> None:
        service = NotificationService(
            email_providers=[FakeProvider("a", fails=True), FakeProvider("b", fails=True)],
            sms_providers=[],
        )

        result = service.send_email("dana@example.com", CONTENT)

        assert result.success is False
        assert result.error == "b is down"
        assert len(result.attempts) == 2

    def test_unverified_provider_is_excluded(self) -> None:
        unverified = FakeProvider("broken", verified=False)
        backup = FakeProvider("backup")
        service = NotificationService(email_providers=[unverified, backup], sms_providers=[])

        result = service.send_email("dana@example.com", CONTENT)

        assert result.provider_name == "backup"
        assert service.initialize()[NotificationChannel.EMAIL] == ["backup"]

    def test_unexpected_send_error_falls_back(self) -> None:
        broken = FakeProvider("primary", raises=RuntimeError("provider bug"))
        backup = FakeProvider("backup")
        service = NotificationService(email_providers=[broken, backup], sms_providers=[])

        result = service.send_email("dana@example.com", CONTENT)

        assert result.success is True
        assert result.provider_name == "backup"
        assert result.attempts[0].error == "RuntimeError: provider bug"

    def test_unexpected_send_error_on_last_provider_returns_failure(self) -> None:
        service = NotificationService(
            email_providers=[FakeProvider("primary", raises=KeyError("MessageId"))],
            sms_providers=[],
        )

        result = service.send_email("dana@example.com", CONTENT)

        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("KeyError")

    def test_verify_that_raises_is_treated_as_unverified(self) -> None:
        broken = FakeProvider("broken", verify_raises=RuntimeError("verify bug"))
        backup = FakeProvider("backup")
        service = NotificationService(email_providers=[broken, backup], sms_providers=[])

        assert service.initialize()[NotificationChannel.EMAIL] == ["backup"]
        assert service.send_email("dana@example.com", CONTENT).provider_name == "backup"

    def test_no_providers(self) -> None:
        service = NotificationService(email_providers=[], sms_providers=[])

        result = service.send_sms("050-1234567", CONTENT)

        assert result.success is False
        assert result.error == "No sms provider available"

    def test_missing_recipient(self) -> None:
        provider = FakeProvider("primary")
        service = NotificationService(email_providers=[provider], sms_providers=[])

        result = service.send_email(None, CONTENT)

        assert result.success is False
        assert result.error == "No recipient provided"
        assert provider.sent == []

    def test_providers_are_verified_once(self) -> None:
        provider = FakeProvider("primary")
        service = NotificationService(email_providers=[provider], sms_providers=[])

        service.send_email("a@example.com", CONTENT)
        service.send_email("b@example.com", CONTENT)

        assert provider.verify_calls == 1

    def test_multi_channel_reports_each_channel(self) -> None:
        service = NotificationService(
            email_providers=[FakeProvider("mail", fails=True)],
            sms_providers=[LogProvider()],
        )

        results = service.send_multi_channel(
            email="dana@example.com", phone="050-1234567", content=CONTENT
        )

        assert results[NotificationChannel.EMAIL].success is False
        assert results[NotificationChannel.SMS].success is True


# === Phone Number Tests ===


class TestFormatPhoneNumber:
    @pytest.mark.parametrize(
        "phone,expected",
        [
            ("050-1234567", "+972501234567"),
            ("+972 50 123 4567", "+972501234567"),
            ("00972501234567", "+972501234567"),
            ("+1 (415) 555-0100", "+14155550100"),
        ],
    )
    def test_normalizes_to_e164(self, phone: str, expected: str) -> None:
        assert format_phone_number(phone) == expected


# === Provider Tests ===


class TestSesEmailProvider:
    """SES provider against moto."""

    def test_verified_sender_can_send(self, settings: Any) -> None:
        with mock_aws():
            boto3.client("ses", region_name="eu-west-1").verify_email_identity(
                EmailAddress="noreply@book.example.com"
            )
            provider = SesEmailProvider(
                settings.model_copy(
                    update={"ses_from_email": "noreply@book.example.com", "ses_region": "eu-west-1"}
                )
            )

            assert provider.verify() is True
            assert provider.send("dana@example.com", CONTENT)

    def test_missing_sender_fails_verification(self, settings: Any) -> None:
        with mock_aws():
            provider = SesEmailProvider(settings.model_copy(update={"ses_region": "eu-west-1"}))

            assert provider.verify() is False


class TestSmtpEmailProvider:
    def test_unconfigured_host_fails_verification(self, settings: Any) -> None:
        provider = SmtpEmailProvider(settings.model_copy(update={"smtp_host": None}), MagicMock())

        assert provider.verify() is False

    def test_send_without_host_raises_notification_error(self, settings: Any) -> None:
        provider = SmtpEmailProvider(settings.model_copy(update={"smtp_host": None}), MagicMock())

        with pytest.raises(NotificationError, match="SMTP host"):
            provider.send("dana@example.com", CONTENT)


class TestTwilioSmsProvider:
    """Twilio provider with httpx patched."""

    @pytest.fixture
    def twilio_settings(self, settings: Any) -> Any:
        return settings.model_copy(
            update={"twilio_account_sid": "AC123", "twilio_from_number": "+15005550006"}
        )

    @pytest.fixture
    def ssm(self) -> MagicMock:
        ssm = MagicMock()
        ssm.get_optional_parameter.return_value = "auth-token"
        return ssm

    def test_send_posts_e164_number(self, twilio_settings: Any, ssm: MagicMock) -> None:
        provider = TwilioSmsProvider(twilio_settings, ssm)
        response = MagicMock()
        response.json.return_value = {"sid": "SM123"}

        with patch("booking_core.services.notifications.providers.httpx.post", return_value=response) as post:
            message_id = provider.send("050-1234567", CONTENT)

        assert message_id == "SM123"
        assert post.call_args.kwargs["data"]["To"] == "+972501234567"

    def test_connection_error_raises_notification_error(
        self, twilio_settings: Any, ssm: MagicMock
    ) -> None:
        provider = TwilioSmsProvider(twilio_settings, ssm)

        with patch(
            "booking_core.services.notifications.providers.httpx.post",
            side_effect=httpx.ConnectError("connection refused"),
        ):
            with pytest.raises(NotificationError):
                provider.send("050-1234567", CONTENT)

    def test_unconfigured_account_fails_verification(self, settings: Any, ssm: MagicMock) -> None:
        assert TwilioSmsProvider(settings, ssm).verify() is False

    def test_missing_auth_token_fails_verification(
        self, twilio_settings: Any, ssm: MagicMock
    ) -> None:
        ssm.get_optional_parameter.return_value = None

        assert TwilioSmsProvider(twilio_settings, ssm).verify() is False


class TestProviderConfiguration:
    def test_builds_in_configured_order(self, settings: Any) -> None:
        configured = settings.model_copy(update={"sms_providers": ("twilio", "log")})

        providers = build_sms_providers(configured, MagicMock())

        assert [p.name for p in providers] == ["twilio", "log"]

    def test_unknown_provider_name(self, settings: Any) -> None:
        configured = settings.model_copy(update={"email_providers": ("carrier-pigeon",)})

        with pytest.raises(ValueError):
            build_email_providers(configured, MagicMock())
