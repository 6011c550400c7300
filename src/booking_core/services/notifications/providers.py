"""Email and SMS delivery providers.

Each provider exposes ``name``, ``verify()`` and ``send(recipient, content)``.
``verify`` returns False instead of raising; ``send`` raises
``NotificationError`` so the chain can move on to the next provider.
"""

import logging
import smtplib
import ssl
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from booking_core.config import BookingSettings
from booking_core.models import NotificationContent

from ..ssm_service import SSMService

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class NotificationError(Exception):
    """Raised when a provider fails to deliver a message."""


class NotificationProvider(Protocol):
    name: str

    def verify(self) -> bool: ...

    def send(self, recipient: str, content: NotificationContent) -> str: ...


def format_phone_number(phone: str, default_country_code: str = "972") -> str:
    """Normalize a phone number to E.164.

    Local numbers with a leading zero get the default country code.

    Args:
        phone: Phone number as typed by the customer
        default_country_code: Country code without "+"

    Returns:
        Phone number like +972501234567
    """
    digits = "".join(ch for ch in phone if ch.isdigit())
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    if digits.startswith("0"):
        return f"+{default_country_code}{digits[1:]}"
    return f"+{digits}"


class SesEmailProvider:
    """Email through Amazon SES."""

    name = "ses"

    def __init__(self, settings: BookingSettings) -> None:
        self._from = settings.ses_from_email
        self._client = boto3.client("ses", region_name=settings.ses_region)

    def verify(self) -> bool:
        if not self._from:
            logger.info("SES provider not configured: SES_FROM_EMAIL missing")
            return False
        try:
            response = self._client.get_identity_verification_attributes(Identities=[self._from])
        except (ClientError, BotoCoreError) as e:
            logger.warning("SES verification failed: %s", e)
            return False
        attrs = response.get("VerificationAttributes", {}).get(self._from, {})
        return attrs.get("VerificationStatus") == "Success"

    def send(self, recipient: str, content: NotificationContent) -> str:
        body: dict[str, dict[str, str]] = {"Text": {"Data": content.text, "Charset": "UTF-8"}}
        if content.html:
            body["Html"] = {"Data": content.html, "Charset": "UTF-8"}
        try:
            response = self._client.send_email(
                Source=self._from,
                Destination={"ToAddresses": [recipient]},
                Message={
                    "Subject": {"Data": content.subject, "Charset": "UTF-8"},
                    "Body": body,
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise NotificationError(f"SES send failed: {e}") from e
        return str(response["MessageId"])


class SmtpEmailProvider:
    """Email through an SMTP relay. Password is read from SSM."""

    name = "smtp"

    def __init__(self, settings: BookingSettings, ssm: SSMService) -> None:
        self._settings = settings
        self._ssm = ssm
        self._password: str | None = None

    def _connect(self) -> smtplib.SMTP:
        s = self._settings
        if not s.smtp_host:
            raise NotificationError("SMTP host is not configured")
        if s.smtp_port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                s.smtp_host, s.smtp_port, context=ssl.create_default_context(), timeout=30
            )
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30)
            if s.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
        if s.smtp_username and self._password:
            server.login(s.smtp_username, self._password)
        return server

    def verify(self) -> bool:
        s = self._settings
        if not s.smtp_host or not s.smtp_from_email:
            logger.info("SMTP provider not configured")
            return False
        self._password = self._ssm.get_optional_parameter(s.ssm_path("smtp/password"))
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP verification failed: %s", e)
            return False
        return True

    def send(self, recipient: str, content: NotificationContent) -> str:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = content.subject
        msg["From"] = self._settings.smtp_from_email or ""
        msg["To"] = recipient
        msg.attach(MIMEText(content.text, "plain", "utf-8"))
        if content.html:
            msg.attach(MIMEText(content.html, "html", "utf-8"))

        try:
            server = self._connect()
            try:
                server.sendmail(msg["From"], [recipient], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP send failed: {e}") from e
        return f"smtp-{uuid.uuid4().hex[:12]}"


class TwilioSmsProvider:
    """SMS through the Twilio REST API. Auth token is read from SSM."""

    name = "twilio"

    def __init__(self, settings: BookingSettings, ssm: SSMService) -> None:
        self._settings = settings
        self._ssm = ssm
        self._auth_token: str | None = None

    def _auth(self) -> tuple[str, str]:
        return (self._settings.twilio_account_sid or "", self._auth_token or "")

    def verify(self) -> bool:
        s = self._settings
        if not s.twilio_account_sid or not s.twilio_from_number:
            logger.info("Twilio provider not configured")
            return False
        self._auth_token = self._ssm.get_optional_parameter(s.ssm_path("twilio/auth_token"))
        if not self._auth_token:
            return False
        try:
            response = httpx.get(
                f"{TWILIO_API_BASE}/Accounts/{s.twilio_account_sid}.json",
                auth=self._auth(),
                timeout=10.0,
            )
        except httpx.HTTPError as e:
            logger.warning("Twilio verification failed: %s", e)
            return False
        return response.status_code == 200

    def send(self, recipient: str, content: NotificationContent) -> str:
        s = self._settings
        try:
            response = httpx.post(
                f"{TWILIO_API_BASE}/Accounts/{s.twilio_account_sid}/Messages.json",
                auth=self._auth(),
                data={
                    "To": format_phone_number(recipient),
                    "From": s.twilio_from_number or "",
                    "Body": content.text,
                },
                timeout=30.0,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Twilio send failed: {e}") from e
        return str(response.json().get("sid", ""))


class LogProvider:
    """Development sink that only writes the message to the log."""

    name = "log"

    def verify(self) -> bool:
        return True

    def send(self, recipient: str, content: NotificationContent) -> str:
        logger.info("[log provider] to=%s subject=%s text=%s", recipient, content.subject, content.text)
        return f"log-{uuid.uuid4().hex[:12]}"


def build_email_providers(settings: BookingSettings, ssm: SSMService) -> list[NotificationProvider]:
    """Instantiate the email providers named in settings, in order."""
    providers: list[NotificationProvider] = []
    for name in settings.email_providers:
        if name == SesEmailProvider.name:
            providers.append(SesEmailProvider(settings))
        elif name == SmtpEmailProvider.name:
            providers.append(SmtpEmailProvider(settings, ssm))
        elif name == LogProvider.name:
            providers.append(LogProvider())
        else:
            raise ValueError(f"Unknown email provider in configuration: {name}")
    return providers


def build_sms_providers(settings: BookingSettings, ssm: SSMService) -> list[NotificationProvider]:
    """Instantiate the SMS providers named in settings, in order."""
    providers: list[NotificationProvider] = []
    for name in settings.sms_providers:
        if name == TwilioSmsProvider.name:
            providers.append(TwilioSmsProvider(settings, ssm))
        elif name == LogProvider.name:
            providers.append(LogProvider())
        else:
            raise ValueError(f"Unknown SMS provider in configuration: {name}")
    return providers
