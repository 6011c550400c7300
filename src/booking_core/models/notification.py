"""Notification models."""

from pydantic import BaseModel, ConfigDict, Field

from .enums import NotificationChannel


class NotificationContent(BaseModel):
    """Rendered message ready for a provider."""

    model_config = ConfigDict(strict=True, frozen=True)

    subject: str = ""
    text: str
    html: str | None = None


class NotificationAttempt(BaseModel):
    """One provider attempt. Logged, never stored."""

    model_config = ConfigDict(strict=True)

    channel: NotificationChannel
    provider_name: str
    recipient: str
    success: bool
    error: str | None = None


class NotificationResult(BaseModel):
    """Outcome of sending through a fallback chain."""

    model_config = ConfigDict(strict=True)

    success: bool
    channel: NotificationChannel
    provider_name: str | None = Field(default=None, description="Provider that delivered")
    message_id: str | None = None
    error: str | None = None
    attempts: list[NotificationAttempt] = Field(default_factory=list)
