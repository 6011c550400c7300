"""Gateway callback audit log model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import CallbackResult


class CallbackEventLog(BaseModel):
    """Record of a processed gateway callback, keyed by provider event ID."""

    model_config = ConfigDict(strict=True)

    event_id: str = Field(..., description="Provider event ID")
    provider: str
    event_type: str
    payload_hash: str = Field(..., description="SHA-256 of the raw payload")
    payment_id: str | None = None
    processing_result: CallbackResult
    error_message: str | None = None
    processed_at: datetime
