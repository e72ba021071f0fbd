"""Data models for inbound webhook deliveries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class DeliveryURL(BaseModel):
    """Parsed request URL, echoed back to the sender as a diagnostic."""

    scheme: str = ""
    host: str = ""
    port: Optional[int] = None
    path: str = ""
    query: Dict[str, str] = Field(default_factory=dict)


class WebhookDelivery(BaseModel):
    """A decoded, authenticated delivery.

    Attributes:
        binding_id: Binding the delivery was addressed to
        event_type: Lowercased ``X-GitHub-Event`` header
        delivery_id: ``X-GitHub-Delivery`` header, when sent
        payload: Decoded JSON payload
        received_at: Arrival time (UTC)
        sequence: Arrival order, assigned when the delivery is queued
    """

    binding_id: str
    event_type: str
    delivery_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    url: Optional[DeliveryURL] = None
    sequence: Optional[int] = None

    @field_validator("event_type")
    def _normalize_event_type(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("event_type must not be empty")
        return value

    @field_validator("received_at")
    def _validate_received_at(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def sender_login(self) -> Optional[str]:
        sender = self.payload.get("sender")
        if isinstance(sender, dict):
            login = sender.get("login")
            return str(login) if login is not None else None
        return None


__all__ = ["DeliveryURL", "WebhookDelivery"]
