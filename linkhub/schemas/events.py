"""Pydantic schemas for events published to other services."""

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field


class ClickEvent(BaseModel):
    """Click event published on Redis Pub/Sub after a successful redirect.

    Consumed by analytics workers; the device fields come from the same
    User-Agent classification the redirect used.
    """

    link_id: UUID = Field(description="ID of the short link or link entry that was hit")
    short_code: str = Field(description="The short code that was accessed")
    target_kind: str = Field(description="plain, deeplink or qr")
    destination: str = Field(description="URL the visitor was redirected to")
    clicked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp when the click occurred",
    )
    device_class: str | None = Field(default=None, description="mobile, tablet, desktop or unknown")
    os_family: str | None = Field(default=None, description="OS family reported by the UA parser")
    referrer: str | None = Field(default=None, description="HTTP Referer header")
    user_agent: str | None = Field(default=None, description="HTTP User-Agent header")
    ip_address: str | None = Field(default=None, description="Client IP address")

    model_config = {"json_schema_extra": {"example": {
        "link_id": "550e8400-e29b-41d4-a716-446655440000",
        "short_code": "aB3xY9",
        "target_kind": "deeplink",
        "destination": "https://apps.apple.com/app/id123",
        "clicked_at": "2024-01-15T10:30:00Z",
        "device_class": "mobile",
        "os_family": "iOS",
        "referrer": "https://instagram.com",
        "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
        "ip_address": "192.168.1.1",
    }}}
