"""Link Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from linkhub.core.config import get_settings
from linkhub.services.deeplink import format_url, is_valid_url

LinkType = Literal["plain", "deeplink", "qr"]


def short_url_for(short_code: str) -> str:
    """Public URL for a short code."""
    return f"{get_settings().site_url.rstrip('/')}/l/{short_code}"


def _clean_url(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    url = format_url(value)
    if not url:
        return None
    if not is_valid_url(url):
        raise ValueError(f"{field_name} is not a valid URL")
    return url


class UserAgentRuleSchema(BaseModel):
    """Custom routing rule: substring of the User-Agent -> destination."""

    pattern: str = Field(min_length=1, max_length=200, description="Case-insensitive substring")
    url: str = Field(description="Destination when the pattern matches")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Pattern cannot be blank")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        url = _clean_url(v, "Rule URL")
        if url is None:
            raise ValueError("Rule URL is required")
        return url


class DeeplinkTargets(BaseModel):
    """Optional per-platform destinations of a deeplink."""

    ios_url: str | None = Field(default=None, description="Destination for iOS devices")
    android_url: str | None = Field(default=None, description="Destination for Android devices")
    desktop_url: str | None = Field(default=None, description="Destination for desktop browsers")
    fallback_url: str | None = Field(default=None, description="Used when no platform matches")
    user_agent_rules: list[UserAgentRuleSchema] = Field(
        default_factory=list,
        description="Checked in order before platform detection",
    )

    @field_validator("ios_url", "android_url", "desktop_url", "fallback_url")
    @classmethod
    def validate_platform_url(cls, v: str | None) -> str | None:
        return _clean_url(v, "Platform URL")


class ShortLinkCreate(BaseModel):
    """Schema for creating a plain short link."""

    url: str = Field(description="The URL to shorten")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        url = _clean_url(v, "URL")
        if url is None:
            raise ValueError("URL is required")
        return url


class DeeplinkCreate(DeeplinkTargets):
    """Schema for creating a deeplink."""

    title: str = Field(min_length=1, max_length=255)
    original_url: str = Field(description="Canonical destination, always required")

    @field_validator("original_url")
    @classmethod
    def validate_original_url(cls, v: str) -> str:
        url = _clean_url(v, "Original URL")
        if url is None:
            raise ValueError("Original URL is required")
        return url


class QRCodeCreate(ShortLinkCreate):
    """Schema for creating a QR-code link (the QR encodes its short URL)."""

    title: str = Field(min_length=1, max_length=255)


class DeeplinkUpdate(DeeplinkTargets):
    """Replacement deeplink targets; ``original_url`` is optional on update."""

    original_url: str | None = None

    @field_validator("original_url")
    @classmethod
    def validate_original_url(cls, v: str | None) -> str | None:
        return _clean_url(v, "Original URL")


class LinkUpdate(BaseModel):
    """Schema for updating a link."""

    title: str | None = Field(default=None, max_length=255)
    url: str | None = None
    is_active: bool | None = None
    deeplink: DeeplinkUpdate | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        return _clean_url(v, "URL")


class ShortLinkUpdate(BaseModel):
    """Schema for updating a standalone short link."""

    url: str | None = Field(default=None, description="New destination")
    is_active: bool | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        return _clean_url(v, "URL")


class DeeplinkResponse(BaseModel):
    """Schema for deeplink configuration response."""

    original_url: str
    ios_url: str | None
    android_url: str | None
    desktop_url: str | None
    fallback_url: str | None
    user_agent_rules: list[UserAgentRuleSchema]


class LinkResponse(BaseModel):
    """Schema for link response."""

    id: UUID
    title: str
    url: str
    link_type: LinkType
    short_code: str | None
    is_active: bool
    click_count: int
    created_at: datetime
    updated_at: datetime
    deeplink: DeeplinkResponse | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def short_url(self) -> str | None:
        """Full public short URL."""
        return short_url_for(self.short_code) if self.short_code else None


class ShortLinkResponse(BaseModel):
    """Schema for short link response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    short_code: str
    original_url: str
    link_type: LinkType
    is_active: bool
    click_count: int
    created_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def short_url(self) -> str:
        """Full public short URL."""
        return short_url_for(self.short_code)


class LinkListResponse(BaseModel):
    """Schema for paginated link list response."""

    items: list[LinkResponse]
    total: int
    page: int
    page_size: int
    pages: int


class ShortLinkListResponse(BaseModel):
    """Schema for paginated short link list response."""

    items: list[ShortLinkResponse]
    total: int
    page: int
    page_size: int
    pages: int


class CleanupResponse(BaseModel):
    """Result of purging soft-deleted links past the retention window."""

    deleted_links: int
    deleted_short_links: int
    cutoff: datetime
