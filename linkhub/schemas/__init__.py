"""Pydantic schemas."""

from linkhub.schemas.events import ClickEvent
from linkhub.schemas.link import (
    CleanupResponse,
    DeeplinkCreate,
    DeeplinkResponse,
    DeeplinkUpdate,
    LinkListResponse,
    LinkResponse,
    LinkUpdate,
    QRCodeCreate,
    ShortLinkCreate,
    ShortLinkListResponse,
    ShortLinkResponse,
    ShortLinkUpdate,
    UserAgentRuleSchema,
)

__all__ = [
    "ClickEvent",
    "CleanupResponse",
    "DeeplinkCreate",
    "DeeplinkResponse",
    "DeeplinkUpdate",
    "LinkListResponse",
    "LinkResponse",
    "LinkUpdate",
    "QRCodeCreate",
    "ShortLinkCreate",
    "ShortLinkListResponse",
    "ShortLinkResponse",
    "ShortLinkUpdate",
    "UserAgentRuleSchema",
]
