"""Storage collaborators used by the redirect dispatcher."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkhub.models.deeplink import Deeplink
from linkhub.models.link import Link
from linkhub.models.short_link import ShortLink
from linkhub.services.deeplink import DeeplinkConfig, rules_from_json


class TargetKind(str, Enum):
    """What a short code points at."""

    PLAIN = "plain"
    DEEPLINK = "deeplink"
    QR = "qr"

    @classmethod
    def parse(cls, value: str | None) -> "TargetKind":
        try:
            return cls(value)
        except ValueError:
            return cls.PLAIN


@dataclass(frozen=True)
class ShortLinkEntry:
    """Storage-independent view of a short code and its redirect target."""

    id: UUID
    short_code: str
    owner_id: UUID
    target_kind: TargetKind
    original_url: str
    click_count: int
    is_active: bool
    link_id: UUID | None = None


class LinkStore(Protocol):
    """A namespace of short codes."""

    name: str

    async def find_active(self, short_code: str) -> ShortLinkEntry | None: ...

    async def increment_clicks(self, entry_id: UUID) -> None: ...


class DeeplinkConfigStore(Protocol):
    """Deeplink configurations keyed by the owning link's id."""

    async def get(self, link_id: UUID) -> DeeplinkConfig | None: ...


class SqlShortLinkStore:
    """Dedicated ``short_links`` table; authoritative for redirects."""

    name = "short_links"

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_active(self, short_code: str) -> ShortLinkEntry | None:
        result = await self._session.execute(
            select(ShortLink).where(
                ShortLink.short_code == short_code,
                ShortLink.is_active == True,  # noqa: E712
            )
        )
        short_link = result.scalar_one_or_none()
        if short_link is None:
            return None
        return ShortLinkEntry(
            id=short_link.id,
            short_code=short_link.short_code,
            owner_id=short_link.user_id,
            target_kind=TargetKind.parse(short_link.link_type),
            original_url=short_link.original_url,
            click_count=short_link.click_count,
            is_active=short_link.is_active,
            link_id=short_link.link_id,
        )

    async def increment_clicks(self, entry_id: UUID) -> None:
        """Read-then-write increment; concurrent visits may under-count."""
        result = await self._session.execute(
            select(ShortLink.click_count).where(ShortLink.id == entry_id)
        )
        clicks = result.scalar_one_or_none()
        if clicks is None:
            return
        await self._session.execute(
            update(ShortLink)
            .where(ShortLink.id == entry_id)
            .values(click_count=clicks + 1)
        )


class SqlLinkStore:
    """General ``links`` table; secondary namespace for short codes."""

    name = "links"

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_active(self, short_code: str) -> ShortLinkEntry | None:
        result = await self._session.execute(
            select(Link).where(
                Link.short_code == short_code,
                Link.is_active == True,  # noqa: E712
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            return None
        return ShortLinkEntry(
            id=link.id,
            short_code=short_code,
            owner_id=link.user_id,
            target_kind=TargetKind.parse(link.link_type),
            original_url=link.url,
            click_count=link.click_count,
            is_active=link.is_active,
            link_id=link.id,
        )

    async def increment_clicks(self, entry_id: UUID) -> None:
        """Read-then-write increment; concurrent visits may under-count."""
        result = await self._session.execute(
            select(Link.click_count).where(Link.id == entry_id)
        )
        clicks = result.scalar_one_or_none()
        if clicks is None:
            return
        await self._session.execute(
            update(Link).where(Link.id == entry_id).values(click_count=clicks + 1)
        )


class SqlDeeplinkConfigStore:
    """Reads ``deeplinks`` rows into ``DeeplinkConfig`` values."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, link_id: UUID) -> DeeplinkConfig | None:
        result = await self._session.execute(
            select(Deeplink).where(Deeplink.link_id == link_id)
        )
        deeplink = result.scalar_one_or_none()
        if deeplink is None:
            return None
        return to_config(deeplink)


def to_config(deeplink: Deeplink) -> DeeplinkConfig:
    """Convert a ``Deeplink`` row into a resolution config."""
    return DeeplinkConfig(
        original_url=deeplink.original_url,
        ios_url=deeplink.ios_url or None,
        android_url=deeplink.android_url or None,
        desktop_url=deeplink.desktop_url or None,
        fallback_url=deeplink.fallback_url or None,
        user_agent_rules=rules_from_json(deeplink.user_agent_rules),
    )
