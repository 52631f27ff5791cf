"""Link service for database operations and short code allocation."""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import TypeVar
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkhub.core.config import get_settings
from linkhub.core.observability import record_reservation
from linkhub.models.deeplink import Deeplink
from linkhub.models.link import Link
from linkhub.models.short_link import ShortLink
from linkhub.schemas.link import (
    DeeplinkCreate,
    DeeplinkUpdate,
    LinkUpdate,
    QRCodeCreate,
    ShortLinkCreate,
    ShortLinkUpdate,
)
from linkhub.services import registry
from linkhub.services.deeplink import UserAgentRule, rules_to_json

settings = get_settings()
logger = structlog.get_logger()

T = TypeVar("T")


class ShortCodeExhaustedError(RuntimeError):
    """No unique short code could be allocated within the attempt budget."""

    def __init__(self, attempts: int) -> None:
        super().__init__("Unable to generate unique short code")
        self.attempts = attempts


async def is_short_code_taken(session: AsyncSession, short_code: str) -> bool:
    """Check both short-code namespaces, including inactive entries."""
    short_link = await session.execute(
        select(ShortLink.id).where(ShortLink.short_code == short_code)
    )
    if short_link.scalar_one_or_none() is not None:
        return True
    link = await session.execute(select(Link.id).where(Link.short_code == short_code))
    return link.scalar_one_or_none() is not None


async def _create_with_short_code(
    session: AsyncSession,
    build: Callable[[str], Awaitable[T]],
) -> T:
    """Reserve a code and insert the rows built for it.

    The availability check is not atomic with the insert, so a unique
    constraint violation means another request won the race: roll back to
    the savepoint and try again with a fresh code.
    """
    attempts = 0
    for _ in range(settings.short_code_insert_attempts):
        reservation = await registry.reserve(
            lambda code: is_short_code_taken(session, code),
            length=settings.short_code_length,
            max_attempts=settings.short_code_max_attempts,
            producer=registry.generate,
        )
        if isinstance(reservation, registry.ShortCodeExhausted):
            record_reservation("exhausted")
            raise ShortCodeExhaustedError(attempts + reservation.attempts)
        attempts += reservation.attempts

        try:
            async with session.begin_nested():
                created = await build(reservation.code)
        except IntegrityError:
            record_reservation("conflict")
            logger.warning("Short code taken on insert, retrying", short_code=reservation.code)
            continue

        record_reservation("reserved")
        return created

    record_reservation("exhausted")
    raise ShortCodeExhaustedError(attempts)


async def create_short_link(
    session: AsyncSession,
    user_id: UUID,
    link_data: ShortLinkCreate,
) -> ShortLink:
    """Create a plain short link in the dedicated namespace."""

    async def build(short_code: str) -> ShortLink:
        short_link = ShortLink(
            user_id=user_id,
            short_code=short_code,
            original_url=link_data.url,
            link_type="plain",
        )
        session.add(short_link)
        await session.flush()
        return short_link

    short_link = await _create_with_short_code(session, build)
    await session.refresh(short_link)
    return short_link


async def _next_position(session: AsyncSession, user_id: UUID) -> int:
    result = await session.execute(
        select(func.count(Link.id)).where(Link.user_id == user_id)
    )
    return result.scalar() or 0


async def create_deeplink(
    session: AsyncSession,
    user_id: UUID,
    link_data: DeeplinkCreate,
) -> Link:
    """Create a deeplink: the link, its config and its short-link entry."""
    position = await _next_position(session, user_id)

    async def build(short_code: str) -> Link:
        link = Link(
            user_id=user_id,
            title=link_data.title,
            url=link_data.original_url,
            link_type="deeplink",
            short_code=short_code,
            position=position,
        )
        session.add(link)
        await session.flush()

        session.add(
            Deeplink(
                link_id=link.id,
                original_url=link_data.original_url,
                ios_url=link_data.ios_url,
                android_url=link_data.android_url,
                desktop_url=link_data.desktop_url,
                fallback_url=link_data.fallback_url,
                user_agent_rules=rules_to_json(
                    UserAgentRule(rule.pattern, rule.url)
                    for rule in link_data.user_agent_rules
                ),
            )
        )
        session.add(
            ShortLink(
                user_id=user_id,
                link_id=link.id,
                short_code=short_code,
                original_url=link_data.original_url,
                link_type="deeplink",
            )
        )
        await session.flush()
        return link

    link = await _create_with_short_code(session, build)
    await session.refresh(link, attribute_names=["deeplink", "created_at", "updated_at"])
    return link


async def create_qr_code(
    session: AsyncSession,
    user_id: UUID,
    link_data: QRCodeCreate,
) -> Link:
    """Create a QR-code link; the QR image encodes its short URL."""
    position = await _next_position(session, user_id)

    async def build(short_code: str) -> Link:
        link = Link(
            user_id=user_id,
            title=link_data.title,
            url=link_data.url,
            link_type="qr",
            short_code=short_code,
            position=position,
        )
        session.add(link)
        await session.flush()
        return link

    link = await _create_with_short_code(session, build)
    await session.refresh(link)
    return link


async def get_link_by_id(
    session: AsyncSession,
    link_id: UUID,
    user_id: UUID | None = None,
) -> Link | None:
    """Get a link by its ID, optionally filtering by user."""
    query = select(Link).where(Link.id == link_id)
    if user_id:
        query = query.where(Link.user_id == user_id)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_user_links(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    page_size: int = 20,
    include_inactive: bool = False,
) -> tuple[list[Link], int]:
    """Get paginated links for a user in display order.

    Returns tuple of (links, total_count).
    """
    query = select(Link).where(Link.user_id == user_id)
    count_query = select(func.count(Link.id)).where(Link.user_id == user_id)

    if not include_inactive:
        query = query.where(Link.is_active == True)  # noqa: E712
        count_query = count_query.where(Link.is_active == True)  # noqa: E712

    total_result = await session.execute(count_query)
    total = total_result.scalar() or 0

    offset = (page - 1) * page_size
    query = query.order_by(Link.position, Link.created_at).offset(offset).limit(page_size)

    result = await session.execute(query)
    links = list(result.scalars().all())

    return links, total


async def _short_link_for(session: AsyncSession, link: Link) -> ShortLink | None:
    result = await session.execute(select(ShortLink).where(ShortLink.link_id == link.id))
    return result.scalar_one_or_none()


def _apply_deeplink_update(deeplink: Deeplink, data: DeeplinkUpdate) -> None:
    update_data = data.model_dump(exclude_unset=True, exclude={"user_agent_rules"})
    for field, value in update_data.items():
        if field == "original_url" and value is None:
            continue
        setattr(deeplink, field, value)
    if "user_agent_rules" in data.model_fields_set:
        deeplink.user_agent_rules = rules_to_json(
            UserAgentRule(rule.pattern, rule.url) for rule in data.user_agent_rules
        )


async def update_link(
    session: AsyncSession,
    link: Link,
    link_data: LinkUpdate,
) -> Link:
    """Update an existing link and keep its short-link entry in sync."""
    update_data = link_data.model_dump(exclude_unset=True, exclude={"deeplink"})
    for field, value in update_data.items():
        # Every updatable column is NOT NULL; an explicit null means "unchanged"
        if value is None:
            continue
        setattr(link, field, value)

    if link_data.deeplink is not None:
        if link.deeplink is None:
            raise ValueError("Link is not a deeplink")
        _apply_deeplink_update(link.deeplink, link_data.deeplink)
        if link_data.deeplink.original_url:
            link.url = link_data.deeplink.original_url
    elif link.deeplink is not None and "url" in update_data and link_data.url:
        link.deeplink.original_url = link_data.url

    short_link = await _short_link_for(session, link)
    if short_link is not None:
        short_link.original_url = link.url
        short_link.is_active = link.is_active

    await session.flush()
    await session.refresh(link)
    return link


async def delete_link(
    session: AsyncSession,
    link: Link,
    soft: bool = True,
) -> None:
    """Delete a link (soft delete by default) along with its short-link entry."""
    short_link = await _short_link_for(session, link)

    if soft:
        link.is_active = False
        if short_link is not None:
            short_link.is_active = False
        await session.flush()
        return

    if short_link is not None:
        await session.delete(short_link)
    await session.delete(link)
    await session.flush()


async def get_short_link_by_id(
    session: AsyncSession,
    short_link_id: UUID,
    user_id: UUID,
) -> ShortLink | None:
    """Get a standalone short link owned by ``user_id``.

    Entries that belong to a link (deeplinks) are managed through that link.
    """
    result = await session.execute(
        select(ShortLink).where(
            ShortLink.id == short_link_id,
            ShortLink.user_id == user_id,
            ShortLink.link_id.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_user_short_links(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    page_size: int = 20,
    include_inactive: bool = False,
) -> tuple[list[ShortLink], int]:
    """Get paginated standalone short links for a user, newest first.

    Returns tuple of (short_links, total_count).
    """
    conditions = [ShortLink.user_id == user_id, ShortLink.link_id.is_(None)]
    if not include_inactive:
        conditions.append(ShortLink.is_active == True)  # noqa: E712

    total = await session.scalar(select(func.count(ShortLink.id)).where(*conditions)) or 0

    result = await session.execute(
        select(ShortLink)
        .where(*conditions)
        .order_by(ShortLink.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def update_short_link(
    session: AsyncSession,
    short_link: ShortLink,
    link_data: ShortLinkUpdate,
) -> ShortLink:
    """Change the destination or active flag of a standalone short link."""
    if link_data.url:
        short_link.original_url = link_data.url
    if link_data.is_active is not None:
        short_link.is_active = link_data.is_active

    await session.flush()
    await session.refresh(short_link)
    return short_link


async def delete_short_link(
    session: AsyncSession,
    short_link: ShortLink,
    soft: bool = True,
) -> None:
    """Delete a standalone short link (soft delete by default)."""
    if soft:
        short_link.is_active = False
    else:
        await session.delete(short_link)
    await session.flush()


async def purge_inactive(
    session: AsyncSession,
    retention_days: int,
    now: datetime | None = None,
) -> tuple[int, int, datetime]:
    """Hard-delete soft-deleted links older than the retention window.

    Returns tuple of (deleted_links, deleted_short_links, cutoff).
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = now - timedelta(days=retention_days)

    short_links = await session.execute(
        delete(ShortLink)
        .where(ShortLink.is_active == False, ShortLink.updated_at < cutoff)  # noqa: E712
        .execution_options(synchronize_session=False)
    )
    # Deeplink configs go with their links (ON DELETE CASCADE)
    stale_links = await session.execute(
        select(Link.id).where(Link.is_active == False, Link.updated_at < cutoff)  # noqa: E712
    )
    link_ids = list(stale_links.scalars().all())
    if link_ids:
        await session.execute(
            delete(Deeplink)
            .where(Deeplink.link_id.in_(link_ids))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Link)
            .where(Link.id.in_(link_ids))
            .execution_options(synchronize_session=False)
        )

    logger.info(
        "Inactive links purged",
        deleted_links=len(link_ids),
        deleted_short_links=short_links.rowcount,
        cutoff=cutoff.isoformat(),
    )
    return len(link_ids), short_links.rowcount, cutoff
