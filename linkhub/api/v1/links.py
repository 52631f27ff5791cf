"""Link CRUD endpoints."""

import math
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from linkhub.core.database import get_async_session
from linkhub.core.deps import CurrentUser
from linkhub.core.observability import record_link_operation
from linkhub.core.rate_limit import RATE_LIMIT_API, limiter, rate_limited
from linkhub.models.link import Link
from linkhub.models.short_link import ShortLink
from linkhub.schemas.link import (
    DeeplinkCreate,
    DeeplinkResponse,
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
from linkhub.services import link as link_service
from linkhub.services.link import ShortCodeExhaustedError
from linkhub.services.stores import to_config

logger = structlog.get_logger()

router = APIRouter(prefix="/links", tags=["links"])


def _to_response(link: Link) -> LinkResponse:
    deeplink = None
    if link.deeplink is not None:
        config = to_config(link.deeplink)
        deeplink = DeeplinkResponse(
            original_url=config.original_url,
            ios_url=config.ios_url,
            android_url=config.android_url,
            desktop_url=config.desktop_url,
            fallback_url=config.fallback_url,
            user_agent_rules=[
                UserAgentRuleSchema(pattern=rule.pattern, url=rule.url)
                for rule in config.user_agent_rules
            ],
        )
    return LinkResponse(
        id=link.id,
        title=link.title,
        url=link.url,
        link_type=link.link_type,
        short_code=link.short_code,
        is_active=link.is_active,
        click_count=link.click_count,
        created_at=link.created_at,
        updated_at=link.updated_at,
        deeplink=deeplink,
    )


def _exhausted(e: ShortCodeExhaustedError) -> HTTPException:
    logger.error("Short code space exhausted", attempts=e.attempts)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(e),
    )


async def _get_owned_link(session: AsyncSession, link_id: UUID, user_id: UUID) -> Link:
    link = await link_service.get_link_by_id(
        session=session,
        link_id=link_id,
        user_id=user_id,
    )
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Link not found",
        )
    return link


@router.post(
    "/short",
    response_model=ShortLinkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[rate_limited("create_link")],
)
async def create_short_link(
    link_data: ShortLinkCreate,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ShortLinkResponse:
    """Create a plain short link.

    A random short code is allocated; the response carries the public
    short URL.
    """
    try:
        short_link = await link_service.create_short_link(
            session=session,
            user_id=user.id,
            link_data=link_data,
        )
    except ShortCodeExhaustedError as e:
        raise _exhausted(e)
    await session.commit()

    logger.info(
        "Short link created",
        short_link_id=str(short_link.id),
        short_code=short_link.short_code,
        user_id=str(user.id),
    )
    record_link_operation("create_short")
    return ShortLinkResponse.model_validate(short_link)


@router.post(
    "/deeplink",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[rate_limited("create_link")],
)
async def create_deeplink(
    link_data: DeeplinkCreate,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> LinkResponse:
    """Create a deeplink with per-platform destinations and custom rules."""
    try:
        link = await link_service.create_deeplink(
            session=session,
            user_id=user.id,
            link_data=link_data,
        )
    except ShortCodeExhaustedError as e:
        raise _exhausted(e)
    await session.commit()

    logger.info(
        "Deeplink created",
        link_id=str(link.id),
        short_code=link.short_code,
        user_id=str(user.id),
        rules=len(link_data.user_agent_rules),
    )
    record_link_operation("create_deeplink")
    return _to_response(link)


@router.post(
    "/qr-code",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[rate_limited("qr_code")],
)
async def create_qr_code(
    link_data: QRCodeCreate,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> LinkResponse:
    """Create a QR-code link. The QR image encodes the returned short URL."""
    try:
        link = await link_service.create_qr_code(
            session=session,
            user_id=user.id,
            link_data=link_data,
        )
    except ShortCodeExhaustedError as e:
        raise _exhausted(e)
    await session.commit()

    logger.info(
        "QR code link created",
        link_id=str(link.id),
        short_code=link.short_code,
        user_id=str(user.id),
    )
    record_link_operation("create_qr")
    return _to_response(link)


async def _get_owned_short_link(session: AsyncSession, short_link_id: UUID, user_id: UUID) -> ShortLink:
    short_link = await link_service.get_short_link_by_id(
        session=session,
        short_link_id=short_link_id,
        user_id=user_id,
    )
    if not short_link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found",
        )
    return short_link


@router.get("/short", response_model=ShortLinkListResponse)
@limiter.limit(RATE_LIMIT_API)
async def list_short_links(
    request: Request,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    include_inactive: bool = False,
) -> ShortLinkListResponse:
    """List the current user's standalone short links (paginated)."""
    short_links, total = await link_service.get_user_short_links(
        session=session,
        user_id=user.id,
        page=page,
        page_size=page_size,
        include_inactive=include_inactive,
    )

    return ShortLinkListResponse(
        items=[ShortLinkResponse.model_validate(short_link) for short_link in short_links],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


@router.patch("/short/{short_link_id}", response_model=ShortLinkResponse)
@limiter.limit(RATE_LIMIT_API)
async def update_short_link(
    request: Request,
    short_link_id: UUID,
    link_data: ShortLinkUpdate,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ShortLinkResponse:
    """Change a short link's destination or deactivate it."""
    short_link = await _get_owned_short_link(session, short_link_id, user.id)

    updated = await link_service.update_short_link(
        session=session,
        short_link=short_link,
        link_data=link_data,
    )
    await session.commit()

    logger.info(
        "Short link updated",
        short_link_id=str(short_link_id),
        user_id=str(user.id),
    )
    record_link_operation("update_short")
    return ShortLinkResponse.model_validate(updated)


@router.delete("/short/{short_link_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_API)
async def delete_short_link(
    request: Request,
    short_link_id: UUID,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    hard: bool = False,
) -> None:
    """Delete a short link (soft delete by default, `hard=true` deletes now)."""
    short_link = await _get_owned_short_link(session, short_link_id, user.id)

    await link_service.delete_short_link(
        session=session,
        short_link=short_link,
        soft=not hard,
    )
    await session.commit()

    logger.info(
        "Short link deleted",
        short_link_id=str(short_link_id),
        user_id=str(user.id),
        hard_delete=hard,
    )
    record_link_operation("delete_short")


@router.get("", response_model=LinkListResponse)
@limiter.limit(RATE_LIMIT_API)
async def list_links(
    request: Request,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    include_inactive: bool = False,
) -> LinkListResponse:
    """List the current user's links in display order (paginated)."""
    links, total = await link_service.get_user_links(
        session=session,
        user_id=user.id,
        page=page,
        page_size=page_size,
        include_inactive=include_inactive,
    )

    return LinkListResponse(
        items=[_to_response(link) for link in links],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{link_id}", response_model=LinkResponse)
@limiter.limit(RATE_LIMIT_API)
async def get_link(
    request: Request,
    link_id: UUID,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> LinkResponse:
    """Get a specific link by ID."""
    link = await _get_owned_link(session, link_id, user.id)
    return _to_response(link)


@router.patch("/{link_id}", response_model=LinkResponse)
@limiter.limit(RATE_LIMIT_API)
async def update_link(
    request: Request,
    link_id: UUID,
    link_data: LinkUpdate,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> LinkResponse:
    """Update a link's title, destination, status or deeplink targets."""
    link = await _get_owned_link(session, link_id, user.id)

    try:
        updated_link = await link_service.update_link(
            session=session,
            link=link,
            link_data=link_data,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    await session.commit()

    logger.info(
        "Link updated",
        link_id=str(link_id),
        user_id=str(user.id),
    )
    record_link_operation("update")
    return _to_response(updated_link)


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMIT_API)
async def delete_link(
    request: Request,
    link_id: UUID,
    user: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    hard: bool = False,
) -> None:
    """Delete a link (soft delete by default).

    Soft-deleted links stop redirecting immediately and are purged by the
    cleanup job after the retention window. Use `hard=true` to delete now.
    """
    link = await _get_owned_link(session, link_id, user.id)

    await link_service.delete_link(
        session=session,
        link=link,
        soft=not hard,
    )
    await session.commit()

    logger.info(
        "Link deleted",
        link_id=str(link_id),
        user_id=str(user.id),
        hard_delete=hard,
    )
    record_link_operation("delete")
