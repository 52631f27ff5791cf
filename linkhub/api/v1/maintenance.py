"""Maintenance endpoints triggered by the scheduler."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from linkhub.core.config import get_settings
from linkhub.core.database import get_async_session
from linkhub.core.deps import CronAuthorized
from linkhub.core.observability import record_link_operation
from linkhub.core.rate_limit import RATE_LIMIT_MAINTENANCE, limiter
from linkhub.schemas.link import CleanupResponse
from linkhub.services import link as link_service

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post(
    "/cleanup-inactive",
    response_model=CleanupResponse,
    dependencies=[CronAuthorized],
)
@limiter.limit(RATE_LIMIT_MAINTENANCE)
async def cleanup_inactive(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> CleanupResponse:
    """Permanently remove links that have been soft-deleted for too long.

    Requires `Authorization: Bearer <CRON_SECRET>` when a secret is set.
    """
    deleted_links, deleted_short_links, cutoff = await link_service.purge_inactive(
        session=session,
        retention_days=settings.inactive_retention_days,
    )
    await session.commit()

    record_link_operation("purge")
    return CleanupResponse(
        deleted_links=deleted_links,
        deleted_short_links=deleted_short_links,
        cutoff=cutoff,
    )
