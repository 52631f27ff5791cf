"""Redirect endpoint for short links."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from linkhub.core.config import get_settings
from linkhub.core.database import get_async_session
from linkhub.core.observability import record_redirect
from linkhub.core.rate_limit import get_real_client_ip, rate_limited
from linkhub.core.redis import publish_event
from linkhub.schemas.events import ClickEvent
from linkhub.services.dispatcher import RedirectDecision, RedirectDispatcher, RedirectOutcome
from linkhub.services.stores import SqlDeeplinkConfigStore, SqlLinkStore, SqlShortLinkStore
from linkhub.services.user_agent import parse_user_agent

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(tags=["redirect"])


def get_dispatcher(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> RedirectDispatcher:
    """Dispatcher over the SQL stores of the request's session."""
    return RedirectDispatcher(
        short_links=SqlShortLinkStore(session),
        links=SqlLinkStore(session),
        deeplinks=SqlDeeplinkConfigStore(session),
    )


async def publish_click_event(decision: RedirectDecision, request: Request) -> None:
    """Publish a click event to Redis Pub/Sub (fire-and-forget)."""
    entry = decision.entry
    if entry is None:
        return

    user_agent = request.headers.get("User-Agent")
    device = parse_user_agent(user_agent or "")
    try:
        event = ClickEvent(
            link_id=entry.id,
            short_code=entry.short_code,
            target_kind=entry.target_kind.value,
            destination=decision.location,
            device_class=device.device_class.value,
            os_family=device.os_family,
            referrer=request.headers.get("Referer"),
            user_agent=user_agent,
            ip_address=get_real_client_ip(request),
        )
        await publish_event(settings.click_events_channel, event.model_dump(mode="json"))
    except Exception as e:
        # Log but don't fail the redirect if event publishing fails
        logger.warning(
            "Failed to publish click event",
            short_code=entry.short_code,
            error=str(e),
        )


async def finish_transaction(session: AsyncSession, commit: bool, short_code: str) -> None:
    """Commit the click count, or discard whatever a failed dispatch left behind.

    Errors are logged only: the visitor already has a destination, a lost
    click is acceptable.
    """
    if commit:
        try:
            await session.commit()
            return
        except Exception:
            logger.exception("Failed to commit click count", short_code=short_code)
    try:
        await session.rollback()
    except Exception:
        logger.exception("Failed to roll back redirect transaction", short_code=short_code)


@router.get("/l/{short_code}", dependencies=[rate_limited("redirect")])
async def redirect_short_link(
    request: Request,
    short_code: str,
    dispatcher: Annotated[RedirectDispatcher, Depends(get_dispatcher)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> RedirectResponse:
    """Redirect a short code to its destination.

    Flow:
    1. Rate limit check (429 before touching the database)
    2. Dispatcher finds the code, counts the click, resolves the destination
    3. Unknown codes and internal errors redirect to the site root
    """
    decision = await dispatcher.dispatch(short_code, request.headers.get("User-Agent", ""))

    resolved = decision.outcome is RedirectOutcome.RESOLVED
    await finish_transaction(session, commit=resolved, short_code=short_code)
    background = BackgroundTask(publish_click_event, decision, request) if resolved else None

    target_kind = decision.entry.target_kind.value if decision.entry else "none"
    record_redirect(decision.outcome.value, target_kind)

    return RedirectResponse(
        url=decision.location,
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        background=background,
    )
