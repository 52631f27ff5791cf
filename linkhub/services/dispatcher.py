"""Redirect dispatcher: turn a short-code visit into a destination URL."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from linkhub.services.deeplink import resolve
from linkhub.services.stores import (
    DeeplinkConfigStore,
    LinkStore,
    ShortLinkEntry,
    TargetKind,
)

logger = structlog.get_logger()

HOME_URL = "/"


class RedirectOutcome(str, Enum):
    """How a visit ended (not persisted; used for logs and metrics)."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    ERROR_DEGRADED = "error_degraded"


@dataclass(frozen=True)
class RedirectDecision:
    """Where to send the visitor and why."""

    outcome: RedirectOutcome
    location: str
    entry: ShortLinkEntry | None = None


class RedirectDispatcher:
    """Resolve short codes across the short-link namespaces.

    Namespaces are consulted in order and the first active entry wins, so the
    dedicated short-link store shadows the general links store. Visitors never
    see an error: unknown codes and failures both redirect to ``home_url``.
    """

    def __init__(
        self,
        short_links: LinkStore,
        links: LinkStore,
        deeplinks: DeeplinkConfigStore,
        home_url: str = HOME_URL,
    ) -> None:
        self._namespaces: Sequence[LinkStore] = (short_links, links)
        self._deeplinks = deeplinks
        self._home_url = home_url

    async def dispatch(self, short_code: str, user_agent: str) -> RedirectDecision:
        """Look up ``short_code``, count the click and pick the destination."""
        try:
            for store in self._namespaces:
                entry = await store.find_active(short_code)
                if entry is None:
                    continue

                await store.increment_clicks(entry.id)
                location = await self._destination(entry, user_agent)
                logger.info(
                    "Redirect resolved",
                    short_code=short_code,
                    store=store.name,
                    target_kind=entry.target_kind.value,
                )
                return RedirectDecision(RedirectOutcome.RESOLVED, location, entry)
        except Exception:
            logger.exception("Redirect failed, sending visitor home", short_code=short_code)
            return RedirectDecision(RedirectOutcome.ERROR_DEGRADED, self._home_url)

        logger.info("Redirect failed - link not found", short_code=short_code)
        return RedirectDecision(RedirectOutcome.NOT_FOUND, self._home_url)

    async def _destination(self, entry: ShortLinkEntry, user_agent: str) -> str:
        if entry.target_kind is TargetKind.DEEPLINK and entry.link_id is not None:
            config = await self._deeplinks.get(entry.link_id)
            if config is not None:
                return resolve(config, user_agent)
            logger.warning(
                "Deeplink config missing, using original URL",
                short_code=entry.short_code,
                link_id=str(entry.link_id),
            )
        return entry.original_url
