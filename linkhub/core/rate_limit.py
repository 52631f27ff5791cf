"""Rate limiting.

Two layers share the same ``limits`` storage backend:

- ``limiter`` (slowapi) decorates the general API endpoints.
- ``RateLimiter`` collaborators guard the hot paths (redirects, short-code
  creation). They are built once per process, stored on ``app.state`` and
  checked before any database work, so tests can swap in fakes.
"""

from dataclasses import dataclass
from math import ceil
from typing import Any, Protocol

import structlog
from fastapi import Depends, HTTPException, Request, status
from limits import parse
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool

from linkhub.core.config import get_settings
from linkhub.core.observability import record_rate_limited

settings = get_settings()
logger = structlog.get_logger()


def get_real_client_ip(request: Request) -> str:
    """Get the real client IP address, handling proxies.

    Checks X-Forwarded-For and X-Real-IP headers before falling back
    to the direct client address.
    """
    # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_real_client_ip,
    default_limits=["1000/hour"],
    storage_uri=settings.rate_limit_storage,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)

# Limits for the slowapi-decorated endpoints
RATE_LIMIT_API = "100/minute"
RATE_LIMIT_MAINTENANCE = "10/minute"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_time: float  # epoch seconds when the window resets

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(ceil(self.reset_time)),
        }


class RateLimiter(Protocol):
    """Anything that can decide whether a request key may proceed."""

    def check(self, key: str) -> RateLimitDecision: ...


class WindowRateLimiter:
    """Fixed-window limiter on top of a ``limits`` storage backend.

    Fails open: if the storage (Redis) is unreachable the request is allowed
    and a warning is logged.
    """

    def __init__(self, name: str, limit: str, storage: Storage) -> None:
        self.name = name
        self._item = parse(limit)
        self._strategy = FixedWindowRateLimiter(storage)

    @property
    def limit(self) -> int:
        return self._item.amount

    def check(self, key: str) -> RateLimitDecision:
        try:
            allowed = self._strategy.hit(self._item, self.name, key)
            reset_time, remaining = self._strategy.get_window_stats(self._item, self.name, key)
        except Exception as e:
            logger.warning("Rate limiter unavailable", limiter=self.name, error=str(e))
            return RateLimitDecision(True, self.limit, self.limit, 0.0)
        return RateLimitDecision(allowed, self.limit, remaining, reset_time)


class UnlimitedRateLimiter:
    """Rate limiter that allows everything (``RATE_LIMIT_ENABLED=false``)."""

    def __init__(self, limit: int = 0) -> None:
        self._limit = limit

    def check(self, key: str) -> RateLimitDecision:
        return RateLimitDecision(True, self._limit, self._limit, 0.0)


@dataclass
class RateLimiters:
    """Process-wide limiters, one per guarded endpoint family."""

    redirect: RateLimiter
    create_link: RateLimiter
    qr_code: RateLimiter


def build_rate_limiters(storage_uri: str | None = None) -> RateLimiters:
    """Create the limiters from settings."""
    if not settings.rate_limit_enabled:
        return RateLimiters(
            redirect=UnlimitedRateLimiter(),
            create_link=UnlimitedRateLimiter(),
            qr_code=UnlimitedRateLimiter(),
        )

    storage = storage_from_string(storage_uri or settings.rate_limit_storage)
    return RateLimiters(
        redirect=WindowRateLimiter("redirect", settings.rate_limit_redirect, storage),
        create_link=WindowRateLimiter("create_link", settings.rate_limit_create_link, storage),
        qr_code=WindowRateLimiter("qr_code", settings.rate_limit_qr_code, storage),
    )


def rate_limited(name: str) -> Any:
    """Route dependency enforcing ``app.state.rate_limiters.<name>``.

    Use in the route decorator's ``dependencies`` so it runs before any
    other dependency (and therefore before a database session is opened):

        @router.get("/l/{short_code}", dependencies=[rate_limited("redirect")])
    """

    async def check_rate_limit(request: Request) -> None:
        rate_limiter: RateLimiter = getattr(request.app.state.rate_limiters, name)
        key = f"ip:{get_real_client_ip(request)}"
        decision = await run_in_threadpool(rate_limiter.check, key)
        if not decision.allowed:
            record_rate_limited(name)
            logger.info("Rate limit exceeded", limiter=name, key=key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded. Please try again later.",
                headers=decision.headers(),
            )

    return Depends(check_rate_limit)
