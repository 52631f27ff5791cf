"""Short code generation and reservation."""

import secrets
import string
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

# Characters for random short code generation (base62)
SHORT_CODE_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 6
MAX_ATTEMPTS = 10


@dataclass(frozen=True)
class Reserved:
    """A code that was free in the store when checked."""

    code: str
    attempts: int


@dataclass(frozen=True)
class ShortCodeExhausted:
    """Every candidate within the attempt budget was already taken."""

    attempts: int


ReservationResult = Reserved | ShortCodeExhausted


def generate(length: int = SHORT_CODE_LENGTH) -> str:
    """Generate a random short code using base62 characters."""
    if length < 1:
        raise ValueError("Short code length must be positive")
    return "".join(secrets.choice(SHORT_CODE_CHARS) for _ in range(length))


async def reserve(
    is_taken: Callable[[str], Awaitable[bool]],
    *,
    length: int = SHORT_CODE_LENGTH,
    max_attempts: int = MAX_ATTEMPTS,
    producer: Callable[[int], str] = generate,
) -> ReservationResult:
    """Find a short code that is not in use.

    Tries at most ``max_attempts`` candidates from ``producer``. The check is
    advisory: a concurrent request may take the same code before it is
    inserted, so the insert must still be guarded by a unique constraint.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = producer(length)
        if not await is_taken(candidate):
            return Reserved(code=candidate, attempts=attempt)
        logger.debug("Short code collision", attempt=attempt)

    logger.warning("Short code space exhausted", attempts=max_attempts, length=length)
    return ShortCodeExhausted(attempts=max_attempts)
