"""Retry with exponential backoff for signature store requests.

Used by ``LookasideSignatureStore`` around each signature download. Only
transport failures (connection refused, timeouts) are retried by default;
HTTP status responses are returned to the caller, which treats a 404 as the
end of the signature list and any other error status as fatal. Policy
evaluation itself never retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (httpx.TransportError,)


async def with_retry(
    fn: Callable[..., Coroutine[Any, Any, T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    retry_on: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying on ``retry_on`` exceptions.

    The delay doubles after each failed attempt, capped at ``max_delay``.
    The last exception is re-raised once ``max_attempts`` is exhausted;
    other exceptions propagate immediately.
    """
    if max_attempts < 1:
        msg = f"max_attempts must be at least 1, got {max_attempts}"
        raise ValueError(msg)

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except retry_on as exc:
            if attempt == max_attempts:
                logger.error("Giving up after %d attempts: %s", attempt, exc)
                raise
            delay = min(base_delay * 2 ** (attempt - 1), max_delay)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
