"""
upstream_retry.py - shared exponential backoff for calls to external providers.

Both the DataForSEO client and the Claude writer raise AttemptFailed from a
single attempt; retry_with_backoff is the only place that decides whether to
try again.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger("upstream-retry")

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[Any]]


class AttemptFailed(Exception):
    """One attempt against an upstream failed (network error or logical rejection)."""

    def __init__(
        self,
        message: str,
        retriable: bool = True,
        status_code: Optional[int] = None,
        status_message: Optional[str] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.retriable = retriable
        self.status_code = status_code
        self.status_message = status_message
        self.payload = payload


class RetryError(Exception):
    """All attempts used up, or a non-retriable failure stopped the loop early."""

    def __init__(self, last_failure: AttemptFailed, attempts: int, last_payload: Any = None):
        super().__init__(f"gave up after {attempts} attempt(s): {last_failure}")
        self.last_failure = last_failure
        self.attempts = attempts
        # most recent body any attempt saw; may predate last_failure
        self.last_payload = last_payload


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay after the given 1-indexed failed attempt: base * 2^(attempt-1)."""
    return base_delay * (2 ** (attempt - 1))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    retries: int,
    base_delay: float,
    label: str = "upstream",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run operation up to 1 + retries times.

    Only AttemptFailed is treated as a failed attempt; anything else propagates
    untouched. Waits are awaited so other requests keep running meanwhile.
    """
    total = 1 + max(retries, 0)
    last_failure: Optional[AttemptFailed] = None
    last_payload: Any = None

    for attempt in range(1, total + 1):
        try:
            return await operation()
        except AttemptFailed as e:
            last_failure = e
            if e.payload is not None:
                last_payload = e.payload
            logger.warning(
                f"{label} attempt {attempt}/{total} failed: "
                f"{e.payload if e.payload is not None else e}"
            )
            if not e.retriable:
                logger.error(f"{label} failure is not retriable - giving up")
                raise RetryError(e, attempt, last_payload) from e
            if attempt < total:
                await sleep(backoff_delay(base_delay, attempt))

    logger.error(f"{label} failed after {total} attempts: {last_failure}")
    raise RetryError(last_failure, total, last_payload) from last_failure
