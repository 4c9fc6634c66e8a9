from __future__ import annotations

import asyncio
from typing import Optional

from ..constants import DEFAULT_BACKOFF_MS
from ..contracts import ErrorPattern, RetryPolicy

# Checked in order; the first matching keyword wins.
_CLASSIFIERS: tuple[tuple[tuple[str, ...], ErrorPattern], ...] = (
    (("timeout",), ErrorPattern.TIMEOUT),
    (("network", "connection"), ErrorPattern.NETWORK_ERROR),
    (("rate limit",), ErrorPattern.RATE_LIMIT),
    (("server error", "500"), ErrorPattern.SERVER_ERROR),
    (("auth",), ErrorPattern.AUTHENTICATION_ERROR),
    (("validation",), ErrorPattern.VALIDATION_ERROR),
    (("unavailable", "busy"), ErrorPattern.RESOURCE_UNAVAILABLE),
)


def compute_backoff(policy: Optional[RetryPolicy], retry_count: int) -> int:
    """Compute the exponential backoff delay in milliseconds."""
    if policy is None or policy.backoff_ms is None:
        base = DEFAULT_BACKOFF_MS
    else:
        base = policy.backoff_ms
    return base * 2**retry_count


def classify_error(error: object) -> ErrorPattern:
    """Map an error to an ``ErrorPattern`` by keywords in its message."""
    if error is None:
        return ErrorPattern.TEMPORARY_FAILURE

    message = str(error).lower()
    for keywords, pattern in _CLASSIFIERS:
        if any(keyword in message for keyword in keywords):
            return pattern
    return ErrorPattern.TEMPORARY_FAILURE


def should_retry(
    policy: Optional[RetryPolicy], error: object, retry_count: int
) -> bool:
    """Decide whether a failed attempt gets another try."""
    if policy is None:
        return False
    if retry_count >= policy.max_attempts:
        return False
    if policy.retry_on is not None:
        return classify_error(error) in policy.retry_on
    return True


async def schedule_retry(delay_ms: float) -> None:
    """Sleep for the computed backoff delay before retrying."""
    await asyncio.sleep(delay_ms / 1000)
