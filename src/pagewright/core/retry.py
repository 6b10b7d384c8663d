"""Retry with exponential backoff for provider calls."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from pagewright.core.abort import abortable_sleep, raise_if_aborted, run_abortable
from pagewright.core.errors import (
    ContentPolicyError,
    InvalidRequestError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderOverloadedError,
    ProviderQuotaError,
    ProviderRateLimitError,
    RequestAbortedError,
    UnknownProviderError,
)

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

_RETRYABLE_TYPES: tuple[type[Exception], ...] = (
    ProviderRateLimitError,
    ProviderOverloadedError,
    ProviderNetworkError,
)

_NEVER_RETRY_TYPES: tuple[type[Exception], ...] = (
    RequestAbortedError,
    ProviderAuthError,
    ProviderQuotaError,
    ContentPolicyError,
    InvalidRequestError,
)

_TRANSIENT_RE = re.compile(
    r"rate|quota|429|temporar|timeout|network|failed fetch|etimedout|econnreset",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Configuration for retry with backoff.

    ``max_attempts`` counts every call including the first one.
    """

    max_attempts: int = 3
    base_delay: float = 0.8
    max_delay: float = 8.0
    jitter: bool = True


def _status_of(error: Exception) -> int | None:
    """Extract an HTTP-like status from an arbitrary error."""
    response = getattr(error, "response", None)
    for source in (response, error):
        for attr in ("status", "status_code"):
            value = getattr(source, attr, None)
            if isinstance(value, int):
                return value
    return None


def is_retryable(error: Exception) -> bool:
    """Check if an error should trigger a retry."""
    if isinstance(error, _NEVER_RETRY_TYPES):
        return False
    if isinstance(error, _RETRYABLE_TYPES):
        return True
    status = _status_of(error)
    if isinstance(error, UnknownProviderError):
        return status is not None and status >= 500
    if status is not None and (status == 429 or status >= 500):
        return True
    return bool(_TRANSIENT_RE.search(str(error)))


def _compute_delay(
    attempt: int,
    config: RetryConfig,
    error: Exception,
) -> float:
    """Compute backoff delay before retry number *attempt* (1-based)."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)):
        return min(float(retry_after), config.max_delay)

    # Exponential backoff: base_delay * 2^(attempt-1)
    delay: float = min(config.max_delay, config.base_delay * (2 ** (attempt - 1)))

    # Up to 25% jitter on top
    if config.jitter:
        delay += random.uniform(0, delay * 0.25)

    return min(delay, config.max_delay)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
    signal: asyncio.Event | None = None,
) -> T:
    """Execute fn with retry and exponential backoff.

    Args:
        fn: Zero-arg callable returning an awaitable. Must be safe to repeat.
        config: Retry configuration. Uses defaults if None.
        on_retry: Optional callback(attempt, delay, error) before each retry.
        signal: Optional abort signal; once set, no further attempt is made.

    Returns:
        The result of fn().

    Raises:
        The original error after attempts are exhausted, immediately for
        non-retryable errors, or RequestAbortedError when aborted.
    """
    cfg = config or RetryConfig()
    attempts = max(1, cfg.max_attempts)

    for attempt in range(1, attempts + 1):
        raise_if_aborted(signal)
        try:
            return await run_abortable(fn(), signal)
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= attempts:
                raise
            delay = _compute_delay(attempt, cfg, e)
            if on_retry is not None:
                on_retry(attempt, delay, e)
            await abortable_sleep(delay, signal)

    # Unreachable, but satisfies mypy
    msg = f"Retry loop exited unexpectedly (max_attempts={cfg.max_attempts})"
    raise RuntimeError(msg)
