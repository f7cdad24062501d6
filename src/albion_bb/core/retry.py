"""
Albion Battleboards Retry Logic

Bounded retries with exponential backoff for gameinfo requests.

- Retries on non-2xx responses and transport errors (TransientFetchError)
- Backoff is 2^attempt seconds: 2s after the first failure, 4s after the second
- Parse failures are never retried; they propagate on the first attempt
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import FetchError, TransientFetchError
from .logging import get_logger

logger = get_logger(__name__)

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_MULTIPLIER = 2.0  # wait = multiplier * 2^(attempt - 1)
DEFAULT_MAX_WAIT = 60.0  # seconds


def fetch_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> AsyncRetrying:
    """
    Build the retry controller used around a single gameinfo request.

    Args:
        max_attempts: Total attempts including the first
        backoff_multiplier: Seconds for the first wait; doubles each retry.
            Tests pass 0 to disable sleeping.
        max_wait: Upper bound on a single wait

    Returns:
        tenacity AsyncRetrying; iterate it with ``async for attempt in ...``
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(TransientFetchError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=backoff_multiplier, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=False,
    )


def transient_from_response(response: httpx.Response) -> TransientFetchError:
    """Wrap a non-2xx response as a retryable error."""
    body = response.text[:200] if response.text else ""
    message = f"HTTP {response.status_code}"
    if body:
        message += f": {body}"
    return TransientFetchError(message, status_code=response.status_code)


def transient_from_transport(error: httpx.RequestError) -> TransientFetchError:
    """Wrap an httpx transport error (connect, read, timeout) as retryable."""
    kind = "Timeout" if isinstance(error, httpx.TimeoutException) else "Network error"
    return TransientFetchError(f"{kind}: {error}", original_error=error)


def fetch_error_from_retry(error: RetryError, path: str) -> FetchError:
    """
    Convert an exhausted tenacity RetryError into a FetchError.

    The attempt count and the last underlying failure are preserved.
    """
    last = error.last_attempt
    cause: Any = last.exception()
    status_code = getattr(cause, "status_code", None)
    root = getattr(cause, "original_error", None) or cause
    return FetchError(
        f"GET {path} failed after {last.attempt_number} attempts: {cause}",
        path=path,
        attempts=last.attempt_number,
        status_code=status_code,
        cause=root,
    )
