"""
Discord Webhook Client.

Posts battle summaries to a Discord webhook. Server errors and transport
failures are retried with exponential backoff; rate limits and rejected
webhooks are reported back without retrying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.constants import USER_AGENT
from ...core.logging import get_logger

logger = get_logger(__name__)


class _RetryableSend(Exception):
    """A send attempt that is worth repeating (5xx, timeout, network)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SendResult:
    """Result of a webhook send."""

    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    retry_after: Optional[float] = None
    attempts: int = 1

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass
class DiscordClient:
    """
    HTTP client for a Discord webhook.

    - 2xx (normally 204 No Content) is success
    - 429 returns immediately with retry_after for the caller
    - 401/403/404 mean the webhook is gone; never retried
    - 5xx and timeouts are retried, waiting base_delay * 2^attempt
    """

    webhook_url: str
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    timeout: float = 30.0

    total_sent: int = 0
    total_failed: int = 0
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    _client: Optional[httpx.AsyncClient] = field(default=None, repr=False)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post_once(self, payload: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._get_client().post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            raise _RetryableSend(f"Timeout: {e}") from e
        except httpx.RequestError as e:
            raise _RetryableSend(f"Request error: {e}") from e

        if response.status_code >= 500:
            raise _RetryableSend(f"Server error {response.status_code}", response.status_code)
        return response

    async def send(self, payload: dict[str, Any]) -> SendResult:
        """
        Post a payload to the webhook.

        Args:
            payload: Discord webhook payload (content and/or embeds)

        Returns:
            SendResult describing the outcome
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_RetryableSend),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=30),
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._post_once(payload)
        except RetryError as e:
            last = e.last_attempt
            cause = last.exception()
            logger.warning("Discord send failed after %d attempts: %s", last.attempt_number, cause)
            return self._failed(
                SendResult(
                    success=False,
                    status_code=getattr(cause, "status_code", None),
                    error=str(cause),
                    attempts=last.attempt_number,
                )
            )

        attempts = retrying.statistics.get("attempt_number", 1)

        if response.is_success:
            self.total_sent += 1
            self.last_success = datetime.now(timezone.utc)
            return SendResult(success=True, status_code=response.status_code, attempts=attempts)

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            logger.warning("Discord rate limited, retry after %.1fs", retry_after)
            return self._failed(
                SendResult(
                    success=False,
                    status_code=429,
                    error="Rate limited",
                    retry_after=retry_after,
                    attempts=attempts,
                )
            )

        if response.status_code in (401, 403, 404):
            error = f"Invalid webhook URL (HTTP {response.status_code})"
        else:
            error = f"HTTP {response.status_code}: {response.text[:200]}"
        logger.warning("Discord send rejected: %s", error)
        return self._failed(
            SendResult(
                success=False,
                status_code=response.status_code,
                error=error,
                attempts=attempts,
            )
        )

    def _failed(self, result: SendResult) -> SendResult:
        self.total_failed += 1
        self.last_failure = datetime.now(timezone.utc)
        return result

    @property
    def success_rate(self) -> float:
        """Share of successful sends (1.0 before any send)."""
        total = self.total_sent + self.total_failed
        if total == 0:
            return 1.0
        return self.total_sent / total

    def get_metrics(self) -> dict[str, Any]:
        """Client metrics for status reporting."""
        return {
            "total_sent": self.total_sent,
            "total_failed": self.total_failed,
            "success_rate": round(self.success_rate, 3),
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
        }


def _parse_retry_after(response: httpx.Response) -> float:
    """Retry-After header, falling back to the JSON body's retry_after."""
    header = response.headers.get("Retry-After")
    if header:
        try:
            return float(header)
        except ValueError:
            pass
    try:
        body = response.json()
    except ValueError:
        return 5.0
    if isinstance(body, dict) and "retry_after" in body:
        try:
            return float(body["retry_after"])
        except (TypeError, ValueError):
            pass
    return 5.0
