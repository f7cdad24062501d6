"""
Albion Battleboards Async HTTP Client

Async client for the Albion Online gameinfo API using httpx.

Every request goes through bounded retries (see core.retry). Responses are
validated into typed models at this boundary; a 2xx body that does not
parse raises SchemaError and is never retried.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError
from tenacity import RetryError

from ..models.gameinfo import BattleDetail, BattleSummary, KillEvent
from .config import get_settings
from .constants import USER_AGENT
from .errors import SchemaError
from .logging import get_logger
from .retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    fetch_error_from_retry,
    fetch_retrying,
    transient_from_response,
    transient_from_transport,
)

logger = get_logger(__name__)

_BATTLE_LIST = TypeAdapter(list[BattleSummary])
_KILL_LIST = TypeAdapter(list[KillEvent])


def new_cache_token() -> str:
    """Opaque token that defeats the API's response cache."""
    return str(uuid.uuid4())


class GameInfoClient:
    """
    Async HTTP client for gameinfo API requests.

    Must be used as an async context manager to ensure proper connection
    pooling.

    Usage:
        async with GameInfoClient() as client:
            battles = await client.fetch_recent_battles(0, 51)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    ) -> None:
        """
        Initialize gameinfo client.

        Args:
            base_url: API base URL (default: region URL from settings)
            timeout: Request timeout in seconds (default: from settings)
            max_attempts: Attempts per request (default: from settings)
            backoff_multiplier: First retry wait in seconds; doubles per retry
        """
        settings = get_settings()
        self.base_url: str = (base_url or settings.base_url).rstrip("/")
        self.timeout: float = timeout if timeout is not None else settings.request_timeout
        self.max_attempts: int = max_attempts or settings.max_attempts
        self.backoff_multiplier = backoff_multiplier
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> GameInfoClient:
        """Enter async context and create httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Exit async context and close httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Raw Requests
    # =========================================================================

    async def fetch_page(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        cache_token: Optional[str] = None,
        bust_cache: bool = False,
    ) -> Any:
        """
        GET one page of JSON with bounded retries.

        Args:
            path: Endpoint path relative to the base URL (e.g. "/battles")
            params: Query parameters
            cache_token: Explicit guid value; implies cache busting
            bust_cache: Add a fresh guid parameter

        Returns:
            Decoded JSON payload

        Raises:
            FetchError: All attempts failed
            SchemaError: 2xx response whose body is not JSON
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        if not path.startswith("/"):
            path = "/" + path

        query: dict[str, Any] = dict(params or {})
        if cache_token is not None or bust_cache:
            query["guid"] = cache_token or new_cache_token()

        try:
            async for attempt in fetch_retrying(self.max_attempts, self.backoff_multiplier):
                with attempt:
                    response = await self._get_once(path, query)
        except RetryError as e:
            error = fetch_error_from_retry(e, path)
            logger.warning("%s", error.message)
            raise error from error.cause

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise SchemaError(f"Invalid JSON from {path}: {e}", path=path) from e

    async def _get_once(self, path: str, query: dict[str, Any]) -> httpx.Response:
        """Execute a single GET; non-2xx and transport errors are transient."""
        assert self._client is not None
        logger.debug("GET %s %s", path, query)
        try:
            response = await self._client.get(path, params=query)
        except httpx.RequestError as e:
            raise transient_from_transport(e) from e

        if not response.is_success:
            raise transient_from_response(response)
        return response

    def _validate(self, adapter_or_model: Any, payload: Any, path: str) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(payload)
            return adapter_or_model.model_validate(payload)
        except ValidationError as e:
            raise SchemaError(
                f"Unexpected payload from {path}: {e.error_count()} validation errors", path=path
            ) from e

    # =========================================================================
    # Typed Endpoints
    # =========================================================================

    async def fetch_recent_battles(self, offset: int, limit: int) -> list[BattleSummary]:
        """Newest-first page of the battle list."""
        path = "/battles"
        payload = await self.fetch_page(
            path,
            {"offset": offset, "limit": limit, "sort": "recent"},
            bust_cache=True,
        )
        return self._validate(_BATTLE_LIST, payload, path)

    async def fetch_battle(self, battle_id: int) -> BattleDetail:
        """Full detail for one battle."""
        path = f"/battles/{battle_id}"
        payload = await self.fetch_page(path)
        return self._validate(BattleDetail, payload, path)

    async def fetch_battle_kills(self, battle_id: int, offset: int, limit: int) -> list[KillEvent]:
        """One page of a battle's kill events."""
        path = f"/events/battle/{battle_id}"
        payload = await self.fetch_page(path, {"offset": offset, "limit": limit})
        return self._validate(_KILL_LIST, payload, path)

    async def fetch_kill_events(
        self, offset: int, limit: int, cache_token: Optional[str] = None
    ) -> list[KillEvent]:
        """
        One page of the flat kill-event feed, newest first.

        Pass the same cache_token for every page of one polling cycle.
        """
        path = "/events"
        payload = await self.fetch_page(
            path,
            {"offset": offset, "limit": limit},
            cache_token=cache_token,
            bust_cache=True,
        )
        return self._validate(_KILL_LIST, payload, path)
