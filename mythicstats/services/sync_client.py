"""
Sync Client: calls to the upstream pricing API.

Every call goes through the same pipeline:

    quota check -> HTTP request -> usage report -> classification -> validation

Outcome classification:
1. Success with data          -> parsed payloads returned to the caller
2. Rate-limit response (429)  -> RateLimitExceededError, never retried here
3. Other API-level error      -> UpstreamApiError, not retried
4. Transport failure          -> UpstreamNetworkError, retried with backoff

INVARIANT: a usage snapshot in the response updates the quota ledger BEFORE
the result is returned or the exception is raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from mythicstats.config import INITIAL_BACKOFF_SECONDS, MAX_NETWORK_ATTEMPTS, Settings
from mythicstats.models.upstream import CardPayload, GamePayload, SetPayload, UsageReport
from mythicstats.services.errors import (
    RateLimitExceededError,
    ResponseValidationError,
    UpstreamApiError,
    UpstreamNetworkError,
)
from mythicstats.services.quota_ledger import QuotaLedger

logger = logging.getLogger(__name__)

RATE_LIMIT_CODE = 429

PayloadT = TypeVar("PayloadT", bound=BaseModel)
Sleep = Callable[[float], Awaitable[None]]


def create_http_client(config: Settings) -> httpx.AsyncClient:
    """
    Build the HTTP client for the pricing API.

    The caller owns the client and must close it (`await client.aclose()`).
    """
    return httpx.AsyncClient(
        base_url=config.justtcg_base_url,
        headers={"x-api-key": config.justtcg_api_key, "User-Agent": "MythicStats/1.0"},
        timeout=config.http_timeout_seconds,
    )


def _error_code(body: dict[str, Any], status_code: int) -> int | None:
    """Error code from the error block, the top-level code, or the HTTP status."""
    error = body.get("error")
    candidates: list[Any] = []
    if isinstance(error, dict):
        candidates.append(error.get("code"))
    candidates.append(body.get("code"))
    if status_code >= 400:
        candidates.append(status_code)

    for candidate in candidates:
        if candidate is None:
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def _error_message(body: dict[str, Any]) -> str:
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return "API error occurred"


def validate_response(body: Any) -> Any:
    """
    Check the response envelope shape and return its data payload.

    Raises:
        ResponseValidationError: If the body is absent, has neither data nor
            error, or its data is neither a list nor an object
    """
    if body is None or not isinstance(body, dict):
        raise ResponseValidationError("Invalid response: response is empty", raw_response=body)

    data = body.get("data")
    if data is None and body.get("error") is None:
        raise ResponseValidationError(
            "Invalid response: missing data and error fields", raw_response=body
        )

    if data is not None and not isinstance(data, list | dict):
        raise ResponseValidationError(
            "Invalid response: data is not in expected format", raw_response=body
        )

    return data


class SyncClient:
    """
    Async client for the pricing API, bound to one user's quota ledger.

    Usage:
        async with create_http_client(settings) as http:
            client = SyncClient(http, ledger)
            sets = await client.list_sets("magic-the-gathering")
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        ledger: QuotaLedger,
        *,
        sleep: Sleep = asyncio.sleep,
        max_attempts: int = MAX_NETWORK_ATTEMPTS,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    ):
        self._http = http
        self._ledger = ledger
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff

    @property
    def ledger(self) -> QuotaLedger:
        return self._ledger

    # -----------------------------------------------------------------------
    # Upstream operations
    # -----------------------------------------------------------------------

    async def list_games(self) -> list[GamePayload]:
        return await self.call("list_games", "GET", "/games", model=GamePayload)

    async def list_sets(self, game_external_id: str) -> list[SetPayload]:
        return await self.call(
            "list_sets",
            "GET",
            "/sets",
            params={"game": game_external_id},
            model=SetPayload,
            context={"game_external_id": game_external_id},
        )

    async def list_cards(
        self,
        *,
        limit: int,
        offset: int,
        set_external_id: str | None = None,
        game_external_id: str | None = None,
    ) -> list[CardPayload]:
        """One page of cards scoped to a set or a whole game."""
        if (set_external_id is None) == (game_external_id is None):
            raise ValueError("Exactly one of set_external_id or game_external_id is required")

        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if set_external_id is not None:
            params["set"] = set_external_id
        else:
            params["game"] = game_external_id

        return await self.call(
            "list_cards",
            "GET",
            "/cards",
            params=params,
            model=CardPayload,
            context={
                "set_external_id": set_external_id,
                "game_external_id": game_external_id,
                "offset": offset,
            },
        )

    async def get_cards_batch(self, card_external_ids: Sequence[str]) -> list[CardPayload]:
        """Look up a batch of cards by external id (at most one plan page)."""
        if len(card_external_ids) > self._ledger.page_size:
            raise ValueError(
                f"Batch of {len(card_external_ids)} exceeds plan page size "
                f"{self._ledger.page_size}"
            )

        return await self.call(
            "get_cards_batch",
            "POST",
            "/cards",
            json=[{"cardId": card_id} for card_id in card_external_ids],
            model=CardPayload,
            context={"card_count": len(card_external_ids)},
        )

    async def get_card(self, card_external_id: str) -> list[CardPayload]:
        return await self.call(
            "get_card",
            "GET",
            "/cards",
            params={"cardId": card_external_id},
            model=CardPayload,
            context={"card_external_id": card_external_id},
        )

    # -----------------------------------------------------------------------
    # Call pipeline
    # -----------------------------------------------------------------------

    async def call(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        model: type[PayloadT],
        context: dict[str, Any] | None = None,
    ) -> list[PayloadT]:
        """
        Run one upstream operation and return its records parsed as `model`.

        Raises:
            RateLimitExceededError: Budget exhausted locally or upstream
            UpstreamApiError: Upstream rejected the call or answered malformed
            UpstreamNetworkError: Transport kept failing after all attempts
        """
        log_context = {"operation": operation, "user_id": self._ledger.user_id, **(context or {})}

        check = self._ledger.check_can_proceed(1)
        if not check.allowed:
            logger.info("RATE_LIMIT_PRECHECK_BLOCKED", extra={**log_context, "reason": check.reason})
            raise RateLimitExceededError(
                check.reason or "Rate limit exceeded", reset_time=self._ledger.reset_time()
            )

        try:
            data = await self._retry_with_backoff(
                lambda: self._send(method, path, params=params, json=json),
                log_context,
            )
            return self._parse(data, model)
        except RateLimitExceededError:
            logger.warning("UPSTREAM_RATE_LIMITED", extra=log_context)
            raise
        except UpstreamApiError as e:
            logger.error(
                "SYNC_CLIENT_ERROR",
                extra={**log_context, "error": e.message, "code": e.code},
            )
            raise

    async def _retry_with_backoff(
        self,
        send: Callable[[], Awaitable[Any]],
        log_context: dict[str, Any],
    ) -> Any:
        """
        Retry network failures with exponential backoff.

        Only UpstreamNetworkError is retried; the delay doubles every attempt.
        """
        delay = self._initial_backoff
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await send()
            except UpstreamNetworkError as e:
                if attempt == self._max_attempts:
                    logger.error(
                        "UPSTREAM_NETWORK_FAILED",
                        extra={**log_context, "attempts": attempt, "error": e.detail},
                    )
                    raise
                logger.warning(
                    "UPSTREAM_NETWORK_RETRY",
                    extra={**log_context, "attempt": attempt, "delay_seconds": delay},
                )
                await self._sleep(delay)
                delay *= 2

        # max_attempts < 1
        raise ValueError("max_attempts must be at least 1")

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json: Any,
    ) -> Any:
        try:
            response = await self._http.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            raise UpstreamNetworkError(e) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            if response.status_code == RATE_LIMIT_CODE:
                raise RateLimitExceededError(
                    "Rate limit exceeded. Please try again later.",
                    reset_time=self._ledger.reset_time(),
                )
            if response.status_code >= 400:
                raise UpstreamApiError(
                    f"HTTP {response.status_code} from pricing API",
                    code=response.status_code,
                    raw_response=response.text,
                )
            return validate_response(body)

        usage = self._extract_usage(body)
        if usage is not None:
            await self._ledger.apply_usage_report(usage)

        code = _error_code(body, response.status_code)
        if body.get("error") is not None or response.status_code >= 400:
            if code == RATE_LIMIT_CODE:
                raise RateLimitExceededError(
                    "Rate limit exceeded. Please try again later.",
                    reset_time=self._ledger.reset_time(),
                    usage=usage,
                )
            raise UpstreamApiError(_error_message(body), code=code, raw_response=body)

        return validate_response(body)

    @staticmethod
    def _extract_usage(body: dict[str, Any]) -> UsageReport | None:
        raw = body.get("usage")
        if raw is None:
            raw = body.get("_metadata")
        if not isinstance(raw, dict):
            return None
        try:
            return UsageReport.model_validate(raw)
        except ValidationError:
            logger.warning("USAGE_REPORT_UNREADABLE", extra={"usage": raw})
            return None

    @staticmethod
    def _parse(data: Any, model: type[PayloadT]) -> list[PayloadT]:
        items = data if isinstance(data, list) else [data]
        try:
            return TypeAdapter(list[model]).validate_python(items)  # type: ignore[valid-type]
        except ValidationError as e:
            raise ResponseValidationError(
                f"Invalid response: unexpected record shape ({e.error_count()} errors)",
                raw_response=data,
            ) from e
