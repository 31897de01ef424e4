"""Tests for the pricing API sync client."""

import json

import httpx
import pytest

from mythicstats.models.db import UserDB
from mythicstats.services.errors import (
    RateLimitExceededError,
    ResponseValidationError,
    UpstreamApiError,
    UpstreamNetworkError,
)
from mythicstats.services.quota_ledger import QuotaLedger
from mythicstats.services.sync_client import SyncClient, validate_response


class TestValidateResponse:
    @pytest.mark.parametrize("body", [None, "not an object", []])
    def test_absent_body_is_malformed(self, body) -> None:
        with pytest.raises(ResponseValidationError, match="response is empty"):
            validate_response(body)

    def test_neither_data_nor_error(self) -> None:
        with pytest.raises(ResponseValidationError, match="missing data and error"):
            validate_response({"meta": {}})

    def test_scalar_data(self) -> None:
        with pytest.raises(ResponseValidationError, match="not in expected format"):
            validate_response({"data": 42})

    def test_list_and_object_data_pass(self) -> None:
        assert validate_response({"data": []}) == []
        assert validate_response({"data": {"id": "x"}}) == {"id": "x"}

    def test_malformed_is_an_api_error(self) -> None:
        with pytest.raises(UpstreamApiError):
            validate_response({})


class TestSuccessfulCalls:
    async def test_list_sets(self, upstream, sync_client: SyncClient) -> None:
        route = upstream.get("/sets").mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"id": "dominaria-united", "name": "Dominaria United"}]},
            )
        )

        sets = await sync_client.list_sets("magic-the-gathering")

        assert [s.external_id for s in sets] == ["dominaria-united"]
        assert route.calls.last.request.url.params["game"] == "magic-the-gathering"

    async def test_list_cards_sends_scope_and_paging(
        self, upstream, sync_client: SyncClient, card_payload
    ) -> None:
        route = upstream.get("/cards").mock(
            return_value=httpx.Response(200, json={"data": [card_payload("shivan-dragon")]})
        )

        cards = await sync_client.list_cards(set_external_id="dominaria-united", limit=20, offset=40)

        params = route.calls.last.request.url.params
        assert params["set"] == "dominaria-united"
        assert params["limit"] == "20"
        assert params["offset"] == "40"
        assert cards[0].variants[0].external_id == "shivan-dragon-nm"

    async def test_list_cards_requires_one_scope(self, sync_client: SyncClient) -> None:
        with pytest.raises(ValueError):
            await sync_client.list_cards(limit=20, offset=0)
        with pytest.raises(ValueError):
            await sync_client.list_cards(
                set_external_id="a", game_external_id="b", limit=20, offset=0
            )

    async def test_batch_posts_card_ids(self, upstream, sync_client: SyncClient) -> None:
        route = upstream.post("/cards").mock(return_value=httpx.Response(200, json={"data": []}))

        await sync_client.get_cards_batch(["a", "b"])

        assert json.loads(route.calls.last.request.content) == [{"cardId": "a"}, {"cardId": "b"}]

    async def test_batch_larger_than_page_is_rejected(self, sync_client: SyncClient) -> None:
        with pytest.raises(ValueError, match="exceeds plan page size 20"):
            await sync_client.get_cards_batch([str(i) for i in range(21)])

    async def test_single_object_data_is_wrapped(self, upstream, sync_client: SyncClient) -> None:
        upstream.get("/games").mock(
            return_value=httpx.Response(200, json={"data": {"id": "pokemon", "name": "Pokemon"}})
        )

        games = await sync_client.list_games()

        assert [g.external_id for g in games] == ["pokemon"]


class TestUsageAccounting:
    async def test_usage_applied_on_success(
        self, upstream, sync_client: SyncClient, ledger: QuotaLedger, usage
    ) -> None:
        upstream.get("/games").mock(
            return_value=httpx.Response(
                200, json={"data": [], "_metadata": usage(monthly_remaining=812, daily_remaining=44)}
            )
        )

        await sync_client.list_games()

        assert ledger.monthly_remaining == 812
        assert ledger.daily_remaining == 44

    async def test_usage_block_name_also_accepted(
        self, upstream, sync_client: SyncClient, ledger: QuotaLedger, usage
    ) -> None:
        upstream.get("/games").mock(
            return_value=httpx.Response(200, json={"data": [], "usage": usage(monthly_remaining=5)})
        )

        await sync_client.list_games()

        assert ledger.monthly_remaining == 5

    async def test_usage_applied_before_rate_limit_raised(
        self, upstream, sync_client: SyncClient, ledger: QuotaLedger, usage
    ) -> None:
        upstream.get("/games").mock(
            return_value=httpx.Response(
                429,
                json={
                    "error": {"code": 429, "message": "Too many requests"},
                    "_metadata": usage(monthly_remaining=300, daily_remaining=0),
                },
            )
        )

        with pytest.raises(RateLimitExceededError) as exc_info:
            await sync_client.list_games()

        assert ledger.daily_remaining == 0
        assert ledger.monthly_remaining == 300
        assert exc_info.value.usage is not None
        assert exc_info.value.usage.daily_remaining == 0
        assert exc_info.value.reset_time is not None

    async def test_usage_applied_before_api_error_raised(
        self, upstream, sync_client: SyncClient, ledger: QuotaLedger, usage
    ) -> None:
        upstream.get("/sets").mock(
            return_value=httpx.Response(
                400,
                json={
                    "error": {"code": 400, "message": "Unknown game"},
                    "usage": usage(monthly_remaining=77),
                },
            )
        )

        with pytest.raises(UpstreamApiError):
            await sync_client.list_sets("nope")

        assert ledger.monthly_remaining == 77


class TestErrorClassification:
    async def test_rate_limit_code_in_body_with_200(self, upstream, sync_client: SyncClient) -> None:
        route = upstream.get("/games").mock(
            return_value=httpx.Response(200, json={"error": "quota", "code": 429})
        )

        with pytest.raises(RateLimitExceededError):
            await sync_client.list_games()

        assert route.call_count == 1

    async def test_api_error_not_retried(self, upstream, sync_client: SyncClient, sleeps) -> None:
        route = upstream.get("/games").mock(
            return_value=httpx.Response(500, json={"error": {"code": 500, "message": "boom"}})
        )

        with pytest.raises(UpstreamApiError) as exc_info:
            await sync_client.list_games()

        assert exc_info.value.code == 500
        assert exc_info.value.message == "boom"
        assert route.call_count == 1
        assert sleeps == []

    async def test_non_json_error_body(self, upstream, sync_client: SyncClient) -> None:
        upstream.get("/games").mock(return_value=httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(UpstreamApiError, match="HTTP 502"):
            await sync_client.list_games()

    async def test_plain_text_429_is_a_rate_limit(
        self, upstream, sync_client: SyncClient, sleeps
    ) -> None:
        route = upstream.get("/games").mock(
            return_value=httpx.Response(429, text="Too Many Requests")
        )

        with pytest.raises(RateLimitExceededError) as exc_info:
            await sync_client.list_games()

        assert exc_info.value.reset_time is not None
        assert route.call_count == 1
        assert sleeps == []

    async def test_unexpected_record_shape(self, upstream, sync_client: SyncClient) -> None:
        upstream.get("/games").mock(
            return_value=httpx.Response(200, json={"data": [{"unexpected": True}]})
        )

        with pytest.raises(ResponseValidationError):
            await sync_client.list_games()

    async def test_errors_are_logged_with_context(
        self, upstream, sync_client: SyncClient, user: UserDB, caplog
    ) -> None:
        upstream.get("/sets").mock(
            return_value=httpx.Response(404, json={"error": {"code": 404, "message": "missing"}})
        )

        with pytest.raises(UpstreamApiError):
            await sync_client.list_sets("unknown-game")

        record = next(r for r in caplog.records if r.getMessage() == "SYNC_CLIENT_ERROR")
        assert record.operation == "list_sets"
        assert record.user_id == user.id
        assert record.game_external_id == "unknown-game"
        assert record.code == 404


class TestPrecheck:
    async def test_exhausted_budget_blocks_without_calling(
        self, upstream, sync_client: SyncClient, user: UserDB
    ) -> None:
        user.api_daily_requests_remaining = 0
        route = upstream.get("/games").mock(return_value=httpx.Response(200, json={"data": []}))

        with pytest.raises(RateLimitExceededError) as exc_info:
            await sync_client.list_games()

        assert "Daily limit exceeded" in exc_info.value.reason
        assert exc_info.value.reset_time is not None
        assert not route.called


class TestNetworkRetry:
    async def test_two_failures_then_success(
        self, upstream, sync_client: SyncClient, sleeps
    ) -> None:
        route = upstream.get("/games").mock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                httpx.ReadTimeout("timed out"),
                httpx.Response(200, json={"data": [{"id": "lorcana", "name": "Lorcana"}]}),
            ]
        )

        games = await sync_client.list_games()

        assert [g.external_id for g in games] == ["lorcana"]
        assert route.call_count == 3
        assert sleeps == [1.0, 2.0]

    async def test_gives_up_after_three_attempts(
        self, upstream, sync_client: SyncClient, sleeps
    ) -> None:
        route = upstream.get("/games").mock(side_effect=httpx.ConnectError("unreachable"))

        with pytest.raises(UpstreamNetworkError) as exc_info:
            await sync_client.list_games()

        assert route.call_count == 3
        assert sleeps == [1.0, 2.0]
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
