"""Tests for the HTTP endpoints."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.api.deps import get_http_client
from mythicstats.db.database import get_session
from mythicstats.main import app
from mythicstats.models.db import CardDB, CardVariantDB, GameDB, SetDB, UserDB


@pytest.fixture
async def api_client(session_factory, http: httpx.AsyncClient):
    """Async test client with the database session and pricing API client overridden."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_http_client] = lambda: http

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class TestHealth:
    async def test_health(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": None}

    async def test_ready(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/ready")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"


class TestQuota:
    async def test_status_envelope(self, api_client: AsyncClient, user: UserDB) -> None:
        response = await api_client.get(f"/users/{user.id}/quota")

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "success"
        assert body["data"]["plan"] == "Free Tier"
        assert body["data"]["monthly"]["remaining"] == 1000
        assert body["data"]["can_make_request"] is True

    async def test_unknown_user(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/users/999/quota")

        assert response.status_code == 404
        body = response.json()
        assert body["outcome"] == "known_failure"
        assert body["failure"]["kind"] == "not_found"


class TestTracking:
    async def test_track_and_untrack_set(
        self, api_client: AsyncClient, user: UserDB, card_set: SetDB
    ) -> None:
        response = await api_client.post(f"/users/{user.id}/sets/{card_set.id}/track")

        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is True

        response = await api_client.post(f"/users/{user.id}/sets/{card_set.id}/toggle")
        assert response.json()["data"]["is_active"] is False

        response = await api_client.delete(f"/users/{user.id}/sets/{card_set.id}/track")
        assert response.json()["data"]["removed"] is True

    async def test_sync_rate_limited_reports_try_again(
        self, session: AsyncSession, api_client: AsyncClient, user: UserDB, card_set: SetDB
    ) -> None:
        user.api_daily_requests_remaining = 0
        await session.commit()

        response = await api_client.post(f"/users/{user.id}/sets/{card_set.id}/sync")

        assert response.status_code == 429
        failure = response.json()["failure"]
        assert failure["kind"] == "rate_limited"
        assert "Daily limit exceeded" in failure["detail"]
        assert failure["suggestion"].startswith("Please try again after")

    async def test_sync_upstream_error(
        self, upstream, api_client: AsyncClient, user: UserDB, card_set: SetDB
    ) -> None:
        upstream.get("/cards").mock(
            return_value=httpx.Response(500, json={"error": {"code": 500, "message": "down"}})
        )

        response = await api_client.post(f"/users/{user.id}/sets/{card_set.id}/sync")

        assert response.status_code == 502
        assert response.json()["failure"]["kind"] == "upstream_error"

    async def test_sync_success(
        self, upstream, api_client: AsyncClient, user: UserDB, card_set: SetDB, card_payload
    ) -> None:
        upstream.get("/cards").mock(
            return_value=httpx.Response(200, json={"data": [card_payload("c1"), card_payload("c2")]})
        )

        response = await api_client.post(f"/users/{user.id}/sets/{card_set.id}/sync")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["performed"] is True
        assert data["written"] == 2

    async def test_toggle_game(
        self, api_client: AsyncClient, user: UserDB, game: GameDB
    ) -> None:
        await api_client.post(f"/users/{user.id}/games/{game.id}/track")

        response = await api_client.post(f"/users/{user.id}/games/{game.id}/toggle")

        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False

    async def test_toggle_untracked_game(
        self, api_client: AsyncClient, user: UserDB, game: GameDB
    ) -> None:
        response = await api_client.post(f"/users/{user.id}/games/{game.id}/toggle")

        assert response.status_code == 404


class TestSetSummary:
    async def test_summary(
        self, session: AsyncSession, api_client: AsyncClient, card_set: SetDB
    ) -> None:
        card = CardDB(set_id=card_set.id, external_id="c1", name="C1")
        session.add(card)
        await session.flush()
        session.add(CardVariantDB(card_id=card.id, external_id="c1-nm", condition="NM", price=2.5))
        await session.commit()

        response = await api_client.get(f"/sets/{card_set.id}/summary")

        data = response.json()["data"]
        assert data["card_count"] == 1
        assert data["min_price"] == 2.5
        assert data["max_price"] == 2.5

    async def test_missing_set(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/sets/404/summary")

        assert response.status_code == 404


class TestInventory:
    async def test_add_set_quantity_and_totals(
        self, session: AsyncSession, api_client: AsyncClient, user: UserDB, card_set: SetDB
    ) -> None:
        card = CardDB(set_id=card_set.id, external_id="c1", name="C1")
        session.add(card)
        await session.flush()
        session.add(CardVariantDB(card_id=card.id, external_id="c1-nm", condition="NM", price=4.0))
        await session.commit()

        response = await api_client.post(f"/users/{user.id}/inventory", json={"card_id": card.id})
        item = response.json()["data"]
        assert len(item["holdings"]) == 1

        holding_id = item["holdings"][0]["id"]
        response = await api_client.put(
            f"/users/{user.id}/inventory/holdings/{holding_id}", json={"quantity": 3}
        )
        assert response.json()["data"]["quantity"] == 3

        response = await api_client.get(f"/users/{user.id}/inventory/{item['id']}/totals")
        totals = response.json()["data"]
        assert totals["total_quantity"] == 3
        assert totals["total_value"] == 12.0

    async def test_negative_quantity_is_known_failure(
        self, session: AsyncSession, api_client: AsyncClient, user: UserDB, card_set: SetDB
    ) -> None:
        card = CardDB(set_id=card_set.id, external_id="c1", name="C1")
        session.add(card)
        await session.flush()
        session.add(CardVariantDB(card_id=card.id, external_id="c1-nm", condition="NM", price=4.0))
        await session.commit()
        response = await api_client.post(f"/users/{user.id}/inventory", json={"card_id": card.id})
        holding_id = response.json()["data"]["holdings"][0]["id"]

        response = await api_client.put(
            f"/users/{user.id}/inventory/holdings/{holding_id}", json={"quantity": -2}
        )

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"
