from collections.abc import Callable
from typing import Any

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mythicstats.db.operations import create_user
from mythicstats.models.db import Base, GameDB, SetDB, UserDB
from mythicstats.services.catalog_sync import CatalogSynchronizer
from mythicstats.services.quota_ledger import QuotaLedger
from mythicstats.services.sync_client import SyncClient

BASE_URL = "https://pricing.test/v1"


# --- Database ---


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(session: AsyncSession) -> UserDB:
    """A free-tier user with its default budget."""
    user = await create_user(session, "collector@example.com", "Card Collector")
    await session.commit()
    return user


@pytest.fixture
async def paid_user(session: AsyncSession, user: UserDB) -> UserDB:
    """The same user on a paid plan (page size 100)."""
    user.api_plan = "Pro"
    await session.commit()
    return user


@pytest.fixture
async def game(session: AsyncSession) -> GameDB:
    game = GameDB(external_id="magic-the-gathering", name="Magic: The Gathering")
    session.add(game)
    await session.commit()
    return game


@pytest.fixture
async def card_set(session: AsyncSession, game: GameDB) -> SetDB:
    card_set = SetDB(game_id=game.id, external_id="dominaria-united", name="Dominaria United")
    session.add(card_set)
    await session.commit()
    return card_set


# --- Pricing API ---


@pytest.fixture
def upstream():
    """respx router for the pricing API."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture
async def http(upstream) -> httpx.AsyncClient:
    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the sync client."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return sleep


@pytest.fixture
def ledger(session: AsyncSession, user: UserDB) -> QuotaLedger:
    return QuotaLedger(session, user)


@pytest.fixture
def sync_client(http: httpx.AsyncClient, ledger: QuotaLedger, fake_sleep) -> SyncClient:
    return SyncClient(http, ledger, sleep=fake_sleep)


@pytest.fixture
def synchronizer(session: AsyncSession, sync_client: SyncClient) -> CatalogSynchronizer:
    return CatalogSynchronizer(session, sync_client)


# --- Payload builders ---


@pytest.fixture
def usage() -> Callable[..., dict[str, Any]]:
    """Build an upstream usage block."""

    def build(monthly_remaining: int = 900, daily_remaining: int = 90, **extra: Any):
        return {
            "apiRequestsRemaining": monthly_remaining,
            "apiDailyRequestsRemaining": daily_remaining,
            **extra,
        }

    return build


@pytest.fixture
def card_payload() -> Callable[..., dict[str, Any]]:
    """Build an upstream card record with its variants."""

    def build(
        card_id: str,
        set_id: str = "dominaria-united",
        last_updated: int | None = 1700000000,
        price: float = 1.5,
        variant_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        variant_ids = variant_ids if variant_ids is not None else [f"{card_id}-nm"]
        return {
            "id": card_id,
            "name": card_id.replace("-", " ").title(),
            "set": set_id,
            "number": "1",
            "rarity": "Rare",
            "tcgplayerId": 1000,
            "last_updated": last_updated,
            "variants": [
                {
                    "id": variant_id,
                    "condition": "Near Mint",
                    "printing": "Normal",
                    "language": "English",
                    "price": price,
                    "lastUpdated": last_updated,
                }
                for variant_id in variant_ids
            ],
        }

    return build
