"""Tests for catalog lookups, upserts and set summaries."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db.catalog import (
    count_cards_in_set,
    find_by_external_id,
    is_not_newer,
    price_range_for_set,
    upsert_by_external_id,
    upsert_if_newer,
)
from mythicstats.models.db import CardDB, CardVariantDB, GameDB, SetDB


class TestIsNotNewer:
    @pytest.mark.parametrize(
        ("stored", "incoming", "expected"),
        [
            (100, 100, True),
            (100, 99, True),
            (100, 101, False),
            (None, 100, False),
            (100, None, False),
            (None, None, False),
        ],
    )
    def test_watermark_comparison(self, stored, incoming, expected) -> None:
        assert is_not_newer(stored, incoming) is expected


class TestUpsertByExternalId:
    async def test_creates_once(self, session: AsyncSession) -> None:
        first = await upsert_by_external_id(session, GameDB, "pokemon", {"name": "Pokemon"})
        second = await upsert_by_external_id(session, GameDB, "pokemon", {"name": "Pokémon"})

        count = await session.scalar(select(func.count(GameDB.id)))
        assert count == 1
        assert first.id == second.id
        assert second.name == "Pokémon"

    async def test_find_missing_returns_none(self, session: AsyncSession) -> None:
        assert await find_by_external_id(session, GameDB, "nope") is None


class TestUpsertIfNewer:
    async def test_older_watermark_leaves_record_unchanged(
        self, session: AsyncSession, game: GameDB
    ) -> None:
        await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "Original"}, 200
        )

        record, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "Regressed"}, 150
        )

        assert written is False
        assert record.name == "Original"
        assert record.last_updated_at == 200

    async def test_equal_watermark_is_a_no_op(self, session: AsyncSession, game: GameDB) -> None:
        await upsert_if_newer(session, SetDB, "s1", {"game_id": game.id, "name": "Original"}, 200)

        _, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "Same Time"}, 200
        )

        assert written is False

    async def test_newer_watermark_overwrites(self, session: AsyncSession, game: GameDB) -> None:
        await upsert_if_newer(session, SetDB, "s1", {"game_id": game.id, "name": "Original"}, 200)

        record, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "Updated"}, 201
        )

        assert written is True
        assert record.name == "Updated"
        assert record.last_updated_at == 201

    async def test_null_watermarks_always_write(self, session: AsyncSession, game: GameDB) -> None:
        await upsert_if_newer(session, SetDB, "s1", {"game_id": game.id, "name": "A"}, None)

        record, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "B"}, None
        )

        assert written is True
        assert record.name == "B"

    async def test_missing_watermark_keeps_stored_one(
        self, session: AsyncSession, game: GameDB
    ) -> None:
        await upsert_if_newer(session, SetDB, "s1", {"game_id": game.id, "name": "A"}, 500)

        record, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "B"}, None
        )

        assert written is True
        assert record.name == "B"
        assert record.last_updated_at == 500

        _, written = await upsert_if_newer(
            session, SetDB, "s1", {"game_id": game.id, "name": "Stale"}, 400
        )
        assert written is False
        assert record.name == "B"


class TestSetSummary:
    async def test_counts_and_price_range(
        self, session: AsyncSession, card_set: SetDB
    ) -> None:
        for index, prices in enumerate([[0.25, 3.0], [12.5]]):
            card = CardDB(set_id=card_set.id, external_id=f"card-{index}", name=f"Card {index}")
            session.add(card)
            await session.flush()
            for v_index, price in enumerate(prices):
                session.add(
                    CardVariantDB(
                        card_id=card.id,
                        external_id=f"card-{index}-{v_index}",
                        condition="Near Mint",
                        price=price,
                    )
                )
        await session.commit()

        assert await count_cards_in_set(session, card_set.id) == 2
        assert await price_range_for_set(session, card_set.id) == (0.25, 12.5)

    async def test_empty_set(self, session: AsyncSession, card_set: SetDB) -> None:
        assert await count_cards_in_set(session, card_set.id) == 0
        assert await price_range_for_set(session, card_set.id) == (0.0, 0.0)
