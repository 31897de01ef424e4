"""
Database CRUD operations.

Provides async functions for users, tracking records and inventory holdings.
Catalog lookups and upserts live in `mythicstats.db.catalog`.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mythicstats.config import (
    DEFAULT_DAILY_LIMIT,
    DEFAULT_MONTHLY_LIMIT,
    DEFAULT_REQUESTS_PER_MINUTE,
    FREE_TIER_PLAN,
)
from mythicstats.models.db import (
    CardDB,
    CardVariantDB,
    InventoryItemDB,
    InventoryItemVariantDB,
    TrackedGameDB,
    TrackedSetDB,
    UserDB,
)

# --- User Operations ---


async def get_user(session: AsyncSession, user_id: int) -> UserDB | None:
    """Get a user by id. Returns None if not found."""
    return await session.get(UserDB, user_id)


async def list_users(session: AsyncSession) -> list[UserDB]:
    """All users, oldest first."""
    result = await session.execute(select(UserDB).order_by(UserDB.id))
    return list(result.scalars().all())


async def create_user(session: AsyncSession, email: str, full_name: str | None = None) -> UserDB:
    """
    Create a user with a free-tier quota ledger.

    The ledger is replaced by the first authoritative usage report.
    Raises IntegrityError if the email is taken.
    """
    user = UserDB(
        email=email,
        full_name=full_name,
        api_plan=FREE_TIER_PLAN,
        api_monthly_limit=DEFAULT_MONTHLY_LIMIT,
        api_daily_limit=DEFAULT_DAILY_LIMIT,
        api_rate_limit=DEFAULT_REQUESTS_PER_MINUTE,
        api_requests_used=0,
        api_daily_requests_used=0,
        api_requests_remaining=DEFAULT_MONTHLY_LIMIT,
        api_daily_requests_remaining=DEFAULT_DAILY_LIMIT,
    )
    session.add(user)
    await session.flush()
    return user


# --- Tracking Operations ---


async def get_tracked_game(
    session: AsyncSession, user_id: int, game_id: int
) -> TrackedGameDB | None:
    result = await session.execute(
        select(TrackedGameDB).where(
            TrackedGameDB.user_id == user_id,
            TrackedGameDB.game_id == game_id,
        )
    )
    return result.scalar_one_or_none()


async def list_active_tracked_games(session: AsyncSession, user_id: int) -> list[TrackedGameDB]:
    """Active tracked games for a user, with their games loaded."""
    result = await session.execute(
        select(TrackedGameDB)
        .where(TrackedGameDB.user_id == user_id, TrackedGameDB.is_active.is_(True))
        .options(selectinload(TrackedGameDB.game))
        .order_by(TrackedGameDB.id)
    )
    return list(result.scalars().all())


async def track_game(session: AsyncSession, user_id: int, game_id: int) -> TrackedGameDB:
    """Start tracking a game. Re-tracking an inactive game reactivates it."""
    tracked = await get_tracked_game(session, user_id, game_id)
    if tracked is not None:
        tracked.is_active = True
        await session.flush()
        return tracked

    tracked = TrackedGameDB(user_id=user_id, game_id=game_id, is_active=True)
    session.add(tracked)
    await session.flush()
    return tracked


async def untrack_game(session: AsyncSession, user_id: int, game_id: int) -> bool:
    """
    Stop tracking a game.

    Returns True if deleted, False if it was not tracked.
    """
    tracked = await get_tracked_game(session, user_id, game_id)
    if tracked is None:
        return False
    await session.delete(tracked)
    await session.flush()
    return True


async def get_tracked_set(session: AsyncSession, user_id: int, set_id: int) -> TrackedSetDB | None:
    result = await session.execute(
        select(TrackedSetDB).where(
            TrackedSetDB.user_id == user_id,
            TrackedSetDB.set_id == set_id,
        )
    )
    return result.scalar_one_or_none()


async def list_active_tracked_sets(session: AsyncSession, user_id: int) -> list[TrackedSetDB]:
    """Active tracked sets for a user, with their sets loaded."""
    result = await session.execute(
        select(TrackedSetDB)
        .where(TrackedSetDB.user_id == user_id, TrackedSetDB.is_active.is_(True))
        .options(selectinload(TrackedSetDB.set))
        .order_by(TrackedSetDB.id)
    )
    return list(result.scalars().all())


async def track_set(session: AsyncSession, user_id: int, set_id: int) -> TrackedSetDB:
    """Start tracking a set. Re-tracking an inactive set reactivates it."""
    tracked = await get_tracked_set(session, user_id, set_id)
    if tracked is not None:
        tracked.is_active = True
        await session.flush()
        return tracked

    tracked = TrackedSetDB(user_id=user_id, set_id=set_id, is_active=True)
    session.add(tracked)
    await session.flush()
    return tracked


async def untrack_set(session: AsyncSession, user_id: int, set_id: int) -> bool:
    """
    Stop tracking a set.

    Returns True if deleted, False if it was not tracked.
    """
    tracked = await get_tracked_set(session, user_id, set_id)
    if tracked is None:
        return False
    await session.delete(tracked)
    await session.flush()
    return True


# --- Inventory Operations ---


async def get_inventory_item(
    session: AsyncSession, item_id: int, user_id: int
) -> InventoryItemDB | None:
    """Get an inventory item owned by the user. Returns None otherwise."""
    result = await session.execute(
        select(InventoryItemDB).where(
            InventoryItemDB.id == item_id,
            InventoryItemDB.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def list_holdings(session: AsyncSession, inventory_item_id: int) -> list[InventoryItemVariantDB]:
    result = await session.execute(
        select(InventoryItemVariantDB)
        .where(InventoryItemVariantDB.inventory_item_id == inventory_item_id)
        .order_by(InventoryItemVariantDB.id)
    )
    return list(result.scalars().all())


async def get_inventory_item_for_card(
    session: AsyncSession, user_id: int, card_id: int
) -> InventoryItemDB | None:
    result = await session.execute(
        select(InventoryItemDB).where(
            InventoryItemDB.user_id == user_id,
            InventoryItemDB.card_id == card_id,
        )
    )
    return result.scalar_one_or_none()


async def list_card_variants(session: AsyncSession, card_id: int) -> list[CardVariantDB]:
    result = await session.execute(
        select(CardVariantDB).where(CardVariantDB.card_id == card_id).order_by(CardVariantDB.id)
    )
    return list(result.scalars().all())


async def create_holding(
    session: AsyncSession, inventory_item_id: int, variant_id: int, quantity: int = 0
) -> InventoryItemVariantDB:
    holding = InventoryItemVariantDB(
        inventory_item_id=inventory_item_id, variant_id=variant_id, quantity=quantity
    )
    session.add(holding)
    await session.flush()
    return holding


async def delete_holdings(session: AsyncSession, inventory_item_id: int) -> int:
    """
    Delete every holding row of an inventory item.

    Returns the number of deleted rows.
    """
    result = await session.execute(
        delete(InventoryItemVariantDB).where(
            InventoryItemVariantDB.inventory_item_id == inventory_item_id
        )
    )
    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


async def get_holding(
    session: AsyncSession, holding_id: int, user_id: int
) -> InventoryItemVariantDB | None:
    """Get a holding row, only if its inventory item belongs to the user."""
    result = await session.execute(
        select(InventoryItemVariantDB)
        .join(InventoryItemDB, InventoryItemVariantDB.inventory_item_id == InventoryItemDB.id)
        .where(InventoryItemVariantDB.id == holding_id, InventoryItemDB.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_holdings_with_card_ids(
    session: AsyncSession,
    user_id: int,
    inventory_item_id: int | None = None,
) -> list[tuple[InventoryItemVariantDB, str]]:
    """
    A user's holding rows paired with the external id of the owning card.

    Price refreshes are requested per card, so this is the correlation key.
    """
    query = (
        select(InventoryItemVariantDB, CardDB.external_id)
        .join(InventoryItemDB, InventoryItemVariantDB.inventory_item_id == InventoryItemDB.id)
        .join(CardVariantDB, InventoryItemVariantDB.variant_id == CardVariantDB.id)
        .join(CardDB, CardVariantDB.card_id == CardDB.id)
        .where(InventoryItemDB.user_id == user_id)
        .order_by(InventoryItemVariantDB.id)
    )
    if inventory_item_id is not None:
        query = query.where(InventoryItemVariantDB.inventory_item_id == inventory_item_id)

    result = await session.execute(query)
    return [(holding, card_external_id) for holding, card_external_id in result.all()]


async def mark_price_updated(
    session: AsyncSession, holding_ids: Iterable[int], when: datetime
) -> None:
    ids = list(holding_ids)
    if not ids:
        return
    await session.execute(
        update(InventoryItemVariantDB)
        .where(InventoryItemVariantDB.id.in_(ids))
        .values(last_price_update_at=when)
        .execution_options(synchronize_session="fetch")
    )


async def inventory_item_totals(session: AsyncSession, inventory_item_id: int) -> tuple[int, float]:
    """
    Total held quantity and value of an inventory item.

    Value is quantity times the current variant price, summed.
    """
    result = await session.execute(
        select(
            func.coalesce(func.sum(InventoryItemVariantDB.quantity), 0),
            func.coalesce(func.sum(InventoryItemVariantDB.quantity * CardVariantDB.price), 0.0),
        )
        .join(CardVariantDB, InventoryItemVariantDB.variant_id == CardVariantDB.id)
        .where(InventoryItemVariantDB.inventory_item_id == inventory_item_id)
    )
    quantity, value = result.one()
    return int(quantity), float(value)
