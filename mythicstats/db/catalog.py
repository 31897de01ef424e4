"""
Catalog store.

Lookup and upsert of games, sets, cards and card variants keyed by the
pricing API's external id. The external id is the only natural key; the local
numeric id is assigned on first insert and never changes.

WATERMARK POLICY:
An incoming record whose upstream watermark is less than or equal to the
stored (non-null) watermark is a no-op for that record.
"""

from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.models.db import CardDB, CardVariantDB, GameDB, SetDB

CatalogRecord = TypeVar("CatalogRecord", GameDB, SetDB, CardDB, CardVariantDB)


async def find_by_external_id(
    session: AsyncSession, model: type[CatalogRecord], external_id: str
) -> CatalogRecord | None:
    """Get a catalog record by external id, or None."""
    result = await session.execute(select(model).where(model.external_id == external_id))
    return result.scalar_one_or_none()


async def find_by_id(
    session: AsyncSession, model: type[CatalogRecord], record_id: int
) -> CatalogRecord | None:
    """Get a catalog record by local id, or None."""
    return await session.get(model, record_id)


async def upsert_by_external_id(
    session: AsyncSession,
    model: type[CatalogRecord],
    external_id: str,
    fields: dict[str, Any],
) -> CatalogRecord:
    """
    Insert or update a catalog record.

    If a record with the same external id exists, its fields are overwritten.
    Otherwise a new record is created.
    """
    existing = await find_by_external_id(session, model, external_id)

    if existing is not None:
        for name, value in fields.items():
            setattr(existing, name, value)
        await session.flush()
        return existing

    record = model(external_id=external_id, **fields)
    session.add(record)
    await session.flush()
    return record


def is_not_newer(stored: int | None, incoming: int | None) -> bool:
    """True when an incoming watermark must not replace the stored one."""
    return stored is not None and incoming is not None and stored >= incoming


async def upsert_if_newer(
    session: AsyncSession,
    model: type[GameDB] | type[SetDB] | type[CardDB],
    external_id: str,
    fields: dict[str, Any],
    watermark: int | None,
) -> tuple[Any, bool]:
    """
    Upsert a watermarked catalog record unless the stored copy is as new.

    Returns:
        Tuple of (record, written). When written is False the stored record
        is returned untouched.
    """
    existing = await find_by_external_id(session, model, external_id)
    if existing is not None and is_not_newer(existing.last_updated_at, watermark):
        return existing, False

    # A record without a watermark never clears the stored one
    if watermark is None and existing is not None:
        watermark = existing.last_updated_at
    record = await upsert_by_external_id(
        session, model, external_id, {**fields, "last_updated_at": watermark}
    )
    return record, True


# --- Set summary queries ---


async def count_cards_in_set(session: AsyncSession, set_id: int) -> int:
    """Number of cards stored for a set."""
    result = await session.execute(select(func.count(CardDB.id)).where(CardDB.set_id == set_id))
    return int(result.scalar_one())


async def price_range_for_set(session: AsyncSession, set_id: int) -> tuple[float, float]:
    """
    Lowest and highest variant price across a set.

    Returns (0.0, 0.0) when the set has no priced variants.
    """
    result = await session.execute(
        select(func.min(CardVariantDB.price), func.max(CardVariantDB.price))
        .join(CardDB, CardVariantDB.card_id == CardDB.id)
        .where(CardDB.set_id == set_id)
    )
    low, high = result.one()
    return float(low or 0.0), float(high or 0.0)
