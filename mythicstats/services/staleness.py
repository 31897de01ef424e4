"""
Staleness gates.

Decide whether a discovery, set sync or price refresh unit is due, based on
wall-clock timestamps stored on tracking and inventory rows. These timestamps
are unrelated to the upstream catalog watermarks.
"""

from datetime import UTC, datetime

from mythicstats.config import DISCOVERY_INTERVAL, PRICE_REFRESH_INTERVAL, SET_SYNC_INTERVAL
from mythicstats.models.db import InventoryItemVariantDB, TrackedGameDB, TrackedSetDB


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by some drivers) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def needs_discovery(tracked_game: TrackedGameDB, now: datetime | None = None) -> bool:
    """Due if never discovered or last discovery was 7 or more days ago."""
    if not tracked_game.is_active:
        return False
    if tracked_game.last_discovery_at is None:
        return True
    now = now or utcnow()
    return now - as_utc(tracked_game.last_discovery_at) >= DISCOVERY_INTERVAL


def needs_sync(tracked_set: TrackedSetDB, now: datetime | None = None) -> bool:
    """Due if never synced or last sync was 1 or more days ago."""
    if not tracked_set.is_active:
        return False
    if tracked_set.last_sync_at is None:
        return True
    now = now or utcnow()
    return now - as_utc(tracked_set.last_sync_at) >= SET_SYNC_INTERVAL


def needs_price_update(holding: InventoryItemVariantDB, now: datetime | None = None) -> bool:
    """Due only for held variants (quantity > 0) not refreshed in the last day."""
    if holding.quantity <= 0:
        return False
    if holding.last_price_update_at is None:
        return True
    now = now or utcnow()
    return now - as_utc(holding.last_price_update_at) >= PRICE_REFRESH_INTERVAL
