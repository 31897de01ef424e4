"""
Tracking service.

Per-user opt-in to periodic discovery (games) and sync (sets), plus the flows
that walk tracked records and hand due ones to the catalog synchronizer.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db import operations
from mythicstats.db.catalog import find_by_id
from mythicstats.models.db import GameDB, SetDB, TrackedGameDB, TrackedSetDB
from mythicstats.services.catalog_sync import CatalogSynchronizer, SyncResult
from mythicstats.services.errors import CatalogNotFoundError
from mythicstats.services.staleness import needs_discovery, needs_sync, utcnow

logger = logging.getLogger(__name__)

# Awaited before each API-bound unit; raises to stop the walk
BeforeEach = Callable[[], Awaitable[None]]


class TrackingService:
    def __init__(
        self,
        session: AsyncSession,
        synchronizer: CatalogSynchronizer,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._synchronizer = synchronizer
        self._clock = clock

    # --- Track / untrack ---

    async def track_game(self, user_id: int, game_id: int) -> TrackedGameDB:
        if await find_by_id(self._session, GameDB, game_id) is None:
            raise CatalogNotFoundError("Game", game_id)
        return await operations.track_game(self._session, user_id, game_id)

    async def untrack_game(self, user_id: int, game_id: int) -> bool:
        return await operations.untrack_game(self._session, user_id, game_id)

    async def toggle_game_tracking(self, user_id: int, game_id: int) -> TrackedGameDB:
        """Flip a tracked game between active and paused."""
        tracked = await operations.get_tracked_game(self._session, user_id, game_id)
        if tracked is None:
            raise CatalogNotFoundError("TrackedGame", game_id)
        tracked.is_active = not tracked.is_active
        await self._session.flush()
        return tracked

    async def track_set(self, user_id: int, set_id: int) -> TrackedSetDB:
        if await find_by_id(self._session, SetDB, set_id) is None:
            raise CatalogNotFoundError("Set", set_id)
        return await operations.track_set(self._session, user_id, set_id)

    async def untrack_set(self, user_id: int, set_id: int) -> bool:
        return await operations.untrack_set(self._session, user_id, set_id)

    async def toggle_set_tracking(self, user_id: int, set_id: int) -> TrackedSetDB:
        """Flip a tracked set between active and paused."""
        tracked = await operations.get_tracked_set(self._session, user_id, set_id)
        if tracked is None:
            raise CatalogNotFoundError("TrackedSet", set_id)
        tracked.is_active = not tracked.is_active
        await self._session.flush()
        return tracked

    # --- Walks over tracked records ---

    async def discover_sets_for_tracked_games(
        self, user_id: int, before_each: BeforeEach | None = None
    ) -> int:
        """
        Discover sets for every active tracked game that is due.

        Returns the number of games discovered.
        """
        discovered = 0
        for tracked_game in await operations.list_active_tracked_games(self._session, user_id):
            if not needs_discovery(tracked_game, self._clock()):
                continue
            if before_each is not None:
                await before_each()
            await self._synchronizer.sync_sets(tracked_game.game, tracked_game)
            discovered += 1
        return discovered

    async def sync_cards_for_tracked_sets(
        self, user_id: int, before_each: BeforeEach | None = None
    ) -> int:
        """
        Sync cards for every active tracked set that is due.

        Returns the number of sets synced.
        """
        synced = 0
        for tracked_set in await operations.list_active_tracked_sets(self._session, user_id):
            if not needs_sync(tracked_set, self._clock()):
                continue
            if before_each is not None:
                await before_each()
            await self._synchronizer.sync_cards_for_set(tracked_set.set, tracked_set)
            synced += 1
        return synced

    # --- One-off flows ---

    async def sync_set(self, user_id: int, set_id: int, force: bool = False) -> SyncResult | None:
        """
        Sync a single set.

        Untracked sets are synced without stamping a tracking record.
        Tracked sets are skipped (None) unless due or `force` is set.
        """
        card_set = await find_by_id(self._session, SetDB, set_id)
        if card_set is None:
            raise CatalogNotFoundError("Set", set_id)

        tracked_set = await operations.get_tracked_set(self._session, user_id, set_id)
        if tracked_set is None:
            return await self._synchronizer.sync_cards_for_set(card_set)

        if not force and not needs_sync(tracked_set, self._clock()):
            logger.info("SET_SYNC_NOT_DUE", extra={"user_id": user_id, "set_id": set_id})
            return None

        return await self._synchronizer.sync_cards_for_set(card_set, tracked_set)

    async def discover_sets(
        self, user_id: int, game_id: int, force: bool = False
    ) -> SyncResult | None:
        """Discover sets for one game, with the same gating as `sync_set`."""
        game = await find_by_id(self._session, GameDB, game_id)
        if game is None:
            raise CatalogNotFoundError("Game", game_id)

        tracked_game = await operations.get_tracked_game(self._session, user_id, game_id)
        if tracked_game is None:
            return await self._synchronizer.sync_sets(game)

        if not force and not needs_discovery(tracked_game, self._clock()):
            logger.info("DISCOVERY_NOT_DUE", extra={"user_id": user_id, "game_id": game_id})
            return None

        return await self._synchronizer.sync_sets(game, tracked_game)
