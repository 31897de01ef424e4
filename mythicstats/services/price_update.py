"""
Inventory price refresh.

Held variants are refreshed through batch card lookups. Correlation is by the
owning card's external id: one batch entry refreshes every variant of that
card.

After each batch completes, EVERY holding whose card was in the batch gets
`last_price_update_at = now`, whether or not its price moved. The timestamp
records that a refresh pass covered the holding, not that its price changed.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db.operations import list_holdings_with_card_ids, mark_price_updated
from mythicstats.models.db import InventoryItemVariantDB
from mythicstats.services.catalog_sync import CatalogSynchronizer
from mythicstats.services.staleness import needs_price_update, utcnow

logger = logging.getLogger(__name__)

BeforeEach = Callable[[], Awaitable[None]]


class PriceUpdateService:
    def __init__(
        self,
        session: AsyncSession,
        synchronizer: CatalogSynchronizer,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._synchronizer = synchronizer
        self._clock = clock

    async def update_inventory_prices(
        self, user_id: int, before_each: BeforeEach | None = None
    ) -> int:
        """
        Refresh every held variant of the user that is due.

        Returns the number of holdings marked as refreshed.
        """
        now = self._clock()
        due = [
            (holding, card_external_id)
            for holding, card_external_id in await list_holdings_with_card_ids(
                self._session, user_id
            )
            if needs_price_update(holding, now)
        ]
        return await self._refresh(user_id, due, before_each)

    async def update_prices_for_inventory(
        self, user_id: int, inventory_item_id: int | None = None
    ) -> int:
        """
        Refresh prices on demand, ignoring staleness.

        Restricted to one inventory item when `inventory_item_id` is given.
        """
        holdings = await list_holdings_with_card_ids(
            self._session, user_id, inventory_item_id=inventory_item_id
        )
        return await self._refresh(user_id, holdings, None)

    async def _refresh(
        self,
        user_id: int,
        holdings: list[tuple[InventoryItemVariantDB, str]],
        before_each: BeforeEach | None,
    ) -> int:
        if not holdings:
            return 0

        holding_ids_by_card: dict[str, list[int]] = defaultdict(list)
        for holding, card_external_id in holdings:
            holding_ids_by_card[card_external_id].append(holding.id)

        card_ids = list(holding_ids_by_card)
        batch_size = self._synchronizer.page_size
        marked = 0

        for start in range(0, len(card_ids), batch_size):
            if before_each is not None:
                await before_each()

            batch = card_ids[start : start + batch_size]
            await self._synchronizer.sync_batch(batch)

            holding_ids = [hid for card_id in batch for hid in holding_ids_by_card[card_id]]
            await mark_price_updated(self._session, holding_ids, self._clock())
            await self._session.commit()
            marked += len(holding_ids)

        logger.info(
            "INVENTORY_PRICES_REFRESHED",
            extra={"user_id": user_id, "cards": len(card_ids), "holdings": marked},
        )
        return marked
