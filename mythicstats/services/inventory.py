"""
Inventory service.

Holding rows (one per card variant) are created and deleted here, explicitly,
alongside their inventory item. Callers own the transaction: nothing in this
module commits, so a failure part-way leaves nothing behind once the caller
rolls back.
"""

import logging

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db import operations
from mythicstats.db.catalog import find_by_id
from mythicstats.models.db import CardDB, InventoryItemDB, InventoryItemVariantDB
from mythicstats.models.failure import FailureKind, KnownError
from mythicstats.services.errors import CatalogNotFoundError

logger = logging.getLogger(__name__)


class InventoryTotals(BaseModel):
    inventory_item_id: int
    total_quantity: int
    total_value: float


class ResyncResult(BaseModel):
    added: int
    removed: int


class InventoryService:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add_card_to_inventory(
        self, user_id: int, card_id: int, notes: str | None = None
    ) -> InventoryItemDB:
        """
        Add a card to the user's inventory.

        Creates the inventory item and one zero-quantity holding per known
        variant of the card. Adding a card that is already held only updates
        its notes.
        """
        card = await find_by_id(self._session, CardDB, card_id)
        if card is None:
            raise CatalogNotFoundError("Card", card_id)

        existing = await operations.get_inventory_item_for_card(self._session, user_id, card_id)
        if existing is not None:
            if notes is not None:
                existing.notes = notes
                await self._session.flush()
            return existing

        item = InventoryItemDB(user_id=user_id, card_id=card_id, notes=notes)
        self._session.add(item)
        await self._session.flush()

        variants = await operations.list_card_variants(self._session, card_id)
        for variant in variants:
            await operations.create_holding(self._session, item.id, variant.id)

        logger.info(
            "INVENTORY_ITEM_CREATED",
            extra={"user_id": user_id, "card_id": card_id, "holdings": len(variants)},
        )
        return item

    async def remove_card_from_inventory(self, inventory_item_id: int, user_id: int) -> bool:
        """
        Remove an inventory item and its holdings.

        Returns False if the item does not exist or is not the user's.
        """
        item = await operations.get_inventory_item(self._session, inventory_item_id, user_id)
        if item is None:
            return False

        removed = await operations.delete_holdings(self._session, item.id)
        await self._session.delete(item)
        await self._session.flush()

        logger.info(
            "INVENTORY_ITEM_REMOVED",
            extra={"user_id": user_id, "inventory_item_id": inventory_item_id, "holdings": removed},
        )
        return True

    async def update_variant_quantity(
        self, holding_id: int, quantity: int, user_id: int
    ) -> InventoryItemVariantDB:
        if quantity < 0:
            raise KnownError(
                kind=FailureKind.INVALID_INPUT,
                message="Quantity cannot be negative",
                detail=f"Got quantity={quantity}",
            )

        holding = await operations.get_holding(self._session, holding_id, user_id)
        if holding is None:
            raise CatalogNotFoundError("InventoryItemVariant", holding_id)

        holding.quantity = quantity
        await self._session.flush()
        return holding

    async def resync_inventory_variants(self, inventory_item_id: int, user_id: int) -> ResyncResult:
        """
        Align an item's holdings with the card's current variants.

        New variants get a zero-quantity holding; holdings whose variant no
        longer belongs to the card are removed.
        """
        item = await operations.get_inventory_item(self._session, inventory_item_id, user_id)
        if item is None:
            raise CatalogNotFoundError("InventoryItem", inventory_item_id)

        variant_ids = {v.id for v in await operations.list_card_variants(self._session, item.card_id)}
        holdings = await operations.list_holdings(self._session, item.id)
        held_ids = {h.variant_id for h in holdings}

        added = 0
        for variant_id in sorted(variant_ids - held_ids):
            await operations.create_holding(self._session, item.id, variant_id)
            added += 1

        removed = 0
        for holding in holdings:
            if holding.variant_id not in variant_ids:
                await self._session.delete(holding)
                removed += 1

        await self._session.flush()
        return ResyncResult(added=added, removed=removed)

    async def totals(self, inventory_item_id: int, user_id: int) -> InventoryTotals:
        item = await operations.get_inventory_item(self._session, inventory_item_id, user_id)
        if item is None:
            raise CatalogNotFoundError("InventoryItem", inventory_item_id)

        quantity, value = await operations.inventory_item_totals(self._session, item.id)
        return InventoryTotals(
            inventory_item_id=item.id, total_quantity=quantity, total_value=round(value, 2)
        )
