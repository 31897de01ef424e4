"""
Inventory endpoints.

Adding a card creates one holding per known variant; quantities are then set
per holding. Price refresh is manual here; the worker refreshes stale
holdings on its own schedule.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.api.deps import HttpDep, SessionDep, build_synchronizer, require_user
from mythicstats.db.operations import list_holdings
from mythicstats.models.db import InventoryItemDB, InventoryItemVariantDB
from mythicstats.models.failure import ApiResponse, create_success
from mythicstats.services.inventory import InventoryService, InventoryTotals, ResyncResult
from mythicstats.services.price_update import PriceUpdateService

router = APIRouter(prefix="/users/{user_id}/inventory", tags=["inventory"])


class AddCardRequest(BaseModel):
    card_id: int
    notes: str | None = None


class QuantityRequest(BaseModel):
    quantity: int


class HoldingResponse(BaseModel):
    id: int
    variant_id: int
    quantity: int

    @classmethod
    def from_db(cls, holding: InventoryItemVariantDB) -> "HoldingResponse":
        return cls(id=holding.id, variant_id=holding.variant_id, quantity=holding.quantity)


class InventoryItemResponse(BaseModel):
    id: int
    card_id: int
    notes: str | None = None
    holdings: list[HoldingResponse] = Field(default_factory=list)


class RemovedResponse(BaseModel):
    removed: bool


class PriceRefreshResponse(BaseModel):
    holdings_refreshed: int


async def _item_response(session: AsyncSession, item: InventoryItemDB) -> InventoryItemResponse:
    holdings = await list_holdings(session, item.id)
    return InventoryItemResponse(
        id=item.id,
        card_id=item.card_id,
        notes=item.notes,
        holdings=[HoldingResponse.from_db(h) for h in holdings],
    )


@router.post("", response_model=ApiResponse[InventoryItemResponse])
async def add_card(
    user_id: int, request: AddCardRequest, session: SessionDep
) -> ApiResponse[InventoryItemResponse]:
    await require_user(session, user_id)
    item = await InventoryService(session).add_card_to_inventory(
        user_id, request.card_id, request.notes
    )
    return create_success(await _item_response(session, item))


@router.delete("/{item_id}", response_model=ApiResponse[RemovedResponse])
async def remove_card(
    user_id: int, item_id: int, session: SessionDep
) -> ApiResponse[RemovedResponse]:
    removed = await InventoryService(session).remove_card_from_inventory(item_id, user_id)
    return create_success(RemovedResponse(removed=removed))


@router.put("/holdings/{holding_id}", response_model=ApiResponse[HoldingResponse])
async def set_quantity(
    user_id: int, holding_id: int, request: QuantityRequest, session: SessionDep
) -> ApiResponse[HoldingResponse]:
    holding = await InventoryService(session).update_variant_quantity(
        holding_id, request.quantity, user_id
    )
    return create_success(HoldingResponse.from_db(holding))


@router.post("/{item_id}/resync", response_model=ApiResponse[ResyncResult])
async def resync_variants(
    user_id: int, item_id: int, session: SessionDep
) -> ApiResponse[ResyncResult]:
    """Add holdings for new variants and drop holdings for vanished ones."""
    return create_success(
        await InventoryService(session).resync_inventory_variants(item_id, user_id)
    )


@router.get("/{item_id}/totals", response_model=ApiResponse[InventoryTotals])
async def get_totals(
    user_id: int, item_id: int, session: SessionDep
) -> ApiResponse[InventoryTotals]:
    return create_success(await InventoryService(session).totals(item_id, user_id))


@router.post("/refresh-prices", response_model=ApiResponse[PriceRefreshResponse])
async def refresh_prices(
    user_id: int, session: SessionDep, http: HttpDep, item_id: int | None = None
) -> ApiResponse[PriceRefreshResponse]:
    """Refresh prices now, ignoring staleness; optionally for one item only."""
    synchronizer = await build_synchronizer(session, http, user_id)
    refreshed = await PriceUpdateService(session, synchronizer).update_prices_for_inventory(
        user_id, inventory_item_id=item_id
    )
    return create_success(PriceRefreshResponse(holdings_refreshed=refreshed))
