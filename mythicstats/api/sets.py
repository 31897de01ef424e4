"""
Set summary endpoint.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from mythicstats.api.deps import SessionDep
from mythicstats.db.catalog import count_cards_in_set, find_by_id, price_range_for_set
from mythicstats.models.db import SetDB
from mythicstats.models.failure import ApiResponse, create_success
from mythicstats.services.errors import CatalogNotFoundError

router = APIRouter(prefix="/sets", tags=["sets"])


class SetSummaryResponse(BaseModel):
    set_id: int
    external_id: str
    name: str
    release_date: str | None = None
    card_count: int
    min_price: float
    max_price: float


@router.get("/{set_id}/summary", response_model=ApiResponse[SetSummaryResponse])
async def get_set_summary(set_id: int, session: SessionDep) -> ApiResponse[SetSummaryResponse]:
    """Stored card count and variant price range of a set."""
    card_set = await find_by_id(session, SetDB, set_id)
    if card_set is None:
        raise CatalogNotFoundError("Set", set_id)

    low, high = await price_range_for_set(session, set_id)
    return create_success(
        SetSummaryResponse(
            set_id=card_set.id,
            external_id=card_set.external_id,
            name=card_set.name,
            release_date=card_set.release_date,
            card_count=await count_cards_in_set(session, set_id),
            min_price=low,
            max_price=high,
        )
    )
