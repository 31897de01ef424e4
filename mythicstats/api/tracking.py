"""
Tracking endpoints.

Track/untrack games and sets, and trigger one-off discovery or sync. Sync
and discovery call the pricing API on the user's budget; an exhausted budget
comes back as a rate-limited failure naming when to try again.
"""

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from mythicstats.api.deps import HttpDep, SessionDep, build_synchronizer
from mythicstats.models.failure import ApiResponse, create_success
from mythicstats.services.catalog_sync import SyncResult
from mythicstats.services.tracking import TrackingService

router = APIRouter(prefix="/users/{user_id}", tags=["tracking"])


class TrackedGameResponse(BaseModel):
    game_id: int
    is_active: bool
    last_discovery_at: datetime | None = None


class TrackedSetResponse(BaseModel):
    set_id: int
    is_active: bool
    last_sync_at: datetime | None = None


class UntrackResponse(BaseModel):
    removed: bool


class SyncResponse(BaseModel):
    """Counters of a sync run; `performed` is False when it was not due."""

    performed: bool
    pages: int = 0
    received: int = 0
    written: int = 0
    skipped: int = 0
    dropped: int = 0
    variants: int = 0

    @classmethod
    def from_result(cls, result: SyncResult | None) -> "SyncResponse":
        if result is None:
            return cls(performed=False)
        return cls(performed=True, **asdict(result))


@router.post("/games/{game_id}/track", response_model=ApiResponse[TrackedGameResponse])
async def track_game(
    user_id: int, game_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[TrackedGameResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    tracked = await tracking.track_game(user_id, game_id)
    return create_success(
        TrackedGameResponse(
            game_id=tracked.game_id,
            is_active=tracked.is_active,
            last_discovery_at=tracked.last_discovery_at,
        )
    )


@router.delete("/games/{game_id}/track", response_model=ApiResponse[UntrackResponse])
async def untrack_game(
    user_id: int, game_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[UntrackResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    return create_success(UntrackResponse(removed=await tracking.untrack_game(user_id, game_id)))


@router.post("/games/{game_id}/discover", response_model=ApiResponse[SyncResponse])
async def discover_sets(
    user_id: int, game_id: int, session: SessionDep, http: HttpDep, force: bool = False
) -> ApiResponse[SyncResponse]:
    """Discover the sets of one game now."""
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    result = await tracking.discover_sets(user_id, game_id, force=force)
    return create_success(SyncResponse.from_result(result))


@router.post("/sets/{set_id}/track", response_model=ApiResponse[TrackedSetResponse])
async def track_set(
    user_id: int, set_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[TrackedSetResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    tracked = await tracking.track_set(user_id, set_id)
    return create_success(
        TrackedSetResponse(
            set_id=tracked.set_id, is_active=tracked.is_active, last_sync_at=tracked.last_sync_at
        )
    )


@router.delete("/sets/{set_id}/track", response_model=ApiResponse[UntrackResponse])
async def untrack_set(
    user_id: int, set_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[UntrackResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    return create_success(UntrackResponse(removed=await tracking.untrack_set(user_id, set_id)))


@router.post("/games/{game_id}/toggle", response_model=ApiResponse[TrackedGameResponse])
async def toggle_game(
    user_id: int, game_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[TrackedGameResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    tracked = await tracking.toggle_game_tracking(user_id, game_id)
    return create_success(
        TrackedGameResponse(
            game_id=tracked.game_id,
            is_active=tracked.is_active,
            last_discovery_at=tracked.last_discovery_at,
        )
    )


@router.post("/sets/{set_id}/toggle", response_model=ApiResponse[TrackedSetResponse])
async def toggle_set(
    user_id: int, set_id: int, session: SessionDep, http: HttpDep
) -> ApiResponse[TrackedSetResponse]:
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    tracked = await tracking.toggle_set_tracking(user_id, set_id)
    return create_success(
        TrackedSetResponse(
            set_id=tracked.set_id, is_active=tracked.is_active, last_sync_at=tracked.last_sync_at
        )
    )


@router.post("/sets/{set_id}/sync", response_model=ApiResponse[SyncResponse])
async def sync_set(
    user_id: int, set_id: int, session: SessionDep, http: HttpDep, force: bool = False
) -> ApiResponse[SyncResponse]:
    """Sync the cards of one set now; `force` ignores the staleness gate."""
    tracking = TrackingService(session, await build_synchronizer(session, http, user_id))
    result = await tracking.sync_set(user_id, set_id, force=force)
    return create_success(SyncResponse.from_result(result))
