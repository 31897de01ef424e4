from mythicstats.db.catalog import (
    count_cards_in_set,
    find_by_external_id,
    find_by_id,
    price_range_for_set,
    upsert_by_external_id,
    upsert_if_newer,
)
from mythicstats.db.database import async_session_factory, get_session, init_db
from mythicstats.db.operations import (
    create_user,
    get_tracked_game,
    get_tracked_set,
    get_user,
    list_active_tracked_games,
    list_active_tracked_sets,
    list_users,
    track_game,
    track_set,
    untrack_game,
    untrack_set,
)

__all__ = [
    "async_session_factory",
    "count_cards_in_set",
    "create_user",
    "find_by_external_id",
    "find_by_id",
    "get_session",
    "get_tracked_game",
    "get_tracked_set",
    "get_user",
    "init_db",
    "list_active_tracked_games",
    "list_active_tracked_sets",
    "list_users",
    "price_range_for_set",
    "track_game",
    "track_set",
    "untrack_game",
    "untrack_set",
    "upsert_by_external_id",
    "upsert_if_newer",
]
