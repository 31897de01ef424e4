"""
Catalog Synchronizer.

Turns upstream collection fetches into local merges:

    games -> sets (discovery) -> cards -> variants (sync)

MERGE POLICY:
- External id is the only merge key
- Games, sets and cards are skipped when the stored watermark is as new
  as the incoming one
- Variants are ALWAYS upserted, even when their card was skipped

PAGINATION:
Pages are requested with the plan page size and merged strictly in order.
A page shorter than the page size ends the loop. Every page call goes through
the sync client, which re-checks the quota ledger first, so an exhausted
budget aborts the loop with RateLimitExceededError. Merged pages are
committed as they complete.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db.catalog import find_by_external_id, upsert_by_external_id, upsert_if_newer
from mythicstats.models.db import CardDB, CardVariantDB, GameDB, SetDB, TrackedGameDB, TrackedSetDB
from mythicstats.models.upstream import CardPayload, VariantPayload
from mythicstats.services.errors import CatalogNotFoundError
from mythicstats.services.staleness import utcnow
from mythicstats.services.sync_client import SyncClient

logger = logging.getLogger(__name__)

FetchPage = Callable[[int, int], Awaitable[list[CardPayload]]]
SetResolver = Callable[[CardPayload], Awaitable[int | None]]


@dataclass
class SyncResult:
    """Counters for one synchronization unit."""

    pages: int = 0
    received: int = 0
    written: int = 0
    skipped: int = 0
    dropped: int = 0
    variants: int = 0

    def merge(self, other: "SyncResult") -> None:
        self.pages += other.pages
        self.received += other.received
        self.written += other.written
        self.skipped += other.skipped
        self.dropped += other.dropped
        self.variants += other.variants


def variant_fields(payload: VariantPayload, card_id: int) -> dict[str, Any]:
    """Database fields for a card variant snapshot."""
    return {
        "card_id": card_id,
        "tcgplayer_sku_id": payload.tcgplayer_sku_id,
        "condition": payload.condition,
        "printing": payload.printing,
        "language": payload.language,
        "price": payload.price,
        "currency": "USD",
        "last_updated": payload.last_updated,
        "price_change_24hr": payload.price_change_24hr,
        "price_change_7d": payload.price_change_7d,
        "avg_price_7d": payload.avg_price_7d,
        "min_price_7d": payload.min_price_7d,
        "max_price_7d": payload.max_price_7d,
        "trend_slope_7d": payload.trend_slope_7d,
        "price_history_7d": payload.price_history_7d,
        "price_change_30d": payload.price_change_30d,
        "avg_price_30d": payload.avg_price_30d,
        "min_price_30d": payload.min_price_30d,
        "max_price_30d": payload.max_price_30d,
        "trend_slope_30d": payload.trend_slope_30d,
        "price_change_90d": payload.price_change_90d,
        "avg_price_90d": payload.avg_price_90d,
        "min_price_90d": payload.min_price_90d,
        "max_price_90d": payload.max_price_90d,
        "min_price_all_time": payload.min_price_all_time,
        "max_price_all_time": payload.max_price_all_time,
    }


class CatalogSynchronizer:
    """Merges upstream catalog data for one user's sync client."""

    def __init__(
        self,
        session: AsyncSession,
        client: SyncClient,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._client = client
        self._clock = clock

    @property
    def page_size(self) -> int:
        return self._client.ledger.page_size

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    async def sync_games(self) -> SyncResult:
        """Fetch every game and upsert it by external id."""
        result = SyncResult(pages=1)
        for payload in await self._client.list_games():
            result.received += 1
            _, written = await upsert_if_newer(
                self._session,
                GameDB,
                payload.external_id,
                {
                    "name": payload.name,
                    "slug": payload.slug,
                    "cards_count": payload.cards_count,
                    "sets_count": payload.sets_count,
                },
                payload.last_updated,
            )
            if written:
                result.written += 1
            else:
                result.skipped += 1

        await self._session.commit()
        logger.info("GAMES_SYNCED", extra={"received": result.received, "written": result.written})
        return result

    async def sync_sets(
        self, game: GameDB, tracked_game: TrackedGameDB | None = None
    ) -> SyncResult:
        """
        Discover all sets of a game.

        When a tracking record is supplied its discovery time is stamped
        after every returned set has been processed.
        """
        result = SyncResult(pages=1)
        for payload in await self._client.list_sets(game.external_id):
            result.received += 1
            _, written = await upsert_if_newer(
                self._session,
                SetDB,
                payload.external_id,
                {
                    "game_id": game.id,
                    "name": payload.name,
                    "slug": payload.slug,
                    "release_date": payload.release_date,
                    "cards_count": payload.cards_count,
                },
                payload.last_updated,
            )
            if written:
                result.written += 1
            else:
                result.skipped += 1

        if tracked_game is not None:
            tracked_game.last_discovery_at = self._clock()

        await self._session.commit()
        logger.info(
            "SETS_DISCOVERED",
            extra={
                "game_external_id": game.external_id,
                "received": result.received,
                "written": result.written,
                "skipped": result.skipped,
            },
        )
        return result

    # -----------------------------------------------------------------------
    # Card sync
    # -----------------------------------------------------------------------

    async def sync_cards_for_set(
        self, card_set: SetDB, tracked_set: TrackedSetDB | None = None
    ) -> SyncResult:
        """
        Sync every card (and its variants) of one set.

        When a tracking record is supplied its sync time is stamped after the
        last page has been merged.
        """

        async def fetch_page(limit: int, offset: int) -> list[CardPayload]:
            return await self._client.list_cards(
                set_external_id=card_set.external_id, limit=limit, offset=offset
            )

        async def same_set(_payload: CardPayload) -> int | None:
            return card_set.id

        result = await self._paginate(fetch_page, same_set)

        if tracked_set is not None:
            tracked_set.last_sync_at = self._clock()
            await self._session.commit()

        logger.info(
            "SET_CARDS_SYNCED",
            extra={"set_external_id": card_set.external_id, **vars(result)},
        )
        return result

    async def sync_cards_for_game(self, game: GameDB) -> SyncResult:
        """Sync every card of a game, resolving each card's set locally."""

        async def fetch_page(limit: int, offset: int) -> list[CardPayload]:
            return await self._client.list_cards(
                game_external_id=game.external_id, limit=limit, offset=offset
            )

        result = await self._paginate(fetch_page, self._set_resolver())
        logger.info(
            "GAME_CARDS_SYNCED",
            extra={"game_external_id": game.external_id, **vars(result)},
        )
        return result

    async def sync_batch(self, card_external_ids: Sequence[str]) -> SyncResult:
        """
        Refresh a caller-supplied list of cards, one plan page per request.

        Used for inventory price refreshes. Cards whose set is unknown
        locally are dropped.
        """
        result = SyncResult()
        resolve_set = self._set_resolver()
        ids = list(dict.fromkeys(card_external_ids))

        for start in range(0, len(ids), self.page_size):
            chunk = ids[start : start + self.page_size]
            page = await self._client.get_cards_batch(chunk)
            result.merge(await self._merge_cards(page, resolve_set))
            await self._session.commit()

        return result

    async def sync_card(self, card_external_id: str) -> CardDB:
        """
        Fetch and merge a single card.

        Raises:
            CatalogNotFoundError: If the card is unknown upstream or its set
                is unknown locally
        """
        payloads = await self._client.get_card(card_external_id)
        if not payloads:
            raise CatalogNotFoundError("Card", card_external_id)

        payload = payloads[0]
        card_set = None
        if payload.set_external_id is not None:
            card_set = await find_by_external_id(self._session, SetDB, payload.set_external_id)
        if card_set is None:
            raise CatalogNotFoundError("Set", payload.set_external_id)

        card, _written, _variants = await self._merge_card(payload, card_set.id)
        await self._session.commit()
        return card

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    async def _paginate(
        self,
        fetch_page: FetchPage,
        set_resolver: SetResolver,
    ) -> SyncResult:
        result = SyncResult()
        page_size = self.page_size
        offset = 0

        while True:
            page = await fetch_page(page_size, offset)
            result.merge(await self._merge_cards(page, set_resolver))
            await self._session.commit()

            # A short page is the last page
            if len(page) != page_size:
                break
            offset += page_size

        return result

    def _set_resolver(self) -> SetResolver:
        """Resolve a card's upstream set reference to a local set id, cached per run."""
        cache: dict[str, int | None] = {}

        async def resolve(payload: CardPayload) -> int | None:
            key = payload.set_external_id
            if key is None:
                return None
            if key not in cache:
                card_set = await find_by_external_id(self._session, SetDB, key)
                cache[key] = card_set.id if card_set is not None else None
            return cache[key]

        return resolve

    async def _merge_cards(
        self,
        page: list[CardPayload],
        set_resolver: SetResolver,
    ) -> SyncResult:
        result = SyncResult(pages=1, received=len(page))

        for payload in page:
            set_id = await set_resolver(payload)
            if set_id is None:
                # Unknown set: skip this card only
                result.dropped += 1
                logger.debug(
                    "CARD_SET_UNRESOLVED",
                    extra={
                        "card_external_id": payload.external_id,
                        "set_external_id": payload.set_external_id,
                    },
                )
                continue

            _card, written, variants = await self._merge_card(payload, set_id)
            if written:
                result.written += 1
            else:
                result.skipped += 1
            result.variants += variants

        return result

    async def _merge_card(self, payload: CardPayload, set_id: int) -> tuple[CardDB, bool, int]:
        card, written = await upsert_if_newer(
            self._session,
            CardDB,
            payload.external_id,
            {
                "set_id": set_id,
                "name": payload.name,
                "number": payload.number,
                "rarity": payload.rarity,
                "tcgplayer_id": payload.tcgplayer_id,
            },
            payload.last_updated,
        )

        for variant in payload.variants:
            await upsert_by_external_id(
                self._session,
                CardVariantDB,
                variant.external_id,
                variant_fields(variant, card.id),
            )

        return card, written, len(payload.variants)
