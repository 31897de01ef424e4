"""
Pricing API payload models.

Only the fields the sync core consumes are modelled; everything else in the
upstream payload is ignored.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class UpstreamModel(BaseModel):
    """Base for upstream payloads: unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class UsageReport(UpstreamModel):
    """
    Authoritative usage snapshot attached to upstream responses.

    Fields left as None were not reported and must not overwrite stored values.
    """

    plan: str | None = Field(default=None, validation_alias=_alias("apiPlan", "plan"))
    monthly_limit: int | None = Field(
        default=None, validation_alias=_alias("apiRequestLimit", "monthly_limit")
    )
    daily_limit: int | None = Field(
        default=None, validation_alias=_alias("apiDailyLimit", "daily_limit")
    )
    requests_per_minute_limit: int | None = Field(
        default=None, validation_alias=_alias("apiRateLimit", "requests_per_minute_limit")
    )
    monthly_used: int | None = Field(
        default=None, validation_alias=_alias("apiRequestsUsed", "monthly_used")
    )
    daily_used: int | None = Field(
        default=None, validation_alias=_alias("apiDailyRequestsUsed", "daily_used")
    )
    monthly_remaining: int | None = Field(
        default=None, validation_alias=_alias("apiRequestsRemaining", "monthly_remaining")
    )
    daily_remaining: int | None = Field(
        default=None, validation_alias=_alias("apiDailyRequestsRemaining", "daily_remaining")
    )


class GamePayload(UpstreamModel):
    external_id: str = Field(validation_alias=_alias("id", "external_id"))
    name: str
    slug: str | None = None
    cards_count: int | None = Field(default=None, validation_alias=_alias("cards_count", "cardsCount"))
    sets_count: int | None = Field(default=None, validation_alias=_alias("sets_count", "setsCount"))
    last_updated: int | None = Field(
        default=None, validation_alias=_alias("last_updated", "lastUpdated")
    )


class SetPayload(UpstreamModel):
    external_id: str = Field(validation_alias=_alias("id", "external_id"))
    name: str
    slug: str | None = None
    release_date: str | None = Field(
        default=None, validation_alias=_alias("release_date", "releaseDate")
    )
    cards_count: int | None = Field(
        default=None, validation_alias=_alias("cards_count", "cardsCount", "count")
    )
    last_updated: int | None = Field(
        default=None, validation_alias=_alias("last_updated", "lastUpdated")
    )


class VariantPayload(UpstreamModel):
    """One condition/printing price point of a card."""

    external_id: str = Field(validation_alias=_alias("id", "external_id"))
    condition: str
    printing: str | None = None
    language: str | None = None
    price: float = 0.0
    tcgplayer_sku_id: str | None = Field(
        default=None, validation_alias=_alias("tcgplayerSkuId", "tcgplayer_sku_id")
    )
    last_updated: int | None = Field(
        default=None, validation_alias=_alias("lastUpdated", "last_updated")
    )
    price_change_24hr: float | None = Field(default=None, validation_alias="priceChange24hr")
    price_change_7d: float | None = Field(default=None, validation_alias="priceChange7d")
    avg_price_7d: float | None = Field(default=None, validation_alias="avgPrice")
    min_price_7d: float | None = Field(default=None, validation_alias="minPrice7d")
    max_price_7d: float | None = Field(default=None, validation_alias="maxPrice7d")
    trend_slope_7d: float | None = Field(default=None, validation_alias="trendSlope7d")
    price_history_7d: list[dict[str, Any]] | None = Field(
        default=None, validation_alias="priceHistory"
    )
    price_change_30d: float | None = Field(default=None, validation_alias="priceChange30d")
    avg_price_30d: float | None = Field(default=None, validation_alias="avgPrice30d")
    min_price_30d: float | None = Field(default=None, validation_alias="minPrice30d")
    max_price_30d: float | None = Field(default=None, validation_alias="maxPrice30d")
    trend_slope_30d: float | None = Field(default=None, validation_alias="trendSlope30d")
    price_change_90d: float | None = Field(default=None, validation_alias="priceChange90d")
    avg_price_90d: float | None = Field(default=None, validation_alias="avgPrice90d")
    min_price_90d: float | None = Field(default=None, validation_alias="minPrice90d")
    max_price_90d: float | None = Field(default=None, validation_alias="maxPrice90d")
    min_price_all_time: float | None = Field(default=None, validation_alias="minPriceAllTime")
    max_price_all_time: float | None = Field(default=None, validation_alias="maxPriceAllTime")

    @field_validator("tcgplayer_sku_id", mode="before")
    @classmethod
    def coerce_sku(cls, v: Any) -> str | None:
        return None if v is None else str(v)


class CardPayload(UpstreamModel):
    external_id: str = Field(validation_alias=_alias("id", "external_id"))
    name: str
    set_external_id: str | None = Field(default=None, validation_alias=_alias("set", "set_id"))
    number: str | None = None
    rarity: str | None = None
    tcgplayer_id: str | None = Field(
        default=None, validation_alias=_alias("tcgplayerId", "tcgplayer_id")
    )
    last_updated: int | None = Field(
        default=None, validation_alias=_alias("last_updated", "lastUpdated")
    )
    variants: list[VariantPayload] = Field(default_factory=list)

    @field_validator("number", "tcgplayer_id", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("variants", mode="before")
    @classmethod
    def coerce_variants(cls, v: Any) -> Any:
        return [] if v is None else v
