"""
SQLAlchemy ORM models for persistent storage.

Catalog tables (games, sets, cards, card variants) are shared by every user and
keyed by the pricing API's external ids. Tracking and inventory tables are per
user.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserDB(Base):
    """
    A user and their pricing API quota ledger.

    The quota columns are overwritten from upstream usage reports only.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Quota ledger
    api_plan: Mapped[str | None] = mapped_column(String(100), nullable=True)
    api_monthly_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_daily_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_rate_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_requests_used: Mapped[int] = mapped_column(Integer, default=0)
    api_daily_requests_used: Mapped[int] = mapped_column(Integer, default=0)
    api_requests_remaining: Mapped[int] = mapped_column(Integer, default=0)
    api_daily_requests_remaining: Mapped[int] = mapped_column(Integer, default=0)
    api_limit_info_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<UserDB(id={self.id}, email={self.email})>"


class GameDB(Base):
    """A trading card game known to the pricing API."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cards_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sets_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Upstream epoch watermark, not wall-clock
    last_updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    sets: Mapped[list["SetDB"]] = relationship(back_populates="game")

    def __repr__(self) -> str:
        return f"<GameDB(id={self.id}, external_id={self.external_id})>"


class SetDB(Base):
    """A card set belonging to a game."""

    __tablename__ = "sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), index=True
    )
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    release_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    cards_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    game: Mapped["GameDB"] = relationship(back_populates="sets")
    cards: Mapped[list["CardDB"]] = relationship(back_populates="set")

    def __repr__(self) -> str:
        return f"<SetDB(id={self.id}, external_id={self.external_id})>"


class CardDB(Base):
    """A card belonging to a set."""

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    set_id: Mapped[int] = mapped_column(Integer, ForeignKey("sets.id", ondelete="CASCADE"), index=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tcgplayer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    set: Mapped["SetDB"] = relationship(back_populates="cards")
    variants: Mapped[list["CardVariantDB"]] = relationship(back_populates="card")

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, external_id={self.external_id})>"


class CardVariantDB(Base):
    """
    One condition/printing/language price point of a card.

    Variants are overwritten on every sync; they carry no watermark guard.
    """

    __tablename__ = "card_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), index=True
    )
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    tcgplayer_sku_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str] = mapped_column(String(100))
    printing: Mapped[str | None] = mapped_column(String(100), nullable=True)
    language: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), default="USD")
    last_updated: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Price statistics
    price_change_24hr: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_change_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_price_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_price_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_price_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    trend_slope_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_history_7d: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    price_change_30d: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_price_30d: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_price_30d: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_price_30d: Mapped[float | None] = mapped_column(Float, nullable=True)
    trend_slope_30d: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_change_90d: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_price_90d: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_price_90d: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_price_90d: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_price_all_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_price_all_time: Mapped[float | None] = mapped_column(Float, nullable=True)

    card: Mapped["CardDB"] = relationship(back_populates="variants")

    def __repr__(self) -> str:
        return f"<CardVariantDB(id={self.id}, external_id={self.external_id})>"


class TrackedGameDB(Base):
    """A user's opt-in to periodic set discovery for a game."""

    __tablename__ = "tracked_games"
    __table_args__ = (UniqueConstraint("user_id", "game_id", name="uq_tracked_game"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Wall-clock staleness watermark
    last_discovery_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    game: Mapped["GameDB"] = relationship()

    def __repr__(self) -> str:
        return f"<TrackedGameDB(user_id={self.user_id}, game_id={self.game_id})>"


class TrackedSetDB(Base):
    """A user's opt-in to periodic card sync for a set."""

    __tablename__ = "tracked_sets"
    __table_args__ = (UniqueConstraint("user_id", "set_id", name="uq_tracked_set"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    set_id: Mapped[int] = mapped_column(Integer, ForeignKey("sets.id", ondelete="CASCADE"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    set: Mapped["SetDB"] = relationship()

    def __repr__(self) -> str:
        return f"<TrackedSetDB(user_id={self.user_id}, set_id={self.set_id})>"


class InventoryItemDB(Base):
    """A card in a user's inventory."""

    __tablename__ = "inventory_items"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_inventory_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[int] = mapped_column(Integer, ForeignKey("cards.id"), index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    card: Mapped["CardDB"] = relationship()
    # Holdings are deleted explicitly before the item (see InventoryService)
    variants: Mapped[list["InventoryItemVariantDB"]] = relationship(
        back_populates="inventory_item", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<InventoryItemDB(user_id={self.user_id}, card_id={self.card_id})>"


class InventoryItemVariantDB(Base):
    """How many copies of one card variant a user holds."""

    __tablename__ = "inventory_item_variants"
    __table_args__ = (
        UniqueConstraint("inventory_item_id", "variant_id", name="uq_inventory_variant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inventory_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inventory_items.id"), index=True
    )
    variant_id: Mapped[int] = mapped_column(Integer, ForeignKey("card_variants.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_price_update_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    inventory_item: Mapped["InventoryItemDB"] = relationship(back_populates="variants")
    variant: Mapped["CardVariantDB"] = relationship()

    def __repr__(self) -> str:
        return f"<InventoryItemVariantDB(variant_id={self.variant_id}, qty={self.quantity})>"
