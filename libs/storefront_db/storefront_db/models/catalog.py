"""Catalog models: sale offers, their bundled items, item-to-token mapping and player addresses."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from common.ids import ItemId, OfferId, TokenId, UserId
from storefront_db.db import Base


class SaleOffer(Base):
    __tablename__ = "sale_offers"

    id: Mapped[OfferId] = mapped_column(Integer, primary_key=True, autoincrement=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    contents: Mapped[list[OfferContent]] = relationship(
        back_populates="offer",
        order_by="OfferContent.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OfferContent(Base):
    """One bundled item of an offer with its live stock count."""

    __tablename__ = "offer_contents"
    __table_args__ = (UniqueConstraint("offer_id", "item_id", name="uq_offer_contents_offer_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_id: Mapped[OfferId] = mapped_column(ForeignKey("sale_offers.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id: Mapped[ItemId] = mapped_column(Integer, nullable=False)
    amount_per_unit: Mapped[int] = mapped_column(Integer, nullable=False)
    available_for_purchase: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    offer: Mapped[SaleOffer] = relationship(back_populates="contents")


class ItemToken(Base):
    """Maps a game item to its token on a given network."""

    __tablename__ = "item_tokens"
    __table_args__ = (UniqueConstraint("network", "token_id", name="uq_item_tokens_network_token"),)

    item_id: Mapped[ItemId] = mapped_column(Integer, primary_key=True, autoincrement=False)
    network: Mapped[str] = mapped_column(String(64), primary_key=True)
    token_id: Mapped[TokenId] = mapped_column(String(128), nullable=False)


class PlayerAddress(Base):
    """Last chain address recorded for a player when their wallet was linked."""

    __tablename__ = "player_addresses"

    user_id: Mapped[UserId] = mapped_column(String(128), primary_key=True)
    last_address: Mapped[str] = mapped_column(String(64), nullable=False)
