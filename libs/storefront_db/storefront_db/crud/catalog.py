"""DAO for catalog reads, item-token mapping and player addresses."""

from __future__ import annotations

from collections.abc import Collection

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from common.ids import ItemId, OfferId, TokenId, UserId
from common.utils.utils import get_logger
from storefront_db.models.catalog import ItemToken, OfferContent, PlayerAddress, SaleOffer
from storefront_db.schemas.catalog import BundleEntry, Offer, OfferMetadata

logger = get_logger(__name__)


def _to_offer(row: SaleOffer) -> Offer:
    return Offer(
        offer_id=row.id,
        price=row.price,
        metadata=OfferMetadata(name=row.name, description=row.description, image=row.image_url),
        contents=[BundleEntry.model_validate(content) for content in row.contents],
    )


class CatalogDAO:
    async def list_offers(self, db: AsyncSession, offer_ids: Collection[OfferId] | None = None) -> list[Offer]:
        """Active offers in catalog order, optionally restricted to ``offer_ids``."""
        query = select(SaleOffer).where(SaleOffer.active.is_(True)).order_by(SaleOffer.sort_order, SaleOffer.id)
        if offer_ids is not None:
            if not offer_ids:
                return []
            query = query.where(SaleOffer.id.in_(set(offer_ids)))
        result = await db.execute(query)
        return [_to_offer(row) for row in result.scalars().all()]

    async def token_ids_for_items(self, db: AsyncSession, item_ids: Collection[ItemId], network: str) -> dict[ItemId, TokenId]:
        if not item_ids:
            return {}
        result = await db.execute(
            select(ItemToken.item_id, ItemToken.token_id).where(ItemToken.network == network, ItemToken.item_id.in_(set(item_ids)))
        )
        return {row.item_id: row.token_id for row in result}

    async def tokenized_item_ids(self, db: AsyncSession, network: str) -> set[ItemId]:
        result = await db.execute(select(ItemToken.item_id).where(ItemToken.network == network))
        return set(result.scalars().all())

    async def item_token_ids(self, db: AsyncSession, network: str) -> set[TokenId]:
        result = await db.execute(select(ItemToken.token_id).where(ItemToken.network == network))
        return set(result.scalars().all())

    async def get_last_address(self, db: AsyncSession, user_id: UserId) -> str | None:
        result = await db.execute(select(PlayerAddress.last_address).where(PlayerAddress.user_id == user_id))
        return result.scalar_one_or_none()

    async def set_last_address(self, db: AsyncSession, user_id: UserId, address: str) -> None:
        result = await db.execute(update(PlayerAddress).where(PlayerAddress.user_id == user_id).values(last_address=address))
        if result.rowcount == 0:
            try:
                db.add(PlayerAddress(user_id=user_id, last_address=address))
                await db.commit()
                return
            except IntegrityError:
                # Recorded concurrently by another request
                await db.rollback()
                await db.execute(update(PlayerAddress).where(PlayerAddress.user_id == user_id).values(last_address=address))
        await db.commit()

    async def decrement_stock(self, db: AsyncSession, offer_id: OfferId, item_id: ItemId, amount: int) -> bool:
        """Atomically take ``amount`` off an offer entry's available stock, clamping at zero.

        Returns False when the entry is missing or held less than ``amount`` (an oversell).
        """
        entry = (OfferContent.offer_id == offer_id, OfferContent.item_id == item_id)
        result = await db.execute(
            update(OfferContent)
            .where(*entry, OfferContent.available_for_purchase >= amount)
            .values(available_for_purchase=OfferContent.available_for_purchase - amount)
        )
        if result.rowcount == 1:
            await db.commit()
            return True

        clamped = await db.execute(update(OfferContent).where(*entry).values(available_for_purchase=0))
        await db.commit()
        if clamped.rowcount == 0:
            logger.warning("Stock entry missing", offer_id=offer_id, item_id=item_id, amount=amount)
        else:
            logger.error("Offer oversold; stock clamped at zero", offer_id=offer_id, item_id=item_id, amount=amount)
        return False
