"""Catalog reader: active sale offers with their live bundle stock."""

from __future__ import annotations

from collections.abc import Collection

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.app_error import Errors
from common.core.config_service import StoreSection
from common.ids import OfferId
from common.utils.utils import get_logger
from storefront_db.crud.catalog import CatalogDAO
from storefront_db.schemas.catalog import Offer

logger = get_logger(__name__)


class CatalogService:
    def __init__(self, catalog_dao: CatalogDAO, config: StoreSection) -> None:
        self.catalog_dao = catalog_dao
        self.config = config

    async def list_offers(
        self, db: AsyncSession, filter_ids: Collection[OfferId] | None = None, *, include_sold_out: bool = False
    ) -> list[Offer]:
        """List active offers in catalog order.

        With ``filter_ids`` only those offers are returned; ids that are not in the catalog are
        simply absent from the result. Sold-out offers are dropped when the store hides them,
        unless ``include_sold_out`` is set.

        Raises:
            CATALOG_UNAVAILABLE: the catalog store could not be read
        """
        try:
            offers = await self.catalog_dao.list_offers(db, filter_ids)
        except SQLAlchemyError as e:
            logger.exception("Failed to load catalog", filter_ids=sorted(filter_ids) if filter_ids else None)
            raise Errors.Store.CATALOG_UNAVAILABLE.create(cause=e) from e

        if self.config.hide_out_of_stock and not include_sold_out:
            offers = [offer for offer in offers if not offer.sold_out]
        return offers
