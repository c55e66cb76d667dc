"""Order pricing and validation.

Turns the lines a player asked for into an ``OrderManifest`` priced against live stock,
live inventory and the buyer's discount. Pricing never writes anything.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.store import AscensionLine, CatalogLine, Player
from app.services.catalog_service import CatalogService
from app.services.discount_service import DiscountService
from common.core.app_error import Errors
from common.core.config_service import StoreSection
from common.core.game_client import GameClient
from common.ids import ItemId, OfferId
from common.utils.utils import get_logger, round_currency
from storefront_db.crud.catalog import CatalogDAO
from storefront_db.schemas.catalog import Offer
from storefront_db.schemas.manifest import LineKind, OrderManifest, PricedContent, PricedLine

logger = get_logger(__name__)

ASCENSION_NAME = "Ascension"


class PricingService:
    def __init__(
        self,
        catalog_service: CatalogService,
        catalog_dao: CatalogDAO,
        discount_service: DiscountService,
        game_client: GameClient,
        config: StoreSection,
    ) -> None:
        self.catalog_service = catalog_service
        self.catalog_dao = catalog_dao
        self.discount_service = discount_service
        self.game_client = game_client
        self.config = config

    async def price_order(
        self,
        db: AsyncSession,
        player: Player,
        lines: Sequence[CatalogLine | AscensionLine],
        buyer_address: str | None = None,
    ) -> OrderManifest:
        """Validate ``lines`` and price them.

        Raises, on the first failed check:
            ASCENSION_DISABLED, EMPTY_ASCENSION_REQUEST, INSUFFICIENT_INVENTORY, INVENTORY_UNAVAILABLE:
                the ascension line cannot be honoured
            UNKNOWN_OFFER, OUT_OF_STOCK, CATALOG_UNAVAILABLE: a catalog line cannot be honoured
        """
        ascension_lines = [line for line in lines if isinstance(line, AscensionLine)]
        if len(ascension_lines) > 1:
            raise Errors.Generic.INVALID_INPUT.create("Only one ascension line is allowed per order")
        quantities = self._merge_catalog_lines([line for line in lines if isinstance(line, CatalogLine)])

        ascension_items: dict[ItemId, int] = {}
        if ascension_lines:
            ascension_items = await self._validate_ascension(player, ascension_lines[0])

        offers = await self._validate_catalog(db, quantities)

        address = buyer_address or await self.catalog_dao.get_last_address(db, player.user_id)
        percent, multiplier = await self.discount_service.multiplier_for(address)

        priced: list[PricedLine] = [self._price_offer(offers[offer_id], quantity, multiplier) for offer_id, quantity in quantities.items()]
        if ascension_items:
            priced.append(self._price_ascension(ascension_items, multiplier))

        total = round_currency(sum((line.line_total for line in priced), Decimal("0")))
        manifest = OrderManifest(lines=priced, total_cost=total, discount_multiplier=multiplier, discount_percent=percent)
        logger.info("Priced order", user_id=player.user_id, total_cost=total, discount_percent=percent, lines=len(priced))
        return manifest

    @staticmethod
    def _merge_catalog_lines(lines: Sequence[CatalogLine]) -> dict[OfferId, int]:
        # Repeated offers are bought as one line, in first-seen order
        quantities: dict[OfferId, int] = {}
        for line in lines:
            quantities[line.offer_id] = quantities.get(line.offer_id, 0) + line.amount
        return quantities

    async def _validate_ascension(self, player: Player, line: AscensionLine) -> dict[ItemId, int]:
        if not self.config.ascension_enabled:
            raise Errors.Store.ASCENSION_DISABLED.create()

        requested = dict(line.items)
        if not requested:
            raise Errors.Store.EMPTY_ASCENSION_REQUEST.create()

        inventory = await self.game_client.get_inventory(player.token)
        owned: dict[ItemId, int] = {}
        for item in inventory:
            owned[item.item_id] = owned.get(item.item_id, 0) + item.amount

        missing = {item_id: amount for item_id, amount in requested.items() if owned.get(item_id, 0) < amount}
        if missing:
            raise Errors.Store.INSUFFICIENT_INVENTORY.create(
                details={"items": {str(item_id): {"requested": amount, "owned": owned.get(item_id, 0)} for item_id, amount in missing.items()}}
            )
        return requested

    async def _validate_catalog(self, db: AsyncSession, quantities: dict[OfferId, int]) -> dict[OfferId, Offer]:
        if not quantities:
            return {}

        # Sold-out offers still exist; they must fail the stock check, not look unknown
        catalog = await self.catalog_service.list_offers(db, set(quantities), include_sold_out=True)
        offers = {offer.offer_id: offer for offer in catalog}
        for offer_id, quantity in quantities.items():
            offer = offers.get(offer_id)
            if offer is None:
                raise Errors.Store.UNKNOWN_OFFER.create(details={"offer_id": offer_id})
            for entry in offer.contents:
                if entry.amount_per_unit * quantity > entry.available_for_purchase:
                    raise Errors.Store.OUT_OF_STOCK.create(
                        details={
                            "offer_id": offer_id,
                            "item_id": entry.item_id,
                            "requested": entry.amount_per_unit * quantity,
                            "available": entry.available_for_purchase,
                        }
                    )
        return offers

    @staticmethod
    def _price_offer(offer: Offer, quantity: int, multiplier: Decimal) -> PricedLine:
        unit_price = offer.price * multiplier
        return PricedLine(
            kind=LineKind.CATALOG,
            offer_id=offer.offer_id,
            name=offer.metadata.name,
            description=offer.metadata.description,
            unit_price=unit_price,
            quantity=quantity,
            line_total=round_currency(unit_price * quantity),
            contents=[PricedContent(item_id=entry.item_id, amount_per_unit=entry.amount_per_unit) for entry in offer.contents],
        )

    def _price_ascension(self, items: dict[ItemId, int], multiplier: Decimal) -> PricedLine:
        unit_price = self.config.ascension_cost * multiplier
        return PricedLine(
            kind=LineKind.ASCENSION,
            name=ASCENSION_NAME,
            description=self.config.ascension_description,
            unit_price=unit_price,
            quantity=len(items),
            line_total=round_currency(unit_price * len(items)),
            ascension_items=items,
        )
