"""The priced, validated description of what an order buys.

Stored verbatim on the order so fulfillment never re-prices.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import Field

from common.ids import ItemId, OfferId
from common.utils import JsonModel


class LineKind(StrEnum):
    CATALOG = "catalog"
    ASCENSION = "ascension"


class PricedContent(JsonModel):
    item_id: ItemId
    amount_per_unit: int


class PricedLine(JsonModel):
    kind: LineKind
    offer_id: OfferId | None = None
    name: str
    description: str = ""
    # Discounted, unrounded
    unit_price: Decimal
    quantity: int
    # Rounded to cents
    line_total: Decimal
    contents: list[PricedContent] = Field(default_factory=list)
    ascension_items: dict[ItemId, int] = Field(default_factory=dict)

    def mint_amounts(self) -> list[tuple[ItemId, int]]:
        """Items and amounts this line delivers to the buyer's wallet."""
        if self.kind == LineKind.ASCENSION:
            return list(self.ascension_items.items())
        return [(content.item_id, content.amount_per_unit * self.quantity) for content in self.contents]


class OrderManifest(JsonModel):
    lines: list[PricedLine]
    total_cost: Decimal
    discount_multiplier: Decimal = Decimal("1")
    discount_percent: Decimal = Decimal("0")

    @property
    def catalog_lines(self) -> list[PricedLine]:
        return [line for line in self.lines if line.kind == LineKind.CATALOG]

    @property
    def ascension_line(self) -> PricedLine | None:
        return next((line for line in self.lines if line.kind == LineKind.ASCENSION), None)
