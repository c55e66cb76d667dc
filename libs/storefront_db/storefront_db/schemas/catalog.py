from __future__ import annotations

from decimal import Decimal

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from common.ids import ItemId, OfferId
from common.utils import JsonModel


class BundleEntry(JsonModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    item_id: ItemId
    amount_per_unit: int
    available_for_purchase: int


class OfferMetadata(JsonModel):
    name: str
    description: str = ""
    image: str | None = None


class Offer(JsonModel):
    offer_id: OfferId
    price: Decimal
    metadata: OfferMetadata
    contents: list[BundleEntry] = Field(default_factory=list)

    @property
    def sold_out(self) -> bool:
        return bool(self.contents) and all(entry.available_for_purchase <= 0 for entry in self.contents)
