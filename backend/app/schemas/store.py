"""Store request/response schemas and the typed order lines they convert to."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, PositiveInt

from common.core.app_error import Errors
from common.core.enjin_client import ChainToken
from common.core.game_client import PlayerProfile
from common.ids import ItemId, OfferId, OrderId
from common.utils.json_model import JsonModel
from storefront_db.models.order import OrderStatus, PaymentMethod
from storefront_db.schemas.catalog import Offer

ASCENSION_ID = "ASCENSION"

# Names the payment rails went by before they were generalized
_PAYMENT_METHOD_NAMES = {
    "CARD": PaymentMethod.CARD,
    "PAYPAL": PaymentMethod.CARD,
    "CRYPTO": PaymentMethod.CRYPTO,
    "ETHER": PaymentMethod.CRYPTO,
}


def parse_payment_method(value: str) -> PaymentMethod:
    method = _PAYMENT_METHOD_NAMES.get(value.upper())
    if method is None:
        raise Errors.Store.UNKNOWN_PAYMENT_METHOD.create(details={"payment_method": value})
    return method


class ResponseStatus(StrEnum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    SCREENED = "SCREENED"
    LINKED = "LINKED"
    MUST_LINK = "MUST_LINK"


class CatalogLine(JsonModel):
    kind: Literal["catalog"] = "catalog"
    offer_id: OfferId
    amount: int = Field(gt=0)


class AscensionLine(JsonModel):
    kind: Literal["ascension"] = "ascension"
    items: dict[ItemId, PositiveInt] = Field(default_factory=dict)


OrderLine = Annotated[CatalogLine | AscensionLine, Field(discriminator="kind")]


class RequestedService(JsonModel):
    """A cart entry as the client sends it: ``{id, amount}`` or ``{id: "ASCENSION", checkoutItems}``."""

    id: OfferId | Literal["ASCENSION"]
    amount: int | None = None
    checkout_items: dict[ItemId, int] | None = None

    def to_line(self) -> CatalogLine | AscensionLine:
        if self.id == ASCENSION_ID:
            # Non-positive entries are not part of the request
            items = {item_id: amount for item_id, amount in (self.checkout_items or {}).items() if amount > 0}
            return AscensionLine(items=items)
        if self.amount is None or self.amount < 1:
            raise Errors.Generic.INVALID_INPUT.create("Requested amount must be at least 1", details={"offer_id": self.id})
        return CatalogLine(offer_id=self.id, amount=self.amount)


class SalesRequest(JsonModel):
    offer_id_filter: list[OfferId] | None = None


class SalesResponse(JsonModel):
    status: ResponseStatus = ResponseStatus.SUCCESS
    offers: list[Offer]


class DiscountRequest(JsonModel):
    address: str


class DiscountResponse(JsonModel):
    status: ResponseStatus = ResponseStatus.SUCCESS
    discount: float


class CheckoutRequest(JsonModel):
    requested_services: list[RequestedService] = Field(min_length=1)
    payment_method: str
    purchaser: str | None = None

    def lines(self) -> list[CatalogLine | AscensionLine]:
        return [service.to_line() for service in self.requested_services]


class CardCheckoutResponse(JsonModel):
    order_id: str = Field(alias="orderID")
    client_secret: str | None = None


class CryptoCheckoutResponse(JsonModel):
    nonce: int = 0
    gas_limit: int
    to: str
    data: str
    value: str


class ApproveRequest(JsonModel):
    order_id: str = Field(alias="orderID")


class ConfirmTransactionRequest(JsonModel):
    order_id: OrderId = Field(alias="orderID")
    transaction_hash: str


class FulfillmentResponse(JsonModel):
    order_id: OrderId = Field(alias="orderID")
    status: OrderStatus
    failed_steps: list[str] = Field(default_factory=list)


class ScreenItemsRequest(BaseModel):
    unscreened_items: list[dict[str, Any]] = Field(alias="unscreenedItems")


class ScreenItemsResponse(JsonModel):
    status: ResponseStatus = ResponseStatus.SCREENED
    screened_items: list[dict[str, Any]]


class ConnectResponse(JsonModel):
    status: ResponseStatus
    address: str | None = None
    inventory: list[ChainToken] | None = None
    code: str | None = None
    qr: str | None = None


class ErrorResponse(JsonModel):
    status: ResponseStatus = ResponseStatus.ERROR
    code: str
    message: str


class PriceQuote(JsonModel):
    """What the buyer was asked to send for a crypto order."""

    value_wei: int
    rate: Decimal
    to: str


class Player(PlayerProfile):
    """The signed-in player together with the game token they authenticated with."""

    token: str = Field(exclude=True)
