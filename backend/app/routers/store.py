"""Store routes: catalog, discount, checkout and payment confirmation."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import (
    get_catalog_service,
    get_checkout_service,
    get_config_service,
    get_current_player,
    get_db,
    get_discount_service,
    get_fulfillment_service,
    get_player_service,
)
from app.schemas.store import (
    ApproveRequest,
    CardCheckoutResponse,
    CheckoutRequest,
    ConfirmTransactionRequest,
    ConnectResponse,
    CryptoCheckoutResponse,
    DiscountRequest,
    DiscountResponse,
    FulfillmentResponse,
    Player,
    SalesRequest,
    SalesResponse,
    ScreenItemsRequest,
    ScreenItemsResponse,
)
from app.services.catalog_service import CatalogService
from app.services.checkout_service import CheckoutService
from app.services.discount_service import DiscountService
from app.services.fulfillment_service import FulfillmentService
from app.services.player_service import PlayerService
from common.core.app_error import Errors
from common.core.config_service import ConfigService
from storefront_db.models.order import OrderStatus

router = APIRouter(tags=["store"])


def _fulfillment_response(result: FulfillmentResponse) -> JSONResponse:
    status_code = status.HTTP_400_BAD_REQUEST if result.status == OrderStatus.FAILED else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=result.to_dict(mode="json"))


@router.post("/sales", response_model=SalesResponse, response_model_exclude_none=True)
async def list_sales(
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog_service: Annotated[CatalogService, Depends(get_catalog_service)],
    req: SalesRequest | None = None,
) -> SalesResponse:
    filter_ids = req.offer_id_filter if req else None
    offers = await catalog_service.list_offers(db, set(filter_ids) if filter_ids is not None else None)
    return SalesResponse(offers=offers)


@router.post("/get-discount", response_model=DiscountResponse)
async def get_discount(
    req: DiscountRequest,
    discount_service: Annotated[DiscountService, Depends(get_discount_service)],
) -> DiscountResponse:
    discount = await discount_service.discount_for(req.address)
    return DiscountResponse(discount=float(discount))


@router.post("/checkout", response_model=CardCheckoutResponse | CryptoCheckoutResponse, response_model_exclude_none=True)
async def checkout(
    req: CheckoutRequest,
    player: Annotated[Player, Depends(get_current_player)],
    db: Annotated[AsyncSession, Depends(get_db)],
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CardCheckoutResponse | CryptoCheckoutResponse:
    return await checkout_service.initiate_checkout(db, player, req.lines(), req.payment_method, req.purchaser)


@router.post("/approve")
async def approve(
    req: ApproveRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    config_service: Annotated[ConfigService, Depends(get_config_service)],
    fulfillment_service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
) -> JSONResponse:
    """Fulfill a card order once the buyer approved the payment.

    200 when fulfilled, 400 when the payment does not cover the order, 500 when the provider could not be reached.
    """
    if not config_service.stripe.enabled:
        raise Errors.Store.PAYMENT_METHOD_DISABLED.create(details={"payment_method": "card"})
    result = await fulfillment_service.confirm_and_fulfill(db, req.order_id)
    return _fulfillment_response(result)


@router.post("/confirm-transaction")
async def confirm_transaction(
    req: ConfirmTransactionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    config_service: Annotated[ConfigService, Depends(get_config_service)],
    fulfillment_service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
) -> JSONResponse:
    if not config_service.chain.enabled:
        raise Errors.Store.PAYMENT_METHOD_DISABLED.create(details={"payment_method": "crypto"})
    result = await fulfillment_service.confirm_crypto_payment(db, req.order_id, req.transaction_hash)
    return _fulfillment_response(result)


@router.post("/screen-items", response_model=ScreenItemsResponse)
async def screen_items(
    req: ScreenItemsRequest,
    _player: Annotated[Player, Depends(get_current_player)],
    db: Annotated[AsyncSession, Depends(get_db)],
    player_service: Annotated[PlayerService, Depends(get_player_service)],
) -> ScreenItemsResponse:
    screened = await player_service.screen_items(db, req.unscreened_items)
    return ScreenItemsResponse(screened_items=screened)


@router.post("/connect", response_model=ConnectResponse, response_model_exclude_none=True)
async def connect(
    player: Annotated[Player, Depends(get_current_player)],
    db: Annotated[AsyncSession, Depends(get_db)],
    player_service: Annotated[PlayerService, Depends(get_player_service)],
) -> ConnectResponse:
    return await player_service.sync_player(db, player)
