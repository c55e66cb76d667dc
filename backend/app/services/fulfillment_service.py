"""Fulfillment executor.

Runs once per order after its payment is confirmed: debits ascended items from the game,
mints everything the manifest bought and records the terminal status. The order row is
claimed first and marked as delivering before the first side effect, so neither a concurrent
confirmation nor a later retry ever repeats a debit or mint.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.store import FulfillmentResponse, PriceQuote
from app.services.crypto_payment_service import CryptoPaymentService
from app.services.stripe_service import StripeService
from common.core.app_error import AppException, Errors
from common.core.config_service import ChainSection
from common.core.enjin_client import ZERO_ADDRESS, EnjinClient
from common.core.game_client import GameClient
from common.core.request_context import RequestContext
from common.ids import ItemId, OfferId, OrderId, RequestId, TokenId
from common.utils.utils import get_logger
from storefront_db.crud.catalog import CatalogDAO
from storefront_db.crud.order import OrderDAO
from storefront_db.models.order import OrderStatus, PaymentMethod
from storefront_db.schemas.order import OrderRecord

logger = get_logger(__name__)

type Verification = tuple[AppException | None, dict[str, Any]]
type Verifier = Callable[[OrderRecord], Awaitable[Verification]]


class FulfillmentService:
    def __init__(
        self,
        order_dao: OrderDAO,
        catalog_dao: CatalogDAO,
        stripe_service: StripeService,
        crypto_payment_service: CryptoPaymentService,
        game_client: GameClient,
        enjin_client: EnjinClient,
        chain_config: ChainSection,
    ) -> None:
        self.order_dao = order_dao
        self.catalog_dao = catalog_dao
        self.stripe_service = stripe_service
        self.crypto_payment_service = crypto_payment_service
        self.game_client = game_client
        self.enjin_client = enjin_client
        self.chain_config = chain_config

    async def confirm_and_fulfill(self, db: AsyncSession, payment_id: str) -> FulfillmentResponse:
        """Fulfill the card order paid by ``payment_id``.

        The order id is read back from the provider's record of the payment, never from the client.

        Raises:
            PAYMENT_PROVIDER_ERROR: the payment could not be read from the provider
            ORDER_NOT_FOUND: the payment does not belong to a known order
            ORDER_BUSY: another request is fulfilling the order right now
            ORDER_NEEDS_RECONCILIATION: an earlier delivery was interrupted
            ZERO_ADDRESS: the player has no wallet to mint to; the order stays PENDING
        """
        settlement = await self.stripe_service.retrieve_payment(payment_id)
        if settlement.order_id is None:
            raise Errors.Store.ORDER_NOT_FOUND.create("Payment is not linked to an order", details={"payment_id": payment_id})

        async def verify(order: OrderRecord) -> Verification:
            if order.payment_method != PaymentMethod.CARD or order.provider_reference != settlement.id:
                failure = Errors.Store.PAYMENT_VERIFICATION_FAILED.create("Payment does not belong to this order")
                return failure, settlement.receipt
            return self.stripe_service.verify(settlement, order.total_cost), settlement.receipt

        return await self._fulfill(db, settlement.order_id, verify)

    async def confirm_crypto_payment(self, db: AsyncSession, order_id: OrderId, tx_hash: str) -> FulfillmentResponse:
        """Fulfill a crypto order once its purchase transaction is mined.

        Raises:
            TRANSACTION_PENDING: the transaction is not mined yet; the order stays PENDING
        """

        async def verify(order: OrderRecord) -> Verification:
            if order.payment_method != PaymentMethod.CRYPTO:
                return Errors.Store.PAYMENT_VERIFICATION_FAILED.create("Order is not a crypto order"), {"transaction_hash": tx_hash}
            quote = PriceQuote.model_validate(order.payment_payload) if order.payment_payload else None
            return await self.crypto_payment_service.verify(order_id, quote, tx_hash)

        return await self._fulfill(db, order_id, verify)

    async def _fulfill(self, db: AsyncSession, order_id: OrderId, verify: Verifier) -> FulfillmentResponse:
        context = RequestContext.get_or_none()
        request_id = context.request_id if context else RequestId(str(uuid.uuid4()))
        if context:
            context.order_id = order_id

        order = await self.order_dao.claim_for_fulfillment(db, order_id, request_id)
        if order.status != OrderStatus.PENDING:
            logger.info("Order already handled", order_id=order_id, status=order.status)
            return FulfillmentResponse(order_id=order_id, status=order.status)

        try:
            failure, receipt = await verify(order)
            address = None if failure else await self._mint_address(db, order)
            token_ids = await self._token_ids(db, order) if address else {}
        except Exception:
            await self.order_dao.release_claim(db, order_id, request_id)
            raise

        if failure is not None:
            logger.warning("Payment verification failed", order_id=order_id, user_id=order.user_id, reason=failure.message)
            _ = await self.order_dao.complete(db, order_id, request_id, OrderStatus.FAILED, {**receipt, "error": failure.details.to_dict(mode="json")})
            return FulfillmentResponse(order_id=order_id, status=OrderStatus.FAILED)

        if address is None:
            # Nothing has been debited or minted; the player can link a wallet and confirm again
            await self.order_dao.release_claim(db, order_id, request_id)
            raise Errors.Store.ZERO_ADDRESS.create(details={"order_id": order_id})

        if not await self.order_dao.begin_delivery(db, order_id, request_id):
            raise Errors.Store.ORDER_BUSY.create("Fulfillment claim expired before delivery", details={"order_id": order_id})

        # From here on the order is never claimed again; a failure is left for manual reconciliation
        failed_steps = await self._deliver(db, order, address, token_ids)
        if failed_steps:
            error = Errors.Store.FULFILLMENT_PARTIAL_FAILURE.create(details={"order_id": order_id, "failed_steps": failed_steps})
            logger.error("Order fulfilled with failures", order_id=order_id, user_id=order.user_id, error=error.details)

        try:
            completed = await self.order_dao.complete(
                db, order_id, request_id, OrderStatus.FULFILLED, {**receipt, "failed_steps": failed_steps}
            )
        except Exception:
            logger.exception("Delivered order could not be recorded", order_id=order_id, user_id=order.user_id, failed_steps=failed_steps)
            raise
        if not completed:
            logger.error("Delivered order was already recorded elsewhere", order_id=order_id, user_id=order.user_id)
        return FulfillmentResponse(order_id=order_id, status=OrderStatus.FULFILLED, failed_steps=failed_steps)

    async def _mint_address(self, db: AsyncSession, order: OrderRecord) -> str | None:
        address = await self.catalog_dao.get_last_address(db, order.user_id) or order.buyer_address
        if not address or address.lower() == ZERO_ADDRESS:
            return None
        return address

    async def _token_ids(self, db: AsyncSession, order: OrderRecord) -> dict[ItemId, TokenId]:
        item_ids = {item_id for line in order.manifest.lines for item_id, _ in line.mint_amounts()}
        return await self.catalog_dao.token_ids_for_items(db, item_ids, self.chain_config.network)

    async def _deliver(self, db: AsyncSession, order: OrderRecord, address: str, token_ids: dict[ItemId, TokenId]) -> list[str]:
        """Run every debit and mint the manifest implies. Returns the steps that failed."""
        manifest = order.manifest
        ascension = manifest.ascension_line
        ascension_items = ascension.ascension_items if ascension else {}

        failed_steps: list[str] = []

        async def step(name: str, action: Callable[[], Awaitable[bool]]) -> bool:
            try:
                if await action():
                    return True
            except Exception as e:
                logger.exception("Fulfillment step failed", order_id=order.order_id, user_id=order.user_id, step=name, error=str(e))
            failed_steps.append(name)
            return False

        debited: set[ItemId] = set()
        for item_id, amount in ascension_items.items():

            async def debit(item_id: ItemId = item_id, amount: int = amount) -> bool:
                await self.game_client.debit_item(item_id, amount, order.user_id)
                return True

            if await step(f"debit:{item_id}", debit):
                debited.add(item_id)

        for line in manifest.catalog_lines:
            for item_id, amount in line.mint_amounts():
                _ = await step(
                    f"mint:offer:{line.offer_id}:{item_id}",
                    lambda offer_id=line.offer_id, item_id=item_id, amount=amount: self._mint(db, order, token_ids, address, item_id, amount, offer_id),
                )

        for item_id, amount in ascension_items.items():
            if item_id not in debited:
                logger.warning("Skipping mint of item that was not debited", order_id=order.order_id, item_id=item_id)
                failed_steps.append(f"mint:ascension:{item_id}")
                continue
            _ = await step(
                f"mint:ascension:{item_id}",
                lambda item_id=item_id, amount=amount: self._mint(db, order, token_ids, address, item_id, amount),
            )

        return failed_steps

    async def _mint(
        self,
        db: AsyncSession,
        order: OrderRecord,
        token_ids: dict[ItemId, TokenId],
        address: str,
        item_id: ItemId,
        amount: int,
        offer_id: OfferId | None = None,
    ) -> bool:
        token_id = token_ids.get(item_id)
        if token_id is None:
            logger.error("No token for item", order_id=order.order_id, item_id=item_id, network=self.chain_config.network)
            return False

        result = await self.enjin_client.mint(token_id, address, amount)
        if not result.accepted:
            logger.error("Mint rejected", order_id=order.order_id, item_id=item_id, token_id=token_id, state=result.state)
            return False

        if offer_id is not None:
            # The mint is already out; stock bookkeeping errors are only logged
            try:
                _ = await self.catalog_dao.decrement_stock(db, offer_id, item_id, amount)
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Stock could not be decremented after mint", order_id=order.order_id, offer_id=offer_id, item_id=item_id)
        return True
