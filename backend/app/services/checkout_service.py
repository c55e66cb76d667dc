"""Payment initiation: prices the cart, opens the payment and records the PENDING order."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.store import AscensionLine, CardCheckoutResponse, CatalogLine, CryptoCheckoutResponse, Player, parse_payment_method
from app.services.crypto_payment_service import CryptoPaymentService
from app.services.pricing_service import PricingService
from app.services.stripe_service import StripeService
from common.core.app_error import Errors
from common.core.config_service import ConfigService
from common.ids import OrderId
from common.utils.utils import get_logger
from storefront_db.crud.order import OrderDAO
from storefront_db.models.order import PaymentMethod

logger = get_logger(__name__)


def new_order_id() -> OrderId:
    # Time-based and unguessable: never a counter
    return OrderId(str(uuid.uuid1()))


class CheckoutService:
    def __init__(
        self,
        pricing_service: PricingService,
        stripe_service: StripeService,
        crypto_payment_service: CryptoPaymentService,
        order_dao: OrderDAO,
        config_service: ConfigService,
    ) -> None:
        self.pricing_service = pricing_service
        self.stripe_service = stripe_service
        self.crypto_payment_service = crypto_payment_service
        self.order_dao = order_dao
        self.config_service = config_service

    def _check_rail(self, method: PaymentMethod) -> None:
        enabled = {
            PaymentMethod.CARD: self.config_service.stripe.enabled,
            PaymentMethod.CRYPTO: self.config_service.chain.enabled,
        }[method]
        if not self.config_service.store.checkout_enabled or not enabled:
            raise Errors.Store.PAYMENT_METHOD_DISABLED.create(details={"payment_method": method})

    async def initiate_checkout(
        self,
        db: AsyncSession,
        player: Player,
        lines: Sequence[CatalogLine | AscensionLine],
        payment_method: str,
        buyer_address: str | None = None,
    ) -> CardCheckoutResponse | CryptoCheckoutResponse:
        """Price ``lines`` and open a payment on the chosen rail.

        The PENDING order is stored before this returns, so an approval for the returned
        payment can always be matched back to its manifest.
        """
        method = parse_payment_method(payment_method)
        self._check_rail(method)

        manifest = await self.pricing_service.price_order(db, player, lines, buyer_address)
        order_id = new_order_id()

        if method == PaymentMethod.CARD:
            # A failed provider call must leave nothing behind
            payment = await self.stripe_service.create_payment(order_id, player.user_id, manifest)
            _ = await self.order_dao.create_pending(
                db,
                order_id=order_id,
                user_id=player.user_id,
                total_cost=manifest.total_cost,
                payment_method=method,
                manifest=manifest,
                buyer_address=buyer_address,
                provider_reference=payment.id,
            )
            logger.info("Card order opened", order_id=order_id, payment_intent=payment.id, total_cost=manifest.total_cost)
            return CardCheckoutResponse(order_id=payment.id, client_secret=payment.client_secret)

        _ = await self.order_dao.create_pending(
            db,
            order_id=order_id,
            user_id=player.user_id,
            total_cost=manifest.total_cost,
            payment_method=method,
            manifest=manifest,
            buyer_address=buyer_address,
        )
        # The order stays PENDING if quoting fails; reconciliation resolves it
        transaction, quote = await self.crypto_payment_service.quote(order_id, manifest.total_cost)
        await self.order_dao.attach_payment_payload(db, order_id, quote.to_dict(mode="json"))
        logger.info("Crypto order opened", order_id=order_id, value_wei=quote.value_wei, total_cost=manifest.total_cost)
        return transaction
