from __future__ import annotations

import httpx

from app.services.catalog_service import CatalogService
from app.services.checkout_service import CheckoutService
from app.services.crypto_payment_service import CryptoPaymentService
from app.services.discount_service import DiscountService
from app.services.fulfillment_service import FulfillmentService
from app.services.player_service import PlayerService
from app.services.pricing_service import PricingService
from app.services.stripe_service import StripeService
from common.core.chain_client import ChainClient
from common.core.config_service import ConfigService
from common.core.enjin_client import EnjinClient
from common.core.exchange_rate_client import ExchangeRateClient
from common.core.game_client import GameClient
from common.core.lifecycle import Lifecycle
from common.db.db import Db, DBConfig
from common.utils.utils import cached_classmethod
from storefront_db.crud.catalog import CatalogDAO
from storefront_db.crud.order import OrderDAO
from storefront_db.db import Base


class Services(Lifecycle):
    config_service: ConfigService
    db: Db
    http_client: httpx.AsyncClient

    catalog_dao: CatalogDAO
    order_dao: OrderDAO

    game_client: GameClient
    enjin_client: EnjinClient
    chain_client: ChainClient
    exchange_rate_client: ExchangeRateClient

    catalog_service: CatalogService
    discount_service: DiscountService
    pricing_service: PricingService
    stripe_service: StripeService
    crypto_payment_service: CryptoPaymentService
    checkout_service: CheckoutService
    fulfillment_service: FulfillmentService
    player_service: PlayerService

    def __init__(self) -> None:
        super().__init__()

        # Initialize core infrastructure
        self.config_service = self._create_config_service()
        self.db = self._create_db(config_service=self.config_service)
        self.http_client = self._create_http_client(config_service=self.config_service)

        # Initialize database access objects
        self.catalog_dao = self._create_catalog_dao()
        self.order_dao = self._create_order_dao()

        # Initialize remote collaborators
        self.game_client = self._create_game_client(http_client=self.http_client, config_service=self.config_service)
        self.enjin_client = self._create_enjin_client(http_client=self.http_client, config_service=self.config_service)
        self.chain_client = self._create_chain_client(http_client=self.http_client, config_service=self.config_service)
        self.exchange_rate_client = self._create_exchange_rate_client(http_client=self.http_client, config_service=self.config_service)

        # Initialize store services
        self.catalog_service = self._create_catalog_service(catalog_dao=self.catalog_dao, config_service=self.config_service)
        self.discount_service = self._create_discount_service(chain_client=self.chain_client, config_service=self.config_service)
        self.pricing_service = self._create_pricing_service(
            catalog_service=self.catalog_service,
            catalog_dao=self.catalog_dao,
            discount_service=self.discount_service,
            game_client=self.game_client,
            config_service=self.config_service,
        )
        self.stripe_service = self._create_stripe_service(config_service=self.config_service)
        self.crypto_payment_service = self._create_crypto_payment_service(
            chain_client=self.chain_client, exchange_rate_client=self.exchange_rate_client, config_service=self.config_service
        )
        self.checkout_service = self._create_checkout_service(
            pricing_service=self.pricing_service,
            stripe_service=self.stripe_service,
            crypto_payment_service=self.crypto_payment_service,
            order_dao=self.order_dao,
            config_service=self.config_service,
        )
        self.fulfillment_service = self._create_fulfillment_service(
            order_dao=self.order_dao,
            catalog_dao=self.catalog_dao,
            stripe_service=self.stripe_service,
            crypto_payment_service=self.crypto_payment_service,
            game_client=self.game_client,
            enjin_client=self.enjin_client,
            config_service=self.config_service,
        )
        self.player_service = self._create_player_service(
            enjin_client=self.enjin_client, catalog_dao=self.catalog_dao, config_service=self.config_service
        )

    async def _start(self) -> None:
        await self.db.start()
        await self.db.create_all(Base.metadata)

    async def _stop(self) -> None:
        await self.http_client.aclose()
        await self.db.stop()

    # Protected creation methods for dependency injection/overriding
    def _create_config_service(self) -> ConfigService:
        return ConfigService()

    def _create_db(self, config_service: ConfigService) -> Db:
        return Db(DBConfig(url=config_service.database.url, echo=config_service.database.echo))

    def _create_http_client(self, config_service: ConfigService) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=config_service.http.timeout_seconds)

    def _create_catalog_dao(self) -> CatalogDAO:
        return CatalogDAO()

    def _create_order_dao(self) -> OrderDAO:
        return OrderDAO()

    def _create_game_client(self, http_client: httpx.AsyncClient, config_service: ConfigService) -> GameClient:
        return GameClient(http_client, config_service.game, config_service.http.timeout_seconds, config_service.http.credential_ttl_seconds)

    def _create_enjin_client(self, http_client: httpx.AsyncClient, config_service: ConfigService) -> EnjinClient:
        return EnjinClient(http_client, config_service.enjin, config_service.http.timeout_seconds, config_service.http.credential_ttl_seconds)

    def _create_chain_client(self, http_client: httpx.AsyncClient, config_service: ConfigService) -> ChainClient:
        return ChainClient(http_client, config_service.chain, config_service.http.timeout_seconds)

    def _create_exchange_rate_client(self, http_client: httpx.AsyncClient, config_service: ConfigService) -> ExchangeRateClient:
        return ExchangeRateClient(http_client, config_service.chain, config_service.http.timeout_seconds)

    def _create_catalog_service(self, catalog_dao: CatalogDAO, config_service: ConfigService) -> CatalogService:
        return CatalogService(catalog_dao=catalog_dao, config=config_service.store)

    def _create_discount_service(self, chain_client: ChainClient, config_service: ConfigService) -> DiscountService:
        return DiscountService(chain_client=chain_client, config=config_service.discount)

    def _create_pricing_service(
        self,
        catalog_service: CatalogService,
        catalog_dao: CatalogDAO,
        discount_service: DiscountService,
        game_client: GameClient,
        config_service: ConfigService,
    ) -> PricingService:
        return PricingService(
            catalog_service=catalog_service,
            catalog_dao=catalog_dao,
            discount_service=discount_service,
            game_client=game_client,
            config=config_service.store,
        )

    def _create_stripe_service(self, config_service: ConfigService) -> StripeService:
        return StripeService(config=config_service.stripe, store=config_service.store)

    def _create_crypto_payment_service(
        self, chain_client: ChainClient, exchange_rate_client: ExchangeRateClient, config_service: ConfigService
    ) -> CryptoPaymentService:
        return CryptoPaymentService(chain_client=chain_client, exchange_rate_client=exchange_rate_client, config=config_service.chain)

    def _create_checkout_service(
        self,
        pricing_service: PricingService,
        stripe_service: StripeService,
        crypto_payment_service: CryptoPaymentService,
        order_dao: OrderDAO,
        config_service: ConfigService,
    ) -> CheckoutService:
        return CheckoutService(
            pricing_service=pricing_service,
            stripe_service=stripe_service,
            crypto_payment_service=crypto_payment_service,
            order_dao=order_dao,
            config_service=config_service,
        )

    def _create_fulfillment_service(
        self,
        order_dao: OrderDAO,
        catalog_dao: CatalogDAO,
        stripe_service: StripeService,
        crypto_payment_service: CryptoPaymentService,
        game_client: GameClient,
        enjin_client: EnjinClient,
        config_service: ConfigService,
    ) -> FulfillmentService:
        return FulfillmentService(
            order_dao=order_dao,
            catalog_dao=catalog_dao,
            stripe_service=stripe_service,
            crypto_payment_service=crypto_payment_service,
            game_client=game_client,
            enjin_client=enjin_client,
            chain_config=config_service.chain,
        )

    def _create_player_service(self, enjin_client: EnjinClient, catalog_dao: CatalogDAO, config_service: ConfigService) -> PlayerService:
        return PlayerService(enjin_client=enjin_client, catalog_dao=catalog_dao, chain_config=config_service.chain)

    @cached_classmethod
    def instance(cls) -> Services:
        """Get the singleton instance of Services."""
        return Services()
