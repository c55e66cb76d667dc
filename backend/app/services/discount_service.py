"""Discount calculator backed by an on-chain token balance."""

from __future__ import annotations

from decimal import Decimal

from common.core.app_error import AppException, Errors
from common.core.chain_client import ChainClient
from common.core.config_service import DiscountSection
from common.core.enjin_client import ZERO_ADDRESS
from common.utils.utils import get_logger

logger = get_logger(__name__)

HUNDRED = Decimal("100")


class DiscountService:
    def __init__(self, chain_client: ChainClient, config: DiscountSection) -> None:
        self.chain_client = chain_client
        self.config = config

    def percent_for_balance(self, balance: int) -> Decimal:
        """Discount percentage for a raw token balance, clamped to ``[0, cap]``."""
        tokens = Decimal(balance) / (Decimal(10) ** self.config.token_decimals)
        return min(max(tokens * self.config.rate_per_token, Decimal("0")), self.config.cap)

    async def discount_for(self, address: str | None) -> Decimal:
        """Percentage discount earned by ``address``.

        Raises:
            DISCOUNT_UNAVAILABLE: the balance could not be read
        """
        if not self.config.enabled or not address or address.lower() == ZERO_ADDRESS:
            return Decimal("0")
        if not self.config.token_address:
            raise Errors.Store.DISCOUNT_UNAVAILABLE.create("No discount token configured")

        try:
            balance = await self.chain_client.token_balance(self.config.token_address, address)
        except AppException as e:
            raise Errors.Store.DISCOUNT_UNAVAILABLE.create(details={"address": address, "reason": e.message}) from e
        return self.percent_for_balance(balance)

    async def multiplier_for(self, address: str | None) -> tuple[Decimal, Decimal]:
        """``(percent, multiplier)`` to price an order with. A failed lookup prices at full cost."""
        try:
            percent = await self.discount_for(address)
        except AppException as e:
            logger.warning("Discount unavailable, pricing without it", address=address, error=e.message)
            percent = Decimal("0")
        return percent, 1 - percent / HUNDRED
