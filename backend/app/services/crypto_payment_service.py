"""Crypto rail: quotes unsigned purchase transactions and verifies them once mined."""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from typing import Any

from eth_utils import encode_hex, is_address, to_checksum_address

from app.schemas.store import CryptoCheckoutResponse, PriceQuote
from common.core.app_error import AppException, Errors
from common.core.chain_client import ChainClient, decode_purchase_call, encode_purchase_call
from common.core.config_service import ChainSection
from common.core.exchange_rate_client import ExchangeRateClient
from common.ids import OrderId
from common.utils.utils import get_logger

logger = get_logger(__name__)

WEI_PER_ETHER = Decimal(10) ** 18


def to_wei(total_cost: Decimal, rate: Decimal) -> int:
    """Smallest amount of wei worth at least ``total_cost`` at ``rate`` fiat per ether."""
    return int((total_cost * WEI_PER_ETHER / rate).to_integral_value(rounding=ROUND_CEILING))


class CryptoPaymentService:
    def __init__(self, chain_client: ChainClient, exchange_rate_client: ExchangeRateClient, config: ChainSection) -> None:
        self.chain_client = chain_client
        self.exchange_rate_client = exchange_rate_client
        self.config = config

    @property
    def processor_address(self) -> str:
        if not is_address(self.config.payment_processor_address):
            raise Errors.Store.CHAIN_UNAVAILABLE.create("Payment processor address is not configured")
        return to_checksum_address(self.config.payment_processor_address)

    async def quote(self, order_id: OrderId, total_cost: Decimal) -> tuple[CryptoCheckoutResponse, PriceQuote]:
        """Build the unsigned purchase transaction for ``order_id``.

        The buyer signs and broadcasts it; nothing here ever touches a private key.
        """
        to = self.processor_address
        rate = await self.exchange_rate_client.get_rate()
        value_wei = to_wei(total_cost, rate)
        data = encode_purchase_call(self.config.service_id, order_id)

        logger.info("Quoted crypto payment", order_id=order_id, total_cost=total_cost, rate=rate, value_wei=value_wei)
        transaction = CryptoCheckoutResponse(nonce=0, gas_limit=self.config.gas_limit, to=to, data=encode_hex(data), value=hex(value_wei))
        return transaction, PriceQuote(value_wei=value_wei, rate=rate, to=to)

    async def verify(self, order_id: OrderId, quote: PriceQuote | None, tx_hash: str) -> tuple[AppException | None, dict[str, Any]]:
        """Check that ``tx_hash`` is a successful purchase call paying ``quote`` for ``order_id``.

        Returns the reason it is not (None when it is) and the receipt to keep for audit.

        Raises:
            CHAIN_UNAVAILABLE: the chain could not be queried
            TRANSACTION_PENDING: the transaction is unknown or not mined yet
        """
        transaction = await self.chain_client.get_transaction(tx_hash)
        receipt = await self.chain_client.get_receipt(tx_hash)
        audit: dict[str, Any] = {
            "transaction_hash": tx_hash,
            "transaction": transaction.to_dict(mode="json") if transaction else None,
            "receipt": receipt.to_dict(mode="json") if receipt else None,
        }

        def failed(message: str, **details: Any) -> tuple[AppException, dict[str, Any]]:
            return Errors.Store.PAYMENT_VERIFICATION_FAILED.create(message, details={"transaction_hash": tx_hash, **details}), audit

        if quote is None:
            return failed("Order has no crypto quote")
        if transaction is None or receipt is None:
            raise Errors.Store.TRANSACTION_PENDING.create(details={"transaction_hash": tx_hash})
        if not receipt.succeeded:
            return failed("Transaction reverted")
        if transaction.to is None or transaction.to.lower() != quote.to.lower():
            return failed("Transaction was not sent to the payment processor", to=transaction.to)

        call = decode_purchase_call(transaction.call_data)
        if call is None or call[1] != order_id:
            return failed("Transaction does not purchase this order")
        if transaction.value_wei < quote.value_wei:
            return failed("Payment is less than the order total", value_wei=transaction.value_wei, expected=quote.value_wei)
        return None, audit
