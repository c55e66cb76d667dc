"""JSON-RPC access to the payment chain."""

from __future__ import annotations

from typing import Any

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, is_address, to_checksum_address
from pydantic import Field

from common.core.app_error import Errors
from common.core.config_service import ChainSection
from common.core.service_client import ServiceClient
from common.utils import JsonModel

PURCHASE_SIGNATURE = "purchase(uint256,string)"
PURCHASE_SELECTOR = function_signature_to_4byte_selector(PURCHASE_SIGNATURE)
BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")


def encode_purchase_call(service_id: int, order_id: str) -> bytes:
    return PURCHASE_SELECTOR + encode(["uint256", "string"], [service_id, order_id])


def decode_purchase_call(data: bytes) -> tuple[int, str] | None:
    """Return ``(service_id, order_id)`` when ``data`` is a purchase call, otherwise None."""
    if data[:4] != PURCHASE_SELECTOR:
        return None
    try:
        service_id, order_id = decode(["uint256", "string"], data[4:])
    except (DecodingError, ValueError):
        return None
    return service_id, order_id


class ChainTransaction(JsonModel):
    hash: str
    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    input: str = "0x"
    value: str = "0x0"

    @property
    def value_wei(self) -> int:
        return int(self.value, 16)

    @property
    def call_data(self) -> bytes:
        return decode_hex(self.input)


class ChainReceipt(JsonModel):
    transaction_hash: str
    status: str = "0x0"

    @property
    def succeeded(self) -> bool:
        return int(self.status, 16) == 1


class ChainClient(ServiceClient):
    def __init__(self, http: httpx.AsyncClient, config: ChainSection, timeout_seconds: float) -> None:
        super().__init__(http, Errors.Store.CHAIN_UNAVAILABLE, timeout_seconds)
        self._config = config
        self._next_id = 0

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        if not self._config.rpc_url:
            raise Errors.Store.CHAIN_UNAVAILABLE.create("No chain RPC endpoint configured")
        self._next_id += 1
        body = await self._request(
            "POST",
            self._config.rpc_url,
            method,
            json={"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params},
        )
        if not isinstance(body, dict):
            raise Errors.Store.CHAIN_UNAVAILABLE.create(f"{method} returned an invalid body")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise Errors.Store.CHAIN_UNAVAILABLE.create(f"{method} failed: {message}", details={"operation": method})
        return body.get("result")

    async def call(self, to: str, data: bytes) -> bytes:
        result = await self._rpc("eth_call", [{"to": to, "data": encode_hex(data)}, "latest"])
        return decode_hex(result or "0x")

    async def token_balance(self, token_address: str, owner: str) -> int:
        """ERC-20 ``balanceOf(owner)`` in the token's smallest unit."""
        if not is_address(owner):
            raise Errors.Generic.INVALID_INPUT.create(f"Invalid address: {owner}")
        raw = await self.call(to_checksum_address(token_address), BALANCE_OF_SELECTOR + encode(["address"], [to_checksum_address(owner)]))
        try:
            (balance,) = decode(["uint256"], raw)
        except (DecodingError, ValueError) as e:
            raise Errors.Store.CHAIN_UNAVAILABLE.create("balanceOf returned an invalid result", cause=e) from e
        return balance

    async def get_transaction(self, tx_hash: str) -> ChainTransaction | None:
        result = await self._rpc("eth_getTransactionByHash", [tx_hash])
        return self._parse(ChainTransaction, result, "eth_getTransactionByHash") if result else None

    async def get_receipt(self, tx_hash: str) -> ChainReceipt | None:
        result = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        return self._parse(ChainReceipt, result, "eth_getTransactionReceipt") if result else None
