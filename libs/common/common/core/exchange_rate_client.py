from __future__ import annotations

from decimal import Decimal, InvalidOperation

import httpx

from common.core.app_error import Errors
from common.core.config_service import ChainSection
from common.core.service_client import ServiceClient


class ExchangeRateClient(ServiceClient):
    """Fiat price of one unit of the chain's native currency."""

    def __init__(self, http: httpx.AsyncClient, config: ChainSection, timeout_seconds: float) -> None:
        super().__init__(http, Errors.Store.EXCHANGE_RATE_UNAVAILABLE, timeout_seconds)
        self._config = config

    async def get_rate(self) -> Decimal:
        body = await self._request("GET", self._config.exchange_rate_url, "exchange rate")

        value = body
        for part in self._config.exchange_rate_path.split("."):
            if not isinstance(value, dict) or part not in value:
                raise Errors.Store.EXCHANGE_RATE_UNAVAILABLE.create(f"Exchange rate missing at '{self._config.exchange_rate_path}'")
            value = value[part]

        try:
            rate = Decimal(str(value))
        except InvalidOperation as e:
            raise Errors.Store.EXCHANGE_RATE_UNAVAILABLE.create(f"Invalid exchange rate: {value}", cause=e) from e
        if not rate.is_finite() or rate <= 0:
            raise Errors.Store.EXCHANGE_RATE_UNAVAILABLE.create(f"Invalid exchange rate: {value}")
        return rate
