"""Unit tests for DiscountService."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.discount_service import DiscountService
from common.core.app_error import AppException, Errors
from common.core.config_service import DiscountSection
from common.core.enjin_client import ZERO_ADDRESS

BUYER = "0x52908400098527886e0f7030069857d2e4169ee7"
TOKEN = "0x8617e340b3d01fa5f11f306f4090fd50e238070d"


def make_service(balance: int = 0, **overrides) -> DiscountService:
    config = DiscountSection(
        **{"enabled": True, "token_address": TOKEN, "token_decimals": 18, "rate_per_token": Decimal("0.5"), "cap": Decimal("20"), **overrides}
    )
    chain_client = MagicMock()
    chain_client.token_balance = AsyncMock(return_value=balance)
    return DiscountService(chain_client, config)


@pytest.mark.asyncio
async def test_disabled_discount_never_reads_the_chain() -> None:
    service = make_service(balance=10**20, enabled=False)

    assert await service.discount_for(BUYER) == Decimal("0")
    service.chain_client.token_balance.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("address", [None, "", ZERO_ADDRESS])
async def test_unknown_address_has_no_discount(address: str | None) -> None:
    service = make_service(balance=10**20)

    assert await service.discount_for(address) == Decimal("0")
    service.chain_client.token_balance.assert_not_awaited()


@pytest.mark.asyncio
async def test_balance_scales_by_token_decimals() -> None:
    service = make_service(balance=3 * 10**18)

    assert await service.discount_for(BUYER) == Decimal("1.5")
    service.chain_client.token_balance.assert_awaited_once_with(TOKEN, BUYER)


def test_discount_grows_with_balance_up_to_the_cap() -> None:
    service = make_service()
    balances = [0, 10**18, 10 * 10**18, 39 * 10**18, 40 * 10**18, 10**30]

    percents = [service.percent_for_balance(balance) for balance in balances]

    assert percents == sorted(percents)
    assert percents[0] == Decimal("0")
    assert percents[-2] == Decimal("20")
    assert percents[-1] == Decimal("20")


def test_cap_is_clamped_to_keep_a_positive_price() -> None:
    config = DiscountSection(cap=Decimal("250"))

    assert Decimal("0") <= config.cap < Decimal("100")


@pytest.mark.asyncio
async def test_missing_token_is_discount_unavailable() -> None:
    service = make_service(token_address="")

    with pytest.raises(AppException) as exc_info:
        await service.discount_for(BUYER)

    assert Errors.Store.DISCOUNT_UNAVAILABLE.is_(exc_info.value)


@pytest.mark.asyncio
async def test_chain_failure_is_discount_unavailable() -> None:
    service = make_service()
    service.chain_client.token_balance = AsyncMock(side_effect=Errors.Store.CHAIN_UNAVAILABLE.create("eth_call failed"))

    with pytest.raises(AppException) as exc_info:
        await service.discount_for(BUYER)

    assert Errors.Store.DISCOUNT_UNAVAILABLE.is_(exc_info.value)
    assert exc_info.value.details.details == {"address": BUYER, "reason": "eth_call failed"}


@pytest.mark.asyncio
async def test_multiplier_falls_back_to_full_price() -> None:
    service = make_service()
    service.chain_client.token_balance = AsyncMock(side_effect=Errors.Store.CHAIN_UNAVAILABLE.create())

    assert await service.multiplier_for(BUYER) == (Decimal("0"), Decimal("1"))


@pytest.mark.asyncio
async def test_multiplier_applies_percent() -> None:
    service = make_service(balance=20 * 10**18)

    assert await service.multiplier_for(BUYER) == (Decimal("10"), Decimal("0.9"))
