"""Unit tests for FulfillmentService."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.schemas.store import PriceQuote
from app.services.fulfillment_service import FulfillmentService
from app.services.stripe_service import CardSettlement, StripeService
from common.core.app_error import AppException, Errors
from common.core.config_service import ChainSection, StoreSection, StripeSection
from common.core.enjin_client import ZERO_ADDRESS, MintResult, MintState
from common.ids import ItemId, OfferId, OrderId, RequestId, TokenId, UserId
from storefront_db.models.order import OrderStatus, PaymentMethod
from storefront_db.schemas.manifest import LineKind, OrderManifest, PricedContent, PricedLine
from storefront_db.schemas.order import OrderRecord

ORDER_ID = OrderId("0b8d6f3e-1a2b-11ef-9c3d-0242ac120002")
USER_ID = UserId("player-1")
WALLET = "0x52908400098527886e0f7030069857d2e4169ee7"
PROCESSOR = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def bundle_line(offer_id: int = 7, item_id: int = 100, quantity: int = 1) -> PricedLine:
    return PricedLine(
        kind=LineKind.CATALOG,
        offer_id=OfferId(offer_id),
        name=f"Offer {offer_id}",
        unit_price=Decimal("4.00"),
        quantity=quantity,
        line_total=Decimal("4.00") * quantity,
        contents=[PricedContent(item_id=ItemId(item_id), amount_per_unit=1)],
    )


def ascension_line(items: dict[int, int]) -> PricedLine:
    return PricedLine(
        kind=LineKind.ASCENSION,
        name="Ascension",
        unit_price=Decimal("0"),
        quantity=len(items),
        line_total=Decimal("0"),
        ascension_items={ItemId(item_id): amount for item_id, amount in items.items()},
    )


def make_order(
    *lines: PricedLine,
    payment_method: PaymentMethod = PaymentMethod.CARD,
    provider_reference: str | None = "pi_123",
    payment_payload: dict[str, Any] | None = None,
) -> OrderRecord:
    now = datetime.now(UTC)
    return OrderRecord(
        order_id=ORDER_ID,
        user_id=USER_ID,
        total_cost=Decimal("4.00"),
        payment_method=payment_method,
        manifest=OrderManifest(lines=list(lines) or [bundle_line()], total_cost=Decimal("4.00")),
        status=OrderStatus.PENDING,
        provider_reference=provider_reference,
        payment_payload=payment_payload,
        created_at=now,
        updated_at=now,
    )


class FakeOrderDAO:
    """Single-order store that honours claims the way the database does."""

    def __init__(self, order: OrderRecord) -> None:
        self.order = order
        self.claimed_by: RequestId | None = None
        self.completions: list[tuple[OrderStatus, dict[str, Any] | None]] = []
        self.releases = 0
        self.delivering = False
        self.lease_expired = False

    async def claim_for_fulfillment(self, db: Any, order_id: OrderId, request_id: RequestId) -> OrderRecord:
        if self.order.status == OrderStatus.PENDING:
            if self.delivering:
                error = Errors.Store.ORDER_NEEDS_RECONCILIATION if self.lease_expired else Errors.Store.ORDER_BUSY
                raise error.create()
            if self.claimed_by is not None and not self.lease_expired:
                raise Errors.Store.ORDER_BUSY.create()
            self.claimed_by = request_id
            self.lease_expired = False
        return self.order

    async def release_claim(self, db: Any, order_id: OrderId, request_id: RequestId) -> None:
        self.releases += 1
        if self.claimed_by == request_id and not self.delivering:
            self.claimed_by = None

    async def begin_delivery(self, db: Any, order_id: OrderId, request_id: RequestId) -> bool:
        if self.claimed_by != request_id or self.delivering or self.order.status != OrderStatus.PENDING:
            return False
        self.delivering = True
        return True

    async def complete(self, db: Any, order_id: OrderId, request_id: RequestId, status: OrderStatus, receipt: dict[str, Any] | None) -> bool:
        if self.claimed_by != request_id or self.order.status != OrderStatus.PENDING:
            return False
        self.order = self.order.model_copy(update={"status": status})
        self.claimed_by = None
        self.delivering = False
        self.completions.append((status, receipt))
        return True


def settlement(amount_received: int = 400, status: str = "succeeded", order_id: str | None = ORDER_ID) -> CardSettlement:
    return CardSettlement(
        id="pi_123",
        order_id=order_id,
        status=status,
        currency="usd",
        amount_received=amount_received,
        receipt={"id": "pi_123", "amount_received": amount_received},
    )


def make_service(order: OrderRecord, last_address: str | None = WALLET) -> FulfillmentService:
    catalog_dao = MagicMock()
    catalog_dao.get_last_address = AsyncMock(return_value=last_address)
    catalog_dao.token_ids_for_items = AsyncMock(
        side_effect=lambda db, item_ids, network: {item_id: TokenId(f"0x{item_id:016x}") for item_id in item_ids}
    )
    catalog_dao.decrement_stock = AsyncMock(return_value=True)

    stripe_service = StripeService(StripeSection(enabled=True, api_key="sk_test"), StoreSection())
    stripe_service.retrieve_payment = AsyncMock(return_value=settlement())  # type: ignore[method-assign]

    crypto_payment_service = MagicMock()
    crypto_payment_service.verify = AsyncMock(return_value=(None, {"transaction_hash": "0xabc"}))

    game_client = MagicMock()
    game_client.debit_item = AsyncMock()

    enjin_client = MagicMock()
    enjin_client.mint = AsyncMock(return_value=MintResult(id=1, state=MintState.PENDING))

    return FulfillmentService(
        FakeOrderDAO(order),  # type: ignore[arg-type]
        catalog_dao,
        stripe_service,
        crypto_payment_service,
        game_client,
        enjin_client,
        ChainSection(network="testnet"),
    )


@pytest.mark.asyncio
async def test_exact_card_payment_mints_and_fulfills() -> None:
    service = make_service(make_order())

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FULFILLED
    assert result.failed_steps == []
    service.enjin_client.mint.assert_awaited_once_with(TokenId("0x0000000000000064"), WALLET, 1)
    service.catalog_dao.decrement_stock.assert_awaited_once()
    assert service.order_dao.completions == [(OrderStatus.FULFILLED, {"id": "pi_123", "amount_received": 400, "failed_steps": []})]


@pytest.mark.asyncio
async def test_short_card_payment_fails_without_minting() -> None:
    service = make_service(make_order())
    service.stripe_service.retrieve_payment = AsyncMock(return_value=settlement(amount_received=399))

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FAILED
    service.enjin_client.mint.assert_not_awaited()
    status, receipt = service.order_dao.completions[0]
    assert status == OrderStatus.FAILED
    assert receipt is not None
    assert receipt["error"]["code"] == "payment_verification_failed"


@pytest.mark.asyncio
async def test_incomplete_card_payment_fails() -> None:
    service = make_service(make_order())
    service.stripe_service.retrieve_payment = AsyncMock(return_value=settlement(status="requires_payment_method"))

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FAILED
    service.enjin_client.mint.assert_not_awaited()


@pytest.mark.asyncio
async def test_payment_for_another_order_fails() -> None:
    service = make_service(make_order(provider_reference="pi_other"))

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FAILED
    service.enjin_client.mint.assert_not_awaited()


@pytest.mark.asyncio
async def test_payment_without_order_is_not_found() -> None:
    service = make_service(make_order())
    service.stripe_service.retrieve_payment = AsyncMock(return_value=settlement(order_id=None))

    with pytest.raises(AppException) as exc_info:
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert Errors.Store.ORDER_NOT_FOUND.is_(exc_info.value)


@pytest.mark.asyncio
async def test_repeated_confirmation_mints_once() -> None:
    service = make_service(make_order())

    first = await service.confirm_and_fulfill(MagicMock(), "pi_123")
    second = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert first.status == OrderStatus.FULFILLED
    assert second.status == OrderStatus.FULFILLED
    service.enjin_client.mint.assert_awaited_once()
    assert len(service.order_dao.completions) == 1


@pytest.mark.asyncio
async def test_failed_order_stays_failed() -> None:
    service = make_service(make_order())
    service.stripe_service.retrieve_payment = AsyncMock(return_value=settlement(amount_received=100))
    await service.confirm_and_fulfill(MagicMock(), "pi_123")

    service.stripe_service.retrieve_payment = AsyncMock(return_value=settlement())
    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FAILED
    service.enjin_client.mint.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("address", [None, ZERO_ADDRESS])
async def test_missing_wallet_leaves_order_pending(address: str | None) -> None:
    service = make_service(make_order(), last_address=address)

    with pytest.raises(AppException) as exc_info:
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert Errors.Store.ZERO_ADDRESS.is_(exc_info.value)
    assert service.order_dao.order.status == OrderStatus.PENDING
    assert service.order_dao.claimed_by is None
    service.enjin_client.mint.assert_not_awaited()
    service.game_client.debit_item.assert_not_awaited()


@pytest.mark.asyncio
async def test_verification_error_releases_claim() -> None:
    service = make_service(make_order())
    service.catalog_dao.get_last_address = AsyncMock(side_effect=RuntimeError("database went away"))

    with pytest.raises(RuntimeError):
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert service.order_dao.claimed_by is None
    assert service.order_dao.order.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_partial_mint_failure_is_recorded() -> None:
    service = make_service(make_order(bundle_line(offer_id=7, item_id=100), bundle_line(offer_id=8, item_id=101)))
    service.enjin_client.mint = AsyncMock(
        side_effect=[Errors.Store.IDENTITY_UNAVAILABLE.create("enjin mint failed"), MintResult(id=2, state=MintState.PENDING)]
    )

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FULFILLED
    assert result.failed_steps == ["mint:offer:7:100"]
    assert service.enjin_client.mint.await_count == 2
    service.catalog_dao.decrement_stock.assert_awaited_once()
    assert service.order_dao.completions[0][1]["failed_steps"] == ["mint:offer:7:100"]


@pytest.mark.asyncio
async def test_rejected_mint_is_a_failed_step() -> None:
    service = make_service(make_order())
    service.enjin_client.mint = AsyncMock(return_value=MintResult(id=1, state=MintState.CANCELED_PLATFORM))

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.failed_steps == ["mint:offer:7:100"]
    service.catalog_dao.decrement_stock.assert_not_awaited()


@pytest.mark.asyncio
async def test_item_without_token_is_a_failed_step() -> None:
    service = make_service(make_order())
    service.catalog_dao.token_ids_for_items = AsyncMock(return_value={})

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.failed_steps == ["mint:offer:7:100"]
    service.enjin_client.mint.assert_not_awaited()


@pytest.mark.asyncio
async def test_ascension_debits_before_minting() -> None:
    service = make_service(make_order(ascension_line({9: 3, 4: 1})))
    calls: list[str] = []
    service.game_client.debit_item = AsyncMock(side_effect=lambda item_id, amount, user_id: calls.append(f"debit:{item_id}"))
    service.enjin_client.mint = AsyncMock(
        side_effect=lambda token_id, address, amount: calls.append(f"mint:{token_id}") or MintResult(id=1, state=MintState.PENDING)
    )

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.failed_steps == []
    assert calls == ["debit:9", "debit:4", "mint:0x0000000000000009", "mint:0x0000000000000004"]
    service.catalog_dao.decrement_stock.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_debit_skips_its_mint() -> None:
    service = make_service(make_order(ascension_line({9: 3, 4: 1})))
    service.game_client.debit_item = AsyncMock(side_effect=[Errors.Store.INVENTORY_UNAVAILABLE.create("game item debit timed out"), None])

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FULFILLED
    assert result.failed_steps == ["debit:9", "mint:ascension:9"]
    service.enjin_client.mint.assert_awaited_once_with(TokenId("0x0000000000000004"), WALLET, 1)


@pytest.mark.asyncio
async def test_crypto_confirmation_uses_stored_quote() -> None:
    quote = PriceQuote(value_wei=2 * 10**15, rate=Decimal("2000"), to=PROCESSOR)
    order = make_order(payment_method=PaymentMethod.CRYPTO, provider_reference=None, payment_payload=quote.to_dict(mode="json"))
    service = make_service(order)

    result = await service.confirm_crypto_payment(MagicMock(), ORDER_ID, "0xabc")

    assert result.status == OrderStatus.FULFILLED
    service.crypto_payment_service.verify.assert_awaited_once_with(ORDER_ID, quote, "0xabc")


@pytest.mark.asyncio
async def test_crypto_confirmation_of_card_order_fails() -> None:
    service = make_service(make_order())

    result = await service.confirm_crypto_payment(MagicMock(), ORDER_ID, "0xabc")

    assert result.status == OrderStatus.FAILED
    service.crypto_payment_service.verify.assert_not_awaited()
    service.enjin_client.mint.assert_not_awaited()


@pytest.mark.asyncio
async def test_unmined_crypto_payment_stays_pending_until_mined() -> None:
    quote = PriceQuote(value_wei=2 * 10**15, rate=Decimal("2000"), to=PROCESSOR)
    order = make_order(payment_method=PaymentMethod.CRYPTO, provider_reference=None, payment_payload=quote.to_dict(mode="json"))
    service = make_service(order)
    service.crypto_payment_service.verify = AsyncMock(
        side_effect=[Errors.Store.TRANSACTION_PENDING.create(), (None, {"transaction_hash": "0xabc"})]
    )

    with pytest.raises(AppException) as exc_info:
        await service.confirm_crypto_payment(MagicMock(), ORDER_ID, "0xabc")

    assert Errors.Store.TRANSACTION_PENDING.is_(exc_info.value)
    assert exc_info.value.retryable is True
    assert service.order_dao.order.status == OrderStatus.PENDING
    assert service.order_dao.claimed_by is None
    assert service.order_dao.completions == []
    service.enjin_client.mint.assert_not_awaited()

    result = await service.confirm_crypto_payment(MagicMock(), ORDER_ID, "0xabc")

    assert result.status == OrderStatus.FULFILLED
    service.enjin_client.mint.assert_awaited_once()


@pytest.mark.asyncio
async def test_expired_lease_during_delivery_does_not_mint_twice() -> None:
    service = make_service(make_order())
    retries: list[AppException] = []

    async def slow_mint(token_id: TokenId, address: str, amount: int) -> MintResult:
        service.order_dao.lease_expired = True
        try:
            await service.confirm_and_fulfill(MagicMock(), "pi_123")
        except AppException as e:
            retries.append(e)
        return MintResult(id=1, state=MintState.PENDING)

    service.enjin_client.mint = AsyncMock(side_effect=slow_mint)

    result = await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert result.status == OrderStatus.FULFILLED
    service.enjin_client.mint.assert_awaited_once()
    assert len(retries) == 1
    assert Errors.Store.ORDER_NEEDS_RECONCILIATION.is_(retries[0])
    assert len(service.order_dao.completions) == 1


@pytest.mark.asyncio
async def test_failed_terminal_write_leaves_order_for_reconciliation() -> None:
    service = make_service(make_order())
    service.order_dao.complete = AsyncMock(side_effect=OperationalError("UPDATE orders", {}, Exception("connection lost")))

    with pytest.raises(OperationalError):
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert service.order_dao.delivering is True
    assert service.order_dao.order.status == OrderStatus.PENDING
    service.order_dao.lease_expired = True
    with pytest.raises(AppException) as exc_info:
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert Errors.Store.ORDER_NEEDS_RECONCILIATION.is_(exc_info.value)
    service.enjin_client.mint.assert_awaited_once()
    service.catalog_dao.decrement_stock.assert_awaited_once()


@pytest.mark.asyncio
async def test_claim_lost_before_delivery_has_no_side_effects() -> None:
    service = make_service(make_order())
    service.order_dao.begin_delivery = AsyncMock(return_value=False)

    with pytest.raises(AppException) as exc_info:
        await service.confirm_and_fulfill(MagicMock(), "pi_123")

    assert Errors.Store.ORDER_BUSY.is_(exc_info.value)
    service.enjin_client.mint.assert_not_awaited()
    service.game_client.debit_item.assert_not_awaited()
    assert service.order_dao.completions == []


@pytest.mark.asyncio
async def test_stock_bookkeeping_error_keeps_mint() -> None:
    service = make_service(make_order())
    service.catalog_dao.decrement_stock = AsyncMock(side_effect=OperationalError("UPDATE offer_contents", {}, Exception("deadlock")))
    db = MagicMock()
    db.rollback = AsyncMock()

    result = await service.confirm_and_fulfill(db, "pi_123")

    assert result.status == OrderStatus.FULFILLED
    assert result.failed_steps == []
    db.rollback.assert_awaited_once()
