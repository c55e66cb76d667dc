"""Unit tests for StripeService."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.services.stripe_service import CardSettlement, StripeService, describe_manifest, to_cents
from common.core.app_error import AppException, Errors
from common.core.config_service import StoreSection, StripeSection
from common.ids import OfferId, OrderId, UserId
from storefront_db.schemas.manifest import LineKind, OrderManifest, PricedLine

ORDER_ID = OrderId("0b8d6f3e-1a2b-11ef-9c3d-0242ac120002")


def make_manifest() -> OrderManifest:
    line = PricedLine(
        kind=LineKind.CATALOG,
        offer_id=OfferId(7),
        name="Gem pack",
        unit_price=Decimal("2.00"),
        quantity=2,
        line_total=Decimal("4.00"),
    )
    return OrderManifest(lines=[line], total_cost=Decimal("4.00"))


def make_service(api_key: str = "sk_test") -> StripeService:
    return StripeService(StripeSection(enabled=True, api_key=api_key), StoreSection(currency="USD"))


def make_settlement(**overrides) -> CardSettlement:
    fields = {"id": "pi_123", "order_id": ORDER_ID, "status": "succeeded", "currency": "usd", "amount_received": 400, "receipt": {}}
    return CardSettlement(**{**fields, **overrides})


def test_to_cents() -> None:
    assert to_cents(Decimal("4.00")) == 400
    assert to_cents(Decimal("0.9")) == 90
    assert to_cents(Decimal("19.99")) == 1999


def test_describe_manifest() -> None:
    assert describe_manifest(make_manifest()) == "2 x Gem pack ($4.00)"


@pytest.mark.asyncio
async def test_create_payment_tags_intent_with_order() -> None:
    service = make_service()
    intent = SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

    with patch.object(stripe.PaymentIntent, "create", MagicMock(return_value=intent)) as create:
        payment = await service.create_payment(ORDER_ID, UserId("player-1"), make_manifest())

    assert payment.id == "pi_123"
    assert payment.client_secret == "pi_123_secret"
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 400
    assert kwargs["currency"] == "usd"
    assert kwargs["api_key"] == "sk_test"
    assert kwargs["metadata"]["order_id"] == ORDER_ID
    assert kwargs["metadata"]["user_id"] == "player-1"


@pytest.mark.asyncio
async def test_provider_errors_are_mapped() -> None:
    service = make_service()

    with patch.object(stripe.PaymentIntent, "create", MagicMock(side_effect=stripe.APIConnectionError("network down"))):
        with pytest.raises(AppException) as exc_info:
            await service.create_payment(ORDER_ID, UserId("player-1"), make_manifest())

    assert Errors.Store.PAYMENT_PROVIDER_ERROR.is_(exc_info.value)
    assert exc_info.value.http_status == 500


@pytest.mark.asyncio
async def test_invalid_request_is_not_retryable() -> None:
    service = make_service()

    with patch.object(stripe.PaymentIntent, "retrieve", MagicMock(side_effect=stripe.InvalidRequestError("No such payment_intent", "intent"))):
        with pytest.raises(AppException) as exc_info:
            await service.retrieve_payment("pi_missing")

    assert Errors.Store.PAYMENT_PROVIDER_ERROR.is_(exc_info.value)
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_missing_api_key_never_calls_provider() -> None:
    service = make_service(api_key="")

    with patch.object(stripe.PaymentIntent, "create", MagicMock()) as create:
        with pytest.raises(AppException) as exc_info:
            await service.create_payment(ORDER_ID, UserId("player-1"), make_manifest())

    assert Errors.Store.PAYMENT_PROVIDER_ERROR.is_(exc_info.value)
    create.assert_not_called()


@pytest.mark.asyncio
async def test_retrieve_payment_reads_order_from_metadata() -> None:
    service = make_service()
    intent = SimpleNamespace(
        id="pi_123", status="succeeded", currency="usd", amount=400, amount_received=400, metadata={"order_id": ORDER_ID, "user_id": "player-1"}
    )

    with patch.object(stripe.PaymentIntent, "retrieve", MagicMock(return_value=intent)):
        settlement = await service.retrieve_payment("pi_123")

    assert settlement.order_id == ORDER_ID
    assert settlement.completed
    assert settlement.receipt["amount_received"] == 400


class TestVerify:
    def test_exact_payment_passes(self) -> None:
        assert make_service().verify(make_settlement(), Decimal("4.00")) is None

    def test_over_payment_passes(self) -> None:
        assert make_service().verify(make_settlement(amount_received=500), Decimal("4.00")) is None

    def test_short_payment_fails(self) -> None:
        failure = make_service().verify(make_settlement(amount_received=399), Decimal("4.00"))

        assert failure is not None
        assert Errors.Store.PAYMENT_VERIFICATION_FAILED.is_(failure)
        assert failure.details.details == {"amount_received": 399, "expected": 400}

    def test_other_currency_fails(self) -> None:
        failure = make_service().verify(make_settlement(currency="eur"), Decimal("4.00"))

        assert failure is not None
        assert Errors.Store.PAYMENT_VERIFICATION_FAILED.is_(failure)

    def test_incomplete_payment_fails(self) -> None:
        failure = make_service().verify(make_settlement(status="processing"), Decimal("4.00"))

        assert failure is not None
        assert failure.details.details == {"status": "processing"}
