"""StripeService encapsulates all Stripe interactions for the card rail.
Orders are charged through PaymentIntents; the intent carries our order id in its metadata.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import stripe

from common.core.app_error import AppException, Errors
from common.core.config_service import StoreSection, StripeSection
from common.ids import OrderId, UserId
from common.utils.json_model import JsonModel
from common.utils.utils import get_logger
from storefront_db.schemas.manifest import OrderManifest

logger = get_logger()

SUCCEEDED = "succeeded"
_METADATA_LIMIT = 500


class CardPayment(JsonModel):
    id: str
    client_secret: str | None = None


class CardSettlement(JsonModel):
    """The provider's own record of a card payment."""

    id: str
    order_id: OrderId | None = None
    status: str
    currency: str
    amount_received: int
    receipt: dict[str, Any]

    @property
    def completed(self) -> bool:
        return self.status == SUCCEEDED


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def describe_manifest(manifest: OrderManifest) -> str:
    return ", ".join(f"{line.quantity} x {line.name} (${line.line_total})" for line in manifest.lines)


class StripeService:
    def __init__(self, config: StripeSection, store: StoreSection) -> None:
        self.config = config
        self.store = store

    @property
    def currency(self) -> str:
        return self.store.currency.lower()

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call off the event loop, mapping Stripe failures to PAYMENT_PROVIDER_ERROR."""
        if not self.config.api_key:
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe API key is not configured")
        try:
            return await asyncio.to_thread(fn, *args, api_key=self.config.api_key, **kwargs)
        except stripe.AuthenticationError as e:
            logger.exception("Stripe authentication error", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe authentication failed", retryable=False, cause=e) from e
        except stripe.InvalidRequestError as e:
            logger.exception("Stripe invalid request", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Invalid Stripe request", retryable=False, cause=e) from e
        except stripe.RateLimitError as e:
            logger.exception("Stripe rate limit exceeded", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe rate limit exceeded", cause=e) from e
        except stripe.APIConnectionError as e:
            logger.exception("Stripe API connection error", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe API connection error", cause=e) from e
        except stripe.APIError as e:
            logger.exception("Stripe API error", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe API error", cause=e) from e
        except stripe.StripeError as e:
            # Fallback for any other Stripe-specific errors
            logger.exception("Generic Stripe error", operation=operation)
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Stripe error", cause=e) from e

    async def create_payment(self, order_id: OrderId, user_id: UserId, manifest: OrderManifest) -> CardPayment:
        """Open a PaymentIntent for ``manifest.total_cost``, tagged with ``order_id``."""
        description = describe_manifest(manifest)
        logger.info("Creating Stripe PaymentIntent", order_id=order_id, user_id=user_id, total_cost=manifest.total_cost)

        intent = await self._call(
            "create_payment",
            stripe.PaymentIntent.create,
            amount=to_cents(manifest.total_cost),
            currency=self.currency,
            description=f"{self.store.purchase_description}: {description}"[:_METADATA_LIMIT],
            metadata={"order_id": order_id, "user_id": user_id, "items": description[:_METADATA_LIMIT]},
            automatic_payment_methods={"enabled": True},
        )
        return CardPayment(id=intent.id, client_secret=getattr(intent, "client_secret", None))

    async def retrieve_payment(self, payment_id: str) -> CardSettlement:
        intent = await self._call("retrieve_payment", stripe.PaymentIntent.retrieve, payment_id)
        metadata = dict(intent.metadata or {})
        try:
            return CardSettlement(
                id=intent.id,
                order_id=metadata.get("order_id"),
                status=intent.status,
                currency=intent.currency,
                amount_received=intent.amount_received or 0,
                receipt={
                    "id": intent.id,
                    "status": intent.status,
                    "currency": intent.currency,
                    "amount": intent.amount,
                    "amount_received": intent.amount_received,
                    "metadata": metadata,
                },
            )
        except (AttributeError, ValueError) as e:
            raise Errors.Store.PAYMENT_PROVIDER_ERROR.create("Unexpected PaymentIntent payload", cause=e) from e

    def verify(self, settlement: CardSettlement, total_cost: Decimal) -> AppException | None:
        """Why ``settlement`` does not pay for ``total_cost``, or None when it does. Over-payment is accepted."""
        if not settlement.completed:
            return Errors.Store.PAYMENT_VERIFICATION_FAILED.create("Payment has not completed", details={"status": settlement.status})
        if settlement.currency.lower() != self.currency:
            return Errors.Store.PAYMENT_VERIFICATION_FAILED.create("Unexpected currency", details={"currency": settlement.currency})
        if settlement.amount_received < to_cents(total_cost):
            return Errors.Store.PAYMENT_VERIFICATION_FAILED.create(
                "Payment is less than the order total",
                details={"amount_received": settlement.amount_received, "expected": to_cents(total_cost)},
            )
        return None
