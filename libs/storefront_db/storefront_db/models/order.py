"""Order models.
An order is created PENDING when a payment transaction is opened and moves to a terminal status exactly once.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from common.db.db_utils import DateTimeUTC, JsonB, PydanticJson
from common.ids import OrderId, RequestId, UserId
from storefront_db.db import Base
from storefront_db.models.enum_utils import enum_values
from storefront_db.schemas.manifest import OrderManifest


class OrderStatus(StrEnum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    FAILED = "failed"


class PaymentMethod(StrEnum):
    CARD = "card"
    CRYPTO = "crypto"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[OrderId] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[UserId] = mapped_column(String(128), nullable=False, index=True)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, native_enum=False, values_callable=enum_values, length=16), nullable=False
    )
    manifest: Mapped[OrderManifest] = mapped_column(PydanticJson(OrderManifest.model_validate), nullable=False)
    buyer_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Card rail: the payment provider's transaction id
    provider_reference: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    # Crypto rail: the quote handed to the buyer, written once
    payment_payload: Mapped[dict[str, Any] | None] = mapped_column(JsonB, nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False, values_callable=enum_values, length=16),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    # Fulfillment lease
    processing_started_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(), nullable=True)
    processing_request_id: Mapped[RequestId | None] = mapped_column(String(64), nullable=True)
    # Set before the first side effect; a delivering order is never claimed again
    delivery_started_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(), nullable=True)


class OrderStatusEvent(Base):
    """Append-only history of order status transitions."""

    __tablename__ = "order_status_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[OrderId] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False, values_callable=enum_values, length=16), nullable=False
    )
    receipt: Mapped[dict[str, Any] | None] = mapped_column(JsonB, nullable=True)
