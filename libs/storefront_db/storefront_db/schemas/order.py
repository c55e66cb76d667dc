"""Pydantic views of persisted orders."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from common.ids import OrderId, RequestId, UserId
from storefront_db.models.order import OrderStatus, PaymentMethod
from storefront_db.schemas.manifest import OrderManifest


class OrderRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    order_id: OrderId = Field(validation_alias="id")
    user_id: UserId
    total_cost: Decimal
    payment_method: PaymentMethod
    manifest: OrderManifest
    status: OrderStatus
    buyer_address: str | None = None
    provider_reference: str | None = None
    payment_payload: dict[str, Any] | None = None
    processing_request_id: RequestId | None = None
    delivery_started_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class OrderStatusEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: OrderId
    status: OrderStatus
    receipt: dict[str, Any] | None = None
    created_at: datetime
