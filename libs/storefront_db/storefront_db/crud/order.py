"""Order CRUD with lease-based fulfillment claims."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.app_error import Errors
from common.ids import OrderId, RequestId, UserId
from common.utils.utils import get_logger, get_now
from storefront_db.models.order import Order, OrderStatus, OrderStatusEvent, PaymentMethod
from storefront_db.schemas.manifest import OrderManifest
from storefront_db.schemas.order import OrderRecord, OrderStatusEventRecord

logger = get_logger(__name__)

DEFAULT_LEASE = timedelta(minutes=10)


class OrderDAO:
    async def create_pending(
        self,
        db: AsyncSession,
        *,
        order_id: OrderId,
        user_id: UserId,
        total_cost: Decimal,
        payment_method: PaymentMethod,
        manifest: OrderManifest,
        buyer_address: str | None = None,
        provider_reference: str | None = None,
    ) -> OrderRecord:
        """Insert the order and its first history row in one transaction."""
        order = Order(
            id=order_id,
            user_id=user_id,
            total_cost=total_cost,
            payment_method=payment_method,
            manifest=manifest,
            buyer_address=buyer_address,
            provider_reference=provider_reference,
            status=OrderStatus.PENDING,
        )
        db.add(order)
        db.add(OrderStatusEvent(order_id=order_id, status=OrderStatus.PENDING))
        await db.commit()
        await db.refresh(order)
        logger.info("Order created", order_id=order_id, user_id=user_id, payment_method=payment_method, total_cost=total_cost)
        return OrderRecord.model_validate(order)

    async def get(self, db: AsyncSession, order_id: OrderId) -> OrderRecord | None:
        result = await db.execute(select(Order).where(Order.id == order_id).execution_options(populate_existing=True))
        row = result.scalar_one_or_none()
        return OrderRecord.model_validate(row) if row else None

    async def attach_payment_payload(self, db: AsyncSession, order_id: OrderId, payload: dict[str, Any]) -> None:
        """Store the quote handed to the buyer. Written once."""
        _ = await db.execute(
            update(Order).where(Order.id == order_id, Order.payment_payload.is_(None)).values(payment_payload=payload)
        )
        await db.commit()

    async def claim_for_fulfillment(
        self,
        db: AsyncSession,
        order_id: OrderId,
        request_id: RequestId,
        lease: timedelta = DEFAULT_LEASE,
    ) -> OrderRecord:
        """Claim a pending order for fulfillment.

        Returns the order with status PENDING when the claim was taken. When the order already
        reached a terminal status it is returned unchanged and nothing is claimed.

        Raises:
            ORDER_NOT_FOUND: no such order
            ORDER_BUSY: another request holds a live claim
            ORDER_NEEDS_RECONCILIATION: delivery started under an expired claim and never finished
        """
        now = get_now()
        result = await db.execute(
            update(Order)
            .where(
                and_(
                    Order.id == order_id,
                    Order.status == OrderStatus.PENDING,
                    Order.delivery_started_at.is_(None),
                    or_(Order.processing_request_id.is_(None), Order.processing_started_at < now - lease),
                )
            )
            .values(processing_started_at=now, processing_request_id=request_id)
        )
        await db.commit()

        order = await self.get(db, order_id)
        if order is None:
            raise Errors.Store.ORDER_NOT_FOUND.create(details={"order_id": order_id})
        if result.rowcount == 0 and order.status == OrderStatus.PENDING:
            if order.delivery_started_at is not None and order.delivery_started_at < now - lease:
                logger.error("Order stuck in delivery", order_id=order_id, delivery_started_at=order.delivery_started_at)
                raise Errors.Store.ORDER_NEEDS_RECONCILIATION.create(details={"order_id": order_id})
            raise Errors.Store.ORDER_BUSY.create(details={"order_id": order_id})
        return order

    async def release_claim(self, db: AsyncSession, order_id: OrderId, request_id: RequestId) -> None:
        """Drop our claim. A no-op when the lease was already taken over or delivery has started."""
        _ = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.processing_request_id == request_id, Order.delivery_started_at.is_(None))
            .values(processing_started_at=None, processing_request_id=None)
        )
        await db.commit()

    async def begin_delivery(self, db: AsyncSession, order_id: OrderId, request_id: RequestId) -> bool:
        """Mark a claimed order as delivering. False when the claim was lost before any side effect."""
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
                Order.processing_request_id == request_id,
                Order.delivery_started_at.is_(None),
            )
            .values(delivery_started_at=get_now())
        )
        await db.commit()
        return result.rowcount == 1

    async def complete(
        self,
        db: AsyncSession,
        order_id: OrderId,
        request_id: RequestId,
        status: OrderStatus,
        receipt: dict[str, Any] | None,
    ) -> bool:
        """Write the terminal status for a claimed order and append it to the history.

        Returns False when the claim was lost, in which case nothing is written.
        """
        if status == OrderStatus.PENDING:
            raise ValueError("Terminal status required")

        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING, Order.processing_request_id == request_id)
            .values(status=status, processing_started_at=None, processing_request_id=None, delivery_started_at=None)
        )
        if result.rowcount == 0:
            await db.rollback()
            logger.warning("Lost fulfillment claim before terminal write", order_id=order_id, status=status)
            return False

        db.add(OrderStatusEvent(order_id=order_id, status=status, receipt=receipt))
        await db.commit()
        logger.info("Order completed", order_id=order_id, status=status)
        return True

    async def list_events(self, db: AsyncSession, order_id: OrderId) -> list[OrderStatusEventRecord]:
        result = await db.execute(select(OrderStatusEvent).where(OrderStatusEvent.order_id == order_id).order_by(OrderStatusEvent.id))
        return [OrderStatusEventRecord.model_validate(row) for row in result.scalars().all()]
