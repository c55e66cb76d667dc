"""Import all models so ``Base.metadata`` knows every table."""

from storefront_db.models.catalog import ItemToken, OfferContent, PlayerAddress, SaleOffer
from storefront_db.models.order import Order, OrderStatus, OrderStatusEvent, PaymentMethod

__all__ = [
    "ItemToken",
    "OfferContent",
    "Order",
    "OrderStatus",
    "OrderStatusEvent",
    "PaymentMethod",
    "PlayerAddress",
    "SaleOffer",
]
