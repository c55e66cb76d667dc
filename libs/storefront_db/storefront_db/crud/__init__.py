from .catalog import CatalogDAO
from .order import OrderDAO

__all__ = ["CatalogDAO", "OrderDAO"]
