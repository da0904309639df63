from app.models.product import Product
from app.models.retail import RetailLine
from app.models.order import Order, OrderItem, InventoryMovement

__all__ = ["Product", "RetailLine", "Order", "OrderItem", "InventoryMovement"]
