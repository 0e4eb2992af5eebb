"""SQLAlchemy models. Importing this package registers every table."""
from app.models.customer import Customer, CustomerAddress, AccountStatus
from app.models.product import Product, ProductStatus, SkuVariant
from app.models.warehouse import Warehouse
from app.models.inventory import InventoryBalance
from app.models.pricing import PriceList, PriceListItem
from app.models.order import Order, OrderLine, OrderStatusHistory, OrderStatus, OrderType
from app.models.stock_transfer import Transfer, TransferItem, TransferStatus, TransferPriority
from app.models.idempotency import IdempotencyKey, IdempotencyStatus

__all__ = [
    "Customer",
    "CustomerAddress",
    "AccountStatus",
    "Product",
    "ProductStatus",
    "SkuVariant",
    "Warehouse",
    "InventoryBalance",
    "PriceList",
    "PriceListItem",
    "Order",
    "OrderLine",
    "OrderStatusHistory",
    "OrderStatus",
    "OrderType",
    "Transfer",
    "TransferItem",
    "TransferStatus",
    "TransferPriority",
    "IdempotencyKey",
    "IdempotencyStatus",
]
