"""
Collaborator protocols used by OrderService and TransferService.

SQL implementations live next to this module (inventory_service,
pricing_service, product_service, idempotency_service, order_repository,
transfer_repository); tests substitute in-memory fakes.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, runtime_checkable
from uuid import UUID

from app.models.customer import Customer, CustomerAddress
from app.models.order import Order
from app.models.product import ProductStatus
from app.models.stock_transfer import Transfer
from app.models.warehouse import Warehouse
from app.services.transfer_validation import WarehouseStockInfo


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    sku: str
    name: str
    status: str = ProductStatus.ACTIVE.value
    capacity_kg: Optional[Decimal] = None
    tare_weight_kg: Optional[Decimal] = None
    unit_cost: Optional[Decimal] = None
    is_variant: bool = False
    variant_name: Optional[str] = None
    parent_product_id: Optional[UUID] = None

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value


@dataclass(frozen=True)
class PriceQuote:
    product_id: UUID
    final_price: Decimal
    price_list_id: UUID
    price_list_name: str
    unit_price: Optional[Decimal] = None
    surcharge_pct: Decimal = Decimal("0")


@dataclass(frozen=True)
class IdempotencyClaim:
    key_id: UUID
    exists: bool
    in_process: bool
    stored_response: Optional[dict] = None


@dataclass(frozen=True)
class StockTransferLine:
    product_id: UUID
    quantity: int


@runtime_checkable
class StockStore(Protocol):
    """Warehouse stock reads and conditional mutations.

    Mutations raise StockOperationFailed when the row is missing or the
    condition (enough free stock, enough reserved) does not hold.
    """

    async def get_available(self, product_ids: Iterable[UUID], warehouse_id: Optional[UUID]) -> Dict[UUID, int]:
        """Free full cylinders (qty_full - qty_reserved) per product; products without a row are absent."""
        ...

    async def get_stock_snapshot(self, warehouse_id: UUID, product_ids: Iterable[UUID]) -> List[WarehouseStockInfo]:
        ...

    async def reserve(self, warehouse_id: UUID, product_id: UUID, quantity: int) -> None:
        ...

    async def release(self, warehouse_id: UUID, product_id: UUID, quantity: int) -> None:
        ...

    async def fulfill(self, warehouse_id: UUID, product_id: UUID, quantity: int) -> None:
        """Deduct delivered full cylinders and their reservation."""
        ...

    async def unfulfill(self, warehouse_id: UUID, product_id: UUID, quantity: int) -> None:
        """Exact inverse of fulfill."""
        ...

    async def adjust_empty(self, warehouse_id: UUID, product_id: UUID, delta: int) -> None:
        ...

    async def transfer(
        self, source_warehouse_id: UUID, destination_warehouse_id: UUID, lines: Sequence[StockTransferLine]
    ) -> List[dict]:
        """Move each line atomically; return one {product_id, error} dict per failed line."""
        ...


@runtime_checkable
class PricingCollaborator(Protocol):
    async def get_current_prices(
        self, product_ids: Iterable[UUID], customer_id: Optional[UUID] = None, on_date: Optional[date] = None
    ) -> Dict[UUID, PriceQuote]:
        ...


@runtime_checkable
class ProductCatalog(Protocol):
    async def get_products(self, product_ids: Iterable[UUID]) -> Dict[UUID, ProductInfo]:
        ...


@runtime_checkable
class IdempotencyStore(Protocol):
    async def claim(self, key_hash: str, operation: str, request_data: Optional[dict] = None) -> IdempotencyClaim:
        """Insert the key as processing, or report the existing row. Failed keys are re-claimed."""
        ...

    async def complete(self, key_id: UUID, response: Optional[dict], status: str) -> None:
        ...


@runtime_checkable
class CustomerDirectory(Protocol):
    async def get_customer(self, customer_id: UUID) -> Optional[Customer]:
        ...

    async def get_address(self, customer_id: UUID, address_id: UUID) -> Optional[CustomerAddress]:
        ...


@runtime_checkable
class OrderRepository(Protocol):
    async def get(self, order_id: UUID) -> Optional[Order]:
        ...

    async def list(
        self,
        status: Optional[str] = None,
        customer_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        ...

    async def next_order_number(self) -> str:
        ...

    async def add(self, order: Order) -> Order:
        ...

    async def save(self, order: Order) -> Order:
        ...

    async def update_status_if(self, order_id: UUID, expected_status: str, new_status: str, **values: Any) -> bool:
        """Conditional status write; False when the stored status is no longer expected_status."""
        ...

    async def add_status_history(
        self, order_id: UUID, from_status: Optional[str], to_status: str,
        changed_by: Optional[str] = None, reason: Optional[str] = None,
    ) -> None:
        ...


@runtime_checkable
class TransferRepository(Protocol):
    async def get(self, transfer_id: UUID) -> Optional[Transfer]:
        ...

    async def add(self, transfer: Transfer) -> Transfer:
        ...

    async def list_for_source_date(self, source_warehouse_id: UUID, transfer_date: date) -> List[Transfer]:
        ...

    async def get_warehouses(self, warehouse_ids: Iterable[UUID]) -> Dict[UUID, Warehouse]:
        ...

    async def update_status_if(self, transfer_id: UUID, expected_status: str, new_status: str, **values: Any) -> bool:
        ...
