"""
Shared fixtures.

Service tests run against in-memory fakes of the collaborator protocols;
SQL store and API tests run against an in-memory SQLite database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from app.core.exceptions import StockOperationFailed
from app.database import Base, engine, async_session_factory
from app.models.customer import AccountStatus, Customer, CustomerAddress
from app.models.idempotency import IdempotencyStatus
from app.models.order import Order
from app.models.warehouse import Warehouse
from app.services.interfaces import IdempotencyClaim, PriceQuote, ProductInfo
from app.services.order_service import OrderService
from app.services.transfer_service import TransferService
from app.services.transfer_validation import WarehouseStockInfo


# ==================== FAKES ====================

class FakeStock:
    """In-memory StockStore keyed by (warehouse_id, product_id)."""

    def __init__(self, catalog: Optional["FakeCatalog"] = None):
        self.rows: Dict[tuple, dict] = {}
        self.calls: List[tuple] = []
        self.fail_on: set = set()  # {(action, product_id)}
        self.catalog = catalog

    def set(self, warehouse_id, product_id, full=0, empty=0, reserved=0, reorder_level=None):
        self.rows[(warehouse_id, product_id)] = {
            "full": full, "empty": empty, "reserved": reserved, "reorder_level": reorder_level,
        }

    def row(self, warehouse_id, product_id) -> dict:
        return self.rows[(warehouse_id, product_id)]

    async def get_available(self, product_ids, warehouse_id=None):
        available = {}
        for (wh, pid), row in self.rows.items():
            if pid in set(product_ids) and (warehouse_id is None or wh == warehouse_id):
                available[pid] = available.get(pid, 0) + row["full"] - row["reserved"]
        return available

    async def get_stock_snapshot(self, warehouse_id, product_ids):
        snapshot = []
        for pid in set(product_ids):
            row = self.rows.get((warehouse_id, pid))
            if row is None:
                continue
            product = self.catalog.products.get(pid) if self.catalog else None
            snapshot.append(
                WarehouseStockInfo(
                    warehouse_id=warehouse_id,
                    product_id=pid,
                    qty_available=row["full"],
                    qty_reserved=row["reserved"],
                    variant_name=product.variant_name if product and product.is_variant else None,
                    product_name=product.name if product else "",
                    product_sku=product.sku if product else "",
                    reorder_level=row["reorder_level"],
                )
            )
        return snapshot

    def _check(self, action, warehouse_id, product_id, ok):
        self.calls.append((action, product_id))
        if (action, product_id) in self.fail_on or not ok:
            raise StockOperationFailed(
                f"Cannot {action} product {product_id}",
                [{"product_id": str(product_id), "error": f"{action} rejected"}],
            )

    async def reserve(self, warehouse_id, product_id, quantity):
        row = self.rows.get((warehouse_id, product_id))
        self._check("reserve", warehouse_id, product_id, row and row["full"] - row["reserved"] >= quantity)
        row["reserved"] += quantity

    async def release(self, warehouse_id, product_id, quantity):
        row = self.rows.get((warehouse_id, product_id))
        self._check("release", warehouse_id, product_id, row and row["reserved"] >= quantity)
        row["reserved"] -= quantity

    async def fulfill(self, warehouse_id, product_id, quantity):
        row = self.rows.get((warehouse_id, product_id))
        self._check(
            "fulfill", warehouse_id, product_id,
            row and row["full"] >= quantity and row["reserved"] >= quantity,
        )
        row["full"] -= quantity
        row["reserved"] -= quantity

    async def unfulfill(self, warehouse_id, product_id, quantity):
        row = self.rows.get((warehouse_id, product_id))
        self._check("unfulfill", warehouse_id, product_id, row is not None)
        row["full"] += quantity
        row["reserved"] += quantity

    async def adjust_empty(self, warehouse_id, product_id, delta):
        row = self.rows.get((warehouse_id, product_id))
        self._check("adjust_empty", warehouse_id, product_id, row and row["empty"] + delta >= 0)
        row["empty"] += delta

    async def transfer(self, source_warehouse_id, destination_warehouse_id, lines):
        failures = []
        for line in lines:
            source = self.rows.get((source_warehouse_id, line.product_id))
            if ("transfer", line.product_id) in self.fail_on or not source \
                    or source["full"] - source["reserved"] < line.quantity:
                failures.append({"product_id": str(line.product_id), "error": "Insufficient stock"})
                continue
            source["full"] -= line.quantity
            destination = self.rows.setdefault(
                (destination_warehouse_id, line.product_id),
                {"full": 0, "empty": 0, "reserved": 0, "reorder_level": None},
            )
            destination["full"] += line.quantity
        return failures


class FakeCatalog:
    def __init__(self):
        self.products: Dict[uuid.UUID, ProductInfo] = {}

    def add(self, **kwargs) -> ProductInfo:
        product = ProductInfo(id=kwargs.pop("id", uuid.uuid4()), **kwargs)
        self.products[product.id] = product
        return product

    async def get_products(self, product_ids):
        return {pid: self.products[pid] for pid in set(product_ids) if pid in self.products}


class FakePricing:
    def __init__(self):
        self.price_list_id = uuid.uuid4()
        self.quotes: Dict[uuid.UUID, PriceQuote] = {}

    def set(self, product_id, price):
        self.quotes[product_id] = PriceQuote(
            product_id=product_id,
            final_price=Decimal(price),
            price_list_id=self.price_list_id,
            price_list_name="Standard",
            unit_price=Decimal(price),
        )

    async def get_current_prices(self, product_ids, customer_id=None, on_date=None):
        return {pid: self.quotes[pid] for pid in set(product_ids) if pid in self.quotes}


class FakeIdempotency:
    def __init__(self):
        self.keys: Dict[str, dict] = {}

    async def claim(self, key_hash, operation, request_data=None):
        existing = self.keys.get(key_hash)
        if existing is None or existing["status"] == IdempotencyStatus.FAILED.value:
            key_id = existing["id"] if existing else uuid.uuid4()
            self.keys[key_hash] = {"id": key_id, "status": IdempotencyStatus.PROCESSING.value, "response": None}
            return IdempotencyClaim(key_id=key_id, exists=False, in_process=False)
        if existing["status"] == IdempotencyStatus.PROCESSING.value:
            return IdempotencyClaim(key_id=existing["id"], exists=True, in_process=True)
        return IdempotencyClaim(
            key_id=existing["id"], exists=True, in_process=False, stored_response=existing["response"],
        )

    async def complete(self, key_id, response, status):
        for record in self.keys.values():
            if record["id"] == key_id:
                record["status"] = status
                record["response"] = response

    def statuses(self) -> List[str]:
        return [record["status"] for record in self.keys.values()]


class FakeOrders:
    def __init__(self):
        self.orders: Dict[uuid.UUID, Order] = {}
        self.history: List[tuple] = []
        self.stale = False  # simulate a concurrent writer
        self._seq = 0

    async def get(self, order_id):
        return self.orders.get(order_id)

    async def list(self, status=None, customer_id=None, limit=50, offset=0):
        items = [
            o for o in self.orders.values()
            if (status is None or o.status == status) and (customer_id is None or o.customer_id == customer_id)
        ]
        return items[offset:offset + limit], len(items)

    async def next_order_number(self):
        self._seq += 1
        return f"ORD-20261019-{self._seq:06d}"

    async def add(self, order):
        self.orders[order.id] = order
        return order

    async def save(self, order):
        return order

    async def update_status_if(self, order_id, expected_status, new_status, **values):
        order = self.orders.get(order_id)
        if self.stale or order is None or order.status != expected_status:
            return False
        order.status = new_status
        for attr, value in values.items():
            setattr(order, attr, value)
        return True

    async def add_status_history(self, order_id, from_status, to_status, changed_by=None, reason=None):
        self.history.append((order_id, from_status, to_status, changed_by, reason))


class FakeCustomers:
    def __init__(self):
        self.customers: Dict[uuid.UUID, Customer] = {}
        self.addresses: Dict[uuid.UUID, CustomerAddress] = {}

    def add(self, status=AccountStatus.ACTIVE.value):
        customer = Customer(id=uuid.uuid4(), name="Mama Mboga Kiosk", account_status=status)
        address = CustomerAddress(
            id=uuid.uuid4(), customer_id=customer.id, address_line1="Moi Avenue 12", city="Nairobi",
        )
        self.customers[customer.id] = customer
        self.addresses[address.id] = address
        return customer, address

    async def get_customer(self, customer_id):
        return self.customers.get(customer_id)

    async def get_address(self, customer_id, address_id):
        address = self.addresses.get(address_id)
        if address and address.customer_id == customer_id:
            return address
        return None


class FakeTransfers:
    def __init__(self):
        self.transfers = {}
        self.warehouses: Dict[uuid.UUID, Warehouse] = {}

    def add_warehouse(self, code, capacity_kg=None) -> Warehouse:
        warehouse = Warehouse(id=uuid.uuid4(), code=code, name=f"{code} Depot", capacity_kg=capacity_kg)
        self.warehouses[warehouse.id] = warehouse
        return warehouse

    async def get(self, transfer_id):
        return self.transfers.get(transfer_id)

    async def add(self, transfer):
        self.transfers[transfer.id] = transfer
        return transfer

    async def list_for_source_date(self, source_warehouse_id, transfer_date):
        return [
            t for t in self.transfers.values()
            if t.source_warehouse_id == source_warehouse_id and t.transfer_date == transfer_date
        ]

    async def get_warehouses(self, warehouse_ids):
        return {wid: self.warehouses[wid] for wid in set(warehouse_ids) if wid in self.warehouses}

    async def update_status_if(self, transfer_id, expected_status, new_status, **values):
        transfer = self.transfers.get(transfer_id)
        if transfer is None or transfer.status != expected_status:
            return False
        transfer.status = new_status
        for attr, value in values.items():
            setattr(transfer, attr, value)
        return True


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def stock(catalog):
    return FakeStock(catalog)


@pytest.fixture
def pricing():
    return FakePricing()


@pytest.fixture
def idempotency():
    return FakeIdempotency()


@pytest.fixture
def orders():
    return FakeOrders()


@pytest.fixture
def customers():
    return FakeCustomers()


@pytest.fixture
def transfers():
    return FakeTransfers()


@pytest.fixture
def order_service(stock, pricing, catalog, idempotency, orders, customers):
    return OrderService(
        stock=stock,
        pricing=pricing,
        catalog=catalog,
        idempotency=idempotency,
        orders=orders,
        customers=customers,
    )


@pytest.fixture
def transfer_service(stock, catalog, transfers):
    return TransferService(stock=stock, catalog=catalog, transfers=transfers)


@pytest.fixture
def warehouse_id():
    return uuid.uuid4()


@pytest.fixture
def cylinder(catalog, pricing, stock, warehouse_id):
    """13 kg full cylinder priced 1000 with 10 in stock."""
    product = catalog.add(sku="CYL-13-FULL", name="13kg Cylinder", capacity_kg=Decimal("13"))
    pricing.set(product.id, "1000")
    stock.set(warehouse_id, product.id, full=10)
    return product


@pytest.fixture
def small_cylinder(catalog, pricing, stock, warehouse_id):
    """6 kg full cylinder priced 450 with 20 in stock."""
    product = catalog.add(sku="CYL-6-FULL", name="6kg Cylinder", capacity_kg=Decimal("6"))
    pricing.set(product.id, "450")
    stock.set(warehouse_id, product.id, full=20)
    return product


@pytest.fixture
def customer(customers):
    return customers.add()


# ==================== DATABASE FIXTURES ====================

@pytest.fixture
async def db_tables():
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db(db_tables):
    async with async_session_factory() as session:
        yield session
        await session.rollback()
