"""SQL collaborators against an in-memory SQLite database."""
from datetime import date, timedelta
from decimal import Decimal
import uuid

import pytest
from sqlalchemy import select, func, and_

from app.core.exceptions import StockOperationFailed
from app.models.customer import Customer, CustomerAddress
from app.models.idempotency import IdempotencyStatus
from app.models.inventory import InventoryBalance
from app.models.order import Order, OrderStatusHistory
from app.models.pricing import PriceList, PriceListItem
from app.models.product import Product
from app.models.warehouse import Warehouse
from app.schemas.order import OrderCreate
from app.services.idempotency_service import IdempotencyService
from app.services.interfaces import StockTransferLine
from app.services.inventory_service import InventoryService
from app.services.order_repository import SQLOrderRepository
from app.services.order_service import OrderService
from app.services.pricing_service import PricingService
from app.services.product_service import ProductService


async def _warehouse(db, code="NBO"):
    warehouse = Warehouse(id=uuid.uuid4(), code=code, name=f"{code} Depot")
    db.add(warehouse)
    await db.flush()
    return warehouse


async def _product(db, sku="CYL-13-FULL", **kwargs):
    product = Product(id=uuid.uuid4(), sku=sku, name=kwargs.pop("name", sku), **kwargs)
    db.add(product)
    await db.flush()
    return product


async def _balance(db, warehouse, product, full=10, empty=0, reserved=0):
    db.add(InventoryBalance(
        warehouse_id=warehouse.id, product_id=product.id,
        qty_full=full, qty_empty=empty, qty_reserved=reserved,
    ))
    await db.flush()


async def _quantities(db, warehouse, product):
    result = await db.execute(
        select(InventoryBalance.qty_full, InventoryBalance.qty_empty, InventoryBalance.qty_reserved).where(
            and_(InventoryBalance.warehouse_id == warehouse.id, InventoryBalance.product_id == product.id)
        )
    )
    return tuple(result.one())


class TestInventoryService:

    async def test_reserve_and_release(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        await _balance(db, warehouse, product, full=10)
        stock = InventoryService(db)

        await stock.reserve(warehouse.id, product.id, 3)
        assert await _quantities(db, warehouse, product) == (10, 0, 3)

        await stock.release(warehouse.id, product.id, 2)
        assert await _quantities(db, warehouse, product) == (10, 0, 1)

    async def test_reserve_beyond_free_stock_changes_nothing(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        await _balance(db, warehouse, product, full=10, reserved=3)

        with pytest.raises(StockOperationFailed):
            await InventoryService(db).reserve(warehouse.id, product.id, 8)
        assert await _quantities(db, warehouse, product) == (10, 0, 3)

    async def test_release_more_than_reserved(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        await _balance(db, warehouse, product, full=10, reserved=1)
        with pytest.raises(StockOperationFailed):
            await InventoryService(db).release(warehouse.id, product.id, 2)

    async def test_fulfill_and_unfulfill(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        await _balance(db, warehouse, product, full=10, reserved=4)
        stock = InventoryService(db)

        await stock.fulfill(warehouse.id, product.id, 4)
        assert await _quantities(db, warehouse, product) == (6, 0, 0)

        await stock.unfulfill(warehouse.id, product.id, 4)
        assert await _quantities(db, warehouse, product) == (10, 0, 4)

    async def test_missing_row_is_a_failure(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        with pytest.raises(StockOperationFailed):
            await InventoryService(db).reserve(warehouse.id, product.id, 1)

    async def test_available_per_warehouse_and_summed(self, db):
        nbo, msa = await _warehouse(db, "NBO"), await _warehouse(db, "MSA")
        product, other = await _product(db), await _product(db, sku="CYL-6-FULL")
        await _balance(db, nbo, product, full=10, reserved=2)
        await _balance(db, msa, product, full=5)
        stock = InventoryService(db)

        assert await stock.get_available([product.id, other.id]) == {product.id: 13}
        assert await stock.get_available([product.id], nbo.id) == {product.id: 8}
        assert await stock.get_available([]) == {}

    async def test_empty_intake_creates_row(self, db):
        warehouse, product = await _warehouse(db), await _product(db)
        stock = InventoryService(db)

        await stock.adjust_empty(warehouse.id, product.id, 3)
        assert await _quantities(db, warehouse, product) == (0, 3, 0)

        await stock.adjust_empty(warehouse.id, product.id, -2)
        assert await _quantities(db, warehouse, product) == (0, 1, 0)

        with pytest.raises(StockOperationFailed):
            await stock.adjust_empty(warehouse.id, product.id, -5)

    async def test_snapshot_counts_empties_for_empty_variants(self, db):
        warehouse = await _warehouse(db)
        full = await _product(db, name="13kg Full")
        empty = await _product(db, sku="CYL-13-EMPTY", name="13kg Empty", variant_name="empty", is_variant=True)
        await _balance(db, warehouse, full, full=10, reserved=2)
        await _balance(db, warehouse, empty, empty=7)

        snapshot = {row.product_id: row for row in await InventoryService(db).get_stock_snapshot(
            warehouse.id, [full.id, empty.id]
        )}
        assert (snapshot[full.id].qty_available, snapshot[full.id].qty_reserved) == (10, 2)
        assert (snapshot[empty.id].qty_available, snapshot[empty.id].qty_reserved) == (7, 0)
        assert snapshot[empty.id].variant_name == "empty"

    async def test_transfer_moves_each_line_on_its_own(self, db):
        nbo, msa = await _warehouse(db, "NBO"), await _warehouse(db, "MSA")
        big, small = await _product(db), await _product(db, sku="CYL-6-FULL")
        await _balance(db, nbo, big, full=10)
        await _balance(db, nbo, small, full=2)

        failures = await InventoryService(db).transfer(
            nbo.id, msa.id, [StockTransferLine(big.id, 4), StockTransferLine(small.id, 5)]
        )

        assert [f["product_id"] for f in failures] == [str(small.id)]
        assert await _quantities(db, nbo, big) == (6, 0, 0)
        assert await _quantities(db, msa, big) == (4, 0, 0)
        assert await _quantities(db, nbo, small) == (2, 0, 0)


class TestModelTimestamps:

    async def test_rows_get_created_at_on_insert(self, db):
        warehouse = await _warehouse(db)
        product = await _product(db)
        await _balance(db, warehouse, product)

        result = await db.execute(
            select(InventoryBalance.created_at, Warehouse.created_at)
            .join(Warehouse, Warehouse.id == InventoryBalance.warehouse_id)
        )
        balance_created, warehouse_created = result.one()
        assert balance_created is not None
        assert warehouse_created is not None


class TestIdempotencyService:

    async def test_claim_lifecycle(self, db):
        store = IdempotencyService(db)

        first = await store.claim("a" * 64, "order_create", {"n": 1})
        assert not first.exists

        again = await store.claim("a" * 64, "order_create", {"n": 1})
        assert again.exists and again.in_process
        assert again.key_id == first.key_id

        await store.complete(first.key_id, {"order_id": "x"}, IdempotencyStatus.COMPLETED.value)
        replay = await store.claim("a" * 64, "order_create")
        assert replay.exists and not replay.in_process
        assert replay.stored_response == {"order_id": "x"}

    async def test_failed_key_can_be_claimed_again(self, db):
        store = IdempotencyService(db)
        first = await store.claim("b" * 64, "order_create")
        await store.complete(first.key_id, {"error": "boom"}, IdempotencyStatus.FAILED.value)

        retry = await store.claim("b" * 64, "order_create")
        assert not retry.exists
        assert retry.key_id == first.key_id


class TestPricingService:

    async def _price_list(self, db, name, start, is_default=False, end=None):
        price_list = PriceList(id=uuid.uuid4(), name=name, start_date=start, end_date=end, is_default=is_default)
        db.add(price_list)
        await db.flush()
        return price_list

    async def _item(self, db, price_list, product, price, surcharge=0):
        db.add(PriceListItem(
            price_list_id=price_list.id, product_id=product.id,
            unit_price=Decimal(price), surcharge_pct=Decimal(surcharge),
        ))
        await db.flush()

    async def test_default_list_wins_and_surcharge_applies(self, db):
        product = await _product(db)
        today = date.today()
        standard = await self._price_list(db, "Standard", today - timedelta(days=30), is_default=True)
        promo = await self._price_list(db, "Promo", today - timedelta(days=1))
        await self._item(db, standard, product, "1000", surcharge="5")
        await self._item(db, promo, product, "900")

        quotes = await PricingService(db).get_current_prices([product.id])
        quote = quotes[product.id]
        assert quote.price_list_id == standard.id
        assert quote.final_price == Decimal("1050")
        assert quote.unit_price == Decimal("1000")

    async def test_newest_list_when_no_default(self, db):
        product = await _product(db)
        today = date.today()
        older = await self._price_list(db, "Q1", today - timedelta(days=90))
        newer = await self._price_list(db, "Q2", today - timedelta(days=10))
        await self._item(db, older, product, "950")
        await self._item(db, newer, product, "980")

        quotes = await PricingService(db).get_current_prices([product.id])
        assert quotes[product.id].price_list_id == newer.id

    async def test_lists_outside_their_window_are_ignored(self, db):
        product, unpriced = await _product(db), await _product(db, sku="CYL-6-FULL")
        today = date.today()
        expired = await self._price_list(db, "Old", today - timedelta(days=60), end=today - timedelta(days=1))
        future = await self._price_list(db, "Next", today + timedelta(days=1))
        await self._item(db, expired, product, "800")
        await self._item(db, future, product, "1100")

        assert await PricingService(db).get_current_prices([product.id, unpriced.id]) == {}


class TestProductService:

    async def test_lookup_by_ids(self, db):
        product = await _product(db, name="13kg Cylinder", capacity_kg=Decimal("13"), status="inactive")
        found = await ProductService(db).get_products([product.id, uuid.uuid4()])
        assert list(found) == [product.id]
        assert found[product.id].name == "13kg Cylinder"
        assert not found[product.id].is_active


class TestOrderServiceOnSQL:

    async def _seed(self, db):
        warehouse, product = await _warehouse(db), await _product(db, name="13kg Cylinder")
        await _balance(db, warehouse, product, full=10)
        price_list = PriceList(
            id=uuid.uuid4(), name="Standard", start_date=date.today() - timedelta(days=1), is_default=True
        )
        db.add(price_list)
        db.add(PriceListItem(price_list_id=price_list.id, product_id=product.id, unit_price=Decimal("1000")))
        customer = Customer(id=uuid.uuid4(), name="Mama Mboga Kiosk")
        db.add(customer)
        address = CustomerAddress(id=uuid.uuid4(), customer_id=customer.id, address_line1="Moi Avenue 12")
        db.add(address)
        await db.flush()
        return warehouse, product, customer, address

    async def test_create_and_confirm(self, db):
        warehouse, product, customer, address = await self._seed(db)
        service = OrderService(db)

        result = await service.create_order(
            OrderCreate(
                customer_id=customer.id,
                delivery_address_id=address.id,
                source_warehouse_id=warehouse.id,
                order_lines=[{"product_id": product.id, "quantity": 3}],
                idempotency_key="sql-1",
            ),
            actor_id="user-1",
        )
        assert result.order.total_amount == Decimal("3000")

        replay = await service.create_order(
            OrderCreate(
                customer_id=customer.id,
                source_warehouse_id=warehouse.id,
                order_lines=[{"product_id": product.id, "quantity": 3}],
                idempotency_key="sql-1",
            ),
            actor_id="user-1",
        )
        assert replay.replayed
        assert replay.order.id == result.order.id
        assert await db.scalar(select(func.count(Order.id))) == 1

        await service.change_status(result.order.id, "confirmed", actor_id="user-1")
        assert await _quantities(db, warehouse, product) == (10, 0, 3)
        assert await db.scalar(
            select(func.count(OrderStatusHistory.id)).where(OrderStatusHistory.order_id == result.order.id)
        ) == 2

    async def test_conditional_status_update(self, db):
        warehouse, product, customer, address = await self._seed(db)
        result = await OrderService(db).create_order(
            OrderCreate(
                customer_id=customer.id,
                delivery_address_id=address.id,
                source_warehouse_id=warehouse.id,
                order_lines=[{"product_id": product.id, "quantity": 1}],
            )
        )
        repository = SQLOrderRepository(db)

        assert not await repository.update_status_if(result.order.id, "confirmed", "scheduled")
        assert await repository.update_status_if(result.order.id, "draft", "confirmed")
        assert await db.scalar(select(Order.status).where(Order.id == result.order.id)) == "confirmed"
