"""
Inventory Service - SQL stock store.

All stock mutations are single conditional UPDATE statements on
inventory_balance, so two requests racing for the same cylinders cannot
both succeed: the loser updates zero rows and gets StockOperationFailed.
"""
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StockOperationFailed
from app.models.inventory import InventoryBalance
from app.models.product import Product
from app.services.interfaces import StockTransferLine
from app.services.transfer_validation import WarehouseStockInfo


logger = logging.getLogger(__name__)


class InventoryService:
    """Reads and mutates warehouse cylinder balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== READS ====================

    async def get_available(
        self,
        product_ids: Iterable[uuid.UUID],
        warehouse_id: Optional[uuid.UUID] = None,
    ) -> Dict[uuid.UUID, int]:
        """
        Free full cylinders per product (qty_full - qty_reserved).

        Summed across warehouses when no warehouse is given. Products with
        no inventory row are left out of the result.
        """
        ids = list(set(product_ids))
        if not ids:
            return {}

        conditions = [InventoryBalance.product_id.in_(ids)]
        if warehouse_id:
            conditions.append(InventoryBalance.warehouse_id == warehouse_id)

        result = await self.db.execute(
            select(
                InventoryBalance.product_id,
                func.sum(InventoryBalance.qty_full - InventoryBalance.qty_reserved).label("available"),
            )
            .where(and_(*conditions))
            .group_by(InventoryBalance.product_id)
        )
        return {row.product_id: int(row.available or 0) for row in result.all()}

    async def get_stock_snapshot(
        self,
        warehouse_id: uuid.UUID,
        product_ids: Iterable[uuid.UUID],
    ) -> List[WarehouseStockInfo]:
        """One snapshot row per product with a balance in the warehouse."""
        ids = list(set(product_ids))
        if not ids:
            return []

        result = await self.db.execute(
            select(InventoryBalance, Product)
            .join(Product, Product.id == InventoryBalance.product_id)
            .where(
                and_(
                    InventoryBalance.warehouse_id == warehouse_id,
                    InventoryBalance.product_id.in_(ids),
                )
            )
        )

        snapshot = []
        for balance, product in result.all():
            # Empty-cylinder variants are counted in qty_empty
            if product.holds_empties:
                qty_available, qty_reserved = balance.qty_empty or 0, 0
            else:
                qty_available, qty_reserved = balance.qty_full or 0, balance.qty_reserved or 0
            snapshot.append(
                WarehouseStockInfo(
                    warehouse_id=balance.warehouse_id,
                    product_id=balance.product_id,
                    qty_available=qty_available,
                    qty_reserved=qty_reserved,
                    variant_name=product.variant_name,
                    product_name=product.name,
                    product_sku=product.sku,
                    reorder_level=balance.reorder_level,
                )
            )
        return snapshot

    # ==================== MUTATIONS ====================

    async def _conditional_update(self, operation: str, warehouse_id, product_id, quantity, condition, values) -> None:
        result = await self.db.execute(
            update(InventoryBalance)
            .where(
                and_(
                    InventoryBalance.warehouse_id == warehouse_id,
                    InventoryBalance.product_id == product_id,
                    condition,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Stock %s rejected: warehouse=%s product=%s qty=%s",
                operation, warehouse_id, product_id, quantity,
            )
            raise StockOperationFailed(
                f"Cannot {operation} {quantity} of product {product_id}",
                [{"product_id": str(product_id), "error": f"{operation} rejected for quantity {quantity}"}],
            )
        logger.info("Stock %s: warehouse=%s product=%s qty=%s", operation, warehouse_id, product_id, quantity)

    async def reserve(self, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
        await self._conditional_update(
            "reserve", warehouse_id, product_id, quantity,
            InventoryBalance.qty_full - InventoryBalance.qty_reserved >= quantity,
            {"qty_reserved": InventoryBalance.qty_reserved + quantity},
        )

    async def release(self, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
        await self._conditional_update(
            "release", warehouse_id, product_id, quantity,
            InventoryBalance.qty_reserved >= quantity,
            {"qty_reserved": InventoryBalance.qty_reserved - quantity},
        )

    async def fulfill(self, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
        await self._conditional_update(
            "fulfill", warehouse_id, product_id, quantity,
            and_(InventoryBalance.qty_full >= quantity, InventoryBalance.qty_reserved >= quantity),
            {
                "qty_full": InventoryBalance.qty_full - quantity,
                "qty_reserved": InventoryBalance.qty_reserved - quantity,
            },
        )

    async def unfulfill(self, warehouse_id: uuid.UUID, product_id: uuid.UUID, quantity: int) -> None:
        await self._conditional_update(
            "unfulfill", warehouse_id, product_id, quantity,
            InventoryBalance.qty_full >= 0,
            {
                "qty_full": InventoryBalance.qty_full + quantity,
                "qty_reserved": InventoryBalance.qty_reserved + quantity,
            },
        )

    async def adjust_empty(self, warehouse_id: uuid.UUID, product_id: uuid.UUID, delta: int) -> None:
        """Add (or with a negative delta, remove) empty cylinders; creates the row on first intake."""
        result = await self.db.execute(
            update(InventoryBalance)
            .where(
                and_(
                    InventoryBalance.warehouse_id == warehouse_id,
                    InventoryBalance.product_id == product_id,
                    InventoryBalance.qty_empty + delta >= 0,
                )
            )
            .values(qty_empty=InventoryBalance.qty_empty + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Stock adjust_empty: warehouse=%s product=%s delta=%s", warehouse_id, product_id, delta)
            return

        if delta > 0 and not await self._balance_exists(warehouse_id, product_id):
            self.db.add(
                InventoryBalance(
                    warehouse_id=warehouse_id,
                    product_id=product_id,
                    qty_full=0,
                    qty_empty=delta,
                    qty_reserved=0,
                )
            )
            await self.db.flush()
            logger.info("Stock row created for empties: warehouse=%s product=%s qty=%s", warehouse_id, product_id, delta)
            return

        raise StockOperationFailed(
            f"Cannot adjust empties by {delta} for product {product_id}",
            [{"product_id": str(product_id), "error": f"adjust_empty rejected for delta {delta}"}],
        )

    async def _balance_exists(self, warehouse_id: uuid.UUID, product_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(InventoryBalance.id).where(
                and_(
                    InventoryBalance.warehouse_id == warehouse_id,
                    InventoryBalance.product_id == product_id,
                )
            )
        )
        return result.first() is not None

    async def _move_line(self, source_id, destination_id, line: StockTransferLine, holds_empties: bool) -> None:
        column = "qty_empty" if holds_empties else "qty_full"
        qty_col = getattr(InventoryBalance, column)
        if holds_empties:
            condition = qty_col >= line.quantity
        else:
            condition = InventoryBalance.qty_full - InventoryBalance.qty_reserved >= line.quantity

        await self._conditional_update(
            "transfer out", source_id, line.product_id, line.quantity,
            condition, {column: qty_col - line.quantity},
        )

        result = await self.db.execute(
            update(InventoryBalance)
            .where(
                and_(
                    InventoryBalance.warehouse_id == destination_id,
                    InventoryBalance.product_id == line.product_id,
                )
            )
            .values({column: qty_col + line.quantity})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            values = {"qty_full": 0, "qty_empty": 0, "qty_reserved": 0, column: line.quantity}
            self.db.add(InventoryBalance(warehouse_id=destination_id, product_id=line.product_id, **values))
            await self.db.flush()

    async def transfer(
        self,
        source_warehouse_id: uuid.UUID,
        destination_warehouse_id: uuid.UUID,
        lines: Sequence[StockTransferLine],
    ) -> List[dict]:
        """
        Move stock line by line, each inside its own savepoint.

        A failed line is rolled back on its own and reported; lines already
        moved stay moved within the surrounding transaction.
        """
        result = await self.db.execute(
            select(Product).where(Product.id.in_({line.product_id for line in lines}))
        )
        products = {p.id: p for p in result.scalars().all()}

        failures: List[dict] = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                failures.append({"product_id": str(line.product_id), "error": "Product not found"})
                continue
            try:
                async with self.db.begin_nested():
                    await self._move_line(source_warehouse_id, destination_warehouse_id, line, product.holds_empties)
            except StockOperationFailed as exc:
                failures.append({"product_id": str(line.product_id), "error": exc.message})
            except SQLAlchemyError as exc:
                logger.exception("Transfer line failed: product=%s", line.product_id)
                failures.append({"product_id": str(line.product_id), "error": str(exc)})

        if failures:
            logger.error(
                "Transfer %s -> %s: %d of %d lines failed",
                source_warehouse_id, destination_warehouse_id, len(failures), len(lines),
            )
        return failures
