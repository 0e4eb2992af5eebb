"""SQLAlchemy persistence for orders and the customers they belong to."""
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer, CustomerAddress
from app.models.order import Order, OrderStatusHistory


class SQLOrderRepository:
    """Order reads and writes over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(select(Order).where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def list(
        self,
        status: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        conditions = []
        if status:
            conditions.append(Order.status == status)
        if customer_id:
            conditions.append(Order.customer_id == customer_id)

        stmt = select(Order).order_by(Order.created_at.desc())
        count_stmt = select(func.count(Order.id))
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def next_order_number(self) -> str:
        """ORD-YYYYMMDD-XXXXXX, random suffix."""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"ORD-{today}-{secrets.token_hex(3).upper()}"

    async def add(self, order: Order) -> Order:
        self.db.add(order)
        await self.db.flush()
        return order

    async def save(self, order: Order) -> Order:
        await self.db.flush()
        return order

    async def update_status_if(self, order_id: uuid.UUID, expected_status: str, new_status: str, **values: Any) -> bool:
        """UPDATE orders SET status=:new WHERE id=:id AND status=:expected."""
        result = await self.db.execute(
            update(Order)
            .where(and_(Order.id == order_id, Order.status == expected_status))
            .values(status=new_status, updated_at=datetime.now(timezone.utc), **values)
        )
        return result.rowcount == 1

    async def add_status_history(
        self,
        order_id: uuid.UUID,
        from_status: Optional[str],
        to_status: str,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.db.add(
            OrderStatusHistory(
                order_id=order_id,
                from_status=from_status,
                to_status=to_status,
                changed_by=changed_by,
                reason=reason,
                changed_at=datetime.now(timezone.utc),
            )
        )
        await self.db.flush()


class SQLCustomerDirectory:
    """Customer and address lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_customer(self, customer_id: uuid.UUID) -> Optional[Customer]:
        return await self.db.get(Customer, customer_id)

    async def get_address(self, customer_id: uuid.UUID, address_id: uuid.UUID) -> Optional[CustomerAddress]:
        result = await self.db.execute(
            select(CustomerAddress).where(
                and_(
                    CustomerAddress.id == address_id,
                    CustomerAddress.customer_id == customer_id,
                )
            )
        )
        return result.scalar_one_or_none()
