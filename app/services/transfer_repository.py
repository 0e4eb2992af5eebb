"""SQLAlchemy persistence for transfers."""
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.stock_transfer import Transfer
from app.models.warehouse import Warehouse


class SQLTransferRepository:
    """Transfer reads and writes over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, transfer_id: uuid.UUID) -> Optional[Transfer]:
        result = await self.db.execute(select(Transfer).where(Transfer.id == transfer_id))
        return result.scalar_one_or_none()

    async def add(self, transfer: Transfer) -> Transfer:
        self.db.add(transfer)
        await self.db.flush()
        return transfer

    async def list_for_source_date(self, source_warehouse_id: uuid.UUID, transfer_date: date) -> List[Transfer]:
        """Every transfer leaving the warehouse on that date, any status."""
        result = await self.db.execute(
            select(Transfer).where(
                and_(
                    Transfer.source_warehouse_id == source_warehouse_id,
                    Transfer.transfer_date == transfer_date,
                )
            )
        )
        return list(result.scalars().all())

    async def get_warehouses(self, warehouse_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Warehouse]:
        ids = [w for w in set(warehouse_ids) if w]
        if not ids:
            return {}
        result = await self.db.execute(select(Warehouse).where(Warehouse.id.in_(ids)))
        return {w.id: w for w in result.scalars().all()}

    async def update_status_if(self, transfer_id: uuid.UUID, expected_status: str, new_status: str, **values: Any) -> bool:
        result = await self.db.execute(
            update(Transfer)
            .where(and_(Transfer.id == transfer_id, Transfer.status == expected_status))
            .values(status=new_status, updated_at=datetime.now(timezone.utc), **values)
        )
        return result.rowcount == 1
