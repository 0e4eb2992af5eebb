"""Inventory balance per warehouse and product."""
from datetime import datetime, timezone
from sqlalchemy import Column, ForeignKey, Integer, DateTime
from sqlalchemy import UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType


class InventoryBalance(Base):
    """Full, empty and reserved cylinder counts for one warehouse/product."""

    __tablename__ = "inventory_balance"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_inventory_warehouse_product"),
        CheckConstraint("qty_full >= 0", name="ck_inventory_qty_full"),
        CheckConstraint("qty_empty >= 0", name="ck_inventory_qty_empty"),
        CheckConstraint("qty_reserved >= 0", name="ck_inventory_qty_reserved"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False, index=True)

    # Quantities
    qty_full = Column(Integer, default=0, nullable=False)
    qty_empty = Column(Integer, default=0, nullable=False)
    qty_reserved = Column(Integer, default=0, nullable=False)  # Held for confirmed orders

    # Reorder settings
    reorder_level = Column(Integer)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    warehouse = relationship("Warehouse", back_populates="balances")
    product = relationship("Product")

    @property
    def available_quantity(self) -> int:
        """Full cylinders not yet reserved."""
        return (self.qty_full or 0) - (self.qty_reserved or 0)

    def __repr__(self):
        return f"<InventoryBalance {self.warehouse_id}/{self.product_id}>"
