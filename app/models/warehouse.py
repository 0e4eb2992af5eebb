"""Warehouse model for storing inventory locations."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Numeric
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType


class Warehouse(Base):
    """Depot or filling plant holding cylinder stock."""

    __tablename__ = "warehouses"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    city = Column(String(100))

    # Capacity
    capacity_kg = Column(Numeric(12, 2))  # Max cylinder weight the site can hold

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    balances = relationship("InventoryBalance", back_populates="warehouse")
    outgoing_transfers = relationship(
        "Transfer",
        foreign_keys="Transfer.source_warehouse_id",
        back_populates="source_warehouse"
    )
    incoming_transfers = relationship(
        "Transfer",
        foreign_keys="Transfer.destination_warehouse_id",
        back_populates="destination_warehouse"
    )

    def __repr__(self):
        return f"<Warehouse {self.code}>"
