"""Transfer model for warehouse-to-warehouse cylinder movements."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, ForeignKey, Integer, DateTime, Date, Boolean, Numeric
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType, JSONType


class TransferStatus(str, Enum):
    """Transfer status enum."""
    DRAFT = "draft"  # Being created
    PENDING = "pending"  # Submitted, awaiting approval
    APPROVED = "approved"  # Approved, ready to dispatch
    IN_TRANSIT = "in_transit"  # Goods dispatched
    COMPLETED = "completed"  # Stock moved to destination
    CANCELLED = "cancelled"


class TransferPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Transfer(Base):
    """Multi-SKU stock transfer between warehouses."""

    __tablename__ = "transfers"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Transfer identification
    transfer_reference = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(String(20), default=TransferStatus.DRAFT.value, index=True)
    priority = Column(String(20), default=TransferPriority.NORMAL.value)

    # Warehouses
    source_warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)
    destination_warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), nullable=False, index=True)

    # Dates
    transfer_date = Column(Date, nullable=False, index=True)

    # Totals
    total_items = Column(Integer, default=0)
    total_quantity = Column(Integer, default=0)
    total_weight_kg = Column(Numeric(14, 2), default=0)
    total_cost = Column(Numeric(14, 2))

    notes = Column(Text)
    created_by = Column(String(100))
    approved_by = Column(String(100))

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    approved_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    source_warehouse = relationship(
        "Warehouse",
        foreign_keys=[source_warehouse_id],
        back_populates="outgoing_transfers"
    )
    destination_warehouse = relationship(
        "Warehouse",
        foreign_keys=[destination_warehouse_id],
        back_populates="incoming_transfers"
    )
    items = relationship(
        "TransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferItem.line_number",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Transfer {self.transfer_reference}>"


class TransferItem(Base):
    """Items in a transfer."""

    __tablename__ = "transfer_items"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    transfer_id = Column(UUIDType, ForeignKey("transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = Column(Integer, default=1, nullable=False)

    # Product
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(200))
    product_sku = Column(String(50))
    variant_name = Column(String(50))

    # Quantities
    quantity_to_transfer = Column(Integer, nullable=False)
    available_stock = Column(Integer)
    reserved_stock = Column(Integer)

    # Weight and valuation
    unit_weight_kg = Column(Numeric(10, 2))
    total_weight_kg = Column(Numeric(14, 2))
    unit_cost = Column(Numeric(12, 2))
    total_cost = Column(Numeric(14, 2))

    # Validation outcome at allocation time
    is_valid = Column(Boolean, default=True)
    validation_errors = Column(JSONType, default=list)
    validation_warnings = Column(JSONType, default=list)

    # Relationships
    transfer = relationship("Transfer", back_populates="items")

    def __repr__(self):
        return f"<TransferItem {self.product_sku} x{self.quantity_to_transfer}>"
