import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, Date, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, MoneyType


class OrderStatus(str, Enum):
    """Order status enumeration - cylinder delivery flow."""
    DRAFT = "draft"                   # Being captured, lines editable
    CONFIRMED = "confirmed"           # Stock reserved
    SCHEDULED = "scheduled"           # Delivery date fixed
    EN_ROUTE = "en_route"             # Truck dispatched
    DELIVERED = "delivered"           # Cylinders handed over
    INVOICED = "invoiced"             # Final, immutable
    CANCELLED = "cancelled"           # Final, immutable


class OrderType(str, Enum):
    """What physically happens to cylinders on delivery."""
    DELIVERY = "delivery"   # Full cylinders out
    REFILL = "refill"       # Full out, same number of empties back
    EXCHANGE = "exchange"   # Full out, a stated number of empties back
    PICKUP = "pickup"       # Empties collected only


class Order(Base):
    """
    Customer order for cylinders.
    Totals are derived from the lines and the stored tax amount.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )

    # Customer
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False
    )
    delivery_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("customer_addresses.id", ondelete="SET NULL"),
        nullable=True
    )

    # Warehouse stock is drawn from
    source_warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="draft, confirmed, scheduled, en_route, delivered, invoiced, cancelled"
    )
    order_type: Mapped[str] = mapped_column(
        String(20),
        default=OrderType.DELIVERY.value,
        nullable=False,
        comment="delivery, refill, exchange, pickup"
    )

    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="Sum of line subtotals before tax"
    )
    tax_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("0"),
        nullable=False
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="subtotal + tax_amount"
    )
    price_list_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("price_lists.id", ondelete="SET NULL"),
        nullable=True
    )

    # Cylinder exchange
    exchange_empty_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    requires_pickup: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    order_lines: Mapped[List["OrderLine"]] = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.line_number",
        lazy="selectin"
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.changed_at"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.INVOICED.value, OrderStatus.CANCELLED.value)

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderLine(Base):
    """Individual line within an order."""
    __tablename__ = "order_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Product (snapshot at order time)
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=True
    )
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    product_sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    subtotal: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    price_list_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="order_lines")

    def __repr__(self) -> str:
        return f"<OrderLine(sku='{self.product_sku}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Audit row for every order status change."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory({self.from_status} -> {self.to_status})>"
