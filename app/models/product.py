import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType


class ProductStatus(str, Enum):
    """Product lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    OBSOLETE = "obsolete"


class SkuVariant(str, Enum):
    """Stock-keeping variants of a cylinder product."""
    EMPTY = "EMPTY"
    FULL_XCH = "FULL-XCH"  # Full cylinder given in exchange for an empty
    FULL_OUT = "FULL-OUT"  # Full cylinder sold outright
    DAMAGED = "DAMAGED"


class Product(Base):
    """
    Cylinder product.

    Parent products describe the cylinder (capacity, tare weight); variants
    are child rows carrying their own SKU and stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_parent_variant', 'parent_product_id', 'variant_name'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ProductStatus.ACTIVE.value,
        nullable=False,
        comment="active, inactive, obsolete"
    )

    # Physical attributes (kg)
    capacity_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    tare_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Variant hierarchy
    parent_product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=True
    )
    is_variant: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="e.g. full, empty"
    )
    sku_variant: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="EMPTY, FULL-XCH, FULL-OUT, DAMAGED"
    )

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

    parent: Mapped[Optional["Product"]] = relationship(
        "Product",
        remote_side="Product.id",
        back_populates="variants"
    )
    variants: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="parent"
    )

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    @property
    def holds_empties(self) -> bool:
        """True when stock of this product is counted as empty cylinders."""
        if self.sku_variant == SkuVariant.EMPTY.value:
            return True
        return (self.variant_name or "").lower() == "empty"

    def __repr__(self) -> str:
        return f"<Product(sku='{self.sku}', name='{self.name}')>"
