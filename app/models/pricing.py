"""Price lists and their items."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Date, Numeric
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType


class PriceList(Base):
    """A dated list of selling prices."""

    __tablename__ = "price_lists"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    currency_code = Column(String(3), default="KES")

    # Validity window; end_date NULL means open-ended
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_default = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    items = relationship("PriceListItem", back_populates="price_list", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<PriceList {self.name}>"


class PriceListItem(Base):
    """Price of one product within a price list."""

    __tablename__ = "price_list_items"
    __table_args__ = (
        UniqueConstraint("price_list_id", "product_id", name="uq_price_list_product"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    price_list_id = Column(UUIDType, ForeignKey("price_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False, index=True)

    unit_price = Column(Numeric(12, 2), nullable=False)
    surcharge_pct = Column(Numeric(5, 2), default=0)

    price_list = relationship("PriceList", back_populates="items")
    product = relationship("Product")

    def __repr__(self):
        return f"<PriceListItem {self.product_id} @ {self.unit_price}>"
