"""Pricing Service - current selling prices from dated price lists.

Resolution per product:
- Only price lists active on the pricing date (start_date <= date, end_date
  NULL or >= date) are considered
- The default list wins; otherwise the list with the newest start_date
- final price = unit_price * (1 + surcharge_pct / 100)
"""
from typing import Dict, Iterable, List, Optional
from datetime import date
from decimal import Decimal
import uuid
import logging

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pricing import PriceList, PriceListItem
from app.services.interfaces import PriceQuote

logger = logging.getLogger(__name__)


def calculate_final_price(unit_price: Decimal, surcharge_pct: Optional[Decimal] = None) -> Decimal:
    """Apply a percentage surcharge to a unit price."""
    if not surcharge_pct:
        return Decimal(unit_price)
    return Decimal(unit_price) * (1 + Decimal(surcharge_pct) / 100)


class PricingService:
    """Service for resolving current product prices."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_current_prices(
        self,
        product_ids: Iterable[uuid.UUID],
        customer_id: Optional[uuid.UUID] = None,
        on_date: Optional[date] = None,
    ) -> Dict[uuid.UUID, PriceQuote]:
        """
        Current price for each product in one query.

        Products without an active price are absent from the result.
        customer_id is accepted for customer-specific lists; all customers
        currently share the same lists.
        """
        ids = list(set(product_ids))
        if not ids:
            return {}
        pricing_date = on_date or date.today()

        result = await self.db.execute(
            select(PriceListItem, PriceList)
            .join(PriceList, PriceList.id == PriceListItem.price_list_id)
            .where(
                and_(
                    PriceListItem.product_id.in_(ids),
                    PriceList.start_date <= pricing_date,
                    or_(
                        PriceList.end_date.is_(None),
                        PriceList.end_date >= pricing_date,
                    ),
                )
            )
        )

        candidates: Dict[uuid.UUID, List[tuple]] = {}
        for item, price_list in result.all():
            candidates.setdefault(item.product_id, []).append((item, price_list))

        quotes: Dict[uuid.UUID, PriceQuote] = {}
        for product_id, rows in candidates.items():
            # Default list first, then newest start_date
            item, price_list = sorted(
                rows,
                key=lambda r: (not r[1].is_default, -r[1].start_date.toordinal()),
            )[0]
            quotes[product_id] = PriceQuote(
                product_id=product_id,
                final_price=calculate_final_price(item.unit_price, item.surcharge_pct),
                price_list_id=price_list.id,
                price_list_name=price_list.name,
                unit_price=Decimal(item.unit_price),
                surcharge_pct=Decimal(item.surcharge_pct or 0),
            )

        missing = set(ids) - set(quotes)
        if missing:
            logger.info("No active price for %d of %d products", len(missing), len(ids))
        return quotes
