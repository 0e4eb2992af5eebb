from typing import Dict, Iterable
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product
from app.services.interfaces import ProductInfo


class ProductService:
    """Read-only catalog lookups for orders and transfers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_products(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, ProductInfo]:
        """Fetch all requested products in one query, keyed by id.

        Unknown ids are simply absent from the result.
        """
        ids = list(set(product_ids))
        if not ids:
            return {}

        result = await self.db.execute(select(Product).where(Product.id.in_(ids)))
        return {p.id: self._to_info(p) for p in result.scalars().all()}

    @staticmethod
    def _to_info(product: Product) -> ProductInfo:
        return ProductInfo(
            id=product.id,
            sku=product.sku,
            name=product.name,
            status=product.status,
            capacity_kg=product.capacity_kg,
            tare_weight_kg=product.tare_weight_kg,
            unit_cost=product.unit_cost,
            is_variant=bool(product.is_variant),
            variant_name=product.variant_name,
            parent_product_id=product.parent_product_id,
        )
