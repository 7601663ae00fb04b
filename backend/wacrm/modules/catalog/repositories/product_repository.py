"""
Product Repository
Catalog lookups used by the auto-reply engine and flow-response capture.
"""
from typing import Optional, List, Iterable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.catalog.models.product import Product
from wacrm.shared.db.base import row_to_dict


class ProductRepository:
    """Repository for product reads scoped to one company."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_by_id(self, company_id: int, product_id: int) -> Optional[dict]:
        query = select(Product).where(Product.id == product_id, Product.company_id == company_id)
        product = (await self.db.execute(query)).scalar_one_or_none()
        return row_to_dict(product) if product else None

    async def get_by_retailer_id(self, company_id: int, retailer_id: str) -> Optional[dict]:
        """Find the active product for a Meta catalog retailer ID."""
        if not retailer_id:
            return None
        query = select(Product).where(
            Product.company_id == company_id,
            Product.retailer_id == retailer_id,
            Product.active.is_(True)
        )
        product = (await self.db.execute(query)).scalar_one_or_none()
        return row_to_dict(product) if product else None

    async def get_by_retailer_ids(self, company_id: int, retailer_ids: Iterable[str]) -> List[dict]:
        """
        Active products for a batch of retailer IDs (single query).
        Results follow the order of `retailer_ids`; unknown IDs are skipped.
        """
        ordered_ids = list(dict.fromkeys(r for r in retailer_ids if r))
        if not ordered_ids:
            return []

        query = select(Product).where(
            Product.company_id == company_id,
            Product.retailer_id.in_(ordered_ids),
            Product.active.is_(True)
        )
        by_retailer = {p.retailer_id: row_to_dict(p) for p in (await self.db.execute(query)).scalars().all()}
        return [by_retailer[r] for r in ordered_ids if r in by_retailer]

    async def get_by_flow_id(self, company_id: int, flow_id: str) -> Optional[dict]:
        """Product that launches this native flow (first by ID if several)."""
        if not flow_id:
            return None
        query = (
            select(Product)
            .where(Product.company_id == company_id, Product.flow_id == flow_id)
            .order_by(Product.id.asc())
            .limit(1)
        )
        product = (await self.db.execute(query)).scalar_one_or_none()
        return row_to_dict(product) if product else None

    async def list_active(self, company_id: int) -> List[dict]:
        """Active products of a company ordered by name (price list replies)."""
        query = (
            select(Product)
            .where(Product.company_id == company_id, Product.active.is_(True))
            .order_by(Product.name.asc())
        )
        return [row_to_dict(p) for p in (await self.db.execute(query)).scalars().all()]
