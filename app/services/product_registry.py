"""
Product Registry: the slice of the subscription catalogue the renewal
workflow needs: existence / retired checks, the current renewal terms
(snapshotted into each assessment), and write-back of the approver's call.

CRUD for product metadata lives elsewhere.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.models.renewal import Product
from app.schemas.assessment import Recommendation

logger = structlog.get_logger()

RETIRED = "retired"


class ProductRegistry:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find(self, product_id: str) -> Optional[Product]:
        return await self.db.get(Product, product_id)

    async def get(self, product_id: str) -> Product:
        product = await self.find(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", code="product_not_found", product_id=product_id)
        return product

    async def get_open_for_review(self, product_id: str) -> Product:
        """Product that may still receive assessments (exists and is not retired)."""
        product = await self.get(product_id)
        if product.status == RETIRED:
            raise ValidationError(
                f"Product {product_id} is retired and no longer accepts assessments",
                code="product_retired",
                product_id=product_id,
            )
        return product

    async def apply_final_decision(
        self,
        product_id: str,
        final_decision: Recommendation,
        new_renewal_date: Optional[date] = None,
        new_annual_cost: Optional[float] = None,
        new_licenses: Optional[int] = None,
    ) -> Optional[Product]:
        """
        Write the approver's decision back onto the product.
        retire → product retired; otherwise a new renewal date replaces the terms.
        Joins the caller's transaction; does not commit.
        """
        product = await self.find(product_id)
        if product is None:
            logger.warning("final_decision_product_missing", product_id=product_id)
            return None

        if final_decision == Recommendation.RETIRE:
            product.status = RETIRED
            logger.info("product_retired", product_id=product_id)
        elif new_renewal_date is not None:
            product.renewal_date = new_renewal_date
            product.annual_cost = new_annual_cost
            product.licenses = new_licenses
            logger.info(
                "product_terms_updated",
                product_id=product_id,
                renewal_date=new_renewal_date.isoformat(),
                annual_cost=new_annual_cost,
                licenses=new_licenses,
            )
        return product
