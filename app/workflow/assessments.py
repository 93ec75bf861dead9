"""
Assessment store.

Append-mostly: rows are inserted by intake only. Afterwards just the
review-state fields may change (reviewer role or higher), and only an admin
may hard-delete. The same person may submit several assessments for one
product; each one is a separate data point.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.models.renewal import RenewalAssessment
from app.schemas.assessment import (
    REVIEW_CLOSING_STATUSES,
    AssessmentReviewUpdate,
    AssessmentStatus,
)
from app.workflow.roles import Caller, Role

logger = structlog.get_logger()

# The only columns a PATCH may touch
REVIEW_FIELDS = frozenset({
    "status",
    "admin_notes",
    "reviewed_by",
    "reviewed_at",
    "outcome_notes",
    "final_decision",
})


class AssessmentStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def add(self, assessment: RenewalAssessment) -> RenewalAssessment:
        """Stage a new row. The caller owns the transaction."""
        self.db.add(assessment)
        return assessment

    async def get(self, assessment_id: str) -> RenewalAssessment:
        assessment = await self.db.get(RenewalAssessment, assessment_id)
        if assessment is None:
            raise NotFoundError(
                f"Assessment {assessment_id} not found",
                code="assessment_not_found",
                assessment_id=assessment_id,
            )
        return assessment

    async def list(
        self,
        product_id: Optional[str] = None,
        status: Optional[AssessmentStatus] = None,
    ) -> Sequence[RenewalAssessment]:
        stmt = select(RenewalAssessment).order_by(RenewalAssessment.submitted_at.desc())
        if product_id:
            stmt = stmt.where(RenewalAssessment.product_id == product_id)
        if status:
            stmt = stmt.where(RenewalAssessment.status == status.value)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def list_for_product(self, product_id: str) -> Sequence[RenewalAssessment]:
        return await self.list(product_id=product_id)

    async def update_review(
        self,
        assessment_id: str,
        update: AssessmentReviewUpdate,
        caller: Caller,
    ) -> RenewalAssessment:
        caller.require(Role.REVIEWER, "review_assessment")

        changes = update.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No valid fields to update", code="no_fields")
        illegal = set(changes) - REVIEW_FIELDS
        if illegal:
            raise ValidationError(
                f"Fields cannot be modified after submission: {', '.join(sorted(illegal))}",
                code="immutable_field",
            )

        assessment = await self.get(assessment_id)

        for field, value in changes.items():
            setattr(assessment, field, value.value if isinstance(value, Enum) else value)

        if update.status in REVIEW_CLOSING_STATUSES and "reviewed_at" not in changes:
            assessment.reviewed_at = datetime.now(timezone.utc)
        if "reviewed_by" not in changes:
            assessment.reviewed_by = caller.email

        await self.db.commit()
        logger.info(
            "assessment_review_updated",
            assessment_id=assessment_id,
            fields=sorted(changes),
            reviewer=caller.email,
        )
        return assessment

    async def delete(self, assessment_id: str, caller: Caller) -> str:
        """Admin hard delete. Returns the product id so its aggregate can be recomputed."""
        caller.require(Role.ADMIN, "delete_assessment")
        assessment = await self.get(assessment_id)
        product_id = assessment.product_id
        await self.db.delete(assessment)
        await self.db.commit()
        logger.info("assessment_deleted", assessment_id=assessment_id, product_id=product_id, by=caller.email)
        return product_id
