"""
/v1/renewals/assessments

POST   /assessments        → public intake (validate → persist → async aggregate refresh + notify)
GET    /assessments        → list, filter by product / status
GET    /assessments/{id}   → single assessment
PATCH  /assessments/{id}   → review-state fields only (reviewer+)
DELETE /assessments/{id}   → hard delete (admin), aggregate recomputed
"""
from __future__ import annotations

from typing import Iterable, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import get_caller
from app.core.config import Settings, get_settings
from app.core.errors import DependencyError
from app.models.database import get_db, get_sessionmaker
from app.models.renewal import Product, RenewalAssessment
from app.schemas.assessment import (
    AssessmentResponse,
    AssessmentReviewUpdate,
    AssessmentStatus,
    AssessmentSubmission,
    ProductSummary,
)
from app.services.background import BackgroundDispatcher, get_dispatcher
from app.services.notifier import build_submission_event, publish_submission_event
from app.workflow.assessments import AssessmentStore
from app.workflow.decisions import DecisionManager, refresh_in_new_session
from app.workflow.intake import submit_assessment
from app.workflow.roles import Caller

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/renewals", tags=["assessments"])


def to_response(assessment: RenewalAssessment, product: Optional[Product]) -> AssessmentResponse:
    resp = AssessmentResponse.model_validate(assessment)
    if product is not None:
        resp.product = ProductSummary.model_validate(product)
    return resp


async def with_products(db: AsyncSession, rows: Iterable[RenewalAssessment]) -> list[AssessmentResponse]:
    rows = list(rows)
    ids = {r.product_id for r in rows}
    products: dict[str, Product] = {}
    if ids:
        result = await db.execute(select(Product).where(Product.id.in_(ids)))
        products = {p.id: p for p in result.scalars().all()}
    return [to_response(r, products.get(r.product_id)) for r in rows]


@router.post(
    "/assessments",
    response_model=AssessmentResponse,
    status_code=201,
    summary="Submit a renewal assessment",
    description="Public intake. The aggregate refresh and notification run after the response.",
)
async def create_assessment(
    payload: AssessmentSubmission,
    db: AsyncSession = Depends(get_db),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> AssessmentResponse:
    assessment, product = await submit_assessment(
        db, payload, email_domain=settings.institution_email_domain,
    )

    # ── Fire-and-forget: aggregate refresh + notification ──
    dispatcher.submit("refresh_aggregate", refresh_in_new_session, sessionmaker, product.id)
    dispatcher.submit("notify_submission", publish_submission_event, build_submission_event(assessment, product))

    return to_response(assessment, product)


@router.get("/assessments", response_model=list[AssessmentResponse])
async def list_assessments(
    product: Optional[str] = Query(None, description="Filter by product id"),
    status: Optional[AssessmentStatus] = None,
    db: AsyncSession = Depends(get_db),
) -> list[AssessmentResponse]:
    rows = await AssessmentStore(db).list(product_id=product, status=status)
    return await with_products(db, rows)


@router.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(assessment_id: str, db: AsyncSession = Depends(get_db)) -> AssessmentResponse:
    assessment = await AssessmentStore(db).get(assessment_id)
    return to_response(assessment, await db.get(Product, assessment.product_id))


@router.patch("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def review_assessment(
    assessment_id: str,
    update: AssessmentReviewUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> AssessmentResponse:
    assessment = await AssessmentStore(db).update_review(assessment_id, update, caller)
    return to_response(assessment, await db.get(Product, assessment.product_id))


@router.delete("/assessments/{assessment_id}")
async def delete_assessment(
    assessment_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> dict:
    product_id = await AssessmentStore(db).delete(assessment_id, caller)
    try:
        decision = await DecisionManager(db).refresh_aggregate(product_id, create_missing=False)
    except DependencyError as e:
        # The delete is committed; the next submission or admin refresh recomputes
        logger.warning("assessment_delete_recompute_failed", assessment_id=assessment_id, product_id=product_id, code=e.code)
        decision = None
    return {
        "success": True,
        "assessment_id": assessment_id,
        "decision_total_submissions": decision.total_submissions if decision else None,
    }
