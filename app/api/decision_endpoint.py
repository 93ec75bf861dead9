"""
/v1/renewals/decisions

GET   /decisions        → list, filter by product / status
GET   /decisions/{id}   → decision + every assessment for its product
POST  /decisions        → idempotent create-or-refresh; optional synchronous summary
PATCH /decisions/{id}   → tic_review | generate_summary | director_decision | implement
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.assessment_endpoint import with_products
from app.core.auth import get_caller
from app.core.config import Settings, get_settings
from app.models.database import get_db
from app.schemas.assessment import ProductSummary
from app.schemas.decision import (
    DecisionActionRequest,
    DecisionDetailResponse,
    DecisionOutcome,
    DecisionRefreshRequest,
    DecisionResponse,
    DecisionStatus,
)
from app.services.product_registry import ProductRegistry
from app.workflow.assessments import AssessmentStore
from app.workflow.decisions import ActionResult, DecisionManager
from app.workflow.roles import Caller
from app.workflow.synthesis import SummaryClient

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/renewals", tags=["decisions"])


def get_summary_client(settings: Settings = Depends(get_settings)) -> SummaryClient:
    return SummaryClient.from_settings(settings)


def _outcome(result: ActionResult) -> DecisionOutcome:
    return DecisionOutcome(
        decision=DecisionResponse.model_validate(result.decision),
        summary_generated=result.summary_generated,
        message=result.message,
    )


@router.get("/decisions", response_model=list[DecisionResponse])
async def list_decisions(
    product: Optional[str] = Query(None, description="Filter by product id"),
    status: Optional[DecisionStatus] = None,
    db: AsyncSession = Depends(get_db),
) -> list[DecisionResponse]:
    rows = await DecisionManager(db).list(product_id=product, status=status)
    return [DecisionResponse.model_validate(r) for r in rows]


@router.get("/decisions/{decision_id}", response_model=DecisionDetailResponse)
async def get_decision(decision_id: str, db: AsyncSession = Depends(get_db)) -> DecisionDetailResponse:
    decision = await DecisionManager(db).get(decision_id)
    product = await ProductRegistry(db).find(decision.product_id)
    assessments = await AssessmentStore(db).list_for_product(decision.product_id)

    detail = DecisionDetailResponse.model_validate(decision)
    detail.product = ProductSummary.model_validate(product) if product is not None else None
    detail.assessments = await with_products(db, assessments)
    return detail


@router.post(
    "/decisions",
    response_model=DecisionOutcome,
    summary="Create or refresh the aggregate decision for a product",
    description=(
        "Recomputes the counts from every assessment. With generate_summary=true "
        "(reviewer role or higher) the executive summary is synthesized before returning; "
        "a provider failure leaves the decision unchanged and is reported in the body."
    ),
)
async def refresh_decision(
    request: DecisionRefreshRequest,
    response: Response,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    summary_client: SummaryClient = Depends(get_summary_client),
) -> DecisionOutcome:
    manager = DecisionManager(db, summary_client)
    existed = await manager.find_by_product(request.product_id) is not None
    result = await manager.refresh(request.product_id, caller, generate_summary=request.generate_summary)
    response.status_code = 200 if existed else 201
    return _outcome(result)


@router.patch("/decisions/{decision_id}", response_model=DecisionOutcome)
async def act_on_decision(
    decision_id: str,
    request: DecisionActionRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    summary_client: SummaryClient = Depends(get_summary_client),
) -> DecisionOutcome:
    logger.info("decision_action_requested", decision_id=decision_id, action=request.action, caller=caller.email)
    result = await DecisionManager(db, summary_client).apply(decision_id, request, caller)
    return _outcome(result)
