"""
Admin API: direct corrections outside the public lifecycle.

Endpoints:
  PATCH  /v1/admin/decisions/{id}         → edit status / review fields (audit-logged per field)
  DELETE /v1/admin/decisions/{id}         → purge a decision row
  GET    /v1/admin/decisions/{id}/audit   → transition + edit history
  POST   /v1/admin/products/{id}/refresh  → recompute a product's aggregate on demand

All endpoints require the admin role.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_caller
from app.models.database import get_db
from app.schemas.decision import AdminDecisionEdit, AuditEntryResponse, DecisionResponse
from app.workflow.decisions import DecisionManager
from app.workflow.roles import Caller, Role

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.patch("/decisions/{decision_id}", response_model=DecisionResponse)
async def edit_decision(
    decision_id: str,
    edit: AdminDecisionEdit,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> DecisionResponse:
    decision = await DecisionManager(db).admin_edit(decision_id, edit, caller)
    return DecisionResponse.model_validate(decision)


@router.delete("/decisions/{decision_id}")
async def purge_decision(
    decision_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await DecisionManager(db).purge(decision_id, caller)
    return {"status": "purged", "decision_id": decision_id}


@router.get("/decisions/{decision_id}/audit", response_model=list[AuditEntryResponse])
async def list_audit_log(
    decision_id: str,
    limit: int = 100,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> list[AuditEntryResponse]:
    rows = await DecisionManager(db).audit_trail(decision_id, caller, limit=limit)
    return [AuditEntryResponse.model_validate(r) for r in rows]


@router.post("/products/{product_id}/refresh", response_model=DecisionResponse)
async def refresh_product_aggregate(
    product_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> DecisionResponse:
    caller.require(Role.ADMIN, "refresh_aggregate")
    manager = DecisionManager(db)
    await manager.products.get(product_id)
    decision = await manager.refresh_aggregate(product_id)
    logger.info("aggregate_refresh_triggered", product_id=product_id, triggered_by=caller.email)
    return DecisionResponse.model_validate(decision)
