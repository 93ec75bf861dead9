"""
Decision record manager.

Owns the single renewal_decisions row per product:
  - aggregate refresh (upsert keyed on product_id, counts recomputed from scratch)
  - the role-gated lifecycle actions (see app/workflow/state_machine.py)
  - admin corrections and purge, each audit-logged

Every action checks role, payload and source status before the first write,
so a rejected action leaves the row untouched.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import DependencyError, NotFoundError, RenewalError, ValidationError
from app.core.metrics import DECISION_TRANSITIONS
from app.models.renewal import DecisionAuditLog, RenewalDecision
from app.models.upsert import dialect_insert
from app.schemas.decision import (
    AdminDecisionEdit,
    DecisionAction,
    DecisionStatus,
    DirectorDecisionRequest,
    GenerateSummaryRequest,
    ImplementRequest,
    TicReviewRequest,
)
from app.services.product_registry import ProductRegistry
from app.workflow import state_machine
from app.workflow.aggregation import AggregateStats, load_stats
from app.workflow.assessments import AssessmentStore
from app.workflow.roles import Caller, Role
from app.workflow.synthesis import SummaryClient, SummaryResult, synthesize

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _audit_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@dataclass
class ActionResult:
    decision: RenewalDecision
    summary: Optional[SummaryResult] = None

    @property
    def summary_generated(self) -> Optional[bool]:
        return None if self.summary is None else self.summary.ok

    @property
    def message(self) -> Optional[str]:
        if self.summary is None or self.summary.ok:
            return None
        return f"Summary was not generated: {self.summary.failure_reason}"


class DecisionManager:
    def __init__(self, db: AsyncSession, summary_client: Optional[SummaryClient] = None) -> None:
        self.db = db
        self.summary_client = summary_client
        self.assessments = AssessmentStore(db)
        self.products = ProductRegistry(db)

    # ── Reads ──

    async def get(self, decision_id: str) -> RenewalDecision:
        decision = await self.db.get(RenewalDecision, decision_id)
        if decision is None:
            raise NotFoundError(f"Decision {decision_id} not found", code="decision_not_found", decision_id=decision_id)
        return decision

    async def find_by_product(self, product_id: str) -> Optional[RenewalDecision]:
        result = await self.db.execute(
            select(RenewalDecision)
            .where(RenewalDecision.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        product_id: Optional[str] = None,
        status: Optional[DecisionStatus] = None,
    ) -> Sequence[RenewalDecision]:
        stmt = select(RenewalDecision).order_by(RenewalDecision.updated_at.desc())
        if product_id:
            stmt = stmt.where(RenewalDecision.product_id == product_id)
        if status:
            stmt = stmt.where(RenewalDecision.status == status.value)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def audit_trail(self, decision_id: str, caller: Caller, limit: int = 100) -> Sequence[DecisionAuditLog]:
        caller.require(Role.ADMIN, "view_audit")
        result = await self.db.execute(
            select(DecisionAuditLog)
            .where(DecisionAuditLog.decision_id == decision_id)
            .order_by(DecisionAuditLog.id.desc())
            .limit(limit)
        )
        return result.scalars().all()

    # ── Aggregate ──

    async def refresh_aggregate(self, product_id: str, *, create_missing: bool = True) -> Optional[RenewalDecision]:
        """
        Recompute counts for a product and upsert them onto its decision.

        The upsert only ever writes the counts and updated_at on an existing
        row, so status and review fields survive late submissions. A failed
        write rolls back and the previous aggregate stays in place.
        """
        try:
            stats = await load_stats(self.db, product_id)
            now = _utcnow()
            if create_missing:
                await self._upsert_counts(product_id, stats, now)
            else:
                await self.db.execute(
                    update(RenewalDecision)
                    .where(RenewalDecision.product_id == product_id)
                    .values(**stats.as_columns(), updated_at=now)
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("decision_aggregate_refresh_failed", product_id=product_id, error=str(e))
            raise DependencyError(f"Could not refresh aggregate for product {product_id}", code="store_unavailable")

        decision = await self.find_by_product(product_id)
        logger.info(
            "decision_aggregate_refreshed",
            product_id=product_id,
            decision_id=decision.id if decision else None,
            **stats.as_columns(),
        )
        return decision

    async def _upsert_counts(self, product_id: str, stats: AggregateStats, now: datetime) -> None:
        insert = dialect_insert(self.db)
        counts = stats.as_columns()
        stmt = insert(RenewalDecision).values(
            id=str(uuid.uuid4()),
            product_id=product_id,
            renewal_cycle_year=now.year,
            status=DecisionStatus.COLLECTING.value,
            created_at=now,
            updated_at=now,
            **counts,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id"],
            set_={**counts, "updated_at": now},
        )
        await self.db.execute(stmt)

    async def refresh(self, product_id: str, caller: Caller, *, generate_summary: bool = False) -> ActionResult:
        """
        POST /decisions: idempotent create-or-refresh, optionally followed by
        a synchronous synthesis (reviewer role or higher).
        """
        transition = None
        if generate_summary:
            transition = state_machine.authorize(DecisionAction.GENERATE_SUMMARY, caller)
        await self.products.get(product_id)

        if transition is not None:
            existing = await self.find_by_product(product_id)
            if existing is not None:
                state_machine.check_source(transition, DecisionStatus(existing.status))

        decision = await self.refresh_aggregate(product_id)
        if transition is None:
            return ActionResult(decision)
        return await self._summarize(decision, caller, transition)

    # ── Lifecycle actions ──

    async def apply(self, decision_id: str, request: Any, caller: Caller) -> ActionResult:
        action = DecisionAction(request.action)
        try:
            if isinstance(request, GenerateSummaryRequest):
                result = await self._generate_summary(decision_id, caller)
            elif isinstance(request, TicReviewRequest):
                result = await self._tic_review(decision_id, request, caller)
            elif isinstance(request, DirectorDecisionRequest):
                result = await self._director_decision(decision_id, request, caller)
            elif isinstance(request, ImplementRequest):
                result = await self._implement(decision_id, request, caller)
            else:
                raise ValidationError(f"Unsupported action {action.value}", code="unsupported_action")
        except RenewalError as e:
            DECISION_TRANSITIONS.labels(action=action.value, outcome=e.code).inc()
            logger.info(
                "decision_transition_rejected",
                decision_id=decision_id,
                action=action.value,
                code=e.code,
                caller=caller.email,
                role=caller.role.value,
            )
            raise

        outcome = "summary_failed" if result.summary_generated is False else "applied"
        DECISION_TRANSITIONS.labels(action=action.value, outcome=outcome).inc()
        return result

    async def _generate_summary(self, decision_id: str, caller: Caller) -> ActionResult:
        transition = state_machine.authorize(DecisionAction.GENERATE_SUMMARY, caller)
        decision = await self.get(decision_id)
        state_machine.check_source(transition, DecisionStatus(decision.status))
        return await self._summarize(decision, caller, transition)

    async def _summarize(self, decision: RenewalDecision, caller: Caller, transition: state_machine.Transition) -> ActionResult:
        if self.summary_client is None:
            return ActionResult(decision, SummaryResult(failure_reason="Generative-text provider is not configured"))

        assessments = await self.assessments.list_for_product(decision.product_id)
        product = await self.products.find(decision.product_id)
        result = await synthesize(self.summary_client, product, assessments)
        if not result.ok:
            # Leave the row exactly as it was
            return ActionResult(decision, result)

        from_status = decision.status
        decision.summary = result.text
        decision.summary_generated_at = _utcnow()
        decision.status = transition.target.value
        self._audit(decision, transition.action.value, from_status, decision.status, caller)
        await self.db.commit()
        logger.info("decision_summary_stored", decision_id=decision.id, status=decision.status)
        return ActionResult(decision, result)

    async def _tic_review(self, decision_id: str, request: TicReviewRequest, caller: Caller) -> ActionResult:
        transition = state_machine.authorize(DecisionAction.TIC_REVIEW, caller)
        if request.reviewer_recommendation is None:
            raise ValidationError("A reviewer recommendation is required", code="reviewer_recommendation_required")
        decision = await self.get(decision_id)
        state_machine.check_source(transition, DecisionStatus(decision.status))

        from_status = decision.status
        decision.reviewer_email = caller.email
        decision.reviewer_name = request.reviewer_name or caller.name
        decision.reviewer_comment = request.reviewer_comment
        decision.reviewer_recommendation = request.reviewer_recommendation.value
        decision.reviewer_reviewed_at = _utcnow()
        decision.status = transition.target.value
        self._audit(decision, transition.action.value, from_status, decision.status, caller)
        await self.db.commit()
        logger.info(
            "decision_reviewed",
            decision_id=decision.id,
            recommendation=decision.reviewer_recommendation,
            reviewer=caller.email,
        )
        return ActionResult(decision)

    async def _director_decision(self, decision_id: str, request: DirectorDecisionRequest, caller: Caller) -> ActionResult:
        transition = state_machine.authorize(DecisionAction.DIRECTOR_DECISION, caller)
        if request.final_decision is None:
            raise ValidationError("A final decision is required", code="final_decision_required")
        decision = await self.get(decision_id)
        state_machine.check_source(transition, DecisionStatus(decision.status))

        from_status = decision.status
        decision.approver_email = caller.email
        decision.approver_name = request.approver_name or caller.name
        decision.approver_comment = request.approver_comment
        decision.final_decision = request.final_decision.value
        decision.final_decided_at = _utcnow()
        decision.new_renewal_date = request.new_renewal_date
        decision.new_annual_cost = request.new_annual_cost
        decision.new_licenses = request.new_licenses
        decision.implementation_notes = request.implementation_notes
        decision.status = transition.target.value

        await self.products.apply_final_decision(
            decision.product_id,
            request.final_decision,
            new_renewal_date=request.new_renewal_date,
            new_annual_cost=request.new_annual_cost,
            new_licenses=request.new_licenses,
        )
        self._audit(decision, transition.action.value, from_status, decision.status, caller)
        await self.db.commit()
        logger.info(
            "decision_made",
            decision_id=decision.id,
            final_decision=decision.final_decision,
            approver=caller.email,
        )
        return ActionResult(decision)

    async def _implement(self, decision_id: str, request: ImplementRequest, caller: Caller) -> ActionResult:
        transition = state_machine.authorize(DecisionAction.IMPLEMENT, caller)
        decision = await self.get(decision_id)
        state_machine.check_source(transition, DecisionStatus(decision.status))

        from_status = decision.status
        if request.implementation_notes:
            decision.implementation_notes = request.implementation_notes
        decision.implemented_by = caller.email
        decision.implemented_at = _utcnow()
        decision.status = transition.target.value
        self._audit(decision, transition.action.value, from_status, decision.status, caller)
        await self.db.commit()
        logger.info("decision_implemented", decision_id=decision.id, by=caller.email)
        return ActionResult(decision)

    # ── Admin ──

    async def admin_edit(self, decision_id: str, edit: AdminDecisionEdit, caller: Caller) -> RenewalDecision:
        """Direct correction, the only way to move a decision backwards. One audit row per field."""
        caller.require(Role.ADMIN, "admin_edit")
        changes = edit.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update", code="no_fields")
        decision = await self.get(decision_id)

        from_status = decision.status
        for field, new_val in changes.items():
            old_val = getattr(decision, field)
            stored = new_val.value if isinstance(new_val, Enum) else new_val
            setattr(decision, field, stored)
            self._audit(
                decision, "admin_edit", from_status, decision.status, caller,
                field_name=field, old_value=old_val, new_value=stored,
            )
        if "summary" in changes:
            decision.summary_generated_at = _utcnow() if decision.summary else None

        await self.db.commit()
        logger.info("decision_admin_edited", decision_id=decision_id, fields=sorted(changes), by=caller.email)
        return decision

    async def purge(self, decision_id: str, caller: Caller) -> None:
        caller.require(Role.ADMIN, "purge_decision")
        decision = await self.get(decision_id)
        product_id = decision.product_id
        self._audit(decision, "purged", decision.status, None, caller)
        await self.db.delete(decision)
        await self.db.commit()
        logger.info("decision_purged", decision_id=decision_id, product_id=product_id, by=caller.email)

    def _audit(
        self,
        decision: RenewalDecision,
        action: str,
        from_status: Optional[str],
        to_status: Optional[str],
        caller: Caller,
        *,
        field_name: Optional[str] = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self.db.add(DecisionAuditLog(
            decision_id=decision.id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            field_name=field_name,
            old_value=_audit_value(old_value),
            new_value=_audit_value(new_value),
            changed_by=caller.email,
            changed_at=_utcnow(),
        ))


async def refresh_in_new_session(sessionmaker: async_sessionmaker[AsyncSession], product_id: str) -> None:
    """Background recompute after a submission; runs in its own session."""
    async with sessionmaker() as db:
        await DecisionManager(db).refresh_aggregate(product_id)
