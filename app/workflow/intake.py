"""
Intake validator.

Checks a raw submission before anything touches storage:
  1. required identity fields (email, name, ≥1 department, division)
  2. institutional email domain
  3. recommendation ∈ {renew, renew_with_changes, replace, retire}
  4. non-empty justification
  5. product exists and is not retired

Then upserts the submitter profile, snapshots the product's current terms
into the new row and hands it to the assessment store, all in one commit.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import RenewalError, ValidationError
from app.core.metrics import ASSESSMENTS_SUBMITTED, INTAKE_REJECTIONS
from app.models.renewal import Product, RenewalAssessment, UserProfile
from app.models.upsert import dialect_insert
from app.schemas.assessment import AssessmentStatus, AssessmentSubmission, Recommendation
from app.services.product_registry import ProductRegistry
from app.workflow.assessments import AssessmentStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class ValidatedSubmission:
    payload: AssessmentSubmission
    email: str
    name: str
    departments: tuple[str, ...]
    division: str
    recommendation: Recommendation
    justification: str


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def validate_submission(payload: AssessmentSubmission, email_domain: str) -> ValidatedSubmission:
    """Pure policy checks. Raises ValidationError with a specific code."""
    email = _clean(payload.submitter_email).lower()
    if not payload.product_id or not email:
        raise ValidationError("product_id and submitter_email are required", code="missing_required_field")

    name = _clean(payload.submitter_name)
    if not name:
        raise ValidationError("Name is required", code="missing_name")

    if not payload.submitter_departments:
        raise ValidationError("At least one department is required", code="missing_department")

    division = _clean(payload.submitter_division)
    if not division:
        raise ValidationError("Division is required", code="missing_division")

    domain = email_domain.lower().lstrip("@")
    if not email.endswith(f"@{domain}"):
        raise ValidationError(f"Email must be an @{domain} address", code="invalid_email_domain")

    try:
        recommendation = Recommendation(_clean(payload.recommendation))
    except ValueError:
        raise ValidationError(
            "Invalid recommendation value",
            code="invalid_recommendation",
            allowed=[r.value for r in Recommendation],
        )

    justification = _clean(payload.justification)
    if not justification:
        raise ValidationError("Justification is required", code="missing_justification")

    return ValidatedSubmission(
        payload=payload,
        email=email,
        name=name,
        departments=tuple(payload.submitter_departments),
        division=division,
        recommendation=recommendation,
        justification=justification,
    )


async def upsert_submitter_profile(db: AsyncSession, submission: ValidatedSubmission, now: datetime) -> str:
    """
    Idempotent profile upsert keyed by email. Bumps total_submissions and
    last_submission_at; never touches roles or is_active.
    """
    insert = dialect_insert(db)
    department = ", ".join(submission.departments)
    stmt = insert(UserProfile).values(
        id=str(uuid.uuid4()),
        email=submission.email,
        name=submission.name,
        department=department,
        division=submission.division,
        roles=["staff"],
        is_active=True,
        first_submission_at=now,
        last_submission_at=now,
        total_submissions=1,
        created_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["email"],
        set_={
            "name": stmt.excluded.name,
            "department": stmt.excluded.department,
            "division": stmt.excluded.division,
            "last_submission_at": now,
            "total_submissions": UserProfile.total_submissions + 1,
        },
    ).returning(UserProfile.id)
    result = await db.execute(stmt)
    return result.scalar_one()


def _snapshot_row(submission: ValidatedSubmission, product: Product, profile_id: str, now: datetime) -> RenewalAssessment:
    p = submission.payload
    return RenewalAssessment(
        id=str(uuid.uuid4()),
        product_id=product.id,
        submitter_email=submission.email,
        submitter_name=submission.name,
        submitter_departments=list(submission.departments),
        submitter_division=submission.division,
        submitter_profile_id=profile_id,
        recommendation=submission.recommendation.value,
        justification=submission.justification,
        usage_frequency=p.usage_frequency or None,
        primary_use_cases=p.primary_use_cases or None,
        learning_impact=p.learning_impact or None,
        workflow_integration=p.workflow_integration or None,
        alternatives_considered=p.alternatives_considered or None,
        unique_value=p.unique_value or None,
        stakeholder_feedback=p.stakeholder_feedback or None,
        proposed_changes=p.proposed_changes or None,
        proposed_cost=p.proposed_cost,
        proposed_licenses=p.proposed_licenses,
        # terms as they stand now; later product edits do not reach this row
        current_renewal_date=product.renewal_date,
        current_annual_cost=product.annual_cost,
        current_licenses=product.licenses,
        submitted_at=now,
        status=AssessmentStatus.SUBMITTED.value,
        updated_at=now,
    )


async def submit_assessment(
    db: AsyncSession,
    payload: AssessmentSubmission,
    *,
    email_domain: str,
) -> tuple[RenewalAssessment, Product]:
    """Validate, snapshot and persist one submission. Returns the row and its product."""
    try:
        submission = validate_submission(payload, email_domain)
        product = await ProductRegistry(db).get_open_for_review(payload.product_id)
    except RenewalError as e:
        INTAKE_REJECTIONS.labels(code=e.code).inc()
        logger.info("assessment_rejected", code=e.code, product_id=payload.product_id)
        raise

    now = datetime.now(timezone.utc)
    profile_id = await upsert_submitter_profile(db, submission, now)
    assessment = AssessmentStore(db).add(_snapshot_row(submission, product, profile_id, now))
    await db.commit()

    ASSESSMENTS_SUBMITTED.labels(recommendation=submission.recommendation.value).inc()
    logger.info(
        "assessment_submitted",
        assessment_id=assessment.id,
        product_id=product.id,
        recommendation=submission.recommendation.value,
        submitter=submission.email,
    )
    return assessment, product
