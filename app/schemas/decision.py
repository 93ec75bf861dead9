"""
Decision payloads.

PATCH /v1/renewals/decisions/{id} is action-discriminated: the `action`
field selects which of the models below validates the body.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.schemas.assessment import AssessmentResponse, ProductSummary, Recommendation


class DecisionStatus(str, Enum):
    COLLECTING = "collecting"
    SUMMARIZING = "summarizing"
    ASSESSOR_REVIEW = "assessor_review"
    FINAL_REVIEW = "final_review"
    DECIDED = "decided"
    IMPLEMENTED = "implemented"


class DecisionAction(str, Enum):
    TIC_REVIEW = "tic_review"
    GENERATE_SUMMARY = "generate_summary"
    DIRECTOR_DECISION = "director_decision"
    IMPLEMENT = "implement"


# ── Requests ──

class DecisionRefreshRequest(BaseModel):
    """POST /v1/renewals/decisions: idempotent create-or-refresh."""
    product_id: str = Field(validation_alias=AliasChoices("product_id", "app_id"))
    generate_summary: bool = False


class TicReviewRequest(BaseModel):
    action: Literal["tic_review"]
    reviewer_name: Optional[str] = Field(None, validation_alias=AliasChoices("reviewer_name", "assessor_name"))
    reviewer_comment: Optional[str] = Field(None, validation_alias=AliasChoices("reviewer_comment", "assessor_comment"))
    reviewer_recommendation: Optional[Recommendation] = Field(
        None,
        validation_alias=AliasChoices("reviewer_recommendation", "assessor_recommendation"),
        description="Required. Checked by the workflow so a missing value is a 400, not a 422.",
    )


class GenerateSummaryRequest(BaseModel):
    action: Literal["generate_summary"]


class DirectorDecisionRequest(BaseModel):
    action: Literal["director_decision"]
    final_decision: Optional[Recommendation] = None
    approver_name: Optional[str] = None
    approver_comment: Optional[str] = None
    new_renewal_date: Optional[date] = None
    new_annual_cost: Optional[float] = Field(None, ge=0)
    new_licenses: Optional[int] = Field(None, ge=0)
    implementation_notes: Optional[str] = None


class ImplementRequest(BaseModel):
    action: Literal["implement"]
    implementation_notes: Optional[str] = None


DecisionActionRequest = Annotated[
    Union[TicReviewRequest, GenerateSummaryRequest, DirectorDecisionRequest, ImplementRequest],
    Field(discriminator="action"),
]


class AdminDecisionEdit(BaseModel):
    """Admin-only correction of a decision row; bypasses the transition table."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[DecisionStatus] = None
    summary: Optional[str] = None
    reviewer_comment: Optional[str] = None
    reviewer_recommendation: Optional[Recommendation] = None
    approver_comment: Optional[str] = None
    final_decision: Optional[Recommendation] = None
    new_renewal_date: Optional[date] = None
    new_annual_cost: Optional[float] = Field(None, ge=0)
    new_licenses: Optional[int] = Field(None, ge=0)
    implementation_notes: Optional[str] = None


# ── Responses ──

class DecisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    renewal_cycle_year: int

    total_submissions: int
    renew_count: int
    renew_with_changes_count: int
    replace_count: int
    retire_count: int

    summary: Optional[str] = None
    summary_generated_at: Optional[datetime] = None

    reviewer_email: Optional[str] = None
    reviewer_name: Optional[str] = None
    reviewer_comment: Optional[str] = None
    reviewer_recommendation: Optional[Recommendation] = None
    reviewer_reviewed_at: Optional[datetime] = None

    approver_email: Optional[str] = None
    approver_name: Optional[str] = None
    approver_comment: Optional[str] = None
    final_decision: Optional[Recommendation] = None
    final_decided_at: Optional[datetime] = None

    new_renewal_date: Optional[date] = None
    new_annual_cost: Optional[float] = None
    new_licenses: Optional[int] = None
    implementation_notes: Optional[str] = None
    implemented_by: Optional[str] = None
    implemented_at: Optional[datetime] = None

    status: DecisionStatus
    created_at: datetime
    updated_at: datetime


class DecisionDetailResponse(DecisionResponse):
    product: Optional[ProductSummary] = None
    assessments: list[AssessmentResponse] = []


class DecisionOutcome(BaseModel):
    """
    Result of a create/refresh or a PATCH action.

    summary_generated is None when no synthesis was requested, False when it
    was requested but did not happen (the decision is then unchanged).
    """
    decision: DecisionResponse
    summary_generated: Optional[bool] = None
    message: Optional[str] = None


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    decision_id: str
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: str
    changed_at: datetime
