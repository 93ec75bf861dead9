"""
Assessment payloads.

The submission model only checks shape and types. Institutional policy
(email domain, recommendation membership, required identity fields,
product eligibility) lives in app/workflow/intake.py so each rejection
carries its own error code.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Recommendation(str, Enum):
    RENEW = "renew"
    RENEW_WITH_CHANGES = "renew_with_changes"
    REPLACE = "replace"
    RETIRE = "retire"


class AssessmentStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


# Setting one of these stamps reviewed_at when the caller did not supply it.
REVIEW_CLOSING_STATUSES = {
    AssessmentStatus.APPROVED,
    AssessmentStatus.REJECTED,
    AssessmentStatus.COMPLETED,
}


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product: str
    vendor: Optional[str] = None
    category: Optional[str] = None
    division: Optional[str] = None
    renewal_date: Optional[date] = None
    annual_cost: Optional[float] = None
    licenses: Optional[int] = None
    status: str


class AssessmentSubmission(BaseModel):
    """POST /v1/renewals/assessments: public intake."""
    product_id: str
    submitter_email: str
    submitter_name: Optional[str] = None
    submitter_departments: list[str] = Field(default_factory=list)
    submitter_division: Optional[str] = None

    recommendation: str
    justification: Optional[str] = None

    usage_frequency: Optional[str] = None
    primary_use_cases: Optional[str] = None
    learning_impact: Optional[str] = None
    workflow_integration: Optional[str] = None
    alternatives_considered: Optional[str] = None
    unique_value: Optional[str] = None
    stakeholder_feedback: Optional[str] = None
    proposed_changes: Optional[str] = None
    proposed_cost: Optional[float] = Field(None, ge=0)
    proposed_licenses: Optional[int] = Field(None, ge=0)

    @field_validator("submitter_departments", mode="before")
    @classmethod
    def split_departments(cls, v: Union[str, list, None]) -> list:
        # Older forms send a single comma-separated string
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return [str(part).strip() for part in v if str(part).strip()]


class AssessmentReviewUpdate(BaseModel):
    """PATCH /v1/renewals/assessments/{id}: review-state fields only."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[AssessmentStatus] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    outcome_notes: Optional[str] = None
    final_decision: Optional[Recommendation] = None


class AssessmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    product: Optional[ProductSummary] = None

    submitter_email: str
    submitter_name: str
    submitter_departments: list[str]
    submitter_division: str
    submitter_profile_id: Optional[str] = None

    recommendation: Recommendation
    justification: str
    usage_frequency: Optional[str] = None
    primary_use_cases: Optional[str] = None
    learning_impact: Optional[str] = None
    workflow_integration: Optional[str] = None
    alternatives_considered: Optional[str] = None
    unique_value: Optional[str] = None
    stakeholder_feedback: Optional[str] = None
    proposed_changes: Optional[str] = None
    proposed_cost: Optional[float] = None
    proposed_licenses: Optional[int] = None

    current_renewal_date: Optional[date] = None
    current_annual_cost: Optional[float] = None
    current_licenses: Optional[int] = None
    submitted_at: datetime

    status: AssessmentStatus
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    outcome_notes: Optional[str] = None
    final_decision: Optional[Recommendation] = None
