"""
Persistent tables for the renewal review workflow.

  products            : Product Registry view (terms are snapshotted into assessments)
  user_profiles       : submitter profiles + roles (Role Authority source)
  renewal_assessments : one row per submission, append-mostly
  renewal_decisions   : one aggregate row per product (unique product_id)
  decision_audit_log  : every transition / admin edit on a decision
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _current_year() -> int:
    return _utcnow().year


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    product = Column(String(200), nullable=False)
    vendor = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True)
    division = Column(String(100), nullable=True)

    # ── Current renewal terms ──
    renewal_date = Column(Date, nullable=True)
    annual_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    licenses = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="active")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<Product {self.id} {self.product!r} status={self.status}>"


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    department = Column(String(300), nullable=True)
    division = Column(String(100), nullable=True)
    roles = Column(JSON, nullable=False, default=lambda: ["staff"])
    is_active = Column(Boolean, nullable=False, default=True)

    # ── Submission activity ──
    first_submission_at = Column(DateTime(timezone=True), nullable=True)
    last_submission_at = Column(DateTime(timezone=True), nullable=True)
    total_submissions = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<UserProfile {self.email} roles={self.roles}>"


class RenewalAssessment(Base):
    __tablename__ = "renewal_assessments"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # ── Submitter ──
    submitter_email = Column(String(320), nullable=False, index=True)
    submitter_name = Column(String(200), nullable=False)
    submitter_departments = Column(JSON, nullable=False)
    submitter_division = Column(String(100), nullable=False)
    submitter_profile_id = Column(String(36), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)

    # ── Content (immutable once written) ──
    recommendation = Column(String(30), nullable=False, index=True)
    justification = Column(Text, nullable=False)
    usage_frequency = Column(Text, nullable=True)
    primary_use_cases = Column(Text, nullable=True)
    learning_impact = Column(Text, nullable=True)
    workflow_integration = Column(Text, nullable=True)
    alternatives_considered = Column(Text, nullable=True)
    unique_value = Column(Text, nullable=True)
    stakeholder_feedback = Column(Text, nullable=True)
    proposed_changes = Column(Text, nullable=True)
    proposed_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    proposed_licenses = Column(Integer, nullable=True)

    # ── Product terms at submission time ──
    current_renewal_date = Column(Date, nullable=True)
    current_annual_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    current_licenses = Column(Integer, nullable=True)

    submitted_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    # ── Review state (reviewer role or higher) ──
    status = Column(String(20), nullable=False, default="submitted", index=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(320), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    outcome_notes = Column(Text, nullable=True)
    final_decision = Column(String(30), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<RenewalAssessment {self.id} product={self.product_id} rec={self.recommendation}>"


class RenewalDecision(Base):
    __tablename__ = "renewal_decisions"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True)
    renewal_cycle_year = Column(Integer, nullable=False, default=_current_year)

    # ── Aggregate counts (always recomputed from renewal_assessments) ──
    total_submissions = Column(Integer, nullable=False, default=0)
    renew_count = Column(Integer, nullable=False, default=0)
    renew_with_changes_count = Column(Integer, nullable=False, default=0)
    replace_count = Column(Integer, nullable=False, default=0)
    retire_count = Column(Integer, nullable=False, default=0)

    # ── Synthesized summary ──
    summary = Column(Text, nullable=True)
    summary_generated_at = Column(DateTime(timezone=True), nullable=True)

    # ── Reviewer (TIC) ──
    reviewer_email = Column(String(320), nullable=True)
    reviewer_name = Column(String(200), nullable=True)
    reviewer_comment = Column(Text, nullable=True)
    reviewer_recommendation = Column(String(30), nullable=True)
    reviewer_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # ── Approver ──
    approver_email = Column(String(320), nullable=True)
    approver_name = Column(String(200), nullable=True)
    approver_comment = Column(Text, nullable=True)
    final_decision = Column(String(30), nullable=True)
    final_decided_at = Column(DateTime(timezone=True), nullable=True)

    # ── Implementation ──
    new_renewal_date = Column(Date, nullable=True)
    new_annual_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    new_licenses = Column(Integer, nullable=True)
    implementation_notes = Column(Text, nullable=True)
    implemented_by = Column(String(320), nullable=True)
    implemented_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(20), nullable=False, default="collecting", index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<RenewalDecision {self.id} product={self.product_id} status={self.status} n={self.total_submissions}>"


class DecisionAuditLog(Base):
    __tablename__ = "decision_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    decision_id = Column(String(36), nullable=False, index=True)
    action = Column(String(30), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    field_name = Column(String(50), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_by = Column(String(320), nullable=False)
    changed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
