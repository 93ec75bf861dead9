"""
001: Initial schema: products, user_profiles, renewal_assessments,
renewal_decisions, decision_audit_log

Revision ID: 001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product", sa.String(200), nullable=False),
        sa.Column("vendor", sa.String(200), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("division", sa.String(100), nullable=True),
        sa.Column("renewal_date", sa.Date, nullable=True),
        sa.Column("annual_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("licenses", sa.Integer, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("department", sa.String(300), nullable=True),
        sa.Column("division", sa.String(100), nullable=True),
        sa.Column("roles", JSON, nullable=False, server_default='["staff"]'),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("first_submission_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_submission_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_submissions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_profiles_email", "user_profiles", ["email"], unique=True)

    op.create_table(
        "renewal_assessments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),

        sa.Column("submitter_email", sa.String(320), nullable=False),
        sa.Column("submitter_name", sa.String(200), nullable=False),
        sa.Column("submitter_departments", JSON, nullable=False),
        sa.Column("submitter_division", sa.String(100), nullable=False),
        sa.Column("submitter_profile_id", sa.String(36), sa.ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True),

        sa.Column("recommendation", sa.String(30), nullable=False),
        sa.Column("justification", sa.Text, nullable=False),
        sa.Column("usage_frequency", sa.Text, nullable=True),
        sa.Column("primary_use_cases", sa.Text, nullable=True),
        sa.Column("learning_impact", sa.Text, nullable=True),
        sa.Column("workflow_integration", sa.Text, nullable=True),
        sa.Column("alternatives_considered", sa.Text, nullable=True),
        sa.Column("unique_value", sa.Text, nullable=True),
        sa.Column("stakeholder_feedback", sa.Text, nullable=True),
        sa.Column("proposed_changes", sa.Text, nullable=True),
        sa.Column("proposed_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("proposed_licenses", sa.Integer, nullable=True),

        sa.Column("current_renewal_date", sa.Date, nullable=True),
        sa.Column("current_annual_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("current_licenses", sa.Integer, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),

        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("reviewed_by", sa.String(320), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outcome_notes", sa.Text, nullable=True),
        sa.Column("final_decision", sa.String(30), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_renewal_assessments_product_id", "renewal_assessments", ["product_id"])
    op.create_index("ix_renewal_assessments_submitter_email", "renewal_assessments", ["submitter_email"])
    op.create_index("ix_renewal_assessments_recommendation", "renewal_assessments", ["recommendation"])
    op.create_index("ix_renewal_assessments_status", "renewal_assessments", ["status"])
    op.create_index("ix_renewal_assessments_submitted_at", "renewal_assessments", ["submitted_at"])

    op.create_table(
        "renewal_decisions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("renewal_cycle_year", sa.Integer, nullable=False),

        sa.Column("total_submissions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("renew_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("renew_with_changes_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("replace_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("retire_count", sa.Integer, nullable=False, server_default="0"),

        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("summary_generated_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("reviewer_email", sa.String(320), nullable=True),
        sa.Column("reviewer_name", sa.String(200), nullable=True),
        sa.Column("reviewer_comment", sa.Text, nullable=True),
        sa.Column("reviewer_recommendation", sa.String(30), nullable=True),
        sa.Column("reviewer_reviewed_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("approver_email", sa.String(320), nullable=True),
        sa.Column("approver_name", sa.String(200), nullable=True),
        sa.Column("approver_comment", sa.Text, nullable=True),
        sa.Column("final_decision", sa.String(30), nullable=True),
        sa.Column("final_decided_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("new_renewal_date", sa.Date, nullable=True),
        sa.Column("new_annual_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("new_licenses", sa.Integer, nullable=True),
        sa.Column("implementation_notes", sa.Text, nullable=True),
        sa.Column("implemented_by", sa.String(320), nullable=True),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("status", sa.String(20), nullable=False, server_default="collecting"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_renewal_decisions_status", "renewal_decisions", ["status"])
    op.create_index("ix_renewal_decisions_updated_at", "renewal_decisions", ["updated_at"])

    op.create_table(
        "decision_audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("decision_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=True),
        sa.Column("field_name", sa.String(50), nullable=True),
        sa.Column("old_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=True),
        sa.Column("changed_by", sa.String(320), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_decision_audit_log_decision_id", "decision_audit_log", ["decision_id"])


def downgrade() -> None:
    op.drop_table("decision_audit_log")
    op.drop_table("renewal_decisions")
    op.drop_table("renewal_assessments")
    op.drop_table("user_profiles")
    op.drop_table("products")
