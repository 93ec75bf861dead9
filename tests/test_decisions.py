"""
Integration tests for the decision lifecycle: aggregate upsert, role-gated
transitions, best-effort synthesis and admin corrections.
"""
import asyncio
from datetime import date

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import ADMIN, APPROVER, REVIEWER, STAFF, SUMMARY_TEXT, make_submission, make_summary_client

from app.core.errors import (
    AuthorizationError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.renewal import DecisionAuditLog, Product, RenewalDecision
from app.schemas.decision import (
    AdminDecisionEdit,
    DirectorDecisionRequest,
    GenerateSummaryRequest,
    ImplementRequest,
    TicReviewRequest,
)
from app.workflow.decisions import DecisionManager, refresh_in_new_session
from app.workflow.intake import submit_assessment
from app.workflow.roles import Caller, Role

DOMAIN = "sas.edu.sg"


async def _submit(db, product_id, *recommendations):
    for rec in recommendations:
        await submit_assessment(db, make_submission(product_id, recommendation=rec), email_domain=DOMAIN)


async def _collecting_decision(db, product, summary_client=None):
    await _submit(db, product.id, "renew", "retire")
    manager = DecisionManager(db, summary_client or make_summary_client())
    decision = await manager.refresh_aggregate(product.id)
    return manager, decision


async def _advance_to(manager, decision, status):
    """Walk a collecting decision forward through the public lifecycle."""
    steps = [
        ("assessor_review", GenerateSummaryRequest(action="generate_summary"), REVIEWER),
        ("final_review", TicReviewRequest(action="tic_review", reviewer_recommendation="renew"), REVIEWER),
        ("decided", DirectorDecisionRequest(action="director_decision", final_decision="renew"), APPROVER),
        ("implemented", ImplementRequest(action="implement"), ADMIN),
    ]
    for target, request, caller in steps:
        result = await manager.apply(decision.id, request, caller)
        decision = result.decision
        if target == status:
            break
    assert decision.status == status
    return decision


class TestAggregateRefresh:
    async def test_creates_collecting_decision(self, db, product):
        _, decision = await _collecting_decision(db, product)
        assert decision.status == "collecting"
        assert decision.total_submissions == 2
        assert decision.renew_count == 1
        assert decision.retire_count == 1
        assert decision.renewal_cycle_year >= 2026

    async def test_one_decision_per_product(self, db, sessionmaker, product):
        manager, first = await _collecting_decision(db, product)
        second = await manager.refresh_aggregate(product.id)
        third = await manager.refresh_aggregate(product.id)
        assert first.id == second.id == third.id
        assert third.total_submissions == 2

        async with sessionmaker() as fresh:
            rows = (await fresh.execute(select(RenewalDecision))).scalars().all()
            assert len(rows) == 1

    async def test_late_submission_never_moves_status(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        decision = await _advance_to(manager, decision, "final_review")

        await _submit(db, product.id, "replace")
        refreshed = await manager.refresh_aggregate(product.id)

        assert refreshed.id == decision.id
        assert refreshed.status == "final_review"
        assert refreshed.total_submissions == 3
        assert refreshed.replace_count == 1
        assert refreshed.summary == SUMMARY_TEXT
        assert refreshed.reviewer_recommendation == "renew"

    async def test_update_only_mode_skips_missing_decision(self, db, product):
        await _submit(db, product.id, "renew")
        assert await DecisionManager(db).refresh_aggregate(product.id, create_missing=False) is None

    async def test_concurrent_refreshes_share_one_row(self, db, sessionmaker, product):
        await _submit(db, product.id, "renew", "replace", "retire")

        await asyncio.gather(*(refresh_in_new_session(sessionmaker, product.id) for _ in range(8)))

        async with sessionmaker() as fresh:
            rows = (await fresh.execute(select(RenewalDecision))).scalars().all()
            assert len(rows) == 1
            assert (rows[0].total_submissions, rows[0].renew_count, rows[0].replace_count, rows[0].retire_count) == (
                3, 1, 1, 1,
            )

    async def test_failed_write_keeps_previous_aggregate(self, db, sessionmaker, product, monkeypatch):
        await _submit(db, product.id, "renew")
        manager = DecisionManager(db)
        decision = await manager.refresh_aggregate(product.id)
        await _submit(db, product.id, "retire")

        async def broken_upsert(self, *args, **kwargs):
            raise OperationalError("INSERT INTO renewal_decisions", {}, Exception("database is locked"))

        monkeypatch.setattr(DecisionManager, "_upsert_counts", broken_upsert)
        with pytest.raises(DependencyError) as exc:
            await manager.refresh_aggregate(product.id)
        assert exc.value.code == "store_unavailable"
        assert exc.value.http_status == 503

        async with sessionmaker() as fresh:
            row = await fresh.get(RenewalDecision, decision.id)
            assert (row.total_submissions, row.renew_count, row.retire_count) == (1, 1, 0)


class TestRefresh:
    async def test_plain_refresh_needs_no_role(self, db, product):
        await _submit(db, product.id, "renew")
        result = await DecisionManager(db).refresh(product.id, STAFF)
        assert result.decision.total_submissions == 1
        assert result.summary_generated is None

    async def test_with_summary(self, db, product):
        await _submit(db, product.id, "renew", "renew_with_changes")
        result = await DecisionManager(db, make_summary_client()).refresh(product.id, REVIEWER, generate_summary=True)
        assert result.summary_generated is True
        assert result.decision.status == "assessor_review"
        assert result.decision.summary == SUMMARY_TEXT
        assert result.decision.summary_generated_at is not None

    async def test_summary_requires_reviewer(self, db, sessionmaker, product):
        await _submit(db, product.id, "renew")
        with pytest.raises(AuthorizationError):
            await DecisionManager(db, make_summary_client()).refresh(product.id, STAFF, generate_summary=True)

        async with sessionmaker() as fresh:
            assert (await fresh.execute(select(RenewalDecision))).scalars().all() == []

    async def test_unknown_product(self, db):
        with pytest.raises(NotFoundError):
            await DecisionManager(db).refresh("missing", ADMIN)

    async def test_summary_not_regenerated_once_past_review(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        await _advance_to(manager, decision, "final_review")
        with pytest.raises(InvalidTransitionError):
            await manager.refresh(product.id, REVIEWER, generate_summary=True)


class TestLifecycle:
    async def test_full_walkthrough(self, db, product):
        """renew + retire → summary → TIC review → director retires → implemented."""
        manager, decision = await _collecting_decision(db, product)
        assert (decision.total_submissions, decision.status) == (2, "collecting")

        result = await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), REVIEWER)
        assert result.summary_generated is True
        assert result.decision.status == "assessor_review"

        result = await manager.apply(
            decision.id,
            TicReviewRequest(action="tic_review", reviewer_recommendation="retire", reviewer_comment="Low usage"),
            REVIEWER,
        )
        assert result.decision.status == "final_review"
        assert result.decision.reviewer_email == REVIEWER.email
        assert result.decision.reviewer_name == "Taylor TIC"
        assert result.decision.reviewer_recommendation == "retire"
        assert result.decision.reviewer_reviewed_at is not None

        result = await manager.apply(
            decision.id,
            DirectorDecisionRequest(action="director_decision", final_decision="retire", approver_comment="Agreed"),
            APPROVER,
        )
        assert result.decision.status == "decided"
        assert result.decision.final_decision == "retire"
        assert result.decision.approver_email == APPROVER.email
        assert (await db.get(Product, product.id)).status == "retired"

        with pytest.raises(AuthorizationError) as exc:
            await manager.apply(decision.id, ImplementRequest(action="implement"), STAFF)
        assert exc.value.current_role == "staff"

        result = await manager.apply(
            decision.id, ImplementRequest(action="implement", implementation_notes="Cancelled with vendor"), ADMIN,
        )
        assert result.decision.status == "implemented"
        assert result.decision.implemented_by == ADMIN.email
        assert result.decision.implementation_notes == "Cancelled with vendor"

        with pytest.raises(AuthorizationError):
            await manager.apply(decision.id, ImplementRequest(action="implement"), STAFF)

        trail = await manager.audit_trail(decision.id, ADMIN)
        assert [(a.from_status, a.to_status) for a in reversed(trail)] == [
            ("collecting", "assessor_review"),
            ("assessor_review", "final_review"),
            ("final_review", "decided"),
            ("decided", "implemented"),
        ]

    async def test_director_renewal_updates_product_terms(self, db, sessionmaker, product):
        manager, decision = await _collecting_decision(db, product)
        await _advance_to(manager, decision, "final_review")

        await manager.apply(
            decision.id,
            DirectorDecisionRequest(
                action="director_decision",
                final_decision="renew_with_changes",
                new_renewal_date=date(2027, 8, 1),
                new_annual_cost=10_000.0,
                new_licenses=300,
            ),
            APPROVER,
        )

        async with sessionmaker() as fresh:
            row = await fresh.get(Product, product.id)
            assert row.status == "active"
            assert row.renewal_date == date(2027, 8, 1)
            assert row.annual_cost == 10_000.0
            assert row.licenses == 300

    @pytest.mark.parametrize("request_, caller", [
        (GenerateSummaryRequest(action="generate_summary"), STAFF),
        (TicReviewRequest(action="tic_review", reviewer_recommendation="renew"), STAFF),
        (DirectorDecisionRequest(action="director_decision", final_decision="renew"), REVIEWER),
        (ImplementRequest(action="implement"), APPROVER),
        (TicReviewRequest(action="tic_review", reviewer_recommendation="renew"),
         Caller(email="gone@sas.edu.sg", role=Role.ADMIN, is_active=False)),
    ])
    async def test_role_rejection_leaves_row_untouched(self, db, sessionmaker, product, request_, caller):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(AuthorizationError):
            await manager.apply(decision.id, request_, caller)

        async with sessionmaker() as fresh:
            row = await fresh.get(RenewalDecision, decision.id)
            assert row.status == "collecting"
            assert row.summary is None
            assert row.reviewer_email is None
            assert (await fresh.execute(select(DecisionAuditLog))).scalars().all() == []

    async def test_role_checked_before_payload(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(AuthorizationError):
            await manager.apply(decision.id, TicReviewRequest(action="tic_review"), STAFF)

    async def test_tic_review_requires_recommendation(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        decision = await _advance_to(manager, decision, "assessor_review")
        with pytest.raises(ValidationError) as exc:
            await manager.apply(decision.id, TicReviewRequest(action="tic_review"), REVIEWER)
        assert exc.value.code == "reviewer_recommendation_required"

    async def test_director_requires_final_decision(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        decision = await _advance_to(manager, decision, "final_review")
        with pytest.raises(ValidationError) as exc:
            await manager.apply(decision.id, DirectorDecisionRequest(action="director_decision"), APPROVER)
        assert exc.value.code == "final_decision_required"

    @pytest.mark.parametrize("request_", [
        TicReviewRequest(action="tic_review", reviewer_recommendation="renew"),
        DirectorDecisionRequest(action="director_decision", final_decision="renew"),
        ImplementRequest(action="implement"),
    ])
    async def test_cannot_skip_steps(self, db, product, request_):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(InvalidTransitionError) as exc:
            await manager.apply(decision.id, request_, ADMIN)
        assert exc.value.to_dict()["current_status"] == "collecting"

    async def test_implemented_is_terminal(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        decision = await _advance_to(manager, decision, "implemented")
        for request_ in (GenerateSummaryRequest(action="generate_summary"), ImplementRequest(action="implement")):
            with pytest.raises(InvalidTransitionError):
                await manager.apply(decision.id, request_, ADMIN)

    async def test_unknown_decision(self, db):
        with pytest.raises(NotFoundError):
            await DecisionManager(db).apply("nope", ImplementRequest(action="implement"), ADMIN)


class TestSummaryFailure:
    async def test_provider_error_leaves_decision_unchanged(self, db, sessionmaker, product):
        failing = make_summary_client(lambda request: httpx.Response(500, text="upstream down"))
        manager, decision = await _collecting_decision(db, product, failing)

        result = await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), REVIEWER)
        assert result.summary_generated is False
        assert "500" in result.message

        async with sessionmaker() as fresh:
            row = await fresh.get(RenewalDecision, decision.id)
            assert row.status == "collecting"
            assert row.summary is None
            assert row.total_submissions == 2

    async def test_missing_credential(self, db, product):
        manager, decision = await _collecting_decision(db, product, make_summary_client(api_key=""))
        result = await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), ADMIN)
        assert result.summary_generated is False
        assert result.decision.status == "collecting"

    async def test_no_client(self, db, product):
        await _submit(db, product.id, "renew")
        manager = DecisionManager(db)
        decision = await manager.refresh_aggregate(product.id)
        result = await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), ADMIN)
        assert result.summary_generated is False

    async def test_regenerate_during_review(self, db, product):
        texts = iter(["First draft", "Second draft"])

        def handler(request):
            return httpx.Response(200, json={"content": [{"type": "text", "text": next(texts)}]})

        manager, decision = await _collecting_decision(db, product, make_summary_client(handler))
        await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), REVIEWER)
        result = await manager.apply(decision.id, GenerateSummaryRequest(action="generate_summary"), REVIEWER)
        assert result.decision.status == "assessor_review"
        assert result.decision.summary == "Second draft"


class TestAdmin:
    async def test_edit_can_move_backwards_and_is_audited(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        decision = await _advance_to(manager, decision, "decided")

        edited = await manager.admin_edit(
            decision.id, AdminDecisionEdit(status="final_review", approver_comment="Reopened"), ADMIN,
        )
        assert edited.status == "final_review"
        assert edited.approver_comment == "Reopened"

        trail = await manager.audit_trail(decision.id, ADMIN)
        edits = {a.field_name: a for a in trail if a.action == "admin_edit"}
        assert edits["status"].old_value == "decided"
        assert edits["status"].new_value == "final_review"
        assert edits["approver_comment"].new_value == "Reopened"
        assert all(a.changed_by == ADMIN.email for a in edits.values())

    async def test_edit_requires_admin(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(AuthorizationError):
            await manager.admin_edit(decision.id, AdminDecisionEdit(status="decided"), APPROVER)

    async def test_edit_without_fields(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(ValidationError) as exc:
            await manager.admin_edit(decision.id, AdminDecisionEdit(), ADMIN)
        assert exc.value.code == "no_fields"

    async def test_audit_trail_is_admin_only(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(AuthorizationError):
            await manager.audit_trail(decision.id, REVIEWER)

    async def test_purge(self, db, sessionmaker, product):
        manager, decision = await _collecting_decision(db, product)
        await manager.purge(decision.id, ADMIN)

        async with sessionmaker() as fresh:
            assert await fresh.get(RenewalDecision, decision.id) is None
            log = (await fresh.execute(select(DecisionAuditLog))).scalars().all()
            assert [a.action for a in log] == ["purged"]

        # the next refresh starts a fresh collecting record
        recreated = await manager.refresh_aggregate(product.id)
        assert recreated.id != decision.id
        assert recreated.status == "collecting"
        assert recreated.total_submissions == 2

    async def test_purge_requires_admin(self, db, product):
        manager, decision = await _collecting_decision(db, product)
        with pytest.raises(AuthorizationError):
            await manager.purge(decision.id, APPROVER)
