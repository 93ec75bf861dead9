"""
Unit tests for roles and the decision lifecycle table.
"""
import pytest

from conftest import make_profile

from app.core.errors import AuthorizationError, InvalidTransitionError
from app.schemas.decision import DecisionAction, DecisionStatus
from app.services.role_authority import ProfileRoleAuthority
from app.workflow import state_machine
from app.workflow.roles import Caller, Role, highest_role


class TestRoles:
    def test_hierarchy_order(self):
        assert Role.STAFF.rank < Role.REVIEWER.rank < Role.APPROVER.rank < Role.ADMIN.rank

    def test_highest_role_from_profile_list(self):
        assert highest_role(["staff", "approver", "tic"]) == Role.APPROVER
        assert highest_role(["admin"]) == Role.ADMIN

    def test_legacy_tic_name(self):
        assert Role.parse("tic") == Role.REVIEWER
        assert Role.parse("TIC ") == Role.REVIEWER

    def test_unknown_or_empty_roles_default_to_staff(self):
        assert highest_role([]) == Role.STAFF
        assert highest_role(["superuser"]) == Role.STAFF

    def test_inactive_caller_has_no_role(self):
        caller = Caller(email="x@sas.edu.sg", role=Role.ADMIN, is_active=False)
        assert not caller.has_role(Role.STAFF)
        with pytest.raises(AuthorizationError) as exc:
            caller.require(Role.REVIEWER, "tic_review")
        assert exc.value.code == "account_inactive"

    def test_error_carries_current_role(self):
        caller = Caller(email="x@sas.edu.sg", role=Role.STAFF)
        with pytest.raises(AuthorizationError) as exc:
            caller.require(Role.APPROVER, "director_decision")
        assert exc.value.current_role == "staff"
        assert exc.value.to_dict()["required_role"] == "approver"


class TestTransitions:
    @pytest.mark.parametrize("action", [
        DecisionAction.TIC_REVIEW,
        DecisionAction.DIRECTOR_DECISION,
        DecisionAction.IMPLEMENT,
        DecisionAction.GENERATE_SUMMARY,
    ])
    def test_staff_rejected_everywhere(self, action):
        with pytest.raises(AuthorizationError):
            state_machine.authorize(action, Caller(email="s@sas.edu.sg", role=Role.STAFF))

    @pytest.mark.parametrize("action", list(DecisionAction))
    def test_admin_allowed_everywhere(self, action):
        transition = state_machine.authorize(action, Caller(email="a@sas.edu.sg", role=Role.ADMIN))
        assert transition.action == action

    def test_required_roles(self):
        assert state_machine.TRANSITIONS[DecisionAction.GENERATE_SUMMARY].required_role == Role.REVIEWER
        assert state_machine.TRANSITIONS[DecisionAction.TIC_REVIEW].required_role == Role.REVIEWER
        assert state_machine.TRANSITIONS[DecisionAction.DIRECTOR_DECISION].required_role == Role.APPROVER
        assert state_machine.TRANSITIONS[DecisionAction.IMPLEMENT].required_role == Role.ADMIN

    def test_reviewer_cannot_decide(self):
        with pytest.raises(AuthorizationError):
            state_machine.authorize(DecisionAction.DIRECTOR_DECISION, Caller(email="t@sas.edu.sg", role=Role.REVIEWER))

    def test_approver_cannot_implement(self):
        with pytest.raises(AuthorizationError):
            state_machine.authorize(DecisionAction.IMPLEMENT, Caller(email="d@sas.edu.sg", role=Role.APPROVER))

    def test_every_transition_moves_forward(self):
        """No public action can regress a decision."""
        for transition in state_machine.TRANSITIONS.values():
            for source in transition.sources:
                assert state_machine.is_forward(source, transition.target), (transition.action, source)

    def test_no_transition_out_of_implemented(self):
        for transition in state_machine.TRANSITIONS.values():
            assert DecisionStatus.IMPLEMENTED not in transition.sources

    def test_illegal_source_rejected(self):
        transition = state_machine.TRANSITIONS[DecisionAction.IMPLEMENT]
        with pytest.raises(InvalidTransitionError) as exc:
            state_machine.check_source(transition, DecisionStatus.FINAL_REVIEW)
        assert exc.value.http_status == 409

    def test_summary_can_be_regenerated_during_review(self):
        transition = state_machine.TRANSITIONS[DecisionAction.GENERATE_SUMMARY]
        state_machine.check_source(transition, DecisionStatus.ASSESSOR_REVIEW)
        with pytest.raises(InvalidTransitionError):
            state_machine.check_source(transition, DecisionStatus.FINAL_REVIEW)

    def test_backward_target_rejected_even_if_listed(self):
        regressing = state_machine.Transition(
            action=DecisionAction.TIC_REVIEW,
            required_role=Role.REVIEWER,
            sources=frozenset({DecisionStatus.DECIDED}),
            target=DecisionStatus.FINAL_REVIEW,
        )
        with pytest.raises(InvalidTransitionError) as exc:
            state_machine.check_source(regressing, DecisionStatus.DECIDED)
        assert exc.value.to_dict()["current_status"] == "decided"


class TestProfileRoleAuthority:
    async def test_unknown_email_is_active_staff(self, db):
        caller = await ProfileRoleAuthority(db).resolve("New.Person@sas.edu.sg", name="New Person")
        assert caller == Caller(email="new.person@sas.edu.sg", role=Role.STAFF, is_active=True, name="New Person")

    async def test_highest_profile_role_wins(self, db):
        await make_profile(db, "lead@sas.edu.sg", ["staff", "tic", "approver"])
        caller = await ProfileRoleAuthority(db).resolve("lead@sas.edu.sg")
        assert caller.role == Role.APPROVER
        assert caller.has_role(Role.REVIEWER)
        assert not caller.has_role(Role.ADMIN)

    async def test_inactive_profile(self, db):
        await make_profile(db, "left@sas.edu.sg", ["admin"], is_active=False)
        caller = await ProfileRoleAuthority(db).resolve("left@sas.edu.sg")
        assert caller.role == Role.ADMIN
        assert not caller.is_active
        assert not caller.has_role(Role.STAFF)
