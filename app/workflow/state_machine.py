"""
Decision lifecycle.

    collecting ─┬─▶ summarizing ─▶ assessor_review ─▶ final_review ─▶ decided ─▶ implemented
                └──────────────────▶┘
      generate_summary (reviewer+)      tic_review     director_decision  implement
                                        (reviewer+)    (approver+)        (admin)

New submissions refresh the counts from any status but never move it.
No public action moves a decision backwards; corrections go through the
admin edit endpoint.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import InvalidTransitionError
from app.schemas.decision import DecisionAction, DecisionStatus
from app.workflow.roles import Caller, Role

STATUS_ORDER: dict[DecisionStatus, int] = {
    DecisionStatus.COLLECTING: 0,
    DecisionStatus.SUMMARIZING: 1,
    DecisionStatus.ASSESSOR_REVIEW: 2,
    DecisionStatus.FINAL_REVIEW: 3,
    DecisionStatus.DECIDED: 4,
    DecisionStatus.IMPLEMENTED: 5,
}


@dataclass(frozen=True)
class Transition:
    action: DecisionAction
    required_role: Role
    sources: frozenset[DecisionStatus]
    target: DecisionStatus


TRANSITIONS: dict[DecisionAction, Transition] = {
    DecisionAction.GENERATE_SUMMARY: Transition(
        action=DecisionAction.GENERATE_SUMMARY,
        required_role=Role.REVIEWER,
        # assessor_review → assessor_review regenerates the summary in place
        sources=frozenset({
            DecisionStatus.COLLECTING,
            DecisionStatus.SUMMARIZING,
            DecisionStatus.ASSESSOR_REVIEW,
        }),
        target=DecisionStatus.ASSESSOR_REVIEW,
    ),
    DecisionAction.TIC_REVIEW: Transition(
        action=DecisionAction.TIC_REVIEW,
        required_role=Role.REVIEWER,
        sources=frozenset({DecisionStatus.ASSESSOR_REVIEW}),
        target=DecisionStatus.FINAL_REVIEW,
    ),
    DecisionAction.DIRECTOR_DECISION: Transition(
        action=DecisionAction.DIRECTOR_DECISION,
        required_role=Role.APPROVER,
        sources=frozenset({DecisionStatus.FINAL_REVIEW}),
        target=DecisionStatus.DECIDED,
    ),
    DecisionAction.IMPLEMENT: Transition(
        action=DecisionAction.IMPLEMENT,
        required_role=Role.ADMIN,
        sources=frozenset({DecisionStatus.DECIDED}),
        target=DecisionStatus.IMPLEMENTED,
    ),
}


def is_forward(current: DecisionStatus, target: DecisionStatus) -> bool:
    return STATUS_ORDER[target] >= STATUS_ORDER[current]


def authorize(action: DecisionAction, caller: Caller) -> Transition:
    """Role gate. Raises AuthorizationError before anything else is looked at."""
    transition = TRANSITIONS[action]
    caller.require(transition.required_role, action.value)
    return transition


def check_source(transition: Transition, current: DecisionStatus) -> None:
    if current not in transition.sources or not is_forward(current, transition.target):
        allowed = ", ".join(sorted(s.value for s in transition.sources))
        raise InvalidTransitionError(
            f"Cannot {transition.action.value} a decision in status '{current.value}' (allowed from: {allowed})",
            current_status=current.value,
            action=transition.action.value,
        )
