"""
DocFlow - Dynamic Route Builder

Builds the step sequence for a document whose author configured a custom list
of recipient offices instead of using a fixed pipeline.

Shape of a custom route with offices [A, B]:

    draft
    -> A review -> B review
    -> originator check
    -> A approval -> B approval
    -> originator proceed
    -> registration -> distribution -> distributed

Every office gets exactly one review turn and one approval turn, in the same
relative order, and control returns to the originating office between the two
loops. Per-office steps share a base id (the step name the backend stores on
the task) and are told apart by an ":<office_id>" suffix.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .flow_catalog import Phase, WorkflowStatus
from .models import Office, RouteStepConfig, Step, TransitionAction
from .office_directory import office_label

logger = logging.getLogger(__name__)


# =============================================================================
# STEP IDS
# =============================================================================

STEP_DRAFT = "draft"
STEP_REVIEW_OFFICE = "custom_review_office"
STEP_REVIEW_BACK_TO_ORIGINATOR = "custom_review_back_to_originator"
STEP_APPROVAL_OFFICE = "custom_approval_office"
STEP_APPROVAL_BACK_TO_ORIGINATOR = "custom_approval_back_to_originator"
STEP_REGISTRATION = "custom_registration"
STEP_DISTRIBUTION = "custom_distribution"
STEP_DISTRIBUTED = "distributed"

# Steps repeated once per routed office
LOOP_STEP_IDS = frozenset({STEP_REVIEW_OFFICE, STEP_APPROVAL_OFFICE})

# Steps held by the originating office
ORIGINATOR_STEP_IDS = frozenset({
    STEP_DRAFT,
    STEP_REVIEW_BACK_TO_ORIGINATOR,
    STEP_APPROVAL_BACK_TO_ORIGINATOR,
    STEP_REGISTRATION,
    STEP_DISTRIBUTION,
})


def loop_step_id(base_id: str, office_id: Any) -> str:
    """Composite id of a per-office loop step."""
    return f"{base_id}:{office_id}"


# =============================================================================
# ACTION CODES
# =============================================================================

class CustomAction:
    """Backend action codes for custom routes."""
    SEND_FOR_REVIEW = "CUSTOM_SEND_FOR_REVIEW"
    FORWARD_REVIEW = "CUSTOM_FORWARD_REVIEW"
    START_APPROVAL = "CUSTOM_START_APPROVAL"
    FORWARD_APPROVAL = "CUSTOM_FORWARD_APPROVAL"
    FORWARD_REGISTRATION = "CUSTOM_FORWARD_REGISTRATION"
    FORWARD_DISTRIBUTION = "CUSTOM_FORWARD_DISTRIBUTION"
    MARK_DISTRIBUTED = "CUSTOM_MARK_DISTRIBUTED"
    RETURN_TO_EDIT = "CUSTOM_RETURN_TO_EDIT"


# Format: {task step id: (forward action code, return action code)}
CUSTOM_STEP_ACTIONS: Dict[str, tuple] = {
    STEP_DRAFT: (CustomAction.SEND_FOR_REVIEW, None),
    STEP_REVIEW_OFFICE: (CustomAction.FORWARD_REVIEW, CustomAction.RETURN_TO_EDIT),
    STEP_REVIEW_BACK_TO_ORIGINATOR: (CustomAction.START_APPROVAL, CustomAction.RETURN_TO_EDIT),
    STEP_APPROVAL_OFFICE: (CustomAction.FORWARD_APPROVAL, CustomAction.RETURN_TO_EDIT),
    STEP_APPROVAL_BACK_TO_ORIGINATOR: (CustomAction.FORWARD_REGISTRATION, CustomAction.RETURN_TO_EDIT),
    STEP_REGISTRATION: (CustomAction.FORWARD_DISTRIBUTION, CustomAction.RETURN_TO_EDIT),
    STEP_DISTRIBUTION: (CustomAction.MARK_DISTRIBUTED, CustomAction.RETURN_TO_EDIT),
}

FORWARD_LABELS: Dict[str, str] = {
    STEP_DRAFT: "Send for review",
    STEP_REVIEW_OFFICE: "Forward to next reviewer",
    STEP_REVIEW_BACK_TO_ORIGINATOR: "Start approval phase",
    STEP_APPROVAL_OFFICE: "Forward to next approver",
    STEP_APPROVAL_BACK_TO_ORIGINATOR: "Proceed to registration",
    STEP_REGISTRATION: "Proceed to distribution",
    STEP_DISTRIBUTION: "Mark as distributed",
}
RETURN_LABEL = "Return to edit"


def build_custom_transitions() -> Dict[str, List[TransitionAction]]:
    """
    Transition table for custom routes, keyed by base step id.
    The same entry serves every office in a loop.
    """
    table: Dict[str, List[TransitionAction]] = {}
    for step_id, (forward_code, return_code) in CUSTOM_STEP_ACTIONS.items():
        actions = [TransitionAction(forward_code, FORWARD_LABELS[step_id])]
        if return_code:
            actions.append(TransitionAction(return_code, RETURN_LABEL))
        table[step_id] = actions
    table[STEP_DISTRIBUTED] = []
    return table


CUSTOM_TRANSITIONS = build_custom_transitions()


def get_custom_transitions(step: Optional[Step]) -> List[TransitionAction]:
    if step is None:
        return []
    return list(CUSTOM_TRANSITIONS.get(step.base_id, []))


# =============================================================================
# BUILDER
# =============================================================================

def normalize_route_steps(route_steps: Optional[Iterable[RouteStepConfig]]) -> List[RouteStepConfig]:
    """Sort by step order and keep only the first occurrence of each office."""
    ordered = sorted(route_steps or [], key=lambda s: s.step_order)
    seen = set()
    result = []
    for step in ordered:
        if step.office_id in seen:
            logger.debug("Dropping duplicate route step for office %s (order %s)", step.office_id, step.step_order)
            continue
        seen.add(step.office_id)
        result.append(step)
    return result


def build_custom_flow_steps(
    offices: Optional[List[Office]],
    owner_office_id: Any,
    route_steps: Optional[Iterable[RouteStepConfig]]
) -> Optional[List[Step]]:
    """
    Synthesize the step sequence of a custom route.

    Returns None when no offices are configured; the caller then uses the
    static pipeline.
    """
    ordered = normalize_route_steps(route_steps)
    if not ordered:
        return None

    owner_label = office_label(offices, owner_office_id) if owner_office_id else "Originator"

    steps: List[Step] = [
        Step(STEP_DRAFT, "Drafted", WorkflowStatus.DRAFT.value, Phase.DRAFT.value, owner_office_id),
    ]

    for route_step in ordered:
        steps.append(Step(
            loop_step_id(STEP_REVIEW_OFFICE, route_step.office_id),
            f"{office_label(offices, route_step.office_id)} Review",
            WorkflowStatus.FOR_OFFICE_REVIEW.value,
            Phase.REVIEW.value,
            route_step.office_id,
        ))

    steps.append(Step(
        STEP_REVIEW_BACK_TO_ORIGINATOR,
        f"Originator check ({owner_label})",
        WorkflowStatus.FOR_QA_FINAL_CHECK.value,
        Phase.REVIEW.value,
        owner_office_id,
    ))

    for route_step in ordered:
        steps.append(Step(
            loop_step_id(STEP_APPROVAL_OFFICE, route_step.office_id),
            f"{office_label(offices, route_step.office_id)} Approval",
            WorkflowStatus.FOR_OFFICE_APPROVAL.value,
            Phase.APPROVAL.value,
            route_step.office_id,
        ))

    steps.extend([
        Step(
            STEP_APPROVAL_BACK_TO_ORIGINATOR,
            f"Originator proceed ({owner_label})",
            WorkflowStatus.FOR_QA_REGISTRATION.value,
            Phase.APPROVAL.value,
            owner_office_id,
        ),
        Step(
            STEP_REGISTRATION,
            f"Originator registration ({owner_label})",
            WorkflowStatus.FOR_QA_REGISTRATION.value,
            Phase.REGISTRATION.value,
            owner_office_id,
        ),
        Step(
            STEP_DISTRIBUTION,
            f"Originator distribution ({owner_label})",
            WorkflowStatus.FOR_QA_DISTRIBUTION.value,
            Phase.REGISTRATION.value,
            owner_office_id,
        ),
        Step(STEP_DISTRIBUTED, "Distributed", WorkflowStatus.DISTRIBUTED.value, Phase.DISTRIBUTED.value),
    ])

    logger.debug("Built custom route with %d offices (%d steps)", len(ordered), len(steps))
    return steps
