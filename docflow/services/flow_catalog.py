"""
DocFlow - Static Pipeline Catalog

The two fixed pipelines a document version can follow when it has no custom
route, and the transition table for each.

Pipelines:
- ORIGINATOR_LED: Drafted by QA, reviewed and approved by the owning office,
  its cluster VP and the President, then registered and distributed by QA
- OFFICE_LED: Drafted by the owning office, reviewed by its head and VP,
  approved by QA, or taken through the full approval chain

Transition tables are keyed by the exact status string and list the forward
action(s) plus a uniform "return to edit" action. The terminal status maps to
an empty list.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .models import Step, TransitionAction, RouteStepConfig


# =============================================================================
# PHASES
# =============================================================================

class Phase(str, Enum):
    """Coarse stage grouping. Declaration order is the phase order."""
    DRAFT = "draft"
    REVIEW = "review"
    APPROVAL = "approval"
    REGISTRATION = "registration"
    DISTRIBUTED = "distributed"


PHASE_LABELS: Dict[str, str] = {
    Phase.DRAFT.value: "Draft",
    Phase.REVIEW.value: "Review",
    Phase.APPROVAL.value: "Approval",
    Phase.REGISTRATION.value: "Registration",
    Phase.DISTRIBUTED.value: "Distributed",
}

PHASE_ORDER: List[str] = [p.value for p in Phase]


def phase_order(phase_id: str) -> int:
    """Position of a phase in the fixed order, -1 when unknown."""
    try:
        return PHASE_ORDER.index(phase_id)
    except ValueError:
        return -1


# =============================================================================
# STATUSES
# =============================================================================

class WorkflowStatus(str, Enum):
    """Version status strings as stored by the document system."""
    # Originator-led (QA)
    DRAFT = "Draft"
    FOR_OFFICE_REVIEW = "For Office Review"
    FOR_VP_REVIEW = "For VP Review"
    FOR_QA_FINAL_CHECK = "For QA Final Check"
    FOR_OFFICE_APPROVAL = "For Office Approval"
    FOR_VP_APPROVAL = "For VP Approval"
    FOR_PRESIDENT_APPROVAL = "For President Approval"
    FOR_QA_REGISTRATION = "For QA Registration"
    FOR_QA_DISTRIBUTION = "For QA Distribution"

    # Office-led
    OFFICE_DRAFT = "Office Draft"
    FOR_OFFICE_HEAD_REVIEW = "For Office Head Review"
    FOR_VP_REVIEW_OFFICE = "For VP Review (Office)"
    FOR_QA_APPROVAL_OFFICE = "For QA Approval (Office)"
    FOR_OFFICE_APPROVAL_OFFICE = "For Office Approval (Office)"
    FOR_VP_APPROVAL_OFFICE = "For VP Approval (Office)"
    FOR_PRESIDENT_APPROVAL_OFFICE = "For President Approval (Office)"
    FOR_QA_REGISTRATION_OFFICE = "For QA Registration (Office)"
    FOR_QA_DISTRIBUTION_OFFICE = "For QA Distribution (Office)"

    # Terminal (all pipelines)
    DISTRIBUTED = "Distributed"


# Pseudo target statuses for the "return to edit" actions
QA_EDIT = "QA_EDIT"
OFFICE_EDIT = "OFFICE_EDIT"


# =============================================================================
# PIPELINE STEPS
# =============================================================================

S = WorkflowStatus

ORIGINATOR_LED_STEPS: List[Step] = [
    Step("draft", "Drafted by QA", S.DRAFT.value, Phase.DRAFT.value),
    Step("office_review", "Office review", S.FOR_OFFICE_REVIEW.value, Phase.REVIEW.value),
    Step("vp_review", "VP review", S.FOR_VP_REVIEW.value, Phase.REVIEW.value),
    Step("qafinalcheck", "QA final check", S.FOR_QA_FINAL_CHECK.value, Phase.REVIEW.value),
    Step("office_approval", "Office approval", S.FOR_OFFICE_APPROVAL.value, Phase.APPROVAL.value),
    Step("vp_approval", "VP approval", S.FOR_VP_APPROVAL.value, Phase.APPROVAL.value),
    Step("pres_approval", "President approval", S.FOR_PRESIDENT_APPROVAL.value, Phase.APPROVAL.value),
    Step("qa_registration", "QA registration", S.FOR_QA_REGISTRATION.value, Phase.REGISTRATION.value),
    Step("qa_distribution", "QA distribution", S.FOR_QA_DISTRIBUTION.value, Phase.REGISTRATION.value),
    Step("distributed", "Distributed", S.DISTRIBUTED.value, Phase.DISTRIBUTED.value),
]

OFFICE_LED_STEPS: List[Step] = [
    Step("office_draft", "Office draft", S.OFFICE_DRAFT.value, Phase.DRAFT.value),
    Step("office_head_review", "Office head review", S.FOR_OFFICE_HEAD_REVIEW.value, Phase.REVIEW.value),
    Step("vp_review_office", "VP review", S.FOR_VP_REVIEW_OFFICE.value, Phase.REVIEW.value),
    Step("qa_approval_office", "QA approval", S.FOR_QA_APPROVAL_OFFICE.value, Phase.REVIEW.value),
    Step("office_approval_office", "Office approval", S.FOR_OFFICE_APPROVAL_OFFICE.value, Phase.APPROVAL.value),
    Step("vp_approval_office", "VP approval", S.FOR_VP_APPROVAL_OFFICE.value, Phase.APPROVAL.value),
    Step("pres_approval_office", "President approval", S.FOR_PRESIDENT_APPROVAL_OFFICE.value, Phase.APPROVAL.value),
    Step("qa_registration_office", "QA registration", S.FOR_QA_REGISTRATION_OFFICE.value, Phase.REGISTRATION.value),
    Step("qa_distribution_office", "QA distribution", S.FOR_QA_DISTRIBUTION_OFFICE.value, Phase.REGISTRATION.value),
    Step("distributed", "Distributed", S.DISTRIBUTED.value, Phase.DISTRIBUTED.value),
]


# =============================================================================
# TRANSITION TABLES
# =============================================================================

# Format: {current_status: [TransitionAction(to_status, label), ...]}

ORIGINATOR_LED_TRANSITIONS: Dict[str, List[TransitionAction]] = {
    S.DRAFT.value: [
        TransitionAction(S.FOR_OFFICE_REVIEW.value, "Send to Office for review"),
    ],
    S.FOR_OFFICE_REVIEW.value: [
        TransitionAction(S.FOR_VP_REVIEW.value, "Forward to VP for review"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.FOR_VP_REVIEW.value: [
        TransitionAction(S.FOR_QA_FINAL_CHECK.value, "Send back to QA for final check"),
        TransitionAction(QA_EDIT, "Return to QA edit"),
    ],
    S.FOR_QA_FINAL_CHECK.value: [
        TransitionAction(S.FOR_OFFICE_APPROVAL.value, "Start approval phase (Office approval)"),
        TransitionAction(QA_EDIT, "Return to QA edit"),
    ],
    S.FOR_OFFICE_APPROVAL.value: [
        TransitionAction(S.FOR_VP_APPROVAL.value, "Forward to VP for approval"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.FOR_VP_APPROVAL.value: [
        TransitionAction(S.FOR_PRESIDENT_APPROVAL.value, "Forward to President for approval"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.FOR_PRESIDENT_APPROVAL.value: [
        TransitionAction(S.FOR_QA_REGISTRATION.value, "Forward to QA for registration"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.FOR_QA_REGISTRATION.value: [
        TransitionAction(S.FOR_QA_DISTRIBUTION.value, "Proceed to QA distribution"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.FOR_QA_DISTRIBUTION.value: [
        TransitionAction(S.DISTRIBUTED.value, "Mark as distributed"),
        TransitionAction(QA_EDIT, "Return to QA (edit)"),
    ],
    S.DISTRIBUTED.value: [],
}

OFFICE_LED_TRANSITIONS: Dict[str, List[TransitionAction]] = {
    S.OFFICE_DRAFT.value: [
        TransitionAction(S.FOR_OFFICE_HEAD_REVIEW.value, "Send to Office head for review"),
    ],
    S.FOR_OFFICE_HEAD_REVIEW.value: [
        TransitionAction(S.FOR_VP_REVIEW_OFFICE.value, "Forward to VP for review"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_VP_REVIEW_OFFICE.value: [
        TransitionAction(S.FOR_QA_APPROVAL_OFFICE.value, "Forward to QA for approval"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_QA_APPROVAL_OFFICE.value: [
        TransitionAction(S.DISTRIBUTED.value, "Approve and distribute (finish)"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_OFFICE_APPROVAL_OFFICE.value: [
        TransitionAction(S.FOR_VP_APPROVAL_OFFICE.value, "Forward to VP for approval"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_VP_APPROVAL_OFFICE.value: [
        TransitionAction(S.FOR_PRESIDENT_APPROVAL_OFFICE.value, "Forward to President for approval"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_PRESIDENT_APPROVAL_OFFICE.value: [
        TransitionAction(S.FOR_QA_REGISTRATION_OFFICE.value, "Forward to QA for registration"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_QA_REGISTRATION_OFFICE.value: [
        TransitionAction(S.FOR_QA_DISTRIBUTION_OFFICE.value, "Proceed to QA distribution"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.FOR_QA_DISTRIBUTION_OFFICE.value: [
        TransitionAction(S.DISTRIBUTED.value, "Mark as distributed"),
        TransitionAction(OFFICE_EDIT, "Return to Office draft (edit)"),
    ],
    S.DISTRIBUTED.value: [],
}

# Statuses that only exist in the Office-led pipeline
OFFICE_PIPELINE_STATUSES = frozenset({
    S.OFFICE_DRAFT.value,
    S.FOR_OFFICE_HEAD_REVIEW.value,
    S.FOR_VP_REVIEW_OFFICE.value,
    S.FOR_QA_APPROVAL_OFFICE.value,
    S.FOR_OFFICE_APPROVAL_OFFICE.value,
    S.FOR_VP_APPROVAL_OFFICE.value,
    S.FOR_PRESIDENT_APPROVAL_OFFICE.value,
    S.FOR_QA_REGISTRATION_OFFICE.value,
    S.FOR_QA_DISTRIBUTION_OFFICE.value,
})

# Sort order of header buttons; return-to-edit always last
HEADER_ACTION_PRIORITY: Dict[str, int] = {
    S.FOR_OFFICE_REVIEW.value: 10,
    S.FOR_VP_REVIEW.value: 20,
    S.FOR_QA_FINAL_CHECK.value: 30,
    S.FOR_OFFICE_APPROVAL.value: 40,
    S.FOR_VP_APPROVAL.value: 50,
    S.FOR_PRESIDENT_APPROVAL.value: 60,
    S.FOR_QA_REGISTRATION.value: 70,
    S.FOR_QA_DISTRIBUTION.value: 80,

    S.FOR_OFFICE_HEAD_REVIEW.value: 12,
    S.FOR_VP_REVIEW_OFFICE.value: 22,
    S.FOR_QA_APPROVAL_OFFICE.value: 28,
    S.FOR_OFFICE_APPROVAL_OFFICE.value: 42,
    S.FOR_VP_APPROVAL_OFFICE.value: 52,
    S.FOR_PRESIDENT_APPROVAL_OFFICE.value: 62,
    S.FOR_QA_REGISTRATION_OFFICE.value: 72,
    S.FOR_QA_DISTRIBUTION_OFFICE.value: 82,

    S.DISTRIBUTED.value: 90,
    QA_EDIT: 999,
    OFFICE_EDIT: 999,
}
DEFAULT_ACTION_PRIORITY = 500


# =============================================================================
# WORKFLOW SHAPE
# =============================================================================

class ShapeKind(str, Enum):
    ORIGINATOR_LED = "originator_led"
    OFFICE_LED = "office_led"
    CUSTOM = "custom"


@dataclass(frozen=True)
class WorkflowShape:
    """
    Which pipeline a version follows. Decided once when the version is loaded
    and passed explicitly to everything that needs it.
    """
    kind: ShapeKind
    route_steps: Tuple[RouteStepConfig, ...] = field(default_factory=tuple)

    @property
    def is_custom(self) -> bool:
        return self.kind == ShapeKind.CUSTOM

    @classmethod
    def originator_led(cls) -> "WorkflowShape":
        return cls(ShapeKind.ORIGINATOR_LED)

    @classmethod
    def office_led(cls) -> "WorkflowShape":
        return cls(ShapeKind.OFFICE_LED)

    @classmethod
    def custom(cls, route_steps: List[RouteStepConfig]) -> "WorkflowShape":
        return cls(ShapeKind.CUSTOM, tuple(route_steps))


def resolve_workflow_shape(
    status: str,
    workflow_type: Optional[str] = None,
    route_steps: Optional[List[RouteStepConfig]] = None
) -> WorkflowShape:
    """
    Decide the pipeline for a version.

    A non-empty custom route wins over any workflow_type tag. Otherwise the
    Office-led pipeline is chosen by workflow_type "office" or, when the tag
    is missing or stale, by the status belonging to the Office-led pipeline.
    """
    if route_steps:
        return WorkflowShape.custom(route_steps)
    if str(workflow_type or "").lower() == "office" or status in OFFICE_PIPELINE_STATUSES:
        return WorkflowShape.office_led()
    return WorkflowShape.originator_led()


def get_static_pipeline(kind: ShapeKind) -> Tuple[List[Step], Dict[str, List[TransitionAction]]]:
    """Steps and transition table of a static pipeline."""
    if kind == ShapeKind.OFFICE_LED:
        return OFFICE_LED_STEPS, OFFICE_LED_TRANSITIONS
    return ORIGINATOR_LED_STEPS, ORIGINATOR_LED_TRANSITIONS


def get_static_transitions(kind: ShapeKind, status: str) -> List[TransitionAction]:
    """Actions available from a status; unknown statuses have none."""
    _, transitions = get_static_pipeline(kind)
    return list(transitions.get(status, []))
