"""
DocFlow - Workflow Engine

Deterministic evaluator for a document version's position in its workflow.

Given the version status, its workflow shape and the open task, the engine:
- reconstructs the ordered step sequence (static pipeline or custom route)
- locates the current step, its phase and the next step
- lists the forward / return actions available from there
- decides whether the acting office may execute them

Everything here is pure: the same inputs always give the same result, and no
well-formed input makes the evaluator raise. It is re-run on every load, after
every action and on every polling refresh.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import workflow_config
from .custom_route import (
    LOOP_STEP_IDS, ORIGINATOR_STEP_IDS, build_custom_flow_steps,
    get_custom_transitions, loop_step_id,
)
from .flow_catalog import (
    PHASE_LABELS, PHASE_ORDER, WorkflowShape, WorkflowStatus,
    get_static_pipeline, get_static_transitions, phase_order,
)
from .models import Office, Step, Task, TransitionAction
from .office_directory import OfficeClusterMap, resolve_cluster_code, resolve_office_id

logger = logging.getLogger(__name__)


# =============================================================================
# POSITION
# =============================================================================

@dataclass(frozen=True)
class WorkflowPosition:
    """Where a version currently stands in its step sequence."""
    step: Step
    phase: str
    phase_index: int
    global_index: int
    next_step: Optional[Step]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.to_dict(),
            "phase": self.phase,
            "phase_index": self.phase_index,
            "global_index": self.global_index,
            "next_step": self.next_step.to_dict() if self.next_step else None,
        }


def _match_task_step(steps: List[Step], task: Task) -> Optional[Step]:
    if not task.step:
        return None
    if task.step in LOOP_STEP_IDS:
        if task.assigned_office_id is None:
            return None
        wanted = loop_step_id(task.step, task.assigned_office_id)
    else:
        wanted = task.step
    for step in steps:
        if step.id == wanted:
            return step
    return None


def find_current_step(
    status: str,
    steps: List[Step],
    current_task: Optional[Task] = None,
    custom: bool = False
) -> Step:
    """
    Resolve the current step.

    Custom routes with a task are matched on the task's step first, using the
    assigned office to pick the right loop step. Otherwise, or when the task
    does not match, the first step carrying the status wins; failing that the
    first step of the sequence.
    """
    if not steps:
        raise ValueError("Step sequence is empty")

    if custom and current_task is not None:
        matched = _match_task_step(steps, current_task)
        if matched is not None:
            return matched
        logger.debug(
            "Task %s (step=%s, office=%s) matched no custom step; using status '%s'",
            current_task.id, current_task.step, current_task.assigned_office_id, status
        )

    for step in steps:
        if step.status_value == status:
            return step
    return steps[0]


def evaluate_position(
    status: str,
    steps: List[Step],
    current_task: Optional[Task] = None,
    custom: bool = False
) -> WorkflowPosition:
    step = find_current_step(status, steps, current_task, custom)
    global_index = steps.index(step)
    next_step = steps[global_index + 1] if global_index + 1 < len(steps) else None
    return WorkflowPosition(
        step=step,
        phase=step.phase,
        phase_index=phase_order(step.phase),
        global_index=global_index,
        next_step=next_step,
    )


def phase_states(position: WorkflowPosition) -> List[Dict[str, Any]]:
    """Phase rail: each phase marked current, completed or pending."""
    rail = []
    for index, phase_id in enumerate(PHASE_ORDER):
        if index == position.phase_index:
            state = "current"
        elif index < position.phase_index:
            state = "completed"
        else:
            state = "pending"
        rail.append({"id": phase_id, "label": PHASE_LABELS[phase_id], "state": state})
    return rail


# =============================================================================
# FLOW RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class ResolvedFlow:
    """Step sequence actually used for a version, after falling back if needed."""
    shape: WorkflowShape
    steps: List[Step]

    @property
    def is_custom(self) -> bool:
        return self.shape.is_custom


def resolve_flow(
    shape: WorkflowShape,
    offices: Optional[List[Office]] = None,
    owner_office_id: Any = None
) -> ResolvedFlow:
    """
    Step sequence for a shape. A custom shape whose route builds no steps
    degrades to the Originator-led pipeline.
    """
    if shape.is_custom:
        steps = build_custom_flow_steps(offices, owner_office_id, shape.route_steps)
        if steps:
            return ResolvedFlow(shape, steps)
        logger.warning("Custom route produced no steps; falling back to the Originator-led pipeline")
        shape = WorkflowShape.originator_led()
    steps, _ = get_static_pipeline(shape.kind)
    return ResolvedFlow(shape, list(steps))


def available_actions(flow: ResolvedFlow, status: str, position: WorkflowPosition) -> List[TransitionAction]:
    """Forward / return actions offered from the current position."""
    if flow.is_custom:
        return get_custom_transitions(position.step)
    return get_static_transitions(flow.shape.kind, status)


# =============================================================================
# TASKS & AUTHORIZATION
# =============================================================================

def _task_sort_key(task: Task):
    # Numeric ids sort numerically, anything else after them as text
    if isinstance(task.id, int) and not isinstance(task.id, bool):
        return (0, task.id, "")
    return (1, 0, str(task.id))


def select_current_task(tasks: Optional[List[Task]]) -> Optional[Task]:
    """
    The one task treated as the version's current work item.

    The open task with the lowest id wins; if no task is open, the task with
    the lowest id. More than one open task is a data problem and is logged.
    """
    if not tasks:
        return None
    ordered = sorted(tasks, key=_task_sort_key)
    open_tasks = [t for t in ordered if t.is_open]
    if len(open_tasks) > 1:
        logger.warning(
            "Version %s has %d open tasks (%s); using task %s",
            open_tasks[0].version_id, len(open_tasks),
            ", ".join(str(t.id) for t in open_tasks), open_tasks[0].id
        )
    if open_tasks:
        return open_tasks[0]
    return ordered[0]


def _same_id(a: Any, b: Any) -> bool:
    # Exact match: no coercion between str/int, and bools are not ids
    return type(a) is type(b) and a == b


def can_act(task: Optional[Task], acting_office_id: Any) -> bool:
    """True only when the acting office is the office assigned to the task."""
    if task is None or task.assigned_office_id is None or acting_office_id is None:
        return False
    return _same_id(task.assigned_office_id, acting_office_id)


def expected_actor_office_id(
    status: str,
    offices: Optional[List[Office]],
    owner_office_id: Any = None,
    review_office_id: Any = None,
    owner_office_code: Optional[str] = None,
    flow: Optional[ResolvedFlow] = None,
    position: Optional[WorkflowPosition] = None,
    cluster_map: OfficeClusterMap = None
) -> Any:
    """
    Office expected to act next, derived from status alone (or from the
    resolved step on custom routes). Display only: admission is can_act().
    """
    if flow is not None and flow.is_custom and position is not None:
        if position.step.base_id in ORIGINATOR_STEP_IDS:
            return owner_office_id
        return position.step.office_id

    S = WorkflowStatus
    qa_statuses = {
        S.DRAFT.value, S.FOR_QA_FINAL_CHECK.value, S.FOR_QA_REGISTRATION.value,
        S.FOR_QA_DISTRIBUTION.value, S.FOR_QA_APPROVAL_OFFICE.value,
        S.FOR_QA_REGISTRATION_OFFICE.value, S.FOR_QA_DISTRIBUTION_OFFICE.value,
    }
    office_statuses = {S.FOR_OFFICE_REVIEW.value, S.FOR_OFFICE_APPROVAL.value}
    owner_statuses = {
        S.OFFICE_DRAFT.value, S.FOR_OFFICE_HEAD_REVIEW.value, S.FOR_OFFICE_APPROVAL_OFFICE.value,
    }
    vp_statuses = {
        S.FOR_VP_REVIEW.value, S.FOR_VP_APPROVAL.value,
        S.FOR_VP_REVIEW_OFFICE.value, S.FOR_VP_APPROVAL_OFFICE.value,
    }
    president_statuses = {S.FOR_PRESIDENT_APPROVAL.value, S.FOR_PRESIDENT_APPROVAL_OFFICE.value}

    if status in qa_statuses:
        return resolve_office_id(offices, workflow_config.QA_OFFICE_CODE)
    if status in office_statuses:
        return review_office_id if review_office_id is not None else owner_office_id
    if status in owner_statuses:
        return owner_office_id
    if status in vp_statuses:
        vp_code = resolve_cluster_code(owner_office_code, cluster_map)
        return resolve_office_id(offices, vp_code) if vp_code else None
    if status in president_statuses:
        return resolve_office_id(offices, workflow_config.PRESIDENT_OFFICE_CODE)
    return None
