"""
DocFlow - Action Resolver

Translates the action a user picked into the backend's canonical action code.

- Static pipelines: keyed by the target status. Both pipeline variants of a
  status (e.g. "For VP Review" and "For VP Review (Office)") map to the same
  code.
- Custom routes: keyed by the current task's step, because every loop step
  offers the same "forward" / "return" labels whichever office holds it.

An unmapped input resolves to None. Callers treat None as "action not
available" and never send it to the server.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from .custom_route import CUSTOM_STEP_ACTIONS, CustomAction
from .flow_catalog import OFFICE_EDIT, QA_EDIT, WorkflowShape, WorkflowStatus
from .errors import MissingNoteError
from .models import Task, TransitionAction

logger = logging.getLogger(__name__)


class WorkflowAction(str, Enum):
    """Backend action codes for the static pipelines."""
    SEND_TO_OFFICE_REVIEW = "SEND_TO_OFFICE_REVIEW"
    FORWARD_TO_OFFICE_HEAD_REVIEW = "FORWARD_TO_OFFICE_HEAD_REVIEW"
    FORWARD_TO_VP_REVIEW = "FORWARD_TO_VP_REVIEW"
    VP_SEND_BACK_TO_QA_FINAL_CHECK = "VP_SEND_BACK_TO_QA_FINAL_CHECK"
    VP_FORWARD_TO_QA_APPROVAL = "VP_FORWARD_TO_QA_APPROVAL"
    START_OFFICE_APPROVAL = "START_OFFICE_APPROVAL"
    FORWARD_TO_VP_APPROVAL = "FORWARD_TO_VP_APPROVAL"
    FORWARD_TO_PRESIDENT_APPROVAL = "FORWARD_TO_PRESIDENT_APPROVAL"
    FORWARD_TO_QA_REGISTRATION = "FORWARD_TO_QA_REGISTRATION"
    FORWARD_TO_QA_DISTRIBUTION = "FORWARD_TO_QA_DISTRIBUTION"
    MARK_DISTRIBUTED = "MARK_DISTRIBUTED"
    RETURN_TO_QA_EDIT = "RETURN_TO_QA_EDIT"
    RETURN_TO_OFFICE_EDIT = "RETURN_TO_OFFICE_EDIT"


class Direction(str, Enum):
    FORWARD = "forward"
    RETURN = "return"


S = WorkflowStatus
A = WorkflowAction

# Format: {target status: action code}
STATUS_ACTION_CODES: Dict[str, str] = {
    S.FOR_OFFICE_REVIEW.value: A.SEND_TO_OFFICE_REVIEW.value,
    S.FOR_OFFICE_HEAD_REVIEW.value: A.FORWARD_TO_OFFICE_HEAD_REVIEW.value,
    S.FOR_VP_REVIEW.value: A.FORWARD_TO_VP_REVIEW.value,
    S.FOR_VP_REVIEW_OFFICE.value: A.FORWARD_TO_VP_REVIEW.value,
    S.FOR_QA_FINAL_CHECK.value: A.VP_SEND_BACK_TO_QA_FINAL_CHECK.value,
    S.FOR_QA_APPROVAL_OFFICE.value: A.VP_FORWARD_TO_QA_APPROVAL.value,
    S.FOR_OFFICE_APPROVAL.value: A.START_OFFICE_APPROVAL.value,
    S.FOR_OFFICE_APPROVAL_OFFICE.value: A.START_OFFICE_APPROVAL.value,
    S.FOR_VP_APPROVAL.value: A.FORWARD_TO_VP_APPROVAL.value,
    S.FOR_VP_APPROVAL_OFFICE.value: A.FORWARD_TO_VP_APPROVAL.value,
    S.FOR_PRESIDENT_APPROVAL.value: A.FORWARD_TO_PRESIDENT_APPROVAL.value,
    S.FOR_PRESIDENT_APPROVAL_OFFICE.value: A.FORWARD_TO_PRESIDENT_APPROVAL.value,
    S.FOR_QA_REGISTRATION.value: A.FORWARD_TO_QA_REGISTRATION.value,
    S.FOR_QA_REGISTRATION_OFFICE.value: A.FORWARD_TO_QA_REGISTRATION.value,
    S.FOR_QA_DISTRIBUTION.value: A.FORWARD_TO_QA_DISTRIBUTION.value,
    S.FOR_QA_DISTRIBUTION_OFFICE.value: A.FORWARD_TO_QA_DISTRIBUTION.value,
    S.DISTRIBUTED.value: A.MARK_DISTRIBUTED.value,
    QA_EDIT: A.RETURN_TO_QA_EDIT.value,
    OFFICE_EDIT: A.RETURN_TO_OFFICE_EDIT.value,
}

RETURN_TARGETS = frozenset({
    QA_EDIT,
    OFFICE_EDIT,
    A.RETURN_TO_QA_EDIT.value,
    A.RETURN_TO_OFFICE_EDIT.value,
    CustomAction.RETURN_TO_EDIT,
})


def to_workflow_action(to_status: Optional[str]) -> Optional[str]:
    """Action code for a static-pipeline target status, None when unmapped."""
    if to_status is None:
        return None
    return STATUS_ACTION_CODES.get(to_status)


def resolve_custom_action(task_step: Optional[str], direction: Direction) -> Optional[str]:
    """Action code for a custom-route task step, None when unmapped."""
    if not task_step:
        return None
    pair = CUSTOM_STEP_ACTIONS.get(task_step.split(":", 1)[0])
    if pair is None:
        return None
    forward_code, return_code = pair
    return return_code if direction == Direction.RETURN else forward_code


def is_return_action(to_status: Optional[str]) -> bool:
    """True for every "return to edit" target, static or custom."""
    return to_status in RETURN_TARGETS


def resolve_action_code(
    shape: WorkflowShape,
    action: TransitionAction,
    current_task: Optional[Task] = None
) -> Optional[str]:
    """
    Backend action code for an offered action.

    Custom routes resolve from the task step; the action only tells the
    direction. A custom action whose code does not belong to the task's step
    is rejected (None), so a stale button never submits another step's action.
    """
    if not shape.is_custom:
        return to_workflow_action(action.to_status)

    if current_task is None:
        return None
    direction = Direction.RETURN if is_return_action(action.to_status) else Direction.FORWARD
    code = resolve_custom_action(current_task.step, direction)
    if code is not None and code != action.to_status:
        logger.warning(
            "Action %s does not belong to task step %s (expected %s)",
            action.to_status, current_task.step, code
        )
        return None
    return code


def validate_return_note(note: Optional[str]) -> str:
    """
    A return-to-edit action needs a non-empty note.
    Returns the trimmed note; raises MissingNoteError otherwise.
    """
    if note is None or not note.strip():
        raise MissingNoteError()
    return note.strip()
