"""
DocFlow - Transition Executor

Runs one user-chosen workflow action against the remote document API.

Order of operations:
1. Resolve the backend action code (unmapped -> ActionUnavailableError)
2. Check the acting office holds the open task (-> NotAuthorizedError)
3. Return actions need a note (-> MissingNoteError); forward actions send none
4. Ask for confirmation; declining ends here with nothing sent
5. Submit, attaching the reviewing office to SEND_TO_OFFICE_REVIEW
6. On success: replace the local status with the server's record, re-fetch the
   tasks, then the visible side panel, then emit the notification signal and
   speed up polling

Every check before step 5 fails without any network call. A rejection from
the server leaves the local status untouched.
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .action_resolver import WorkflowAction, is_return_action, resolve_action_code, validate_return_note
from .document_flow import DocumentFlowSession
from .documents_client import DocumentsApiClient
from .errors import (
    ActionRejectedError, ActionUnavailableError, DocumentsApiError, MissingReviewOfficeError,
    NotAuthorizedError, WorkflowError,
)
from .models import DocumentVersion, TransitionAction
from .refresh_scheduler import NotificationSignal, RefreshScheduler, notifications_refresh

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class TransitionOutcome:
    status: OutcomeStatus
    action_code: Optional[str] = None
    version: Optional[DocumentVersion] = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "action_code": self.action_code,
            "version": self.version.to_dict() if self.version else None,
            "message": self.message,
            "warnings": list(self.warnings),
        }


def find_offered_action(session: DocumentFlowSession, to_status: str) -> TransitionAction:
    """The action with this target among those offered right now."""
    for action in session.actions():
        if action.to_status == to_status:
            return action
    logger.warning("Action '%s' is not offered from status '%s' (version %s)",
                   to_status, session.version.status, session.version_id)
    raise ActionUnavailableError(to_status)


class TransitionExecutor:
    """
    Usage:
        executor = TransitionExecutor(confirm=lambda prompt: True)
        outcome = await executor.execute(session, action, note="Please fix section 2")

    confirm receives the prompt "<label>?" and returns (or resolves to) a bool.
    Without a confirm callback the action is treated as already confirmed.
    """

    def __init__(
        self,
        client: DocumentsApiClient = None,
        confirm: Callable[[str], Any] = None,
        signal: NotificationSignal = None,
        scheduler: RefreshScheduler = None
    ):
        self.client = client
        self.confirm = confirm
        self.signal = signal if signal is not None else notifications_refresh
        self.scheduler = scheduler

    async def _confirmed(self, prompt: str) -> bool:
        if self.confirm is None:
            return True
        answer = self.confirm(prompt)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def execute(
        self,
        session: DocumentFlowSession,
        action: TransitionAction,
        note: Optional[str] = None
    ) -> TransitionOutcome:
        if not session.is_loaded:
            raise WorkflowError(f"Document version {session.version_id} is not loaded", status_code=409)

        task = session.current_task
        code = resolve_action_code(session.flow.shape, action, task)
        if code is None:
            logger.warning("No action code for '%s' on version %s", action.to_status, session.version_id)
            raise ActionUnavailableError(action.to_status)

        if not session.can_act():
            logger.warning(
                "Office %s tried %s on version %s but task is assigned to %s",
                session.acting_office_id, code, session.version_id,
                task.assigned_office_id if task else None
            )
            raise NotAuthorizedError(session.acting_office_id, task.assigned_office_id if task else None)

        note = validate_return_note(note) if is_return_action(action.to_status) else None

        if not await self._confirmed(f"{action.label}?"):
            logger.info("Action %s on version %s cancelled", code, session.version_id)
            return TransitionOutcome(OutcomeStatus.CANCELLED, action_code=code)

        review_office_id = None
        if code == WorkflowAction.SEND_TO_OFFICE_REVIEW.value:
            review_office_id = session.review_office_id
            if review_office_id is None:
                review_office_id = session.owner_office_id
            if review_office_id is None:
                raise MissingReviewOfficeError()

        client = self.client or session.client
        session.is_changing = True
        try:
            try:
                result = await client.submit_action(
                    session.version_id, code, note=note, review_office_id=review_office_id
                )
            except ActionRejectedError as e:
                logger.warning("Action %s on version %s rejected: %s", code, session.version_id, e.message)
                raise

            previous_status = session.version.status
            session.apply_version(result.version)
            logger.info("Version %s moved from '%s' to '%s' via %s",
                        session.version_id, previous_status, session.version.status, code)

            outcome = TransitionOutcome(
                OutcomeStatus.COMPLETED,
                action_code=code,
                version=session.version,
                message=result.message or "Action completed.",
            )

            try:
                await session.refresh_tasks()
            except DocumentsApiError as e:
                logger.error("Task refresh after %s failed: %s", code, e.message)
                outcome.warnings.append(f"Tasks could not be refreshed: {e.message}")

            try:
                await session.refresh_side_tab()
            except DocumentsApiError as e:
                logger.error("Side panel refresh after %s failed: %s", code, e.message)
                outcome.warnings.append(f"{session.side_tab.value.capitalize()} could not be refreshed: {e.message}")
        finally:
            session.is_changing = False

        await self.signal.emit(version_id=session.version_id, action=code)
        if self.scheduler is not None:
            self.scheduler.boost()
        return outcome

    async def execute_by_status(
        self,
        session: DocumentFlowSession,
        to_status: str,
        note: Optional[str] = None
    ) -> TransitionOutcome:
        """Execute the offered action whose target (or custom code) is to_status."""
        return await self.execute(session, find_offered_action(session, to_status), note=note)
