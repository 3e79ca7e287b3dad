"""
DocFlow - Workflow Exceptions

Every failure path in the engine is reported through one of these classes.
None of them is fatal: callers keep the last known good view and surface the
message to the user.
"""

from typing import Dict, Optional


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""
    def __init__(self, message: str, status_code: int = None, details: Dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ActionUnavailableError(WorkflowError):
    """Raised when a target status or task step has no action code mapped."""
    def __init__(self, to_status: str, message: str = None):
        self.to_status = to_status
        super().__init__(message or "Action not mapped yet.", status_code=409,
                         details={"to_status": to_status})


class MissingNoteError(WorkflowError):
    """Raised when a return-to-edit action is submitted without a note."""
    def __init__(self, message: str = None):
        super().__init__(message or "Return note is required.", status_code=422)


class NotAuthorizedError(WorkflowError):
    """Raised when the acting office is not the office assigned to the open task."""
    def __init__(self, acting_office_id=None, assigned_office_id=None):
        super().__init__(
            "Your office is not assigned to the current task.",
            status_code=403,
            details={
                "acting_office_id": acting_office_id,
                "assigned_office_id": assigned_office_id,
            },
        )


class MissingReviewOfficeError(WorkflowError):
    """Raised when sending to office review and no reviewing office is known."""
    def __init__(self):
        super().__init__("No reviewer office is set for this document.", status_code=422)


class UnknownOfficeCodeError(WorkflowError):
    """Raised in strict mode when an office code has no cluster assigned."""
    def __init__(self, office_code: str):
        self.office_code = office_code
        super().__init__(
            f"Office code '{office_code}' is not assigned to any cluster",
            details={"office_code": office_code},
        )


class DocumentsApiError(WorkflowError):
    """Raised when the remote document API fails or returns a non-2xx response."""
    def __init__(self, message: str, status_code: Optional[int] = None, details: Dict = None):
        super().__init__(message, status_code=status_code, details=details)


class ActionRejectedError(DocumentsApiError):
    """
    Raised when the remote API rejects a submitted action.
    The message is the server's own and is shown to the user verbatim.
    """
    pass
