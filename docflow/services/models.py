"""
DocFlow - Workflow Data Model

Snapshots of the records owned by the remote document system (offices,
documents, versions, tasks, route configuration) plus the computed values the
engine derives from them (steps, transition actions).

Remote records are read with from_dict(), which tolerates the naming
differences seen across API versions (workflow_type / workflowType, etc.).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List


class TaskStatus(str, Enum):
    """Lifecycle of a single work assignment."""
    OPEN = "open"
    COMPLETED = "completed"
    RETURNED = "returned"
    REJECTED = "rejected"


def _first_present(data: Dict[str, Any], *keys: str, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


# =============================================================================
# REFERENCE DATA
# =============================================================================

@dataclass(frozen=True)
class Office:
    id: Any
    name: str
    code: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Office":
        return cls(id=data.get("id"), name=data.get("name") or "", code=data.get("code") or "")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "code": self.code}


@dataclass(frozen=True)
class RouteStepConfig:
    """One recipient office configured on a document's custom route."""
    office_id: Any
    step_order: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteStepConfig":
        return cls(
            office_id=_first_present(data, "office_id", "officeId"),
            step_order=int(_first_present(data, "step_order", "stepOrder", default=0)),
        )


# =============================================================================
# REMOTE RECORDS
# =============================================================================

@dataclass
class Task:
    """One unit of pending work tied to a single office."""
    id: Any
    version_id: Any
    phase: Optional[str]
    step: Optional[str]
    status: str
    assigned_office_id: Any = None
    assigned_role_id: Any = None
    assigned_user_id: Any = None

    @property
    def is_open(self) -> bool:
        return self.status == TaskStatus.OPEN.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data.get("id"),
            version_id=_first_present(data, "document_version_id", "version_id", "versionId"),
            phase=data.get("phase"),
            step=data.get("step"),
            status=str(data.get("status") or ""),
            assigned_office_id=_first_present(data, "assigned_office_id", "assignedOfficeId"),
            assigned_role_id=_first_present(data, "assigned_role_id", "assignedRoleId"),
            assigned_user_id=_first_present(data, "assigned_user_id", "assignedUserId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version_id": self.version_id,
            "phase": self.phase,
            "step": self.step,
            "status": self.status,
            "assigned_office_id": self.assigned_office_id,
            "assigned_role_id": self.assigned_role_id,
            "assigned_user_id": self.assigned_user_id,
        }


@dataclass
class Document:
    id: Any
    title: str
    code: Optional[str] = None
    owner_office_id: Any = None
    owner_office_code: Optional[str] = None
    review_office_id: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        owner_office = data.get("owner_office") or data.get("office") or {}
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            code=data.get("code"),
            owner_office_id=_first_present(data, "owner_office_id", "ownerOfficeId", "office_id"),
            owner_office_code=_first_present(data, "owner_office_code") or owner_office.get("code"),
            review_office_id=_first_present(data, "review_office_id", "reviewOfficeId"),
        )


@dataclass
class DocumentVersion:
    id: Any
    status: str
    version_number: int = 0
    document_id: Any = None
    workflow_type: Optional[str] = None
    owner_office_id: Any = None
    review_office_id: Any = None
    file_path: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # Fields taken from the server record when a transition succeeds
    STATUS_FIELDS = ("status", "version_number", "workflow_type", "review_office_id", "file_path")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentVersion":
        known = {
            "id", "status", "version_number", "versionNumber", "document_id", "documentId",
            "workflow_type", "workflowType", "workflowtype", "owner_office_id", "ownerOfficeId",
            "review_office_id", "reviewOfficeId", "file_path", "filePath",
        }
        workflow_type = _first_present(data, "workflow_type", "workflowType", "workflowtype")
        return cls(
            id=data.get("id"),
            status=str(data.get("status") or ""),
            version_number=int(_first_present(data, "version_number", "versionNumber", default=0)),
            document_id=_first_present(data, "document_id", "documentId"),
            workflow_type=str(workflow_type).lower() if workflow_type is not None else None,
            owner_office_id=_first_present(data, "owner_office_id", "ownerOfficeId"),
            review_office_id=_first_present(data, "review_office_id", "reviewOfficeId"),
            file_path=_first_present(data, "file_path", "filePath"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def merged_with(self, server_record: "DocumentVersion") -> "DocumentVersion":
        """Copy of this version with the status-bearing fields of the server record."""
        merged = DocumentVersion(**{**self.__dict__, "extra": dict(self.extra)})
        merged.id = server_record.id if server_record.id is not None else self.id
        for name in self.STATUS_FIELDS:
            setattr(merged, name, getattr(server_record, name))
        merged.extra.update(server_record.extra)
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "version_number": self.version_number,
            "document_id": self.document_id,
            "workflow_type": self.workflow_type,
            "owner_office_id": self.owner_office_id,
            "review_office_id": self.review_office_id,
            "file_path": self.file_path,
        }


# =============================================================================
# COMPUTED VALUES
# =============================================================================

@dataclass(frozen=True)
class Step:
    """One named position in a workflow sequence."""
    id: str
    label: str
    status_value: str
    phase: str
    office_id: Any = None

    @property
    def base_id(self) -> str:
        """Step id without the office suffix used by per-office loop steps."""
        return self.id.split(":", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "label": self.label,
            "status_value": self.status_value,
            "phase": self.phase,
        }
        if self.office_id is not None:
            result["office_id"] = self.office_id
        return result


@dataclass(frozen=True)
class TransitionAction:
    """
    A forward or return action offered from the current step.
    For custom routes to_status already holds the backend action code.
    """
    to_status: str
    label: str

    def to_dict(self) -> Dict[str, str]:
        return {"to_status": self.to_status, "label": self.label}


def parse_records(records: Optional[List[Dict[str, Any]]], model) -> List[Any]:
    """Parse a list of remote records, skipping anything that is not a mapping."""
    return [model.from_dict(r) for r in (records or []) if isinstance(r, dict)]
