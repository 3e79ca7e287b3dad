"""
DocFlow - Document Flow Session

Holds everything one open document view needs and derives the header
view-model from it:

- the version (status source of truth is the server record)
- the workflow shape, decided once at load time
- the office directory and custom route configuration
- the version's tasks, and the side panel contents (comments or activity log)

Derived values (current step, actions, can_act, awaiting office) are
recomputed from the stored records on every call, never cached, so a refresh
or a transition only has to replace the records.

Concurrent loads are guarded per resource: only the most recent request for a
resource is applied, and only if the version and side tab it was issued for are
still the ones shown.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Any, Hashable, List, Optional, Tuple

from dateutil import parser as date_parser

from .documents_client import DocumentsApiClient
from .errors import DocumentsApiError, UnknownOfficeCodeError, WorkflowError
from .flow_catalog import (
    DEFAULT_ACTION_PRIORITY, HEADER_ACTION_PRIORITY, WorkflowShape, WorkflowStatus,
    resolve_workflow_shape,
)
from .action_resolver import is_return_action
from .models import Document, DocumentVersion, Office, RouteStepConfig, Task, TransitionAction
from .office_directory import OfficeClusterMap, find_office, office_label
from .workflow_engine import (
    ResolvedFlow, WorkflowPosition, available_actions, can_act, evaluate_position,
    expected_actor_office_id, phase_states, resolve_flow, select_current_task,
)

logger = logging.getLogger(__name__)

RETURN_ACTION_PRIORITY = 999
CODE_NOT_AVAILABLE = "CODE-NOT-AVAILABLE"


class SideTab(str, Enum):
    COMMENTS = "comments"
    LOGS = "logs"


def format_when(value: Any) -> str:
    """Display form of a server timestamp; unparseable values are shown as-is."""
    if not value:
        return ""
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return str(value)
    return parsed.strftime("%b %d, %Y %I:%M %p")


# =============================================================================
# LATEST-WINS GUARD
# =============================================================================

@dataclass(frozen=True)
class RequestToken:
    resource: str
    sequence: int
    context: Hashable = None


class LatestRequestGuard:
    """
    Issues one increasing token per request and resource. A response may be
    applied only while its token is the newest for the resource and the
    context (version id, side tab) it was requested for is unchanged.
    """

    def __init__(self):
        self._latest: Dict[str, int] = {}

    def issue(self, resource: str, context: Hashable = None) -> RequestToken:
        sequence = self._latest.get(resource, 0) + 1
        self._latest[resource] = sequence
        return RequestToken(resource, sequence, context)

    def is_current(self, token: RequestToken, context: Hashable = None) -> bool:
        if self._latest.get(token.resource) != token.sequence:
            return False
        return token.context == context


# =============================================================================
# HEADER VIEW-MODEL
# =============================================================================

@dataclass
class HeaderAction:
    to_status: str
    label: str
    priority: int
    is_return: bool
    disabled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to_status": self.to_status,
            "label": self.label,
            "priority": self.priority,
            "is_return": self.is_return,
            "disabled": self.disabled,
        }


@dataclass
class HeaderState:
    title: str
    code: str
    status: str
    version_number: int
    can_act: bool
    header_actions: List[HeaderAction] = field(default_factory=list)
    version_actions: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "code": self.code,
            "status": self.status,
            "version_number": self.version_number,
            "can_act": self.can_act,
            "header_actions": [a.to_dict() for a in self.header_actions],
            "version_actions": list(self.version_actions),
        }

    def signature(self) -> Tuple:
        """Everything a header redraw depends on; equal signatures mean no change."""
        return (
            self.title,
            self.code,
            self.status,
            self.version_number,
            self.can_act,
            tuple((a.to_status, a.disabled) for a in self.header_actions),
            tuple(a["id"] for a in self.version_actions),
        )


def action_priority(action: TransitionAction) -> int:
    if is_return_action(action.to_status):
        return RETURN_ACTION_PRIORITY
    return HEADER_ACTION_PRIORITY.get(action.to_status, DEFAULT_ACTION_PRIORITY)


def build_header_actions(actions: List[TransitionAction], enabled: bool) -> List[HeaderAction]:
    """Header buttons in priority order; return-to-edit always last."""
    indexed = sorted(enumerate(actions), key=lambda pair: (action_priority(pair[1]), pair[0]))
    return [
        HeaderAction(
            to_status=action.to_status,
            label=action.label,
            priority=action_priority(action),
            is_return=is_return_action(action.to_status),
            disabled=not enabled,
        )
        for _, action in indexed
    ]


def build_version_actions(version: DocumentVersion) -> List[Dict[str, str]]:
    """Actions on the version itself, as opposed to workflow transitions."""
    actions = []
    if version.status == WorkflowStatus.DISTRIBUTED.value and version.file_path:
        actions.append({"id": "download", "label": "Download"})
    if version.status == WorkflowStatus.DRAFT.value:
        if version.version_number == 0:
            actions.append({"id": "delete_draft", "label": "Delete draft"})
        else:
            actions.append({"id": "cancel_revision", "label": "Cancel revision"})
    return actions


# =============================================================================
# SESSION
# =============================================================================

class DocumentFlowSession:
    """
    One document version as seen by one acting office.

    Usage:
        session = DocumentFlowSession(client, version_id=42, acting_office_id=7)
        await session.load()
        header = session.header_state()

    When on_header_state_change is given it is called with the new HeaderState
    each time the header's signature changes (load, refresh, task refresh,
    applied server version, start/end of a transition).
    """

    def __init__(
        self,
        client: DocumentsApiClient,
        version_id: Any,
        acting_office_id: Any = None,
        cluster_map: OfficeClusterMap = None,
        on_header_state_change: Callable[[HeaderState], Any] = None
    ):
        self.client = client
        self.version_id = version_id
        self.acting_office_id = acting_office_id
        self.cluster_map = cluster_map
        self.on_header_state_change = on_header_state_change
        self._header_signature: Optional[Tuple] = None

        self.version: Optional[DocumentVersion] = None
        self.document: Optional[Document] = None
        self.offices: List[Office] = []
        self.route_steps: List[RouteStepConfig] = []
        self.shape: Optional[WorkflowShape] = None
        self.flow: Optional[ResolvedFlow] = None
        self.tasks: List[Task] = []

        self.side_tab = SideTab.COMMENTS
        self.messages: List[Dict[str, Any]] = []
        self.activity_logs: List[Dict[str, Any]] = []

        self._is_changing = False
        self._guard = LatestRequestGuard()

    @property
    def is_loaded(self) -> bool:
        return self.version is not None and self.flow is not None

    def _require_loaded(self):
        if not self.is_loaded:
            raise WorkflowError(f"Document version {self.version_id} is not loaded", status_code=409)

    @property
    def is_changing(self) -> bool:
        """True while a transition is being submitted; header actions are disabled."""
        return self._is_changing

    @is_changing.setter
    def is_changing(self, value: bool):
        self._is_changing = bool(value)
        self._publish_header()

    def _publish_header(self) -> bool:
        """Push the header to the listener if its signature changed. Returns True when pushed."""
        if self.on_header_state_change is None or not self.is_loaded:
            return False
        header = self.header_state()
        signature = header.signature()
        if signature == self._header_signature:
            return False
        self._header_signature = signature
        try:
            self.on_header_state_change(header)
        except Exception as e:
            logger.warning("Header state listener failed for version %s: %s", self.version_id, str(e))
        return True

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> "DocumentFlowSession":
        """
        Fetch the version and its reference data and decide the workflow shape.

        Failing to fetch the version itself raises DocumentsApiError. Missing
        offices, route steps or document details only degrade the view.
        """
        token = self._guard.issue("version", self.version_id)
        version = await self.client.get_version(self.version_id)

        document = None
        if version.document_id is not None:
            try:
                document = await self.client.get_document(version.document_id)
            except DocumentsApiError as e:
                logger.warning("Could not load document %s: %s", version.document_id, e.message)

        try:
            offices = await self.client.list_offices()
        except DocumentsApiError as e:
            logger.warning("Could not load office directory: %s", e.message)
            offices = []

        try:
            route_steps = await self.client.list_route_steps(self.version_id)
        except DocumentsApiError as e:
            logger.warning("Could not load route steps for version %s, assuming no custom route: %s",
                           self.version_id, e.message)
            route_steps = []

        if not self._guard.is_current(token, self.version_id):
            logger.debug("Discarding stale load of version %s", self.version_id)
            return self

        self.version = version
        self.document = document
        self.offices = offices
        self.route_steps = route_steps
        self.shape = resolve_workflow_shape(version.status, version.workflow_type, route_steps)
        self.flow = resolve_flow(self.shape, offices, self.owner_office_id)
        logger.info("Loaded version %s: status '%s', %s pipeline (%d steps)",
                    self.version_id, version.status, self.flow.shape.kind.value, len(self.flow.steps))

        await self.refresh_tasks()
        await self.refresh_side_tab()
        self._publish_header()
        return self

    async def refresh_tasks(self) -> bool:
        """Re-fetch tasks. Returns False when the response was stale."""
        token = self._guard.issue("tasks", self.version_id)
        tasks = await self.client.list_tasks(self.version_id)
        if not self._guard.is_current(token, self.version_id):
            logger.debug("Discarding stale task list for version %s", token.context)
            return False
        self.tasks = tasks
        self._publish_header()
        return True

    async def refresh_side_tab(self) -> bool:
        """Re-fetch whichever side panel is visible. Returns False when stale."""
        tab = self.side_tab
        token = self._guard.issue("side_tab", (self.version_id, tab))
        if tab == SideTab.LOGS:
            entries = await self.client.list_activity_logs(self.version_id)
        else:
            entries = await self.client.list_messages(self.version_id)

        if not self._guard.is_current(token, (self.version_id, self.side_tab)):
            logger.debug("Discarding stale %s panel for version %s", tab.value, self.version_id)
            return False
        if tab == SideTab.LOGS:
            self.activity_logs = entries
        else:
            self.messages = entries
        return True

    async def select_side_tab(self, tab: SideTab) -> bool:
        self.side_tab = SideTab(tab)
        return await self.refresh_side_tab()

    async def refresh(self) -> None:
        """Polling refresh: server status, then tasks, then the visible side panel."""
        self._require_loaded()
        token = self._guard.issue("version", self.version_id)
        server_version = await self.client.get_version(self.version_id)
        if self._guard.is_current(token, self.version_id):
            self.apply_version(server_version)
        await self.refresh_tasks()
        await self.refresh_side_tab()

    def apply_version(self, server_version: DocumentVersion) -> None:
        """Replace the local status with the server's record."""
        if self.version is None:
            self.version = server_version
        else:
            self.version = self.version.merged_with(server_version)
        self._publish_header()

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def owner_office_id(self) -> Any:
        if self.version is not None and self.version.owner_office_id is not None:
            return self.version.owner_office_id
        return self.document.owner_office_id if self.document else None

    @property
    def review_office_id(self) -> Any:
        if self.document and self.document.review_office_id is not None:
            return self.document.review_office_id
        return self.version.review_office_id if self.version is not None else None

    @property
    def owner_office_code(self) -> Optional[str]:
        if self.document and self.document.owner_office_code:
            return self.document.owner_office_code
        office = find_office(self.offices, self.owner_office_id)
        return office.code if office else None

    @property
    def current_task(self) -> Optional[Task]:
        return select_current_task(self.tasks)

    def position(self) -> WorkflowPosition:
        self._require_loaded()
        return evaluate_position(self.version.status, self.flow.steps, self.current_task, self.flow.is_custom)

    def actions(self) -> List[TransitionAction]:
        self._require_loaded()
        return available_actions(self.flow, self.version.status, self.position())

    def can_act(self) -> bool:
        return can_act(self.current_task, self.acting_office_id)

    def awaiting_office_id(self) -> Any:
        """
        Office holding the open task, else the office the pipeline expects.
        Display-only: an owner code with no cluster yields None, even in strict mode.
        """
        self._require_loaded()
        task = self.current_task
        if task is not None and task.is_open and task.assigned_office_id is not None:
            return task.assigned_office_id
        try:
            return expected_actor_office_id(
                self.version.status,
                self.offices,
                owner_office_id=self.owner_office_id,
                review_office_id=self.review_office_id,
                owner_office_code=self.owner_office_code,
                flow=self.flow,
                position=self.position(),
                cluster_map=self.cluster_map,
            )
        except UnknownOfficeCodeError as e:
            logger.warning("No awaiting office for version %s: %s", self.version_id, e.message)
            return None

    def header_state(self) -> HeaderState:
        self._require_loaded()
        allowed = self.can_act()
        return HeaderState(
            title=self.document.title if self.document else "",
            code=(self.document.code if self.document else None) or CODE_NOT_AVAILABLE,
            status=self.version.status,
            version_number=self.version.version_number,
            can_act=allowed,
            header_actions=build_header_actions(self.actions(), allowed and not self.is_changing),
            version_actions=build_version_actions(self.version),
        )

    def view(self) -> Dict[str, Any]:
        """Full view-model for the document page."""
        self._require_loaded()
        position = self.position()
        awaiting = self.awaiting_office_id()
        task = self.current_task
        return {
            "version": self.version.to_dict(),
            "header": self.header_state().to_dict(),
            "shape": self.flow.shape.kind.value,
            "steps": [step.to_dict() for step in self.flow.steps],
            "position": position.to_dict(),
            "phases": phase_states(position),
            "current_task": task.to_dict() if task else None,
            "awaiting_office": {
                "id": awaiting,
                "label": office_label(self.offices, awaiting) if awaiting is not None else None,
            },
            "side_tab": self.side_tab.value,
            "messages": [
                {**m, "when": format_when(m.get("created_at"))} for m in self.messages
            ],
            "activity_logs": [
                {**entry, "when": format_when(entry.get("created_at"))} for entry in self.activity_logs
            ],
        }
