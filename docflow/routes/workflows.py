"""
DocFlow - Workflow Router

Document version workflow view and transitions.
"""

from fastapi import APIRouter, HTTPException, Query
from typing import Optional
from pydantic import BaseModel
import logging

from docflow.services import workflow_config
from docflow.services.document_flow import DocumentFlowSession, SideTab
from docflow.services.errors import DocumentsApiError, WorkflowError
from docflow.services.transition_executor import TransitionExecutor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["workflow"])

# Document API client and cluster map - set by main app
documents_client = None
cluster_map = None


def set_dependencies(client, clusters=None):
    global documents_client, cluster_map
    documents_client = client
    cluster_map = clusters


def _http_error(e: WorkflowError) -> HTTPException:
    """Map an engine error to an HTTP error, keeping the message verbatim."""
    status_code = e.status_code
    if status_code is None:
        status_code = 502 if isinstance(e, DocumentsApiError) else 500
    return HTTPException(status_code=status_code, detail=e.message)


async def _load_session(version_id: int, acting_office_id: Optional[int], side_tab: SideTab = SideTab.COMMENTS):
    if documents_client is None:
        raise HTTPException(status_code=503, detail="Document service is not configured")
    session = DocumentFlowSession(documents_client, version_id, acting_office_id, cluster_map=cluster_map)
    session.side_tab = side_tab
    try:
        await session.load()
    except WorkflowError as e:
        raise _http_error(e)
    return session


# ==================== MODELS ====================

class TransitionRequest(BaseModel):
    to_status: str
    acting_office_id: Optional[int] = None
    note: Optional[str] = None
    confirmed: bool = False


# ==================== VIEW ENDPOINTS ====================

@router.get("/versions/{version_id}/view")
async def get_workflow_view(
    version_id: int,
    acting_office_id: Optional[int] = Query(None),
    side_tab: SideTab = Query(SideTab.COMMENTS)
):
    """
    Workflow view of a document version: header state, steps, current
    position, phase rail and the office expected to act.
    """
    session = await _load_session(version_id, acting_office_id, side_tab)
    try:
        return session.view()
    except WorkflowError as e:
        raise _http_error(e)


@router.get("/config")
async def get_workflow_config():
    """Active workflow configuration (no secrets)."""
    return workflow_config.get_workflow_config_status()


# ==================== TRANSITIONS ====================

@router.post("/versions/{version_id}/actions")
async def execute_workflow_action(version_id: int, request: TransitionRequest):
    """
    Execute an offered action on a document version.

    Without confirmed=true nothing is sent and the confirmation prompt is
    returned. Local refusals answer 403 / 409 / 422; a rejection by the
    document service keeps its status code and message.
    """
    session = await _load_session(version_id, request.acting_office_id)

    prompts = []

    def confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return request.confirmed

    executor = TransitionExecutor(documents_client, confirm=confirm)
    try:
        outcome = await executor.execute_by_status(session, request.to_status, note=request.note)
    except WorkflowError as e:
        raise _http_error(e)

    result = outcome.to_dict()
    result["confirm_prompt"] = prompts[0] if prompts else None
    if outcome.completed:
        result["header"] = session.header_state().to_dict()
    return result
