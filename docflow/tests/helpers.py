"""
Builders for test records and a mocked document API client.
"""
from unittest.mock import AsyncMock, MagicMock

from docflow.services.documents_client import ActionResult, DocumentsApiClient
from docflow.services.models import Document, DocumentVersion, Office, RouteStepConfig, Task


QA_ID = 1
PO_ID = 2
VR_ID = 3
VA_ID = 4
VAD_ID = 5
NURSING_ID = 10
IT_ID = 11
HR_ID = 12

OFFICES = [
    Office(QA_ID, "Quality Assurance", "QA"),
    Office(PO_ID, "Office of the President", "PO"),
    Office(VR_ID, "VP for Research", "VR"),
    Office(VA_ID, "VP for Academic Affairs", "VA"),
    Office(VAD_ID, "VP for Administration", "VAd"),
    Office(NURSING_ID, "College of Nursing", "CN"),
    Office(IT_ID, "Information Technology", "IT"),
    Office(HR_ID, "Human Resources", "HR"),
]


def make_task(task_id=1, step=None, status="open", office_id=None, version_id=100, phase=None):
    return Task(
        id=task_id,
        version_id=version_id,
        phase=phase,
        step=step,
        status=status,
        assigned_office_id=office_id,
    )


def make_version(status="Draft", version_id=100, **kwargs):
    kwargs.setdefault("version_number", 0)
    kwargs.setdefault("document_id", 50)
    return DocumentVersion(id=version_id, status=status, **kwargs)


def make_document(owner_office_id=NURSING_ID, owner_office_code="CN", **kwargs):
    kwargs.setdefault("title", "Quality Manual")
    kwargs.setdefault("code", "QM-001")
    return Document(id=50, owner_office_id=owner_office_id, owner_office_code=owner_office_code, **kwargs)


def make_client(
    version=None,
    document=None,
    offices=None,
    route_steps=None,
    tasks=None,
    messages=None,
    logs=None
):
    """MagicMock shaped like DocumentsApiClient with AsyncMock endpoints."""
    client = MagicMock(spec=DocumentsApiClient)
    client.get_version = AsyncMock(return_value=version or make_version())
    client.get_document = AsyncMock(return_value=document or make_document())
    client.list_offices = AsyncMock(return_value=list(OFFICES) if offices is None else offices)
    client.list_route_steps = AsyncMock(return_value=route_steps or [])
    client.list_tasks = AsyncMock(return_value=tasks or [])
    client.list_messages = AsyncMock(return_value=messages or [])
    client.list_activity_logs = AsyncMock(return_value=logs or [])
    client.submit_action = AsyncMock()
    return client


def accepted(status, version_id=100, message=None, **kwargs):
    """ActionResult as returned by a successful submit."""
    return ActionResult(version=make_version(status, version_id=version_id, **kwargs), message=message)


def route(*office_ids):
    return [RouteStepConfig(office_id, order) for order, office_id in enumerate(office_ids, start=1)]
