"""
DocFlow - Workflow Services

Components:
- office_directory.py: Office code and cluster (VP tier) lookups
- flow_catalog.py: Static pipelines, statuses and transition tables
- custom_route.py: Step sequences for per-document custom routes
- workflow_engine.py: Position evaluation and the authorization gate
- action_resolver.py: Target status / task step -> backend action code
- transition_executor.py: Runs one action against the document API
- document_flow.py: Per-version session and header view-model
- documents_client.py: Remote document API client
- refresh_scheduler.py: Polling and the notification refresh signal

Usage:
    from docflow.services import DocumentFlowSession, TransitionExecutor, get_documents_client

    session = await DocumentFlowSession(get_documents_client(), version_id, acting_office_id).load()
    outcome = await TransitionExecutor().execute_by_status(session, "For VP Review")
"""

from .document_flow import DocumentFlowSession, HeaderState, SideTab
from .documents_client import DocumentsApiClient, get_documents_client
from .refresh_scheduler import NotificationSignal, RefreshScheduler, notifications_refresh
from .transition_executor import TransitionExecutor, TransitionOutcome

__all__ = [
    'DocumentFlowSession',
    'HeaderState',
    'SideTab',
    'DocumentsApiClient',
    'get_documents_client',
    'NotificationSignal',
    'RefreshScheduler',
    'notifications_refresh',
    'TransitionExecutor',
    'TransitionOutcome',
]
