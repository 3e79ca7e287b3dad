"""
DocFlow - Document API Client

Async client for the remote document system that owns versions, tasks,
offices and route configuration. The workflow engine never persists anything
itself; every read and every transition goes through this client.

Error handling:
- Transport failures and non-2xx responses raise DocumentsApiError
- A rejected transition raises ActionRejectedError carrying the server's own
  message, which is shown to the user verbatim

List endpoints may answer either with a bare JSON array or with a
{"data": [...]} envelope (Laravel pagination style); both are accepted.
"""

import logging
import httpx
from dataclasses import dataclass
from typing import Callable, Dict, Any, List, Optional

from . import workflow_config
from .errors import ActionRejectedError, DocumentsApiError
from .models import Document, DocumentVersion, Office, RouteStepConfig, Task, parse_records

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Server answer to a submitted transition."""
    version: DocumentVersion
    message: Optional[str] = None


def _unwrap_list(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
    return []


def _unwrap_record(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload if isinstance(payload, dict) else {}


def _error_message(resp: httpx.Response) -> str:
    """The server's "message" field, or a generic fallback."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Request failed with status {resp.status_code}"


def _parse(endpoint: str, parse: Callable[[], Any]) -> Any:
    """Run a record parser; malformed records surface as DocumentsApiError."""
    try:
        return parse()
    except (TypeError, ValueError) as e:
        logger.error("Document API returned a malformed record: %s - %s", endpoint, str(e))
        raise DocumentsApiError(
            "The document service returned an invalid record.",
            status_code=502,
            details={"endpoint": endpoint, "error": str(e)}
        )


# =============================================================================
# DOCUMENT API CLIENT
# =============================================================================

class DocumentsApiClient:
    """
    Remote document API client.

    Usage:
        client = DocumentsApiClient()
        version = await client.get_version(42)
        tasks = await client.list_tasks(42)
        result = await client.submit_action(42, "FORWARD_TO_VP_REVIEW")

    A custom httpx transport can be injected (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        base_url: str = None,
        token: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.base_url = (base_url or workflow_config.DOCFLOW_API_BASE_URL).rstrip("/")
        self._token = workflow_config.DOCFLOW_API_TOKEN if token is None else token
        self.timeout = timeout or workflow_config.DOCFLOW_API_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        json_body: Optional[Dict] = None
    ) -> Any:
        """
        Make a request to the document API.

        Returns the parsed JSON body; raises DocumentsApiError on any failure.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(
                    method.upper(), url, headers=self._headers(), params=params, json=json_body
                )
        except httpx.TimeoutException:
            logger.error("Document API timeout: %s %s", method.upper(), endpoint)
            raise DocumentsApiError("The document service did not respond in time.", status_code=504)
        except httpx.HTTPError as e:
            logger.error("Document API request error: %s %s - %s", method.upper(), endpoint, str(e))
            raise DocumentsApiError(f"Could not reach the document service: {e}", status_code=502)

        if resp.status_code < 200 or resp.status_code >= 300:
            message = _error_message(resp)
            logger.error("Document API error: %s %s - %d %s", method.upper(), endpoint, resp.status_code, message)
            raise DocumentsApiError(message, status_code=resp.status_code, details={"endpoint": endpoint})

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise DocumentsApiError(
                "The document service returned an invalid response.",
                status_code=502,
                details={"endpoint": endpoint}
            )

    # =========================================================================
    # READS
    # =========================================================================

    async def get_document(self, document_id: Any) -> Document:
        endpoint = f"/documents/{document_id}"
        payload = await self._api_request("GET", endpoint)
        return _parse(endpoint, lambda: Document.from_dict(_unwrap_record(payload)))

    async def get_version(self, version_id: Any) -> DocumentVersion:
        endpoint = f"/document-versions/{version_id}"
        payload = await self._api_request("GET", endpoint)
        return _parse(endpoint, lambda: DocumentVersion.from_dict(_unwrap_record(payload)))

    async def list_tasks(self, version_id: Any) -> List[Task]:
        endpoint = f"/document-versions/{version_id}/tasks"
        payload = await self._api_request("GET", endpoint)
        return _parse(endpoint, lambda: parse_records(_unwrap_list(payload), Task))

    async def list_route_steps(self, version_id: Any) -> List[RouteStepConfig]:
        endpoint = f"/document-versions/{version_id}/route-steps"
        payload = await self._api_request("GET", endpoint)
        return _parse(endpoint, lambda: parse_records(_unwrap_list(payload), RouteStepConfig))

    async def list_offices(self) -> List[Office]:
        payload = await self._api_request("GET", "/offices")
        return _parse("/offices", lambda: parse_records(_unwrap_list(payload), Office))

    async def list_messages(self, version_id: Any) -> List[Dict[str, Any]]:
        payload = await self._api_request("GET", f"/document-versions/{version_id}/messages")
        return [m for m in _unwrap_list(payload) if isinstance(m, dict)]

    async def list_activity_logs(self, version_id: Any, per_page: int = None) -> List[Dict[str, Any]]:
        """Activity log entries for one version, newest page only."""
        params = {
            "scope": "document",
            "document_version_id": version_id,
            "per_page": per_page or workflow_config.ACTIVITY_LOG_PAGE_SIZE,
        }
        payload = await self._api_request("GET", "/activity-logs", params=params)
        return [entry for entry in _unwrap_list(payload) if isinstance(entry, dict)]

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def submit_action(
        self,
        version_id: Any,
        action: str,
        note: Optional[str] = None,
        review_office_id: Any = None
    ) -> ActionResult:
        """
        Submit a workflow action.

        Only the fields that are set are sent. A non-2xx answer raises
        ActionRejectedError with the server's message.
        """
        body: Dict[str, Any] = {"action": action}
        if note is not None:
            body["note"] = note
        if review_office_id is not None:
            body["review_office_id"] = review_office_id

        try:
            payload = await self._api_request("POST", f"/document-versions/{version_id}/actions", json_body=body)
        except DocumentsApiError as e:
            raise ActionRejectedError(e.message, status_code=e.status_code, details={"action": action, **e.details})

        payload = payload if isinstance(payload, dict) else {}
        record = payload.get("version")
        if not isinstance(record, dict):
            raise ActionRejectedError(
                "The document service did not return the updated version.",
                status_code=502,
                details={"action": action}
            )
        version = _parse(f"/document-versions/{version_id}/actions", lambda: DocumentVersion.from_dict(record))
        logger.info("Action %s accepted for version %s", action, version_id)
        return ActionResult(
            version=version,
            message=payload.get("action_message") or payload.get("message"),
        )


# Singleton instance
_documents_client: Optional[DocumentsApiClient] = None


def get_documents_client() -> DocumentsApiClient:
    """Get or create the document API client singleton."""
    global _documents_client
    if _documents_client is None:
        _documents_client = DocumentsApiClient()
    return _documents_client
