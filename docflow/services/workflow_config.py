"""
DocFlow - Workflow Configuration

All runtime configuration for the workflow engine and its remote document API
client. Values are read from environment variables at import time; the server
entry point loads a .env file before importing this module.

Remote API:
- DOCFLOW_API_BASE_URL: Base URL of the document API (default http://127.0.0.1:8000/api)
- DOCFLOW_API_TOKEN: Bearer token sent with every request (optional)
- DOCFLOW_API_TIMEOUT: Request timeout in seconds

Office clusters:
- OFFICE_CLUSTER_MAP_FILE: JSON file with {"<cluster>": ["<office code>", ...]}
- OFFICE_CLUSTER_STRICT: When true, unclassified office codes raise instead of
  falling back to the default cluster

Polling:
- WORKFLOW_IDLE_POLL_SECONDS: Interval while nothing happened recently
- WORKFLOW_BURST_POLL_SECONDS: Interval right after a transition
- WORKFLOW_BURST_WINDOW_SECONDS: How long the burst interval lasts
"""

import os
from typing import Dict, Any


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


# =============================================================================
# REMOTE DOCUMENT API
# =============================================================================

DOCFLOW_API_BASE_URL = os.environ.get("DOCFLOW_API_BASE_URL", "http://127.0.0.1:8000/api").rstrip("/")
DOCFLOW_API_TOKEN = os.environ.get("DOCFLOW_API_TOKEN", "")
DOCFLOW_API_TIMEOUT = float(os.environ.get("DOCFLOW_API_TIMEOUT", "30"))

# Activity log page size requested for the document side panel
ACTIVITY_LOG_PAGE_SIZE = int(os.environ.get("ACTIVITY_LOG_PAGE_SIZE", "50"))


# =============================================================================
# OFFICE CLUSTERS
# =============================================================================

OFFICE_CLUSTER_MAP_FILE = os.environ.get("OFFICE_CLUSTER_MAP_FILE", "")
OFFICE_CLUSTER_STRICT = _env_flag("OFFICE_CLUSTER_STRICT")

# Code of the office that owns the Originator-led pipeline
QA_OFFICE_CODE = os.environ.get("QA_OFFICE_CODE", "QA")

# Code of the President's office
PRESIDENT_OFFICE_CODE = os.environ.get("PRESIDENT_OFFICE_CODE", "PO")


# =============================================================================
# POLLING
# =============================================================================

WORKFLOW_IDLE_POLL_SECONDS = float(os.environ.get("WORKFLOW_IDLE_POLL_SECONDS", "30"))
WORKFLOW_BURST_POLL_SECONDS = float(os.environ.get("WORKFLOW_BURST_POLL_SECONDS", "1"))
WORKFLOW_BURST_WINDOW_SECONDS = float(os.environ.get("WORKFLOW_BURST_WINDOW_SECONDS", "25"))


def get_workflow_config_status() -> Dict[str, Any]:
    """Summarize the active configuration (no secrets)."""
    return {
        "api_base_url": DOCFLOW_API_BASE_URL,
        "api_token_configured": bool(DOCFLOW_API_TOKEN),
        "api_timeout": DOCFLOW_API_TIMEOUT,
        "office_cluster_map_file": OFFICE_CLUSTER_MAP_FILE or None,
        "office_cluster_strict": OFFICE_CLUSTER_STRICT,
        "idle_poll_seconds": WORKFLOW_IDLE_POLL_SECONDS,
        "burst_poll_seconds": WORKFLOW_BURST_POLL_SECONDS,
        "burst_window_seconds": WORKFLOW_BURST_WINDOW_SECONDS,
    }
