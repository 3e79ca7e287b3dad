from fastapi import FastAPI
from dotenv import load_dotenv
load_dotenv()  # Load .env file before any os.environ calls
from starlette.middleware.cors import CORSMiddleware
import os
import logging

from docflow import __version__
from docflow.routes import workflows_router, set_workflows_deps
from docflow.services import workflow_config
from docflow.services.documents_client import get_documents_client
from docflow.services.errors import DocumentsApiError, UnknownOfficeCodeError
from docflow.services.office_directory import get_cluster_map
from docflow.services.refresh_scheduler import notifications_refresh

app = FastAPI(title="DocFlow", version=__version__)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

set_workflows_deps(get_documents_client(), get_cluster_map())

# ==================== APP SETUP ====================

app.include_router(workflows_router, prefix="/api")


@app.get("/api/health")
async def health_check():
    """Health check endpoint for Docker/Kubernetes probes."""
    return {"status": "healthy", "service": "docflow", "version": __version__}

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)


_unsubscribe_notifications = None


def _log_transition(version_id=None, action=None, **_):
    logger.info("[Notifications] Refresh requested after %s on version %s", action, version_id)


@app.on_event("startup")
async def startup():
    global _unsubscribe_notifications
    _unsubscribe_notifications = notifications_refresh.subscribe(_log_transition)

    # Check the office cluster table against the live office directory
    cluster_map = get_cluster_map()
    try:
        offices = await get_documents_client().list_offices()
    except DocumentsApiError as e:
        logger.warning("Office directory unavailable at startup, cluster map not validated: %s", e.message)
    else:
        try:
            missing = cluster_map.validate(offices)
        except UnknownOfficeCodeError as e:
            logger.error("Office cluster map rejected in strict mode: %s", e.message)
            raise
        logger.info("Office cluster map checked against %d offices (%d unclassified)", len(offices), len(missing))

    logger.info("DocFlow started. Document API: %s, strict clusters: %s",
                workflow_config.DOCFLOW_API_BASE_URL, workflow_config.OFFICE_CLUSTER_STRICT)


@app.on_event("shutdown")
async def shutdown():
    global _unsubscribe_notifications
    if _unsubscribe_notifications:
        _unsubscribe_notifications()
        _unsubscribe_notifications = None
    logger.info("DocFlow stopped")
