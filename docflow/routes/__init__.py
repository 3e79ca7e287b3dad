"""
DocFlow - Routes Package

API routers for the workflow service.
"""

from .workflows import router as workflows_router, set_dependencies as set_workflows_deps

__all__ = [
    'workflows_router', 'set_workflows_deps',
]
