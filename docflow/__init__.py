"""
DocFlow - Document Workflow Engine

Workflow step derivation and transition authorization for documents routed
through review, approval, registration and distribution offices.
"""

__version__ = "0.1.0"
