"""
API package - FastAPI routes and schemas.
"""

from accelflow.api.routes import node_types, workflows

__all__ = ["node_types", "workflows"]
