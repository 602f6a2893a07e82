"""
Workflows package - Built-in workflow templates.
"""

from accelflow.workflows.templates import WORKFLOW_TEMPLATES, register_workflow_templates

__all__ = [
    "WORKFLOW_TEMPLATES",
    "register_workflow_templates",
]
