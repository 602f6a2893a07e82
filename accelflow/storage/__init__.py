"""
Storage package - In-memory storage for workflows and executions.
"""

from accelflow.storage.memory import (
    ExecutionStorage,
    WorkflowStorage,
    execution_storage,
    workflow_storage,
)

__all__ = [
    "ExecutionStorage",
    "WorkflowStorage",
    "execution_storage",
    "workflow_storage",
]
