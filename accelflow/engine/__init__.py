"""
Engine package - Workflow definitions, execution context and the executor.

The executor lives in ``accelflow.engine.executor`` and is not re-exported
here because it depends on the handler registry, which depends on this
package.
"""

from accelflow.engine.definition import (
    Edge,
    Node,
    NodeType,
    WorkflowDefinition,
    parse_definition,
)
from accelflow.engine.context import (
    ExecutionContext,
    ExecutionResult,
    ExecutionStatus,
    NodeResult,
    NodeStatus,
)

__all__ = [
    "Edge",
    "Node",
    "NodeType",
    "WorkflowDefinition",
    "parse_definition",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionStatus",
    "NodeResult",
    "NodeStatus",
]
