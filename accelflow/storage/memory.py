"""
In-Memory Storage for AccelFlow.

Stores workflow definitions and execution records behind an asyncio lock.
Can be replaced with a database implementation exposing the same methods.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
from dataclasses import dataclass, field

from accelflow.engine.context import ExecutionResult, NodeResult
from accelflow.engine.definition import Node


# Node outputs are truncated in stored records
MAX_STORED_OUTPUT_CHARS = 5000


@dataclass
class StoredWorkflow:
    """A stored workflow definition."""
    workflow_id: str
    user_id: str
    name: str
    definition: Dict[str, Any]
    description: str = ""
    is_template: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "definition": self.definition,
            "is_template": self.is_template,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class StoredExecution:
    """A stored workflow execution."""
    execution_id: str
    workflow_id: str
    user_id: str
    status: str
    input: str
    output: Any = None
    total_tokens: int = 0
    total_cost: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "user_id": self.user_id,
            "status": self.status,
            "input": self.input,
            "output": self.output,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


@dataclass
class StoredNodeExecution:
    """A stored per-node record of an execution."""
    execution_id: str
    node_id: str
    node_type: str
    node_label: str
    status: str
    output: Any = None
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: float = 0.0
    error_message: Optional[str] = None
    recorded_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "node_label": self.node_label,
            "status": self.status,
            "output": self.output,
            "tokens_used": self.tokens_used,
            "cost": self.cost,
            "latency_ms": self.latency_ms,
            "error_message": self.error_message,
            "recorded_at": self.recorded_at.isoformat(),
        }


def _truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_STORED_OUTPUT_CHARS:
        return value[:MAX_STORED_OUTPUT_CHARS]
    return value


class WorkflowStorage:
    """
    In-memory storage for workflow definitions.

    Templates are visible to every user; other workflows only to
    their owner.
    """

    def __init__(self):
        self._workflows: Dict[str, StoredWorkflow] = {}
        self._lock = asyncio.Lock()

    async def save(
        self,
        workflow_id: str,
        user_id: str,
        name: str,
        definition: Dict[str, Any],
        description: str = "",
        is_template: bool = False,
    ) -> StoredWorkflow:
        """
        Save a workflow definition.

        Args:
            workflow_id: Unique workflow identifier
            user_id: Owner
            name: Workflow name
            definition: The raw definition document
            description: Optional description
            is_template: Whether every user may read and run it

        Returns:
            The stored workflow
        """
        async with self._lock:
            stored = StoredWorkflow(
                workflow_id=workflow_id,
                user_id=user_id,
                name=name,
                definition=definition,
                description=description,
                is_template=is_template,
            )
            self._workflows[workflow_id] = stored
            return stored

    async def get(self, workflow_id: str) -> Optional[StoredWorkflow]:
        """Get a workflow by ID."""
        async with self._lock:
            return self._workflows.get(workflow_id)

    async def update(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        definition: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[StoredWorkflow]:
        """Update a workflow; omitted fields are left unchanged."""
        async with self._lock:
            stored = self._workflows.get(workflow_id)
            if stored is None:
                return None
            if name is not None:
                stored.name = name
            if definition is not None:
                stored.definition = definition
            if description is not None:
                stored.description = description
            stored.updated_at = datetime.now()
            return stored

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        async with self._lock:
            if workflow_id in self._workflows:
                del self._workflows[workflow_id]
                return True
            return False

    async def list_for_user(self, user_id: str) -> List[StoredWorkflow]:
        """List the user's workflows followed by all templates."""
        async with self._lock:
            own = [w for w in self._workflows.values() if w.user_id == user_id and not w.is_template]
            templates = [w for w in self._workflows.values() if w.is_template]
            return own + templates

    async def list_templates(self) -> List[StoredWorkflow]:
        async with self._lock:
            return [w for w in self._workflows.values() if w.is_template]

    def __len__(self) -> int:
        return len(self._workflows)


class ExecutionStorage:
    """
    In-memory storage for execution records.

    One record per execution plus one per node result, mirroring the
    ``workflow_executions`` / ``workflow_node_executions`` tables.
    """

    def __init__(self):
        self._executions: Dict[str, StoredExecution] = {}
        self._node_executions: Dict[str, List[StoredNodeExecution]] = {}
        self._lock = asyncio.Lock()

    async def persist_execution(
        self,
        user_id: str,
        workflow_id: str,
        input: str,
        result: ExecutionResult,
    ) -> StoredExecution:
        """Store the outcome of an execution."""
        async with self._lock:
            stored = StoredExecution(
                execution_id=result.execution_id,
                workflow_id=workflow_id,
                user_id=user_id,
                status=result.status.value,
                input=input,
                output=_truncate(result.output),
                total_tokens=result.total_tokens,
                total_cost=result.total_cost,
                started_at=result.started_at or datetime.now(),
                completed_at=result.completed_at,
                error_message=result.error_message,
            )
            self._executions[result.execution_id] = stored
            self._node_executions.setdefault(result.execution_id, [])
            return stored

    async def persist_node_result(
        self,
        execution_id: str,
        node: Node,
        result: NodeResult,
    ) -> StoredNodeExecution:
        """Store one node's result for an execution."""
        async with self._lock:
            stored = StoredNodeExecution(
                execution_id=execution_id,
                node_id=node.id,
                node_type=node.type.value,
                node_label=node.display_name,
                status=result.status.value,
                output=_truncate(result.output),
                tokens_used=result.tokens_used,
                cost=result.cost,
                latency_ms=result.latency_ms,
                error_message=result.error,
            )
            self._node_executions.setdefault(execution_id, []).append(stored)
            return stored

    async def get(self, execution_id: str) -> Optional[StoredExecution]:
        """Get an execution by ID."""
        async with self._lock:
            return self._executions.get(execution_id)

    async def node_results(self, execution_id: str) -> List[StoredNodeExecution]:
        """Node records of an execution, in execution order."""
        async with self._lock:
            return list(self._node_executions.get(execution_id, []))

    async def list_by_workflow(self, workflow_id: str, user_id: Optional[str] = None) -> List[StoredExecution]:
        """List executions of a workflow, newest first."""
        async with self._lock:
            runs = [
                e for e in self._executions.values()
                if e.workflow_id == workflow_id and (user_id is None or e.user_id == user_id)
            ]
        return sorted(runs, key=lambda e: e.started_at, reverse=True)

    def __len__(self) -> int:
        return len(self._executions)


# Global storage instances
workflow_storage = WorkflowStorage()
execution_storage = ExecutionStorage()
