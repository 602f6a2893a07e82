"""
Execution Context for the Workflow Engine.

The context is the single-writer record of one run: per-node results in
execution order, running token/cost totals and the overall status. It is
created fresh for every ``execute()`` call and never shared.
"""

from typing import Any, Dict, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class NodeStatus(str, Enum):
    """Outcome of a single node."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class NodeResult:
    """
    Result of running (or skipping) one node.

    Attributes:
        output: The node's output value (usually text)
        tokens_used: LLM tokens consumed by the node
        cost: Cost in USD reported by the provider
        status: Succeeded, failed or skipped
        error: Error message for failed nodes
        branch: Branch label chosen by a condition node
        latency_ms: Wall time spent in the handler
        metadata: Handler-specific details (model, HTTP status, ...)
    """
    output: Any = ""
    tokens_used: int = 0
    cost: float = 0.0
    status: NodeStatus = NodeStatus.SUCCEEDED
    error: Optional[str] = None
    branch: Optional[str] = None
    latency_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        output: Any,
        tokens_used: int = 0,
        cost: float = 0.0,
        branch: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "NodeResult":
        return cls(
            output=output,
            tokens_used=tokens_used,
            cost=cost,
            branch=branch,
            metadata=metadata or {},
        )

    @classmethod
    def failed(cls, error: str, latency_ms: float = 0.0) -> "NodeResult":
        return cls(output="", status=NodeStatus.FAILED, error=error, latency_ms=latency_ms)

    @classmethod
    def skipped(cls) -> "NodeResult":
        return cls(output="", status=NodeStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output,
            "tokens_used": self.tokens_used,
            "cost": self.cost,
            "status": self.status.value,
            "error": self.error,
            "branch": self.branch,
            "latency_ms": self.latency_ms,
            "metadata": self.metadata,
        }


class ExecutionContext:
    """
    Mutable bookkeeping for one workflow run.

    Only the executor loop writes to it, one node at a time, so the
    totals need no locking.
    """

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        self.node_results: Dict[str, NodeResult] = {}
        self.total_tokens = 0
        self.total_cost = 0.0
        self.status = ExecutionStatus.RUNNING
        self.output: Any = ""
        self.error_message: Optional[str] = None
        self.taken_branches: Dict[str, str] = {}
        self.skipped: Set[str] = set()
        self.last_succeeded: Optional[str] = None
        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None

    def record(self, node_id: str, result: NodeResult) -> None:
        """Record a node's result; usage only counts for succeeded nodes."""
        self.node_results[node_id] = result
        if result.status == NodeStatus.SUCCEEDED:
            self.total_tokens += result.tokens_used
            self.total_cost += result.cost
            self.last_succeeded = node_id
        elif result.status == NodeStatus.SKIPPED:
            self.skipped.add(node_id)

    def succeeded(self, node_id: str) -> bool:
        result = self.node_results.get(node_id)
        return result is not None and result.status == NodeStatus.SUCCEEDED

    def complete(self, output: Any) -> None:
        self.status = ExecutionStatus.COMPLETED
        self.output = output
        self.completed_at = datetime.now()

    def fail(self, error_message: str) -> None:
        self.status = ExecutionStatus.FAILED
        self.error_message = error_message
        self.completed_at = datetime.now()


@dataclass
class ExecutionResult:
    """Result of a workflow execution, returned to callers and persisted."""
    execution_id: str
    output: Any
    node_results: Dict[str, NodeResult]
    total_tokens: int
    total_cost: float
    status: ExecutionStatus
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_context(cls, context: ExecutionContext) -> "ExecutionResult":
        return cls(
            execution_id=context.execution_id,
            output=context.output,
            node_results=dict(context.node_results),
            total_tokens=context.total_tokens,
            total_cost=context.total_cost,
            status=context.status,
            error_message=context.error_message,
            started_at=context.started_at,
            completed_at=context.completed_at,
        )

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds() * 1000
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "output": self.output,
            "node_results": {
                node_id: result.to_dict()
                for node_id, result in self.node_results.items()
            },
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "status": self.status.value,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
