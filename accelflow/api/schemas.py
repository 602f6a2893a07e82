"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from enum import Enum


# ============================================================
# Enums
# ============================================================

class ExecutionStatus(str, Enum):
    """Terminal status of a workflow execution."""
    COMPLETED = "completed"
    FAILED = "failed"


class NodeStatus(str, Enum):
    """Outcome of a single node."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# ============================================================
# Workflow Schemas
# ============================================================

EXAMPLE_DEFINITION = {
    "nodes": [
        {"id": "input-1", "type": "input"},
        {"id": "llm-1", "type": "prompt", "config": {"prompt": "Summarize: {{input}}"}},
        {"id": "output-1", "type": "output"},
    ],
    "edges": [
        {"source": "input-1", "target": "llm-1"},
        {"source": "llm-1", "target": "output-1"},
    ],
}


class WorkflowCreateRequest(BaseModel):
    """Request to create a new workflow."""
    name: str = Field(..., min_length=1, max_length=200, description="Name of the workflow")
    description: Optional[str] = Field(None, description="What this workflow does")
    definition: Dict[str, Any] = Field(..., description="Graph definition: nodes and edges")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Summarizer",
            "description": "Summarize any text",
            "definition": EXAMPLE_DEFINITION,
        }
    })


class WorkflowUpdateRequest(BaseModel):
    """Request to update a workflow; omitted fields are unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    definition: Optional[Dict[str, Any]] = None


class WorkflowInfoResponse(BaseModel):
    """Response with workflow information."""
    workflow_id: str
    name: str
    description: Optional[str]
    is_template: bool
    node_count: int
    nodes: List[str]
    entry_node: Optional[str]
    created_at: str
    updated_at: str
    definition: Optional[Dict[str, Any]] = None
    mermaid_diagram: Optional[str] = Field(None, description="Mermaid diagram of the workflow")


class WorkflowListResponse(BaseModel):
    """Response listing workflows."""
    workflows: List[WorkflowInfoResponse]
    total: int


# ============================================================
# Execution Schemas
# ============================================================

class ExecuteRequest(BaseModel):
    """Request to execute a workflow."""
    input: str = Field("", description="Run input handed to the entry node")

    model_config = ConfigDict(json_schema_extra={
        "example": {"input": "What is retrieval-augmented generation?"}
    })


class CamelModel(BaseModel):
    """Serializes field names as camelCase, as the web client expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodeResultResponse(CamelModel):
    """Result of one node in an execution."""
    output: Any
    tokens_used: int
    cost: float
    status: NodeStatus
    error_message: Optional[str] = None
    branch: Optional[str] = None
    latency_ms: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(CamelModel):
    """Response after executing a workflow."""
    execution_id: str
    output: Any
    node_results: Dict[str, NodeResultResponse]
    total_tokens: int
    total_cost: float
    status: ExecutionStatus
    error_message: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "executionId": "2f1c0e9a-0b7d-4d8e-9d55-0c1e6a8f4b21",
            "output": "hi",
            "nodeResults": {
                "input-1": {"output": "hello", "tokensUsed": 0, "cost": 0.0, "status": "succeeded"},
                "llm-1": {"output": "hi", "tokensUsed": 12, "cost": 0.001, "status": "succeeded"},
                "output-1": {"output": "hi", "tokensUsed": 0, "cost": 0.0, "status": "succeeded"},
            },
            "totalTokens": 12,
            "totalCost": 0.001,
            "status": "completed",
            "errorMessage": None,
        }
    })


class ExecutionRecord(BaseModel):
    """A stored execution."""
    execution_id: str
    workflow_id: str
    status: str
    input: str
    output: Any
    total_tokens: int
    total_cost: float
    started_at: str
    completed_at: Optional[str]
    error_message: Optional[str]


class NodeExecutionRecord(BaseModel):
    """A stored per-node result."""
    node_id: str
    node_type: str
    node_label: str
    status: str
    output: Any
    tokens_used: int
    cost: float
    latency_ms: float
    error_message: Optional[str]
    recorded_at: str


class ExecutionDetailResponse(BaseModel):
    """An execution with its node records."""
    execution: ExecutionRecord
    node_executions: List[NodeExecutionRecord]


class ExecutionListResponse(BaseModel):
    """Response listing executions of a workflow."""
    executions: List[ExecutionRecord]
    total: int


# ============================================================
# Node Type Schemas
# ============================================================

class NodeTypeInfo(BaseModel):
    """Information about a supported node type."""
    type: str
    description: str
    config_keys: List[str]


class NodeTypeListResponse(BaseModel):
    """Response listing all node types."""
    node_types: List[NodeTypeInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None


class DefinitionErrorResponse(BaseModel):
    """Response for an invalid workflow definition."""
    error: str = "Invalid workflow definition"
    code: str
    detail: str
    node_ids: List[str] = Field(default_factory=list)
