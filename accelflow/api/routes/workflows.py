"""
Workflow API Routes.

Endpoints for creating, managing, and executing workflows, and for
reading back execution records.
"""

from functools import lru_cache
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from uuid import uuid4
import json
import logging

from accelflow.api.schemas import (
    DefinitionErrorResponse,
    ErrorResponse,
    ExecuteRequest,
    ExecuteResponse,
    ExecutionDetailResponse,
    ExecutionListResponse,
    ExecutionRecord,
    NodeExecutionRecord,
    NodeResultResponse,
    WorkflowCreateRequest,
    WorkflowInfoResponse,
    WorkflowListResponse,
    WorkflowUpdateRequest,
)
from accelflow.config import settings
from accelflow.engine.context import ExecutionResult
from accelflow.engine.definition import WorkflowDefinition, parse_definition
from accelflow.engine.executor import WorkflowExecutor
from accelflow.errors import DefinitionError, PersistenceError
from accelflow.services.capabilities import Services, build_services
from accelflow.storage.memory import (
    StoredExecution,
    StoredWorkflow,
    execution_storage,
    workflow_storage,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


# ============================================================
# Dependencies
# ============================================================

async def get_user_id(x_user_id: str = Header("anonymous")) -> str:
    """The calling user; authentication happens in front of this service."""
    return x_user_id


@lru_cache
def get_services() -> Services:
    """External capabilities for node handlers, built once from settings."""
    return build_services(settings)


def validate_definition(definition: Dict[str, Any]) -> WorkflowDefinition:
    """Apply boundary limits, then parse. Raises DefinitionError."""
    size = len(json.dumps(definition).encode("utf-8"))
    if size > settings.WORKFLOW_MAX_DEFINITION_BYTES:
        raise DefinitionError(
            "too_large",
            f"Workflow definition is {size} bytes (max {settings.WORKFLOW_MAX_DEFINITION_BYTES})",
        )
    return parse_definition(definition, max_nodes=settings.WORKFLOW_MAX_NODES)


async def _get_workflow(workflow_id: str, user_id: str, write: bool = False) -> StoredWorkflow:
    """Load a workflow the user may read (or modify, with ``write``)."""
    stored = await workflow_storage.get(workflow_id)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")

    if stored.user_id != user_id:
        if write or not stored.is_template:
            raise HTTPException(status_code=403, detail="Forbidden")
    return stored


def _workflow_info(stored: StoredWorkflow, detail: bool = False) -> WorkflowInfoResponse:
    try:
        definition: Optional[WorkflowDefinition] = parse_definition(stored.definition)
    except DefinitionError:
        definition = None

    nodes = stored.definition.get("nodes") or []
    return WorkflowInfoResponse(
        workflow_id=stored.workflow_id,
        name=stored.name,
        description=stored.description or None,
        is_template=stored.is_template,
        node_count=len(nodes),
        nodes=[n.get("id", "") for n in nodes if isinstance(n, dict)],
        entry_node=definition.entry_node if definition else None,
        created_at=stored.created_at.isoformat(),
        updated_at=stored.updated_at.isoformat(),
        definition=stored.definition if detail else None,
        mermaid_diagram=definition.to_mermaid() if detail and definition else None,
    )


# ============================================================
# Workflow CRUD Endpoints
# ============================================================

@router.post(
    "",
    response_model=WorkflowInfoResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": DefinitionErrorResponse, "description": "Invalid workflow definition"}},
)
async def create_workflow(
    request: WorkflowCreateRequest,
    user_id: str = Depends(get_user_id),
) -> WorkflowInfoResponse:
    """
    Create a new workflow.

    The definition is validated before it is stored: unique node ids,
    known node types, edges between existing nodes, no cycles and a
    single entry node.
    """
    validate_definition(request.definition)

    stored = await workflow_storage.save(
        workflow_id=str(uuid4()),
        user_id=user_id,
        name=request.name,
        definition=request.definition,
        description=request.description or "",
    )

    logger.info(f"Created workflow: {stored.workflow_id} ({request.name})")
    return _workflow_info(stored, detail=True)


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(user_id: str = Depends(get_user_id)) -> WorkflowListResponse:
    """List the caller's workflows and the built-in templates."""
    workflows = await workflow_storage.list_for_user(user_id)
    infos = [_workflow_info(w) for w in workflows]
    return WorkflowListResponse(workflows=infos, total=len(infos))


@router.get("/templates", response_model=WorkflowListResponse)
async def list_templates() -> WorkflowListResponse:
    """List the built-in workflow templates."""
    templates = await workflow_storage.list_templates()
    infos = [_workflow_info(t, detail=True) for t in templates]
    return WorkflowListResponse(workflows=infos, total=len(infos))


@router.get(
    "/executions/{execution_id}",
    response_model=ExecutionDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_execution(
    execution_id: str,
    user_id: str = Depends(get_user_id),
) -> ExecutionDetailResponse:
    """Get an execution together with its per-node records."""
    stored = await execution_storage.get(execution_id)
    if not stored or stored.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")

    node_records = await execution_storage.node_results(execution_id)
    return ExecutionDetailResponse(
        execution=_execution_record(stored),
        node_executions=[
            NodeExecutionRecord(**{k: v for k, v in r.to_dict().items() if k != "execution_id"})
            for r in node_records
        ],
    )


@router.get(
    "/{workflow_id}",
    response_model=WorkflowInfoResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_workflow(workflow_id: str, user_id: str = Depends(get_user_id)) -> WorkflowInfoResponse:
    """Get a workflow with its definition and a Mermaid diagram."""
    stored = await _get_workflow(workflow_id, user_id)
    return _workflow_info(stored, detail=True)


@router.put(
    "/{workflow_id}",
    response_model=WorkflowInfoResponse,
    responses={
        400: {"model": DefinitionErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdateRequest,
    user_id: str = Depends(get_user_id),
) -> WorkflowInfoResponse:
    """Update a workflow's name, description or definition."""
    await _get_workflow(workflow_id, user_id, write=True)

    if request.definition is not None:
        validate_definition(request.definition)

    stored = await workflow_storage.update(
        workflow_id,
        name=request.name,
        definition=request.definition,
        description=request.description,
    )
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")

    logger.info(f"Updated workflow: {workflow_id}")
    return _workflow_info(stored, detail=True)


@router.delete(
    "/{workflow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_workflow(workflow_id: str, user_id: str = Depends(get_user_id)):
    """Delete a workflow."""
    await _get_workflow(workflow_id, user_id, write=True)
    await workflow_storage.delete(workflow_id)
    logger.info(f"Deleted workflow: {workflow_id}")


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/{workflow_id}/execute",
    response_model=ExecuteResponse,
    responses={
        400: {"model": DefinitionErrorResponse, "description": "Invalid input or definition"},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def execute_workflow(
    workflow_id: str,
    request: ExecuteRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> ExecuteResponse:
    """
    Execute a workflow with the given input.

    A workflow whose node fails still returns 200, with
    ``status: "failed"`` and an ``errorMessage``. Only an invalid
    definition or input is rejected with 400.
    """
    stored = await _get_workflow(workflow_id, user_id)

    if len(request.input) > settings.WORKFLOW_MAX_INPUT_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Input too long (max {settings.WORKFLOW_MAX_INPUT_CHARS:,} chars)",
        )

    definition = validate_definition(stored.definition)

    executor = WorkflowExecutor(
        user_id,
        workflow_id,
        services=services,
        timeout=settings.EXECUTION_TIMEOUT,
    )
    result = await executor.execute(definition, request.input)

    await persist_run(user_id, workflow_id, request.input, definition, result)

    return _result_to_response(result)


@router.get(
    "/{workflow_id}/executions",
    response_model=ExecutionListResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_executions(workflow_id: str, user_id: str = Depends(get_user_id)) -> ExecutionListResponse:
    """List the caller's executions of a workflow, newest first."""
    await _get_workflow(workflow_id, user_id)
    executions = await execution_storage.list_by_workflow(workflow_id, user_id=user_id)
    records = [_execution_record(e) for e in executions]
    return ExecutionListResponse(executions=records, total=len(records))


async def persist_run(
    user_id: str,
    workflow_id: str,
    input: str,
    definition: WorkflowDefinition,
    result: ExecutionResult,
) -> bool:
    """
    Store the execution and one record per node result.

    Best-effort: failures are logged and never change the result
    returned to the caller.

    Returns:
        True if everything was stored
    """
    try:
        await execution_storage.persist_execution(user_id, workflow_id, input, result)
        for node_id, node_result in result.node_results.items():
            await execution_storage.persist_node_result(
                result.execution_id,
                definition.get_node(node_id),
                node_result,
            )
    except Exception as e:
        error = PersistenceError(f"Failed to persist execution {result.execution_id}: {e}")
        logger.exception(str(error))
        return False
    return True


def _result_to_response(result: ExecutionResult) -> ExecuteResponse:
    """Convert ExecutionResult to API response."""
    return ExecuteResponse(
        execution_id=result.execution_id,
        output=result.output,
        node_results={
            node_id: NodeResultResponse(
                output=r.output,
                tokens_used=r.tokens_used,
                cost=r.cost,
                status=r.status.value,
                error_message=r.error,
                branch=r.branch,
                latency_ms=r.latency_ms,
                metadata=r.metadata,
            )
            for node_id, r in result.node_results.items()
        },
        total_tokens=result.total_tokens,
        total_cost=result.total_cost,
        status=result.status.value,
        error_message=result.error_message,
    )


def _execution_record(stored: StoredExecution) -> ExecutionRecord:
    data = stored.to_dict()
    data.pop("user_id")
    return ExecutionRecord(**data)
