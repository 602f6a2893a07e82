"""
Node Type API Routes.

Endpoints for discovering the node types a workflow may use.
"""

from fastapi import APIRouter, HTTPException
import logging

from accelflow.api.schemas import ErrorResponse, NodeTypeInfo, NodeTypeListResponse
from accelflow.engine.definition import resolve_node_type
from accelflow.handlers import handler_registry


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/node-types", tags=["Node Types"])


@router.get("", response_model=NodeTypeListResponse)
async def list_node_types() -> NodeTypeListResponse:
    """
    List all supported node types.

    Each type has exactly one handler; ``config_keys`` lists the settings
    that handler reads.
    """
    infos = [NodeTypeInfo(**h) for h in handler_registry.list_handlers()]
    return NodeTypeListResponse(node_types=infos, total=len(infos))


@router.get(
    "/{node_type}",
    response_model=NodeTypeInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_node_type(node_type: str) -> NodeTypeInfo:
    """Get a single node type. Builder aliases such as ``llm_call`` resolve too."""
    resolved = resolve_node_type(node_type)
    handler = handler_registry.get(resolved) if resolved else None
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Node type '{node_type}' not found")
    return NodeTypeInfo(**handler.to_dict())
