"""
Handler Registry for the Workflow Engine.

Every NodeType maps to exactly one async handler function. Handlers are
registered with the ``register_handler`` decorator when
``accelflow.handlers.builtin`` is imported, so the table is complete
before the first workflow runs.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from dataclasses import dataclass, field
import functools
import logging

from accelflow.engine.context import NodeResult
from accelflow.engine.definition import NodeType
from accelflow.engine.templating import stringify
from accelflow.services.capabilities import Services


logger = logging.getLogger(__name__)


@dataclass
class NodeInputs:
    """
    What a handler receives besides its config.

    Attributes:
        run_input: The caller-supplied input of the whole run
        upstream: Outputs of upstream nodes over taken edges, in edge order
        user_id: Owner of the run
        workflow_id: Workflow being run
    """
    run_input: str = ""
    upstream: Dict[str, Any] = field(default_factory=dict)
    user_id: str = ""
    workflow_id: str = ""

    @property
    def value(self) -> Any:
        """
        The node's primary input.

        The run input for the entry node, the upstream output when there
        is one, otherwise the upstream outputs joined as text.
        """
        if not self.upstream:
            return self.run_input
        if len(self.upstream) == 1:
            return next(iter(self.upstream.values()))
        return "\n\n".join(stringify(v) for v in self.upstream.values() if v not in (None, ""))

    @property
    def text(self) -> str:
        return stringify(self.value)

    def template_vars(self) -> Dict[str, Any]:
        return {
            "input_value": self.value,
            "upstream": self.upstream,
            "run_input": self.run_input,
        }


HandlerFunc = Callable[[Dict[str, Any], NodeInputs, Services], Awaitable[NodeResult]]


@dataclass
class Handler:
    """
    A registered node handler.

    Attributes:
        node_type: The node type it serves
        func: The async handler function
        description: Human-readable description
        config_keys: Config keys the handler reads, for the builder UI
    """
    node_type: NodeType
    func: HandlerFunc
    description: str = ""
    config_keys: List[str] = field(default_factory=list)

    async def __call__(self, config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
        return await self.func(config, inputs, services)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.node_type.value,
            "description": self.description,
            "config_keys": self.config_keys,
        }


class HandlerRegistry:
    """
    Lookup table from NodeType to Handler.

    Usage:
        registry = HandlerRegistry()

        @registry.register(NodeType.OUTPUT, description="Final result")
        async def handle_output(config, inputs, services):
            return NodeResult.succeeded(inputs.value)

        handler = registry.get(NodeType.OUTPUT)
    """

    def __init__(self):
        self._handlers: Dict[NodeType, Handler] = {}

    def register(
        self,
        node_type: NodeType,
        description: str = "",
        config_keys: Optional[List[str]] = None,
    ) -> Callable[[HandlerFunc], HandlerFunc]:
        """
        Decorator to register an async function as the handler for a type.

        Raises:
            ValueError: If the type already has a handler
        """
        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.add(func, node_type, description or func.__doc__ or "", config_keys)

            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                return await func(*args, **kwargs)

            return wrapper

        return decorator

    def add(
        self,
        func: HandlerFunc,
        node_type: NodeType,
        description: str = "",
        config_keys: Optional[List[str]] = None,
    ) -> None:
        """Directly add a handler (non-decorator version)."""
        if node_type in self._handlers:
            raise ValueError(f"Node type '{node_type.value}' already has a handler")

        self._handlers[node_type] = Handler(
            node_type=node_type,
            func=func,
            description=description.strip(),
            config_keys=list(config_keys or []),
        )
        logger.debug(f"Registered handler for node type: {node_type.value}")

    def get(self, node_type: NodeType) -> Optional[Handler]:
        """Get the handler for a node type."""
        return self._handlers.get(node_type)

    def missing(self, node_types: Iterable[NodeType]) -> List[NodeType]:
        """Return the given types that have no handler."""
        return [t for t in node_types if t not in self._handlers]

    def list_handlers(self) -> List[Dict[str, Any]]:
        """List all handlers with their metadata."""
        return [handler.to_dict() for handler in self._handlers.values()]

    def __contains__(self, node_type: NodeType) -> bool:
        return node_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self):
        return iter(self._handlers.values())


# Global handler registry instance
handler_registry = HandlerRegistry()


def register_handler(
    node_type: NodeType,
    description: str = "",
    config_keys: Optional[List[str]] = None,
) -> Callable[[HandlerFunc], HandlerFunc]:
    """Register a handler in the global registry."""
    return handler_registry.register(node_type, description, config_keys)


def get_handler(node_type: NodeType) -> Optional[Handler]:
    """Get a handler from the global registry."""
    return handler_registry.get(node_type)
