"""
Async Workflow Executor.

The executor runs a validated workflow definition against one input:
nodes run one at a time in topological order, condition nodes prune the
branches they do not take, and the first failing node stops the run.
"""

from typing import Any, Dict, List, Mapping, Optional, Union
import logging
import time
import uuid

from accelflow.engine.context import (
    ExecutionContext,
    ExecutionResult,
    NodeResult,
    NodeStatus,
)
from accelflow.engine.definition import Edge, Node, NodeType, WorkflowDefinition, parse_definition
from accelflow.engine.templating import stringify
from accelflow.errors import DefinitionError
from accelflow.handlers import NodeInputs, handler_registry
from accelflow.handlers.registry import HandlerRegistry
from accelflow.services.capabilities import Services


logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """
    Executes workflow definitions for one user and workflow.

    Handles:
    - Sequential node execution in topological order
    - Threading outputs along taken edges
    - Branch pruning after condition nodes
    - Token and cost accounting
    - Fail-fast on the first node error
    - An overall deadline checked between nodes

    Usage:
        executor = WorkflowExecutor(user_id, workflow_id, services=services)
        result = await executor.execute(definition, "hello")
    """

    def __init__(
        self,
        user_id: str,
        workflow_id: str,
        services: Optional[Services] = None,
        registry: Optional[HandlerRegistry] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the executor.

        Args:
            user_id: Owner of the run
            workflow_id: Workflow being run
            services: External capabilities for handlers
            registry: Handler lookup table (defaults to the built-ins)
            timeout: Overall deadline in seconds, checked before each node
        """
        self.user_id = user_id
        self.workflow_id = workflow_id
        self.services = services or Services()
        self.registry = registry if registry is not None else handler_registry
        self.timeout = timeout

    async def execute(
        self,
        definition: Union[WorkflowDefinition, Mapping[str, Any]],
        input: str,
        execution_id: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run the workflow to completion or to its first failure.

        Args:
            definition: A parsed definition, or the raw stored document
            input: The run input handed to the entry node
            execution_id: Optional execution ID (generated if not provided)

        Returns:
            ExecutionResult with per-node results and totals

        Raises:
            DefinitionError: If the definition is structurally invalid.
                Node failures never raise; they end up in the result.
        """
        if not isinstance(definition, WorkflowDefinition):
            definition = parse_definition(definition)

        missing = self.registry.missing({node.type for node in definition.nodes})
        if missing:
            raise DefinitionError(
                "unknown_node_type",
                f"No handler registered for node type(s): {', '.join(t.value for t in missing)}",
                [n.id for n in definition.nodes if n.type in missing],
            )

        context = ExecutionContext(execution_id or str(uuid.uuid4()))
        start_time = time.monotonic()

        logger.info(
            f"Executing workflow {self.workflow_id} "
            f"(execution {context.execution_id}, {len(definition.nodes)} nodes)"
        )

        for node_id in definition.order:
            if self.timeout is not None and time.monotonic() - start_time > self.timeout:
                context.fail(f"Workflow execution timed out after {self.timeout:g}s")
                logger.warning(f"Execution {context.execution_id} timed out before node {node_id}")
                break

            node = definition.get_node(node_id)

            if node_id in context.skipped:
                context.record(node_id, NodeResult.skipped())
                logger.info(f"Skipping node: {node_id} (branch not taken)")
                continue

            inputs = self._gather_inputs(definition, node, context, input)
            if inputs is None:
                context.record(node_id, NodeResult.skipped())
                logger.info(f"Skipping node: {node_id} (no live upstream)")
                continue

            result = await self._execute_node(node, inputs)
            context.record(node_id, result)

            if result.status == NodeStatus.FAILED:
                context.fail(f'Node "{node.display_name}" failed: {result.error}')
                break

            if node.type == NodeType.CONDITION and result.branch is not None:
                context.taken_branches[node_id] = result.branch
                self._propagate_skips(definition, context)

        if context.error_message is None:
            context.complete(self._final_output(definition, context))

        logger.info(
            f"Execution {context.execution_id} {context.status.value}: "
            f"{context.total_tokens} tokens, ${context.total_cost:.6f}"
        )
        return ExecutionResult.from_context(context)

    def _edge_taken(self, edge: Edge, context: ExecutionContext) -> bool:
        """Whether an edge out of an already-run node carries data."""
        if not context.succeeded(edge.source):
            return False
        branch = context.taken_branches.get(edge.source)
        if branch is None or edge.condition is None:
            return True
        return edge.condition == branch

    def _edge_dead(self, edge: Edge, context: ExecutionContext) -> bool:
        """Whether an edge can no longer carry data, even if its source has not run."""
        if edge.source in context.skipped:
            return True
        branch = context.taken_branches.get(edge.source)
        return branch is not None and edge.condition is not None and edge.condition != branch

    def _gather_inputs(
        self,
        definition: WorkflowDefinition,
        node: Node,
        context: ExecutionContext,
        run_input: str,
    ) -> Optional[NodeInputs]:
        """
        Collect upstream outputs over taken edges.

        Returns None when the node has incoming edges but none of them was
        taken; the node is then skipped.
        """
        incoming = definition.incoming(node.id)
        upstream: Dict[str, Any] = {}

        for edge in incoming:
            if self._edge_taken(edge, context):
                upstream[edge.source] = context.node_results[edge.source].output

        if incoming and not upstream:
            return None

        return NodeInputs(
            run_input=run_input,
            upstream=upstream,
            user_id=self.user_id,
            workflow_id=self.workflow_id,
        )

    def _propagate_skips(self, definition: WorkflowDefinition, context: ExecutionContext) -> None:
        """
        Pre-mark nodes reachable only through branches that were not taken.

        Walking in topological order makes the marking transitive in a
        single pass: a node is dead once all of its incoming edges are.
        """
        for node_id in definition.order:
            if node_id in context.node_results or node_id in context.skipped:
                continue
            incoming = definition.incoming(node_id)
            if incoming and all(self._edge_dead(edge, context) for edge in incoming):
                context.skipped.add(node_id)

    async def _execute_node(self, node: Node, inputs: NodeInputs) -> NodeResult:
        """Dispatch a node to its handler and convert any error into a failed result."""
        handler = self.registry.get(node.type)
        # parse_definition and the coverage check in execute() guarantee this
        assert handler is not None, f"no handler for {node.type}"

        logger.info(f"Executing node: {node.id} ({node.type.value})")
        node_start = time.monotonic()

        try:
            result = await handler(node.config, inputs, self.services)
        except Exception as e:
            latency = (time.monotonic() - node_start) * 1000
            logger.error(f"Node {node.id} failed: {e}")
            return NodeResult.failed(str(e) or type(e).__name__, latency_ms=latency)

        result.latency_ms = (time.monotonic() - node_start) * 1000
        logger.debug(
            f"Node {node.id} succeeded in {result.latency_ms:.1f}ms "
            f"({result.tokens_used} tokens)"
        )
        return result

    def _final_output(self, definition: WorkflowDefinition, context: ExecutionContext) -> Any:
        """
        The run's output: the output node's result, several output nodes
        joined, or the last succeeded node's output when there is none.
        """
        outputs: List[Any] = [
            context.node_results[n.id].output
            for n in definition.nodes_of_type(NodeType.OUTPUT)
            if context.succeeded(n.id)
        ]
        if len(outputs) == 1:
            return outputs[0]
        if outputs:
            return "\n\n".join(stringify(o) for o in outputs if o not in (None, ""))
        if context.last_succeeded is not None:
            return context.node_results[context.last_succeeded].output
        return ""


async def execute_workflow(
    definition: Union[WorkflowDefinition, Mapping[str, Any]],
    input: str,
    user_id: str = "anonymous",
    workflow_id: str = "adhoc",
    services: Optional[Services] = None,
    timeout: Optional[float] = None,
) -> ExecutionResult:
    """
    Convenience function to execute a workflow.

    Args:
        definition: Parsed or raw workflow definition
        input: The run input
        user_id: Owner of the run
        workflow_id: Workflow being run
        services: External capabilities
        timeout: Overall deadline in seconds

    Returns:
        ExecutionResult
    """
    executor = WorkflowExecutor(user_id, workflow_id, services=services, timeout=timeout)
    return await executor.execute(definition, input)
