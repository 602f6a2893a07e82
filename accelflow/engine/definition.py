"""
Workflow Definition for the Execution Engine.

A definition is the user-authored graph: typed nodes joined by directed
edges. Stored definitions are untrusted JSON, so everything goes through
``parse_definition`` which rejects structurally invalid graphs before any
node runs.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
import heapq

from accelflow.errors import DefinitionError


class NodeType(str, Enum):
    """Types of nodes in a workflow."""
    INPUT = "input"
    PROMPT = "prompt"
    HTTP_REQUEST = "http_request"
    CONDITION = "condition"
    TRANSFORM = "transform"
    RAG_QUERY = "rag_query"
    WEB_SEARCH = "web_search"
    OUTPUT = "output"


# Type names written by the visual builder
NODE_TYPE_ALIASES: Dict[str, NodeType] = {
    "llm_call": NodeType.PROMPT,
    "conditional": NodeType.CONDITION,
    "data_transform": NodeType.TRANSFORM,
}


def resolve_node_type(raw: Any) -> Optional[NodeType]:
    """Map a stored type name to a NodeType, or None if unknown."""
    if not isinstance(raw, str):
        return None
    if raw in NODE_TYPE_ALIASES:
        return NODE_TYPE_ALIASES[raw]
    try:
        return NodeType(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class Node:
    """A single typed step in a workflow."""
    id: str
    type: NodeType
    config: Dict[str, Any] = field(default_factory=dict)
    label: str = ""

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "config": self.config,
        }


@dataclass(frozen=True)
class Edge:
    """
    A directed edge between two nodes.

    ``condition`` is the branch label for edges leaving a condition node;
    unlabelled edges are always followed.
    """
    source: str
    target: str
    condition: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "condition": self.condition,
        }


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    A validated workflow graph.

    Only ``parse_definition`` should build one; it guarantees unique ids,
    resolvable edges, no cycles and a single entry node. ``order`` is the
    topological execution order with declaration-order tie breaks.
    """
    nodes: Tuple[Node, ...]
    edges: Tuple[Edge, ...]
    entry_node: str
    order: Tuple[str, ...]

    def get_node(self, node_id: str) -> Node:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def nodes_of_type(self, node_type: NodeType) -> List[Node]:
        return [n for n in self.nodes if n.type == node_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the workflow."""
        lines = ["graph TD"]

        for node in self.nodes:
            label = f"{node.display_name} ({node.type.value})"
            if node.type == NodeType.CONDITION:
                lines.append(f'    {_mermaid_id(node.id)}{{"{label}"}}')
            else:
                lines.append(f'    {_mermaid_id(node.id)}["{label}"]')

        for edge in self.edges:
            source, target = _mermaid_id(edge.source), _mermaid_id(edge.target)
            if edge.condition is not None:
                lines.append(f"    {source} -->|{edge.condition}| {target}")
            else:
                lines.append(f"    {source} --> {target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"WorkflowDefinition(nodes={list(self.order)}, entry='{self.entry_node}')"


def _mermaid_id(node_id: str) -> str:
    return "".join(c if c.isalnum() or c == "_" else "_" for c in node_id)


# ============================================================
# Parsing & Validation
# ============================================================

def parse_definition(raw: Any, max_nodes: Optional[int] = None) -> WorkflowDefinition:
    """
    Parse and validate a stored workflow definition.

    Args:
        raw: The stored JSON document (``{"nodes": [...], "edges": [...]}``)
        max_nodes: Optional upper bound on the number of nodes

    Returns:
        A validated WorkflowDefinition

    Raises:
        DefinitionError: If the definition violates a structural rule
    """
    if not isinstance(raw, Mapping):
        raise DefinitionError("malformed", "Workflow definition must be an object")

    raw_nodes = raw.get("nodes")
    raw_edges = raw.get("edges")
    if not isinstance(raw_nodes, list):
        raise DefinitionError("malformed", "Workflow definition must contain a 'nodes' list")
    if not isinstance(raw_edges, list):
        raise DefinitionError("malformed", "Workflow definition must contain an 'edges' list")

    if not raw_nodes:
        raise DefinitionError("missing_entry", "Workflow must have at least one node")

    if max_nodes is not None and len(raw_nodes) > max_nodes:
        raise DefinitionError(
            "too_many_nodes",
            f"Workflow has {len(raw_nodes)} nodes (max {max_nodes})",
        )

    nodes = [_parse_node(i, item) for i, item in enumerate(raw_nodes)]

    seen = set()
    duplicates = []
    for node in nodes:
        if node.id in seen and node.id not in duplicates:
            duplicates.append(node.id)
        seen.add(node.id)
    if duplicates:
        raise DefinitionError(
            "duplicate_node",
            f"Duplicate node ids: {', '.join(duplicates)}",
            duplicates,
        )

    edges = [_parse_edge(i, item) for i, item in enumerate(raw_edges)]

    for edge in edges:
        missing = [end for end in (edge.source, edge.target) if end not in seen]
        if missing:
            raise DefinitionError(
                "dangling_edge",
                f"Edge {edge.source} -> {edge.target} references unknown node(s): "
                f"{', '.join(missing)}",
                missing,
            )

    order = topological_order([n.id for n in nodes], edges)
    if len(order) != len(nodes):
        stuck = [n.id for n in nodes if n.id not in set(order)]
        raise DefinitionError(
            "cycle",
            f"Workflow contains a cycle through: {', '.join(stuck)}",
            stuck,
        )

    targets = {e.target for e in edges}
    roots = [n.id for n in nodes if n.id not in targets]
    if len(roots) > 1:
        raise DefinitionError(
            "ambiguous_entry",
            f"Workflow has {len(roots)} nodes without incoming edges: "
            f"{', '.join(roots)}; exactly one entry node is required",
            roots,
        )
    # Unreachable for an acyclic graph, kept so the error is explicit
    if not roots:
        raise DefinitionError("missing_entry", "Workflow has no entry node")

    if not any(n.type == NodeType.INPUT for n in nodes):
        raise DefinitionError("missing_input", "Workflow must have at least one input node")
    if not any(n.type == NodeType.OUTPUT for n in nodes):
        raise DefinitionError("missing_output", "Workflow must have at least one output node")

    disconnected = [n.id for n in nodes if n.type == NodeType.OUTPUT and n.id not in targets]
    if disconnected:
        raise DefinitionError(
            "disconnected_output",
            f"Output node(s) without incoming connections: {', '.join(disconnected)}",
            disconnected,
        )

    sources = {e.source for e in edges}
    dead_ends = [n.id for n in nodes if n.type == NodeType.CONDITION and n.id not in sources]
    if dead_ends:
        raise DefinitionError(
            "condition_without_branches",
            f"Condition node(s) without outgoing connections: {', '.join(dead_ends)}",
            dead_ends,
        )

    return WorkflowDefinition(
        nodes=tuple(nodes),
        edges=tuple(edges),
        entry_node=roots[0],
        order=tuple(order),
    )


def topological_order(node_ids: List[str], edges: List[Edge]) -> List[str]:
    """
    Kahn's algorithm with ties broken by declaration order.

    Nodes on a cycle are left out of the result; callers compare lengths
    to detect one.
    """
    position = {node_id: i for i, node_id in enumerate(node_ids)}
    in_degree = {node_id: 0 for node_id in node_ids}
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}

    for edge in edges:
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    ready = [position[n] for n in node_ids if in_degree[n] == 0]
    heapq.heapify(ready)

    order = []
    while ready:
        current = node_ids[heapq.heappop(ready)]
        order.append(current)
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                heapq.heappush(ready, position[neighbor])

    return order


def _parse_node(index: int, item: Any) -> Node:
    if not isinstance(item, Mapping):
        raise DefinitionError("malformed", f"Node #{index} must be an object")

    node_id = item.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise DefinitionError("malformed", f"Node #{index} must have a non-empty string 'id'")

    node_type = resolve_node_type(item.get("type"))
    if node_type is None:
        raise DefinitionError(
            "unknown_node_type",
            f"Node '{node_id}' has unknown type {item.get('type')!r}",
            [node_id],
        )

    # The visual builder stores node settings under "data"
    config = item.get("config", item.get("data")) or {}
    if not isinstance(config, Mapping):
        raise DefinitionError("malformed", f"Node '{node_id}' config must be an object", [node_id])

    label = item.get("label") or config.get("label") or ""
    return Node(id=node_id, type=node_type, config=dict(config), label=str(label))


def _parse_edge(index: int, item: Any) -> Edge:
    if not isinstance(item, Mapping):
        raise DefinitionError("malformed", f"Edge #{index} must be an object")

    source = item.get("source", item.get("from"))
    target = item.get("target", item.get("to"))
    if not isinstance(source, str) or not isinstance(target, str):
        raise DefinitionError("malformed", f"Edge #{index} must have string 'source' and 'target'")

    condition = item.get("condition", item.get("sourceHandle"))
    if condition is not None and not isinstance(condition, str):
        condition = str(condition).lower() if isinstance(condition, bool) else str(condition)

    return Edge(source=source, target=target, condition=condition)
