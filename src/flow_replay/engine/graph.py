"""
Flow Graph - integrity checks and traversal helpers over nodes and edges.

Handles:
- Duplicate node ids and dangling edges
- Cycle detection on the full edge set
- Topological order over default edges
- Start node selection and next-edge lookup by label
"""

from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence

from flow_replay.exceptions import DagError
from flow_replay.models.flow import Action, DEFAULT_LABEL, Edge, ON_ERROR_LABEL

TRIGGER_TYPE = "trigger"


def out_edge_map(edges: Iterable[Edge]) -> Dict[str, List[Edge]]:
    """Outgoing edges per node id, in declaration order."""
    result: Dict[str, List[Edge]] = {}
    for edge in edges:
        result.setdefault(edge.from_, []).append(edge)
    return result


def in_degrees(nodes: Sequence[Action], edges: Iterable[Edge]) -> Dict[str, int]:
    degrees = {node.id: 0 for node in nodes}
    for edge in edges:
        if edge.to in degrees:
            degrees[edge.to] += 1
    return degrees


def validate_graph(nodes: Sequence[Action], edges: Sequence[Edge]) -> None:
    """
    Check node id uniqueness and that every edge references existing nodes.

    Raises:
        DagError: DUPLICATE_NODE or DANGLING_EDGE
    """
    seen = set()
    for node in nodes:
        if node.id in seen:
            raise DagError(f"Duplicate node id '{node.id}'", DagError.DUPLICATE_NODE, {"nodeId": node.id})
        seen.add(node.id)

    for edge in edges:
        missing = [end for end in (edge.from_, edge.to) if end not in seen]
        if missing:
            raise DagError(
                f"Edge '{edge.id}' references missing node(s): {', '.join(missing)}",
                DagError.DANGLING_EDGE,
                {"edgeId": edge.id, "missing": missing},
            )


def has_cycle(nodes: Sequence[Action], edges: Sequence[Edge]) -> bool:
    """DFS coloring over every edge, whatever its label."""
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        adjacency.setdefault(edge.from_, []).append(edge.to)

    WHITE, GREY, BLACK = 0, 1, 2
    color: Dict[str, int] = {}

    for root in adjacency:
        if color.get(root, WHITE) != WHITE:
            continue
        color[root] = GREY
        stack = [(root, iter(adjacency.get(root, [])))]
        while stack:
            node_id, children = stack[-1]
            advanced = False
            for child in children:
                state = color.get(child, WHITE)
                if state == GREY:
                    return True
                if state == WHITE:
                    color[child] = GREY
                    stack.append((child, iter(adjacency.get(child, []))))
                    advanced = True
                    break
            if not advanced:
                color[node_id] = BLACK
                stack.pop()
    return False


def default_edges(edges: Iterable[Edge]) -> List[Edge]:
    return [e for e in edges if e.effective_label == DEFAULT_LABEL]


def topo_order(nodes: Sequence[Action], edges: Sequence[Edge]) -> List[Action]:
    """
    Kahn's algorithm, stable on declaration order.

    Nodes left over by a cycle are appended in declaration order.
    """
    by_id = {node.id: node for node in nodes}
    degrees = in_degrees(nodes, edges)
    outgoing = out_edge_map(edges)
    queue = deque(node.id for node in nodes if degrees[node.id] == 0)
    order: List[Action] = []
    visited = set()
    while queue:
        node_id = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        order.append(by_id[node_id])
        for edge in outgoing.get(node_id, []):
            if edge.to not in degrees:
                continue
            degrees[edge.to] -= 1
            if degrees[edge.to] == 0:
                queue.append(edge.to)
    order.extend(node for node in nodes if node.id not in visited)
    return order


def find_edge(outgoing: Dict[str, List[Edge]], node_id: str, label: str) -> Optional[Edge]:
    """First edge with ``label``, then the first default edge."""
    edges = outgoing.get(node_id, [])
    for edge in edges:
        if edge.effective_label == label:
            return edge
    for edge in edges:
        if edge.effective_label == DEFAULT_LABEL:
            return edge
    return None


def find_error_edge(outgoing: Dict[str, List[Edge]], node_id: str, label: str = ON_ERROR_LABEL) -> Optional[Edge]:
    for edge in outgoing.get(node_id, []):
        if edge.label == label:
            return edge
    return None


def find_start_node(nodes: Sequence[Action], edges: Sequence[Edge]) -> Optional[str]:
    """
    The first non-trigger root; otherwise the node a trigger root's default
    edge leads to; otherwise the first node.
    """
    if not nodes:
        return None
    degrees = in_degrees(nodes, edges)
    for node in nodes:
        if degrees[node.id] == 0 and node.type != TRIGGER_TYPE:
            return node.id
    outgoing = out_edge_map(edges)
    for node in nodes:
        if degrees[node.id] == 0:
            for edge in outgoing.get(node.id, []):
                if edge.effective_label == DEFAULT_LABEL:
                    return edge.to
            break
    return nodes[0].id


def outgoing_labels(outgoing: Dict[str, List[Edge]], node_id: str) -> List[str]:
    return [edge.effective_label for edge in outgoing.get(node_id, [])]
