"""
In-memory resource graph.

Holds every declared node and the edges between them. Adjacency indices are
kept per edge kind in both directions so the scheduler and the execution
engine can walk neighbours without scanning the edge list.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from topoplan.core.errors import DependencyUnresolved, ValidationError
from topoplan.graph.models import (
    DependencyEdge,
    EdgeKind,
    NodeKind,
    ResourceNode,
    find_references,
)


class ResourceGraph:
    """Declared resources and their dependency edges."""

    def __init__(self) -> None:
        self._nodes: dict[str, ResourceNode] = {}
        self._edges: set[DependencyEdge] = set()
        self._out: dict[str, dict[EdgeKind, list[str]]] = defaultdict(lambda: defaultdict(list))
        self._in: dict[str, dict[EdgeKind, list[str]]] = defaultdict(lambda: defaultdict(list))
        self._parents: dict[str, str] = {}
        self._counters: dict[NodeKind, int] = defaultdict(int)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(
        self,
        kind: NodeKind,
        configuration: dict[str, Any] | None = None,
        *,
        node_id: str | None = None,
        zone: str | None = None,
    ) -> str:
        """Add a node and return its id."""
        if node_id is None:
            while True:
                self._counters[kind] += 1
                node_id = f"{kind.value}-{self._counters[kind]}"
                if node_id not in self._nodes:
                    break
        elif node_id in self._nodes:
            raise ValidationError(
                f"Duplicate node id '{node_id}'",
                {"node_id": node_id, "kind": kind.value},
            )

        self._nodes[node_id] = ResourceNode(
            id=node_id,
            kind=kind,
            configuration=dict(configuration or {}),
            zone=zone,
        )
        return node_id

    def add_edge(self, from_id: str, to_id: str, kind: EdgeKind) -> DependencyEdge:
        """Add a dependency edge. Adding an identical edge twice is a no-op."""
        missing = [n for n in (from_id, to_id) if n not in self._nodes]
        if missing:
            raise DependencyUnresolved(
                f"Edge {from_id} -> {to_id} references unknown node(s): {', '.join(missing)}",
                {"from": from_id, "to": to_id, "edge_kind": kind.value},
            )
        if from_id == to_id:
            raise ValidationError(f"Node '{from_id}' cannot depend on itself", {"node_id": from_id})

        edge = DependencyEdge(from_id, to_id, kind)
        if edge in self._edges:
            return edge

        if kind is EdgeKind.CONTAINMENT:
            parent = self._parents.get(to_id)
            if parent is not None:
                raise ValidationError(
                    f"Node '{to_id}' is already contained by '{parent}'",
                    {"node_id": to_id, "parent": parent, "requested_parent": from_id},
                )
            self._parents[to_id] = from_id

        self._edges.add(edge)
        self._out[from_id][kind].append(to_id)
        self._in[to_id][kind].append(from_id)
        return edge

    def has_edge(self, from_id: str, to_id: str, kind: EdgeKind | None = None) -> bool:
        if kind is not None:
            return DependencyEdge(from_id, to_id, kind) in self._edges
        return any(to_id in targets for targets in self._out.get(from_id, {}).values())

    def node(self, node_id: str) -> ResourceNode:
        """Get a node by id."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise DependencyUnresolved(f"Unknown node '{node_id}'", {"node_id": node_id}) from None

    def get(self, node_id: str) -> ResourceNode | None:
        return self._nodes.get(node_id)

    def nodes(self) -> list[ResourceNode]:
        """All nodes, sorted by id."""
        return [self._nodes[k] for k in sorted(self._nodes)]

    def nodes_of_kind(self, kind: NodeKind) -> list[ResourceNode]:
        """All nodes of a kind, sorted by id."""
        return [n for n in self.nodes() if n.kind is kind]

    def edges(self, kind: EdgeKind | None = None) -> list[DependencyEdge]:
        """All edges (optionally of one kind), sorted."""
        return sorted(
            (e for e in self._edges if kind is None or e.kind is kind),
            key=lambda e: (e.from_id, e.to_id, e.kind.value),
        )

    def neighbors(self, node_id: str, edge_kind: EdgeKind) -> list[str]:
        """Outbound neighbours of a node over one edge kind."""
        self.node(node_id)
        return list(self._out.get(node_id, {}).get(edge_kind, []))

    def successors(self, node_id: str) -> list[str]:
        """Every node that directly depends on ``node_id``."""
        kinds = self._out.get(node_id, {})
        return sorted({n for targets in kinds.values() for n in targets})

    def predecessors(self, node_id: str) -> list[str]:
        """Every node ``node_id`` directly depends on."""
        kinds = self._in.get(node_id, {})
        return sorted({n for sources in kinds.values() for n in sources})

    def parent(self, node_id: str) -> str | None:
        """Containing parent, if any."""
        return self._parents.get(node_id)

    def transitive_dependents(self, node_id: str) -> list[str]:
        """All nodes reachable from ``node_id`` along dependency edges."""
        result: set[str] = set()
        stack = list(self.successors(node_id))
        while stack:
            current = stack.pop()
            if current in result:
                continue
            result.add(current)
            stack.extend(self.successors(current))
        return sorted(result)

    def order_references(self, node_id: str) -> list[DependencyEdge]:
        """
        Back every placeholder in a node's configuration with an edge.

        An explicit-order edge is added from each referenced node unless the
        two are already directly connected. Returns the edges added.

        Raises:
            DependencyUnresolved: If a placeholder names an unknown node
        """
        added = []
        for ref in sorted(find_references(self.node(node_id).configuration)):
            if ref.node_id == node_id or self.has_edge(ref.node_id, node_id):
                continue
            added.append(self.add_edge(ref.node_id, node_id, EdgeKind.EXPLICIT_ORDER))
        return added

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "nodes": [n.to_dict() for n in self.nodes()],
            "edges": [e.to_dict() for e in self.edges()],
            "stats": {
                "node_count": len(self._nodes),
                "edge_count": len(self._edges),
            },
        }
