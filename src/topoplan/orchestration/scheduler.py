"""
Execution order scheduler.

Turns the resource graph into an ordered list of provisioning operations.
Every edge kind constrains the order; ties are broken by node id so the
same graph always yields the same plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import networkx as nx
import structlog

from topoplan.context import PlanningContext
from topoplan.core.errors import CycleDetected, DependencyUnresolved
from topoplan.graph.models import NodeKind, NodeStatus, ValueRef, find_references
from topoplan.graph.resource_graph import ResourceGraph

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProvisioningOperation:
    """One node to create, with what it waits on and what it reads."""

    sequence: int
    node_id: str
    kind: NodeKind
    depends_on: tuple[str, ...]
    references: tuple[ValueRef, ...]
    idempotency_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "node_id": self.node_id,
            "kind": self.kind.value,
            "depends_on": list(self.depends_on),
            "references": [ref.placeholder for ref in self.references],
            "idempotency_key": self.idempotency_key,
        }


def build_digraph(graph: ResourceGraph) -> nx.DiGraph:
    """Project the resource graph onto a networkx digraph."""
    digraph = nx.DiGraph()
    digraph.add_nodes_from(node.id for node in graph.nodes())
    for edge in graph.edges():
        digraph.add_edge(edge.from_id, edge.to_id)
    return digraph


class ExecutionOrderScheduler:
    """Topologically orders a resource graph."""

    def __init__(self, ctx: PlanningContext) -> None:
        self.ctx = ctx

    def schedule(self, graph: ResourceGraph) -> list[ProvisioningOperation]:
        """
        Order every node so that each edge's source comes first.

        Raises:
            CycleDetected: If the graph has a cycle; no operations are returned
            DependencyUnresolved: If a placeholder names a node that is unknown
                or not ordered before the node reading it
        """
        digraph = build_digraph(graph)

        try:
            order = list(nx.lexicographical_topological_sort(digraph))
        except nx.NetworkXUnfeasible:
            cycle_edges = nx.find_cycle(digraph)
            cycle = [u for u, _ in cycle_edges] + [cycle_edges[0][0]]
            logger.error("cycle_detected", cycle=cycle)
            raise CycleDetected(cycle) from None

        operations = []
        for sequence, node_id in enumerate(order):
            node = graph.node(node_id)
            references = tuple(sorted(find_references(node.configuration)))
            self._check_references(digraph, node_id, references)
            operations.append(
                ProvisioningOperation(
                    sequence=sequence,
                    node_id=node_id,
                    kind=node.kind,
                    depends_on=tuple(sorted(digraph.predecessors(node_id))),
                    references=references,
                    idempotency_key=self.ctx.idempotency_key(node_id),
                )
            )

        for node in graph.nodes():
            if node.status is NodeStatus.DECLARED:
                node.status = NodeStatus.PLANNED

        logger.info("plan_scheduled", operations=len(operations))
        return operations

    @staticmethod
    def _check_references(
        digraph: nx.DiGraph, node_id: str, references: tuple[ValueRef, ...]
    ) -> None:
        if not references:
            return
        ancestors = nx.ancestors(digraph, node_id)
        for ref in references:
            if ref.node_id == node_id:
                continue
            if ref.node_id not in digraph:
                raise DependencyUnresolved(
                    f"Node '{node_id}' references unknown node '{ref.node_id}'",
                    {"node_id": node_id, "reference": ref.placeholder},
                )
            if ref.node_id not in ancestors:
                raise DependencyUnresolved(
                    f"Node '{node_id}' reads {ref.placeholder} without depending on '{ref.node_id}'",
                    {"node_id": node_id, "reference": ref.placeholder},
                )
