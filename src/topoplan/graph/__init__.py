"""
Resource graph: nodes, edges and deferred value references.
"""

from topoplan.graph.models import (
    DependencyEdge,
    EdgeKind,
    NodeKind,
    NodeStatus,
    ResourceNode,
    ValueRef,
    find_references,
    substitute_references,
)
from topoplan.graph.resource_graph import ResourceGraph

__all__ = [
    "DependencyEdge",
    "EdgeKind",
    "NodeKind",
    "NodeStatus",
    "ResourceGraph",
    "ResourceNode",
    "ValueRef",
    "find_references",
    "substitute_references",
]
