"""Provisioner protocol, output types and registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from topoplan.core.errors import ValidationError
from topoplan.graph.models import EdgeKind, NodeKind

if TYPE_CHECKING:
    from topoplan.context import PlanningContext
    from topoplan.network.partitions import PartitionAssignment
    from topoplan.specs.models import TopologyEntry


@dataclass(frozen=True)
class NodeSpec:
    """A node a provisioner wants in the graph."""

    id: str
    kind: NodeKind
    configuration: Dict[str, Any] = field(default_factory=dict)
    zone: Optional[str] = None


@dataclass(frozen=True)
class EdgeSpec:
    from_id: str
    to_id: str
    kind: EdgeKind = EdgeKind.CONTAINMENT


@dataclass(frozen=True)
class ProvisionerOutput:
    """Nodes and edges emitted for one topology entry."""

    primary_id: str
    nodes: List[NodeSpec] = field(default_factory=list)
    edges: List[EdgeSpec] = field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]


def require_assignment(
    entry: TopologyEntry, assignment: Optional[PartitionAssignment]
) -> PartitionAssignment:
    """Networked kinds cannot be provisioned without a partition."""
    if assignment is None:
        raise ValidationError(
            f"{entry.kind} '{entry.name}' requires a network partition",
            {"entry": entry.name, "kind": entry.kind},
        )
    return assignment


def security_group_id(name: str) -> str:
    return f"{name}-sg"


def security_group_node(name: str, assignment: PartitionAssignment, owner_kind: NodeKind) -> NodeSpec:
    """The security group attached to a networked resource."""
    return NodeSpec(
        id=security_group_id(name),
        kind=NodeKind.SECURITY_GROUP,
        configuration={
            "name": security_group_id(name),
            "description": f"{owner_kind.value} {name}",
            "network_id": assignment.network_id.placeholder,
            "owner_arn": "${" + f"{name}.arn" + "}",
            "allow_all_outbound": True,
            "ingress": [],
        },
        zone=assignment.role.value,
    )


@runtime_checkable
class Provisioner(Protocol):
    """Turns one topology entry into graph nodes. Must not call out."""

    @property
    def kind(self) -> str:
        """Topology entry kind handled (e.g. 'database-cluster')."""
        ...

    @property
    def display_name(self) -> str:
        """Human-readable name for log messages."""
        ...

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        """Validate the entry and emit its nodes and internal edges."""
        ...


class ProvisionerRegistry:
    """In-memory registry for provisioners."""

    def __init__(self) -> None:
        self._provisioners: Dict[str, Provisioner] = {}

    def register(self, provisioner: Provisioner) -> None:
        """Register a provisioner by the entry kind it handles."""
        self._provisioners[provisioner.kind] = provisioner

    def get(self, kind: str) -> Optional[Provisioner]:
        """Get a provisioner by entry kind."""
        return self._provisioners.get(kind)

    def list(self) -> List[str]:
        """List all registered entry kinds."""
        return list(self._provisioners.keys())
