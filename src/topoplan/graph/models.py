"""
Resource graph models.

Nodes, edges, lifecycle states and deferred value references used by every
planning component.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class NodeKind(Enum):
    """Kinds of resources a topology can provision."""

    PARTITION = "partition"
    CLUSTER = "cluster"
    BROKER = "broker"
    DATABASE_CLUSTER = "database-cluster"
    DATABASE_INSTANCE = "database-instance"
    TABLE = "table"
    REGISTRY = "registry"
    ROLE = "role"
    POLICY = "policy"
    SECURITY_GROUP = "security-group"
    IDENTITY_PROVIDER = "identity-provider"


class EdgeKind(Enum):
    """Classification of dependency edges. The source is provisioned first."""

    CONTAINMENT = "containment"
    NETWORK_ACCESS = "network-access"
    TRUST = "trust"
    EXPLICIT_ORDER = "explicit-order"


class NodeStatus(Enum):
    """Lifecycle of a node across planning and execution."""

    DECLARED = "declared"
    PLANNED = "planned"
    PROVISIONED = "provisioned"
    FAILED = "failed"
    BLOCKED = "blocked"
    RETIRED = "retired"


@dataclass
class ResourceNode:
    """A single resource instance in the graph."""

    id: str
    kind: NodeKind
    configuration: dict[str, Any] = field(default_factory=dict)
    zone: str | None = None
    status: NodeStatus = NodeStatus.DECLARED

    # Set once the control plane has created (or bound) the resource
    provider_id: str | None = None
    resolved: dict[str, Any] = field(default_factory=dict)

    # Pre-existing singleton this node is bound to instead of created
    existing_reference: str | None = None

    @property
    def is_bound(self) -> bool:
        """Whether the node refers to a resource created outside this run."""
        return self.existing_reference is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "configuration": self.configuration,
        }
        if self.zone is not None:
            result["zone"] = self.zone
        if self.existing_reference is not None:
            result["existing_reference"] = self.existing_reference
        return result


@dataclass(frozen=True)
class DependencyEdge:
    """Directed edge: ``from_id`` must be provisioned before ``to_id``."""

    from_id: str
    to_id: str
    kind: EdgeKind

    def to_dict(self) -> dict[str, str]:
        """Serialize to dictionary."""
        return {"from": self.from_id, "to": self.to_id, "kind": self.kind.value}


_PLACEHOLDER = re.compile(r"\$\{([a-z0-9][a-z0-9-]*)\.([a-z_][a-z0-9_]*)\}")


@dataclass(frozen=True, order=True)
class ValueRef:
    """A field of a node that is only known once the node is provisioned."""

    node_id: str
    field: str

    @property
    def placeholder(self) -> str:
        return "${" + f"{self.node_id}.{self.field}" + "}"

    def __str__(self) -> str:
        return self.placeholder


def find_references(value: Any) -> set[ValueRef]:
    """Collect every placeholder reference inside a configuration value."""
    refs: set[ValueRef] = set()
    if isinstance(value, str):
        for match in _PLACEHOLDER.finditer(value):
            refs.add(ValueRef(match.group(1), match.group(2)))
    elif isinstance(value, dict):
        for key, item in value.items():
            refs |= find_references(key) | find_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            refs |= find_references(item)
    return refs


def substitute_references(value: Any, lookup: Callable[[ValueRef], Any]) -> Any:
    """
    Replace placeholders with resolved values.

    A string that is exactly one placeholder is replaced by the raw value
    (which may be a list or dict); placeholders embedded in longer strings
    are interpolated as text.
    """
    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value)
        if whole:
            return lookup(ValueRef(whole.group(1), whole.group(2)))
        return _PLACEHOLDER.sub(
            lambda m: str(lookup(ValueRef(m.group(1), m.group(2)))),
            value,
        )
    if isinstance(value, dict):
        return {
            substitute_references(k, lookup): substitute_references(v, lookup)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [substitute_references(v, lookup) for v in value]
    return value
