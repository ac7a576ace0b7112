"""
Output projector.

Reads declared outputs off provisioned nodes. Credential-bearing fields are
always marked sensitive, whatever the declaration says.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from topoplan.core.errors import OutputUnavailable
from topoplan.graph.models import NodeStatus
from topoplan.graph.resource_graph import ResourceGraph
from topoplan.specs.models import OutputDeclaration

logger = structlog.get_logger()

SENSITIVE_FIELDS = frozenset({"credential_ref", "password", "secret", "kubeconfig"})

REDACTED = "***"


@dataclass(frozen=True)
class OutputSpec:
    name: str
    node_id: str
    field: str
    sensitive: bool = False

    @classmethod
    def from_declaration(cls, declaration: OutputDeclaration) -> OutputSpec:
        return cls(
            name=declaration.name,
            node_id=declaration.node,
            field=declaration.field,
            sensitive=declaration.sensitive,
        )


@dataclass(frozen=True)
class ProjectedOutput:
    name: str
    value: Any
    sensitive: bool

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        value = REDACTED if redact and self.sensitive else self.value
        return {"name": self.name, "value": value, "sensitive": self.sensitive}


def is_sensitive(spec: OutputSpec) -> bool:
    return spec.sensitive or spec.field in SENSITIVE_FIELDS


class OutputProjector:
    """Projects resolved node fields into named outputs."""

    def __init__(self, graph: ResourceGraph) -> None:
        self.graph = graph

    def project_one(self, spec: OutputSpec) -> ProjectedOutput:
        node = self.graph.get(spec.node_id)
        if node is None:
            raise OutputUnavailable(
                f"Output '{spec.name}' refers to unknown node '{spec.node_id}'",
                {"output": spec.name, "node_id": spec.node_id},
            )
        if node.status is not NodeStatus.PROVISIONED:
            raise OutputUnavailable(
                f"Output '{spec.name}' needs '{spec.node_id}' provisioned, "
                f"it is {node.status.value}",
                {"output": spec.name, "node_id": spec.node_id, "status": node.status.value},
            )
        if spec.field not in node.resolved:
            raise OutputUnavailable(
                f"Node '{spec.node_id}' has no field '{spec.field}'",
                {"output": spec.name, "node_id": spec.node_id, "field": spec.field},
            )
        return ProjectedOutput(
            name=spec.name,
            value=node.resolved[spec.field],
            sensitive=is_sensitive(spec),
        )

    def project(self, specs: Iterable[OutputSpec]) -> list[ProjectedOutput]:
        """
        Project every output in declaration order.

        Raises:
            OutputUnavailable: On the first output whose node is missing,
                not provisioned, or lacks the field
        """
        outputs = [self.project_one(spec) for spec in specs]
        logger.info(
            "outputs_projected",
            count=len(outputs),
            sensitive=sum(1 for o in outputs if o.sensitive),
        )
        return outputs
