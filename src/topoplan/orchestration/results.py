"""Result types for plan execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from topoplan.graph.models import NodeKind, NodeStatus


@dataclass
class NodeReport:
    """Terminal state of one node after apply or teardown."""

    node_id: str
    kind: NodeKind
    status: NodeStatus
    provider_id: Optional[str] = None
    error: Optional[str] = None
    blocked_by: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "node_id": self.node_id,
            "kind": self.kind.value,
            "status": self.status.value,
        }
        if self.provider_id is not None:
            result["provider_id"] = self.provider_id
        if self.error is not None:
            result["error"] = self.error
        if self.blocked_by:
            result["blocked_by"] = list(self.blocked_by)
        return result


@dataclass
class ApplyResult:
    """
    Per-node outcome of an execution run.

    No aggregate pass/fail; callers inspect which nodes reached which status.
    """

    topology: str
    reports: Dict[str, NodeReport] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def record(
        self,
        node_id: str,
        kind: NodeKind,
        status: NodeStatus,
        *,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
        blocked_by: Tuple[str, ...] = (),
    ) -> None:
        self.reports[node_id] = NodeReport(
            node_id=node_id,
            kind=kind,
            status=status,
            provider_id=provider_id,
            error=error,
            blocked_by=blocked_by,
        )

    def status(self, node_id: str) -> NodeStatus:
        return self.reports[node_id].status

    @property
    def statuses(self) -> Dict[str, NodeStatus]:
        return {node_id: r.status for node_id, r in sorted(self.reports.items())}

    @property
    def errors(self) -> Dict[str, str]:
        """Error message per node that has one."""
        return {
            node_id: r.error for node_id, r in sorted(self.reports.items()) if r.error is not None
        }

    def with_status(self, status: NodeStatus) -> List[str]:
        return sorted(node_id for node_id, r in self.reports.items() if r.status is status)

    @property
    def provisioned(self) -> List[str]:
        return self.with_status(NodeStatus.PROVISIONED)

    @property
    def failed(self) -> List[str]:
        return self.with_status(NodeStatus.FAILED)

    @property
    def blocked(self) -> List[str]:
        return self.with_status(NodeStatus.BLOCKED)

    @property
    def retired(self) -> List[str]:
        return self.with_status(NodeStatus.RETIRED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topology": self.topology,
            "duration_seconds": round(self.duration_seconds, 3),
            "nodes": [self.reports[k].to_dict() for k in sorted(self.reports)],
            "summary": {
                status.value: len(self.with_status(status))
                for status in NodeStatus
                if self.with_status(status)
            },
        }
