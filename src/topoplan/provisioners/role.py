"""
Workload identity role.

Trust and permission documents start empty here; the access policy
synthesizer fills them once every resource and identity provider is known.
"""

from __future__ import annotations

from typing import Optional

from topoplan.context import PlanningContext
from topoplan.graph.models import EdgeKind, NodeKind
from topoplan.network.partitions import PartitionAssignment
from topoplan.provisioners.base import EdgeSpec, NodeSpec, ProvisionerOutput
from topoplan.specs.models import RoleConfig, TopologyEntry

POLICY_VERSION = "2012-10-17"


def policy_id(role_name: str) -> str:
    return f"{role_name}-policy"


def empty_document() -> dict:
    return {"Version": POLICY_VERSION, "Statement": []}


class RoleProvisioner:
    @property
    def kind(self) -> str:
        return "role"

    @property
    def display_name(self) -> str:
        return "identity role"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: RoleConfig = entry.validated_configuration()
        name = entry.name

        role = NodeSpec(
            id=name,
            kind=NodeKind.ROLE,
            configuration={
                "name": name,
                "assume_role_policy": empty_document(),
                "managed_policies": sorted(config.managed_policies),
                "max_session_duration": config.max_session_duration,
            },
        )
        if not config.permissions:
            return ProvisionerOutput(primary_id=name, nodes=[role])

        policy = NodeSpec(
            id=policy_id(name),
            kind=NodeKind.POLICY,
            configuration={
                "name": policy_id(name),
                "role_name": name,
                "document": empty_document(),
            },
        )
        return ProvisionerOutput(
            primary_id=name,
            nodes=[role, policy],
            edges=[EdgeSpec(name, policy.id, EdgeKind.CONTAINMENT)],
        )
