"""Managed container-orchestration cluster."""

from __future__ import annotations

from typing import Optional

from topoplan.context import PlanningContext
from topoplan.graph.models import EdgeKind, NodeKind, ValueRef
from topoplan.network.partitions import PartitionAssignment
from topoplan.provisioners.base import (
    EdgeSpec,
    NodeSpec,
    ProvisionerOutput,
    require_assignment,
    security_group_id,
    security_group_node,
)
from topoplan.specs.models import ClusterConfig, TopologyEntry

CLUSTER_API_PORT = 443


def node_role_id(name: str) -> str:
    return f"{name}-node-role"


def service_trust_document(service: str) -> dict:
    """Trust policy letting a cloud service assume a role."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ],
    }


class ClusterProvisioner:
    """Emits the cluster, its security group and its worker node role."""

    @property
    def kind(self) -> str:
        return "cluster"

    @property
    def display_name(self) -> str:
        return "managed cluster"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: ClusterConfig = entry.validated_configuration()
        assignment = require_assignment(entry, assignment)
        name = entry.name
        role_id = node_role_id(name)

        node_role = NodeSpec(
            id=role_id,
            kind=NodeKind.ROLE,
            configuration={
                "name": role_id,
                "assume_role_policy": service_trust_document("ec2.amazonaws.com"),
                "managed_policies": sorted(config.node_managed_policies),
                "max_session_duration": 3600,
            },
            zone=assignment.role.value,
        )

        cluster = NodeSpec(
            id=name,
            kind=NodeKind.CLUSTER,
            configuration={
                "name": name,
                "version": config.version,
                "logging": sorted(config.logging),
                "endpoint_access": config.endpoint_access,
                "ip_family": config.ip_family,
                "port": CLUSTER_API_PORT,
                "zones": list(assignment.zones),
                "subnet_ids": assignment.subnet_ids.placeholder,
                "default_capacity": 0,
                "node_group": {
                    "name": f"{name}-nodes",
                    "ami_type": config.node_group.ami_type,
                    "instance_types": list(config.node_group.instance_types),
                    "desired_size": config.node_group.desired_size,
                    "min_size": config.node_group.min_size,
                    "max_size": config.node_group.max_size,
                    "disk_size": config.node_group.disk_size,
                    "node_role_arn": ValueRef(role_id, "arn").placeholder,
                },
            },
            zone=assignment.role.value,
        )

        return ProvisionerOutput(
            primary_id=name,
            nodes=[cluster, security_group_node(name, assignment, NodeKind.CLUSTER), node_role],
            edges=[
                EdgeSpec(name, security_group_id(name), EdgeKind.CONTAINMENT),
                EdgeSpec(role_id, name, EdgeKind.EXPLICIT_ORDER),
            ],
        )
