"""
Relational database cluster.

A cluster node owns one writer instance and ``replica_count`` reader
instances. Instance ids derive only from the entry name so re-planning the
same topology yields the same ids.
"""

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
from topoplan.specs.models import DatabaseClusterConfig, TopologyEntry

ENGINE_PORTS = {
    "aurora-postgresql": 5432,
    "aurora-mysql": 3306,
}

ENGINE_USERNAMES = {
    "aurora-postgresql": "postgres",
    "aurora-mysql": "admin",
}


def writer_id(name: str) -> str:
    return f"writer-{name}"


def reader_id(name: str, index: int) -> str:
    return f"reader-{name}-{index}"


def credentials_secret_name(name: str) -> str:
    return f"{name}-credentials"


class DatabaseClusterProvisioner:
    """Emits the database cluster, writer/reader instances and security group."""

    @property
    def kind(self) -> str:
        return "database-cluster"

    @property
    def display_name(self) -> str:
        return "database cluster"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: DatabaseClusterConfig = entry.validated_configuration()
        assignment = require_assignment(entry, assignment)
        name = entry.name
        zone_role = assignment.role.value
        zones = assignment.zones
        cluster_arn = ValueRef(name, "arn").placeholder

        cluster = NodeSpec(
            id=name,
            kind=NodeKind.DATABASE_CLUSTER,
            configuration={
                "identifier": name,
                "engine": config.engine,
                "engine_version": config.engine_version,
                "port": config.port or ENGINE_PORTS[config.engine],
                "database_name": config.database_name,
                "credentials": {
                    "username": config.username or ENGINE_USERNAMES[config.engine],
                    "secret_name": credentials_secret_name(name),
                    "generate_password": True,
                },
                "deletion_protection": config.deletion_protection,
                "storage_encrypted": True,
                "subnet_ids": assignment.subnet_ids.placeholder,
            },
            zone=zone_role,
        )

        writer = NodeSpec(
            id=writer_id(name),
            kind=NodeKind.DATABASE_INSTANCE,
            configuration={
                "identifier": writer_id(name),
                "cluster_arn": cluster_arn,
                "instance_class": config.instance_class,
                "instance_role": "writer",
                "promotion_tier": 0,
                "availability_zone": zones[0],
            },
            zone=zone_role,
        )

        nodes = [cluster, writer]
        edges = [EdgeSpec(name, writer.id, EdgeKind.CONTAINMENT)]

        for index in range(config.replica_count):
            reader = NodeSpec(
                id=reader_id(name, index),
                kind=NodeKind.DATABASE_INSTANCE,
                configuration={
                    "identifier": reader_id(name, index),
                    "cluster_arn": cluster_arn,
                    "instance_class": config.instance_class,
                    "instance_role": "reader",
                    "promotion_tier": index + 1,
                    "availability_zone": zones[(index + 1) % len(zones)],
                },
                zone=zone_role,
            )
            nodes.append(reader)
            edges.append(EdgeSpec(name, reader.id, EdgeKind.CONTAINMENT))
            # Readers replicate from the writer
            edges.append(EdgeSpec(writer.id, reader.id, EdgeKind.EXPLICIT_ORDER))

        nodes.append(security_group_node(name, assignment, NodeKind.DATABASE_CLUSTER))
        edges.append(EdgeSpec(name, security_group_id(name), EdgeKind.CONTAINMENT))

        return ProvisionerOutput(primary_id=name, nodes=nodes, edges=edges)
