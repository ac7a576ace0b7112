"""Message-broker cluster."""

from __future__ import annotations

from typing import Optional

from topoplan.context import PlanningContext
from topoplan.core.errors import ValidationError
from topoplan.graph.models import EdgeKind, NodeKind
from topoplan.network.partitions import PartitionAssignment
from topoplan.provisioners.base import (
    EdgeSpec,
    NodeSpec,
    ProvisionerOutput,
    require_assignment,
    security_group_id,
    security_group_node,
)
from topoplan.specs.models import BrokerConfig, TopologyEntry

BROKER_PORTS = {
    "plaintext": 9092,
    "tls": 9094,
    "iam": 9098,
}


class BrokerProvisioner:
    """Emits the broker cluster and its security group."""

    @property
    def kind(self) -> str:
        return "broker"

    @property
    def display_name(self) -> str:
        return "broker cluster"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: BrokerConfig = entry.validated_configuration()
        assignment = require_assignment(entry, assignment)
        name = entry.name

        # Brokers are spread evenly, so the count must divide across zones
        zone_count = len(assignment.zones)
        if config.broker_count % zone_count:
            raise ValidationError(
                f"broker '{name}' broker_count {config.broker_count} is not a multiple "
                f"of the {zone_count} zones it spans",
                {"entry": name, "broker_count": config.broker_count, "zones": zone_count},
            )

        broker = NodeSpec(
            id=name,
            kind=NodeKind.BROKER,
            configuration={
                "name": name,
                "version": config.version,
                "broker_count": config.broker_count,
                "instance_type": config.instance_type,
                "volume_size": config.volume_size,
                "client_auth": config.client_auth,
                "port": BROKER_PORTS[config.client_auth],
                "zones": list(assignment.zones),
                "subnet_ids": assignment.subnet_ids.placeholder,
            },
            zone=assignment.role.value,
        )

        return ProvisionerOutput(
            primary_id=name,
            nodes=[broker, security_group_node(name, assignment, NodeKind.BROKER)],
            edges=[EdgeSpec(name, security_group_id(name), EdgeKind.CONTAINMENT)],
        )
