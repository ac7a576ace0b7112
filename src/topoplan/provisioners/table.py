"""Key-value table."""

from __future__ import annotations

from typing import Any, Dict, Optional

from topoplan.context import PlanningContext
from topoplan.graph.models import NodeKind
from topoplan.network.partitions import PartitionAssignment
from topoplan.provisioners.base import NodeSpec, ProvisionerOutput
from topoplan.specs.models import TableConfig, TopologyEntry


class TableProvisioner:
    @property
    def kind(self) -> str:
        return "table"

    @property
    def display_name(self) -> str:
        return "key-value table"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: TableConfig = entry.validated_configuration()

        configuration: Dict[str, Any] = {
            "name": entry.name,
            "partition_key": config.partition_key.model_dump(),
            "billing_mode": config.billing_mode,
            "point_in_time_recovery": config.point_in_time_recovery,
        }
        if config.sort_key is not None:
            configuration["sort_key"] = config.sort_key.model_dump()
        if config.billing_mode == "provisioned":
            configuration["read_capacity"] = config.read_capacity
            configuration["write_capacity"] = config.write_capacity

        return ProvisionerOutput(
            primary_id=entry.name,
            nodes=[NodeSpec(id=entry.name, kind=NodeKind.TABLE, configuration=configuration)],
        )
