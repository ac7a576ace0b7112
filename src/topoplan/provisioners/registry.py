"""Container image registry."""

from __future__ import annotations

from typing import Any, Dict, Optional

from topoplan.context import PlanningContext
from topoplan.graph.models import NodeKind
from topoplan.network.partitions import PartitionAssignment
from topoplan.provisioners.base import NodeSpec, ProvisionerOutput
from topoplan.specs.models import RegistryConfig, TopologyEntry


class RegistryProvisioner:
    @property
    def kind(self) -> str:
        return "registry"

    @property
    def display_name(self) -> str:
        return "container registry"

    def provision(
        self,
        entry: TopologyEntry,
        assignment: Optional[PartitionAssignment],
        ctx: PlanningContext,
    ) -> ProvisionerOutput:
        config: RegistryConfig = entry.validated_configuration()

        configuration: Dict[str, Any] = {
            "name": entry.name,
            "scan_on_push": config.scan_on_push,
            "tag_mutability": config.tag_mutability,
        }
        if config.max_image_count is not None:
            configuration["lifecycle"] = {"max_image_count": config.max_image_count}

        return ProvisionerOutput(
            primary_id=entry.name,
            nodes=[NodeSpec(id=entry.name, kind=NodeKind.REGISTRY, configuration=configuration)],
        )
