"""Network partition planning."""

from topoplan.network.partitions import (
    DEFAULT_ROLE_BY_KIND,
    REGIONAL_KINDS,
    NetworkLayout,
    NetworkPartitionPlanner,
    Partition,
    PartitionAssignment,
    PartitionRole,
    Subnet,
    partition_node_id,
)

__all__ = [
    "DEFAULT_ROLE_BY_KIND",
    "REGIONAL_KINDS",
    "NetworkLayout",
    "NetworkPartitionPlanner",
    "Partition",
    "PartitionAssignment",
    "PartitionRole",
    "Subnet",
    "partition_node_id",
]
