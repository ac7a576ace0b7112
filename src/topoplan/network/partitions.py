"""
Network partition planning.

Splits the network address block into one non-overlapping block per
partition role and each role block into equal per-zone subnets. Every
networked resource is placed in exactly one partition.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from topoplan.core.errors import ValidationError
from topoplan.graph.models import ValueRef
from topoplan.specs.models import NetworkSpec

logger = structlog.get_logger()


class PartitionRole(Enum):
    """Subnet classes, in address-allocation order."""

    PUBLIC = "public"
    PRIVATE_EGRESS = "private-egress"
    PRIVATE_ISOLATED = "private-isolated"


EGRESS_BY_ROLE = {
    PartitionRole.PUBLIC: "internet-gateway",
    PartitionRole.PRIVATE_EGRESS: "nat-gateway",
    PartitionRole.PRIVATE_ISOLATED: "none",
}

# Placement when an entry does not declare a role
DEFAULT_ROLE_BY_KIND = {
    "cluster": PartitionRole.PRIVATE_EGRESS,
    "broker": PartitionRole.PRIVATE_EGRESS,
    "database-cluster": PartitionRole.PRIVATE_ISOLATED,
}

# Regional services that are never placed in a subnet
REGIONAL_KINDS = frozenset({"table", "registry", "role"})

# Smallest subnet the control plane accepts
MAX_IPV4_PREFIX = 28


def partition_node_id(role: PartitionRole) -> str:
    return f"partition-{role.value}"


@dataclass(frozen=True)
class Subnet:
    zone: str
    cidr: str


@dataclass(frozen=True)
class Partition:
    """One subnet class spread across the planned zones."""

    role: PartitionRole
    cidr: str
    subnets: tuple[Subnet, ...]
    gateway_endpoints: tuple[str, ...] = ()

    @property
    def node_id(self) -> str:
        return partition_node_id(self.role)

    @property
    def zones(self) -> tuple[str, ...]:
        return tuple(s.zone for s in self.subnets)

    def to_configuration(self, network_cidr: str) -> dict[str, Any]:
        """Configuration handed to the control plane for this partition."""
        return {
            "name": self.node_id,
            "network_cidr": network_cidr,
            "role": self.role.value,
            "cidr": self.cidr,
            "egress": EGRESS_BY_ROLE[self.role],
            "subnets": [{"zone": s.zone, "cidr": s.cidr} for s in self.subnets],
            "gateway_endpoints": list(self.gateway_endpoints),
        }


@dataclass(frozen=True)
class PartitionAssignment:
    """Where a provisioner's nodes live."""

    role: PartitionRole
    partition_node_id: str
    zones: tuple[str, ...]

    @property
    def subnet_ids(self) -> ValueRef:
        return ValueRef(self.partition_node_id, "subnet_ids")

    @property
    def network_id(self) -> ValueRef:
        return ValueRef(self.partition_node_id, "network_id")


@dataclass(frozen=True)
class NetworkLayout:
    """
    Result of partition planning.

    The network is split into power-of-two role blocks and each role block
    into power-of-two zone blocks. With three roles the network is cut into
    quarters, so the fourth quarter is never allocated; with three zones the
    same holds for the last quarter of every role block. Disabled roles keep
    their block unallocated too.
    """

    cidr: str
    zones: tuple[str, ...]
    partitions: dict[PartitionRole, Partition] = field(default_factory=dict)

    def assign(self, kind: str, declared_role: str | None) -> PartitionAssignment | None:
        """
        Place a resource of ``kind`` in a partition.

        Returns None for regional kinds. Raises ValidationError when the
        declared role is unknown or has no enabled partition.
        """
        if kind in REGIONAL_KINDS:
            if declared_role is not None:
                raise ValidationError(
                    f"{kind} resources are regional and cannot declare a partition role",
                    {"kind": kind, "role": declared_role},
                )
            return None

        if declared_role is None:
            role = DEFAULT_ROLE_BY_KIND[kind]
        else:
            role = _parse_role(declared_role)

        partition = self.partitions.get(role)
        if partition is None:
            raise ValidationError(
                f"No partition for role '{role.value}'",
                {"kind": kind, "role": role.value, "enabled": [r.value for r in self.partitions]},
            )
        return PartitionAssignment(
            role=role,
            partition_node_id=partition.node_id,
            zones=partition.zones,
        )


def _parse_role(value: str) -> PartitionRole:
    try:
        return PartitionRole(value)
    except ValueError:
        raise ValidationError(
            f"Unknown partition role '{value}'",
            {"role": value, "valid": [r.value for r in PartitionRole]},
        ) from None


def _bits_for(count: int) -> int:
    return (count - 1).bit_length()


class NetworkPartitionPlanner:
    """Derives partitions and per-zone subnets from a network CIDR."""

    def __init__(self, cidr: str, max_zones: int, region: str) -> None:
        self._cidr = cidr
        self._max_zones = max_zones
        self._region = region

    def plan(self, spec: NetworkSpec | None = None) -> NetworkLayout:
        spec = spec or NetworkSpec()
        cidr = spec.cidr or self._cidr
        max_zones = spec.max_zones or self._max_zones

        if max_zones < 1:
            raise ValidationError("max_zones must be at least 1", {"max_zones": max_zones})

        try:
            network = ipaddress.ip_network(cidr, strict=True)
        except ValueError as e:
            raise ValidationError(f"Invalid network CIDR '{cidr}': {e}", {"cidr": cidr}) from e

        enabled: list[PartitionRole] = []
        for name in spec.roles:
            role = _parse_role(name)
            if role not in enabled:
                enabled.append(role)

        role_bits = _bits_for(len(PartitionRole))
        zone_bits = _bits_for(max_zones)
        max_prefix = MAX_IPV4_PREFIX if network.version == 4 else 64
        if network.prefixlen + role_bits + zone_bits > max_prefix:
            raise ValidationError(
                f"Network {cidr} is too small for {len(PartitionRole)} partitions "
                f"across {max_zones} zones",
                {"cidr": cidr, "max_zones": max_zones},
            )

        zones = tuple(f"{self._region}{chr(ord('a') + i)}" for i in range(max_zones))

        # Blocks are allocated by role position so disabling a role never
        # moves the address space of the others.
        role_blocks = list(network.subnets(prefixlen_diff=role_bits))
        partitions: dict[PartitionRole, Partition] = {}
        for index, role in enumerate(PartitionRole):
            if role not in enabled:
                continue
            block = role_blocks[index]
            zone_blocks = list(block.subnets(prefixlen_diff=zone_bits))[:max_zones]
            endpoints = () if role is PartitionRole.PUBLIC else tuple(spec.gateway_endpoints)
            partitions[role] = Partition(
                role=role,
                cidr=str(block),
                subnets=tuple(
                    Subnet(zone=zone, cidr=str(sub))
                    for zone, sub in zip(zones, zone_blocks, strict=True)
                ),
                gateway_endpoints=endpoints,
            )

        logger.debug(
            "network_planned",
            cidr=str(network),
            zones=len(zones),
            partitions=[r.value for r in partitions],
        )
        return NetworkLayout(cidr=str(network), zones=zones, partitions=partitions)
