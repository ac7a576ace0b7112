"""
Planning context.

An immutable bundle of everything a planning run needs to know about its
target: account, region, network defaults and the injected existence check.
Every planning component receives it explicitly.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from topoplan.config.settings import Settings, get_settings

if TYPE_CHECKING:
    from topoplan.providers.base import ExistenceCheck
    from topoplan.specs.models import Topology


@dataclass(frozen=True)
class PlanningContext:
    """Shared, read-only context passed to all planning components."""

    topology_name: str
    account: str
    region: str
    cidr: str = "10.0.0.0/16"
    max_zones: int = 3
    partition: str = "aws"
    existence_check: ExistenceCheck | None = None

    @classmethod
    def for_topology(
        cls,
        topology: Topology,
        settings: Settings | None = None,
        existence_check: ExistenceCheck | None = None,
    ) -> PlanningContext:
        """Build a context, letting the topology override settings."""
        settings = settings or get_settings()
        return cls(
            topology_name=topology.name,
            account=topology.topology.account or settings.account_id,
            region=topology.topology.region or settings.region,
            cidr=topology.network.cidr or settings.vpc_cidr,
            max_zones=topology.network.max_zones or settings.max_zones,
            partition=settings.partition,
            existence_check=existence_check,
        )

    def arn(self, service: str, resource: str, *, regional: bool = True) -> str:
        """Build an ARN in this account (and region, unless global)."""
        region = self.region if regional else ""
        return f"arn:{self.partition}:{service}:{region}:{self.account}:{resource}"

    def idempotency_key(self, node_id: str) -> str:
        """Stable token for retrying the operation of ``node_id``."""
        raw = f"{self.account}/{self.region}/{self.topology_name}/{node_id}"
        return hashlib.sha256(raw.encode()).hexdigest()[:32]
