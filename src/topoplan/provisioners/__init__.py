"""
Service provisioners: one per topology entry kind.

Each provisioner is a pure function of its entry and partition assignment.
"""

from topoplan.provisioners.base import (
    EdgeSpec,
    NodeSpec,
    Provisioner,
    ProvisionerOutput,
    ProvisionerRegistry,
    security_group_id,
)
from topoplan.provisioners.broker import BrokerProvisioner
from topoplan.provisioners.cluster import ClusterProvisioner
from topoplan.provisioners.database import DatabaseClusterProvisioner
from topoplan.provisioners.registry import RegistryProvisioner
from topoplan.provisioners.role import RoleProvisioner
from topoplan.provisioners.table import TableProvisioner


def register_default_provisioners(registry: ProvisionerRegistry) -> ProvisionerRegistry:
    """Register every built-in provisioner."""
    registry.register(ClusterProvisioner())
    registry.register(BrokerProvisioner())
    registry.register(DatabaseClusterProvisioner())
    registry.register(TableProvisioner())
    registry.register(RegistryProvisioner())
    registry.register(RoleProvisioner())
    return registry


def default_registry() -> ProvisionerRegistry:
    return register_default_provisioners(ProvisionerRegistry())


__all__ = [
    "BrokerProvisioner",
    "ClusterProvisioner",
    "DatabaseClusterProvisioner",
    "EdgeSpec",
    "NodeSpec",
    "Provisioner",
    "ProvisionerOutput",
    "ProvisionerRegistry",
    "RegistryProvisioner",
    "RoleProvisioner",
    "TableProvisioner",
    "default_registry",
    "register_default_provisioners",
    "security_group_id",
]
