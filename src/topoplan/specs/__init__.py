"""
Topology specification: schema models and YAML loading.
"""

from topoplan.specs.loader import load_topology, parse_topology
from topoplan.specs.models import (
    CONFIG_SCHEMAS,
    PARTITION_ROLES,
    AdminAccess,
    BrokerConfig,
    ClusterConfig,
    DatabaseClusterConfig,
    NetworkSpec,
    OutputDeclaration,
    PermissionRequest,
    PrincipalSpec,
    RegistryConfig,
    RoleConfig,
    TableConfig,
    Topology,
    TopologyEntry,
    TopologyMeta,
)

__all__ = [
    "CONFIG_SCHEMAS",
    "PARTITION_ROLES",
    "AdminAccess",
    "BrokerConfig",
    "ClusterConfig",
    "DatabaseClusterConfig",
    "NetworkSpec",
    "OutputDeclaration",
    "PermissionRequest",
    "PrincipalSpec",
    "RegistryConfig",
    "RoleConfig",
    "TableConfig",
    "Topology",
    "TopologyEntry",
    "TopologyMeta",
    "load_topology",
    "parse_topology",
]
