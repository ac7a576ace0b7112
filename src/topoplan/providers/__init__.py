"""
Control plane and existence check contracts, plus in-memory implementations.
"""

from topoplan.providers.base import ControlPlane, ExistenceCheck, ExistingResource
from topoplan.providers.memory import InMemoryControlPlane, InMemoryExistenceCheck

__all__ = [
    "ControlPlane",
    "ExistenceCheck",
    "ExistingResource",
    "InMemoryControlPlane",
    "InMemoryExistenceCheck",
]
