"""
Singleton resolution for account-wide resources.
"""

from topoplan.identity.resolver import (
    ExistenceResolver,
    GlobalSingleton,
    cluster_issuer_identity,
    identity_provider_id,
    normalize_issuer,
)

__all__ = [
    "ExistenceResolver",
    "GlobalSingleton",
    "cluster_issuer_identity",
    "identity_provider_id",
    "normalize_issuer",
]
