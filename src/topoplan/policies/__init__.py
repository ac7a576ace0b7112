"""
Network rules and identity policies derived from the resource graph.
"""

from topoplan.policies.synthesizer import (
    AccessPolicySynthesizer,
    IdentityBinding,
    PermissionStatement,
    PrincipalCondition,
    SecurityRule,
    SynthesisResult,
    TrustPolicy,
    provider_for_principal,
)

__all__ = [
    "AccessPolicySynthesizer",
    "IdentityBinding",
    "PermissionStatement",
    "PrincipalCondition",
    "SecurityRule",
    "SynthesisResult",
    "TrustPolicy",
    "provider_for_principal",
]
