"""
Named outputs read from provisioned nodes.
"""

from topoplan.outputs.projector import (
    SENSITIVE_FIELDS,
    OutputProjector,
    OutputSpec,
    ProjectedOutput,
    is_sensitive,
)

__all__ = [
    "OutputProjector",
    "OutputSpec",
    "ProjectedOutput",
    "SENSITIVE_FIELDS",
    "is_sensitive",
]
