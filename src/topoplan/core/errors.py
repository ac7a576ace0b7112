"""
Unified error types for topology planning and provisioning.

Structural errors (validation, unresolved dependencies, cycles, singleton
conflicts) are raised or collected at planning time, before any call to the
control plane. Provisioning failures are localized to a single node.

Exit Codes:
- 0: Success
- 1: Partial (some nodes failed or were blocked)
- 10: Conflict (inconsistent existing state, operator action required)
- 11: Provisioning failure (control plane error)
- 12: Validation error
- 13: Unresolved dependency
- 14: Cycle detected
- 15: Output unavailable
- 127: Unknown/internal error
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for callers that surface errors as processes."""

    SUCCESS = 0
    PARTIAL = 1
    CONFLICT = 10
    PROVISIONING_FAILURE = 11
    VALIDATION_ERROR = 12
    DEPENDENCY_UNRESOLVED = 13
    CYCLE_DETECTED = 14
    OUTPUT_UNAVAILABLE = 15
    UNKNOWN_ERROR = 127


class TopoplanError(Exception):
    """Base exception for Topoplan errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    structural: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TopoplanError):
    """Raised for malformed or unknown topology configuration."""

    exit_code = ExitCode.VALIDATION_ERROR
    structural = True


class DependencyUnresolved(TopoplanError):
    """Raised when an edge or reference names a node that is not in the graph."""

    exit_code = ExitCode.DEPENDENCY_UNRESOLVED
    structural = True


class CycleDetected(TopoplanError):
    """Raised when no provisioning order exists."""

    exit_code = ExitCode.CYCLE_DETECTED
    structural = True

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            {"cycle": cycle},
        )
        self.cycle = cycle


class Conflict(TopoplanError):
    """Raised when a singleton resolves to inconsistent existing state."""

    exit_code = ExitCode.CONFLICT
    structural = True


class ProvisioningFailure(TopoplanError):
    """Raised when a control plane operation fails. Retryable."""

    exit_code = ExitCode.PROVISIONING_FAILURE


class OutputUnavailable(TopoplanError):
    """Raised when an output is projected from a node that is not provisioned."""

    exit_code = ExitCode.OUTPUT_UNAVAILABLE


def format_error_message(error: TopoplanError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def log_error(error: TopoplanError, event: str = "topoplan_error") -> None:
    """Emit a structured log line for an error."""
    logger.error(
        event,
        error_type=type(error).__name__,
        message=error.message,
        exit_code=int(error.exit_code),
        **error.details,
    )
