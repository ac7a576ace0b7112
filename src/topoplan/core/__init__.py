"""Core modules for Topoplan - centralized error definitions."""

from topoplan.core.errors import (
    Conflict,
    CycleDetected,
    DependencyUnresolved,
    ExitCode,
    OutputUnavailable,
    ProvisioningFailure,
    TopoplanError,
    ValidationError,
    format_error_message,
    log_error,
)

__all__ = [
    "ExitCode",
    "TopoplanError",
    "ValidationError",
    "DependencyUnresolved",
    "CycleDetected",
    "Conflict",
    "ProvisioningFailure",
    "OutputUnavailable",
    "format_error_message",
    "log_error",
]
