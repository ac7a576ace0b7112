"""Tests for core/errors.py.

Tests for the error hierarchy, exit codes and formatting helpers.
"""

import pytest
from structlog.testing import capture_logs
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


class TestExitCodes:
    """Tests for exit code assignment."""

    @pytest.mark.parametrize(
        ("error_class", "code"),
        [
            (ValidationError, ExitCode.VALIDATION_ERROR),
            (DependencyUnresolved, ExitCode.DEPENDENCY_UNRESOLVED),
            (Conflict, ExitCode.CONFLICT),
            (ProvisioningFailure, ExitCode.PROVISIONING_FAILURE),
            (OutputUnavailable, ExitCode.OUTPUT_UNAVAILABLE),
        ],
    )
    def test_exit_code(self, error_class, code):
        """Test each error class carries its exit code."""
        error = error_class("boom")
        assert error.exit_code == code
        assert isinstance(error, TopoplanError)

    def test_base_is_unknown(self):
        assert TopoplanError("boom").exit_code == ExitCode.UNKNOWN_ERROR

    def test_structural_errors(self):
        """Test planning-time errors are marked structural."""
        assert ValidationError("x").structural
        assert DependencyUnresolved("x").structural
        assert Conflict("x").structural
        assert not ProvisioningFailure("x").structural
        assert not OutputUnavailable("x").structural


class TestCycleDetected:
    """Tests for CycleDetected."""

    def test_cycle_in_message_and_details(self):
        error = CycleDetected(["a", "b", "a"])
        assert error.cycle == ["a", "b", "a"]
        assert error.message == "Dependency cycle detected: a -> b -> a"
        assert error.details == {"cycle": ["a", "b", "a"]}
        assert error.exit_code == ExitCode.CYCLE_DETECTED


class TestFormatting:
    """Tests for message formatting and logging."""

    def test_message_without_details(self):
        assert format_error_message(ValidationError("bad input")) == "bad input"

    def test_message_with_details(self):
        error = DependencyUnresolved("missing node", {"node_id": "orders", "edge": "x"})
        assert format_error_message(error) == "missing node (node_id=orders, edge=x)"

    def test_str_is_message(self):
        assert str(Conflict("taken")) == "taken"

    def test_log_error(self):
        """Test errors are logged with their type and details."""
        with capture_logs() as logs:
            log_error(Conflict("taken", {"lookup_key": "k"}))
        assert logs == [
            {
                "event": "topoplan_error",
                "log_level": "error",
                "error_type": "Conflict",
                "message": "taken",
                "exit_code": 10,
                "lookup_key": "k",
            }
        ]
