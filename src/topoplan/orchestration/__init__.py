"""
Planning and execution orchestration.

PlanBuilder compiles a topology into a ProvisioningPlan; ExecutionEngine
applies or tears it down against a control plane.
"""

from topoplan.orchestration.engine import ExecutionEngine, RetryPolicy
from topoplan.orchestration.plan_builder import (
    PlanBuilder,
    ProvisioningPlan,
    compile_topology,
)
from topoplan.orchestration.results import ApplyResult, NodeReport
from topoplan.orchestration.scheduler import ExecutionOrderScheduler, ProvisioningOperation

__all__ = [
    "ApplyResult",
    "ExecutionEngine",
    "ExecutionOrderScheduler",
    "NodeReport",
    "PlanBuilder",
    "ProvisioningOperation",
    "ProvisioningPlan",
    "RetryPolicy",
    "compile_topology",
]
