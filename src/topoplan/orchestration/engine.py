"""
Execution engine.

Applies a provisioning plan against a control plane. Operations whose
dependencies are all provisioned run concurrently up to a bound; a failure
freezes the failing node's dependents while independent subtrees continue.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from topoplan.config.settings import Settings, get_settings
from topoplan.core.errors import ProvisioningFailure, ValidationError, log_error
from topoplan.graph.models import NodeStatus, ResourceNode, ValueRef, substitute_references
from topoplan.graph.resource_graph import ResourceGraph
from topoplan.logging import bind_run_context, clear_run_context
from topoplan.orchestration.plan_builder import ProvisioningPlan
from topoplan.orchestration.results import ApplyResult
from topoplan.orchestration.scheduler import ProvisioningOperation
from topoplan.providers.base import ControlPlane

logger = structlog.get_logger()


class ResourceNotReady(ProvisioningFailure):
    """The resource exists but has not reached ``available`` yet."""


class ResourceFailed(ProvisioningFailure):
    """The control plane reports the resource in a terminal failed state."""


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(error, ResourceNotReady):
        return
    logger.warning(
        "operation_retry",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff for control plane calls."""

    max_attempts: int = 5
    multiplier: float = 1.0
    max_wait: float = 30.0
    poll_attempts: int = 30

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RetryPolicy:
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.max_attempts,
            multiplier=settings.backoff_multiplier,
            max_wait=settings.backoff_max,
            poll_attempts=settings.describe_poll_attempts,
        )

    def calls(self) -> AsyncRetrying:
        """Retrying for create, delete and describe calls."""
        return AsyncRetrying(
            retry=retry_if_exception_type(ProvisioningFailure)
            & retry_if_not_exception_type(ResourceFailed),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.multiplier, max=self.max_wait),
            before_sleep=_log_retry,
            reraise=True,
        )

    def polling(self) -> AsyncRetrying:
        """Retrying for waiting on ``available``."""
        return AsyncRetrying(
            retry=retry_if_exception_type(ProvisioningFailure)
            & retry_if_not_exception_type(ResourceFailed),
            stop=stop_after_attempt(self.poll_attempts),
            wait=wait_exponential(multiplier=self.multiplier, max=self.max_wait),
            before_sleep=_log_retry,
            reraise=True,
        )


class ExecutionEngine:
    """Runs a plan's operations against a control plane."""

    def __init__(
        self,
        control_plane: ControlPlane,
        retry_policy: RetryPolicy | None = None,
        max_parallel: int | None = None,
    ) -> None:
        self._control_plane = control_plane
        self._retry = retry_policy or RetryPolicy.from_settings()
        self._max_parallel = max_parallel or get_settings().max_parallel
        if self._max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")

    async def apply(self, plan: ProvisioningPlan) -> ApplyResult:
        """
        Provision every operation in the plan.

        Raises:
            TopoplanError: The plan's first planning error; nothing is called
        """
        if not plan.success:
            for error in plan.errors:
                log_error(error, "plan_refused")
            plan.raise_for_errors()
        if not plan.operations and len(plan.graph):
            raise ValidationError("Plan has no scheduled operations", {"topology": plan.topology})

        bind_run_context(plan.context.topology_name, plan.context.account, plan.context.region)
        try:
            return await self._apply(plan)
        finally:
            clear_run_context()

    async def _apply(self, plan: ProvisioningPlan) -> ApplyResult:
        started = time.monotonic()
        graph = plan.graph
        result = ApplyResult(topology=plan.topology)
        done = {op.node_id: asyncio.Event() for op in plan.operations}
        semaphore = asyncio.Semaphore(self._max_parallel)

        async def run(op: ProvisioningOperation) -> None:
            node = graph.node(op.node_id)
            try:
                for dep in op.depends_on:
                    await done[dep].wait()

                blockers = tuple(
                    d for d in op.depends_on if graph.node(d).status is not NodeStatus.PROVISIONED
                )
                if blockers:
                    node.status = NodeStatus.BLOCKED
                    logger.warning("node_blocked", node_id=node.id, blocked_by=list(blockers))
                    result.record(node.id, node.kind, node.status, blocked_by=blockers)
                    return

                if node.status is not NodeStatus.PROVISIONED:
                    async with semaphore:
                        await self._provision(graph, node, op)
                result.record(node.id, node.kind, node.status, provider_id=node.provider_id)
            except ProvisioningFailure as e:
                node.status = NodeStatus.FAILED
                logger.error(
                    "node_failed",
                    node_id=node.id,
                    error=e.message,
                    dependents=graph.transitive_dependents(node.id),
                )
                result.record(node.id, node.kind, node.status, error=e.message)
            except Exception as e:
                node.status = NodeStatus.FAILED
                message = f"{type(e).__name__}: {e}"
                logger.exception(
                    "node_failed",
                    node_id=node.id,
                    error=message,
                    dependents=graph.transitive_dependents(node.id),
                )
                result.record(node.id, node.kind, node.status, error=message)
            finally:
                done[op.node_id].set()

        await asyncio.gather(*(run(op) for op in plan.operations))

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "apply_finished",
            provisioned=len(result.provisioned),
            failed=len(result.failed),
            blocked=len(result.blocked),
        )
        return result

    async def _provision(
        self, graph: ResourceGraph, node: ResourceNode, op: ProvisioningOperation
    ) -> None:
        if node.is_bound:
            provider_id = node.existing_reference or ""
            logger.debug("node_bound", node_id=node.id, reference=provider_id)
        else:
            configuration = substitute_references(
                node.configuration, lambda ref: _resolved_value(graph, ref)
            )
            provider_id = await self._retry.calls()(
                self._control_plane.create,
                node.kind.value,
                configuration,
                idempotency_key=op.idempotency_key,
            )
        node.provider_id = provider_id

        state = await self._retry.polling()(self._describe, provider_id)
        node.resolved = {k: v for k, v in state.items() if k != "state"}
        node.status = NodeStatus.PROVISIONED
        logger.info("node_provisioned", node_id=node.id, provider_id=provider_id)

    async def _describe(self, provider_id: str) -> dict[str, Any]:
        state = await self._control_plane.describe(provider_id)
        status = state.get("state")
        if status == "failed":
            raise ResourceFailed(
                f"Resource '{provider_id}' entered failed state", {"provider_id": provider_id}
            )
        if status != "available":
            raise ResourceNotReady(
                f"Resource '{provider_id}' is {status}", {"provider_id": provider_id}
            )
        return state

    async def teardown(self, plan: ProvisioningPlan) -> ApplyResult:
        """
        Delete provisioned nodes one at a time in reverse plan order.

        Nodes bound to pre-existing resources are left in place. A node whose
        dependents could not be deleted is kept as well.
        """
        bind_run_context(plan.context.topology_name, plan.context.account, plan.context.region)
        try:
            return await self._teardown(plan)
        finally:
            clear_run_context()

    async def _teardown(self, plan: ProvisioningPlan) -> ApplyResult:
        started = time.monotonic()
        graph = plan.graph
        result = ApplyResult(topology=plan.topology)

        for op in reversed(plan.operations):
            node = graph.node(op.node_id)
            if node.status is not NodeStatus.PROVISIONED:
                result.record(node.id, node.kind, node.status)
                continue
            if node.is_bound:
                logger.info("node_kept", node_id=node.id, reference=node.existing_reference)
                result.record(node.id, node.kind, node.status, provider_id=node.provider_id)
                continue

            holders = tuple(
                d for d in graph.successors(node.id)
                if graph.node(d).status is NodeStatus.PROVISIONED and not graph.node(d).is_bound
            )
            if holders:
                logger.warning("node_held", node_id=node.id, held_by=list(holders))
                result.record(
                    node.id,
                    node.kind,
                    node.status,
                    provider_id=node.provider_id,
                    error=f"dependents still provisioned: {', '.join(holders)}",
                    blocked_by=holders,
                )
                continue

            provider_id = node.provider_id or ""
            try:
                await self._retry.calls()(
                    self._control_plane.delete, provider_id, idempotency_key=op.idempotency_key
                )
            except ProvisioningFailure as e:
                logger.error("node_delete_failed", node_id=node.id, error=e.message)
                result.record(
                    node.id, node.kind, node.status, provider_id=provider_id, error=e.message
                )
                continue
            except Exception as e:
                message = f"{type(e).__name__}: {e}"
                logger.exception("node_delete_failed", node_id=node.id, error=message)
                result.record(
                    node.id, node.kind, node.status, provider_id=provider_id, error=message
                )
                continue

            node.status = NodeStatus.RETIRED
            logger.info("node_retired", node_id=node.id, provider_id=provider_id)
            result.record(node.id, node.kind, node.status, provider_id=provider_id)

        result.duration_seconds = time.monotonic() - started
        return result


def _resolved_value(graph: ResourceGraph, ref: ValueRef) -> Any:
    node = graph.node(ref.node_id)
    if ref.field not in node.resolved:
        raise ProvisioningFailure(
            f"{ref.placeholder} is not available from '{ref.node_id}'",
            {"reference": ref.placeholder, "status": node.status.value},
        )
    return node.resolved[ref.field]
