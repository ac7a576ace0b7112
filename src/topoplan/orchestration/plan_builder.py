"""
Plan builder.

Compiles a validated topology into a provisioning plan: partitions, then
per-entry provisioners, then relationship edges, then synthesized policies,
then the execution order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from topoplan.context import PlanningContext
from topoplan.core.errors import (
    CycleDetected,
    DependencyUnresolved,
    TopoplanError,
    ValidationError,
)
from topoplan.graph.models import EdgeKind, NodeKind
from topoplan.graph.resource_graph import ResourceGraph
from topoplan.identity.resolver import ExistenceResolver, GlobalSingleton
from topoplan.logging import bind_run_context, clear_run_context
from topoplan.network.partitions import NetworkLayout, NetworkPartitionPlanner
from topoplan.orchestration.scheduler import ExecutionOrderScheduler, ProvisioningOperation
from topoplan.outputs.projector import OutputSpec
from topoplan.policies.synthesizer import AccessPolicySynthesizer, IdentityBinding, SecurityRule
from topoplan.provisioners import default_registry
from topoplan.provisioners.base import ProvisionerOutput, ProvisionerRegistry
from topoplan.specs.models import PrincipalSpec, Topology, TopologyEntry

logger = structlog.get_logger()

# Kinds that own a security group and can take part in network access
NETWORKED_KINDS = frozenset({"cluster", "broker", "database-cluster"})


@dataclass
class ProvisioningPlan:
    """Everything needed to execute, inspect or tear down a topology."""

    topology: str
    context: PlanningContext
    graph: ResourceGraph
    layout: NetworkLayout | None = None
    operations: list[ProvisioningOperation] = field(default_factory=list)
    security_rules: list[SecurityRule] = field(default_factory=list)
    bindings: list[IdentityBinding] = field(default_factory=list)
    singletons: list[GlobalSingleton] = field(default_factory=list)
    outputs: list[OutputSpec] = field(default_factory=list)
    errors: list[TopoplanError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether planning finished without errors."""
        return len(self.errors) == 0

    def raise_for_errors(self) -> None:
        """Raise the first recorded planning error, if any."""
        if self.errors:
            raise self.errors[0]

    @property
    def order(self) -> list[str]:
        return [op.node_id for op in self.operations]

    def operation(self, node_id: str) -> ProvisioningOperation | None:
        return next((op for op in self.operations if op.node_id == node_id), None)

    def to_dict(self) -> dict[str, Any]:
        """Deterministic, JSON-ready view of the plan."""
        return {
            "topology": self.topology,
            "account": self.context.account,
            "region": self.context.region,
            "graph": self.graph.to_dict(),
            "operations": [op.to_dict() for op in self.operations],
            "security_rules": [rule.to_dict() for rule in self.security_rules],
            "bindings": [binding.to_dict() for binding in self.bindings],
            "singletons": [
                {
                    "lookup_key": s.lookup_key,
                    "node_id": s.node_id,
                    "existing_reference": s.existing_reference,
                }
                for s in self.singletons
            ],
            "outputs": [
                {"name": o.name, "node": o.node_id, "field": o.field, "sensitive": o.sensitive}
                for o in self.outputs
            ],
            "errors": [
                {"type": type(e).__name__, "message": e.message, "exit_code": int(e.exit_code)}
                for e in self.errors
            ],
        }


class PlanBuilder:
    """Builds a provisioning plan by delegating to registered provisioners."""

    def __init__(
        self,
        ctx: PlanningContext,
        registry: ProvisionerRegistry | None = None,
    ) -> None:
        self.ctx = ctx
        self._registry = registry or default_registry()

    def build(self, topology: Topology) -> ProvisioningPlan:
        bind_run_context(self.ctx.topology_name, self.ctx.account, self.ctx.region)
        try:
            return self._build(topology)
        finally:
            clear_run_context()

    def _build(self, topology: Topology) -> ProvisioningPlan:
        graph = ResourceGraph()
        plan = ProvisioningPlan(topology=topology.name, context=self.ctx, graph=graph)

        try:
            layout = NetworkPartitionPlanner(
                self.ctx.cidr, self.ctx.max_zones, self.ctx.region
            ).plan(topology.network)
        except ValidationError as e:
            logger.error("network_rejected", error=e.message)
            plan.errors.append(e)
            return plan
        plan.layout = layout

        for role in sorted(layout.partitions, key=lambda r: r.value):
            partition = layout.partitions[role]
            graph.add_node(
                NodeKind.PARTITION,
                partition.to_configuration(layout.cidr),
                node_id=partition.node_id,
            )

        planned: dict[str, TopologyEntry] = {}
        for entry in topology.resources:
            try:
                self._provision(graph, layout, entry)
            except ValidationError as e:
                logger.warning("entry_rejected", entry=entry.name, kind=entry.kind, error=e.message)
                plan.errors.append(e)
                continue
            planned[entry.name] = entry

        resolver = ExistenceResolver(self.ctx)
        for entry in planned.values():
            plan.errors.extend(self._relate(graph, topology, planned, resolver, entry))
        plan.singletons = resolver.resolved()

        for node in graph.nodes():
            try:
                graph.order_references(node.id)
            except DependencyUnresolved as e:
                plan.errors.append(e)

        synthesis = AccessPolicySynthesizer(self.ctx).synthesize(graph, topology)
        plan.security_rules = synthesis.security_rules
        plan.bindings = synthesis.bindings
        plan.errors.extend(synthesis.errors)

        for declaration in topology.outputs:
            spec = OutputSpec.from_declaration(declaration)
            if spec.node_id not in graph:
                plan.errors.append(
                    DependencyUnresolved(
                        f"Output '{spec.name}' refers to unknown node '{spec.node_id}'",
                        {"output": spec.name, "node_id": spec.node_id},
                    )
                )
                continue
            plan.outputs.append(spec)

        try:
            plan.operations = ExecutionOrderScheduler(self.ctx).schedule(graph)
        except (CycleDetected, DependencyUnresolved) as e:
            plan.errors.append(e)
            plan.operations = []

        logger.info(
            "plan_built",
            nodes=len(graph),
            operations=len(plan.operations),
            errors=len(plan.errors),
        )
        return plan

    def _provision(self, graph: ResourceGraph, layout: NetworkLayout, entry: TopologyEntry) -> None:
        provisioner = self._registry.get(entry.kind)
        if provisioner is None:
            raise ValidationError(
                f"No provisioner for kind '{entry.kind}'",
                {"entry": entry.name, "kind": entry.kind},
            )
        assignment = layout.assign(entry.kind, entry.role)
        output: ProvisionerOutput = provisioner.provision(entry, assignment, self.ctx)

        # An entry is added whole or not at all
        taken = sorted(node_id for node_id in output.node_ids if node_id in graph)
        if taken:
            raise ValidationError(
                f"{entry.kind} '{entry.name}' emits node ids already in use: {', '.join(taken)}",
                {"entry": entry.name, "node_ids": taken},
            )

        for spec in output.nodes:
            graph.add_node(spec.kind, spec.configuration, node_id=spec.id, zone=spec.zone)
        for edge in output.edges:
            graph.add_edge(edge.from_id, edge.to_id, edge.kind)
        if assignment is not None:
            graph.add_edge(assignment.partition_node_id, output.primary_id, EdgeKind.CONTAINMENT)

        logger.debug(
            "entry_provisioned",
            entry=entry.name,
            provisioner=provisioner.display_name,
            nodes=len(output.nodes),
        )

    def _relate(
        self,
        graph: ResourceGraph,
        topology: Topology,
        planned: dict[str, TopologyEntry],
        resolver: ExistenceResolver,
        entry: TopologyEntry,
    ) -> list[TopoplanError]:
        """Add edges for one entry's declared relationships."""
        errors: list[TopoplanError] = []

        for target in sorted(set(entry.access_to)):
            try:
                self._require_planned(topology, planned, entry, target, "accessTo")
                if entry.kind not in NETWORKED_KINDS or planned[target].kind not in NETWORKED_KINDS:
                    raise ValidationError(
                        f"Network access from {entry.kind} '{entry.name}' to "
                        f"{planned[target].kind} '{target}' is not supported",
                        {"from": entry.name, "to": target},
                    )
                graph.add_edge(entry.name, target, EdgeKind.NETWORK_ACCESS)
            except TopoplanError as e:
                errors.append(e)

        for target in sorted(set(entry.depends_on)):
            try:
                self._require_planned(topology, planned, entry, target, "dependsOn")
                graph.add_edge(target, entry.name, EdgeKind.EXPLICIT_ORDER)
            except TopoplanError as e:
                errors.append(e)

        if entry.trusted_by and entry.kind != "role":
            errors.append(
                ValidationError(
                    f"{entry.kind} '{entry.name}' cannot declare trustedBy; only roles can",
                    {"entry": entry.name},
                )
            )
            return errors

        for principal in entry.trusted_by:
            try:
                self._trust(graph, topology, planned, resolver, entry, principal)
            except TopoplanError as e:
                errors.append(e)

        return errors

    def _trust(
        self,
        graph: ResourceGraph,
        topology: Topology,
        planned: dict[str, TopologyEntry],
        resolver: ExistenceResolver,
        role: TopologyEntry,
        principal: PrincipalSpec,
    ) -> None:
        if principal.cluster is not None:
            self._require_planned(topology, planned, role, principal.cluster, "trustedBy")
            if planned[principal.cluster].kind != "cluster":
                raise ValidationError(
                    f"Role '{role.name}' trusts '{principal.cluster}', which is not a cluster",
                    {"role": role.name, "principal": principal.cluster},
                )
            singleton = resolver.resolve_identity_provider(graph, cluster_id=principal.cluster)
            if not singleton.bound and graph.parent(singleton.node_id) is None:
                graph.add_edge(principal.cluster, singleton.node_id, EdgeKind.CONTAINMENT)
        else:
            singleton = resolver.resolve_identity_provider(graph, issuer_url=principal.issuer)

        graph.add_edge(singleton.node_id, role.name, EdgeKind.TRUST)

    @staticmethod
    def _require_planned(
        topology: Topology,
        planned: dict[str, TopologyEntry],
        entry: TopologyEntry,
        target: str,
        relation: str,
    ) -> None:
        if target in planned:
            return
        if topology.entry(target) is None:
            message = f"'{entry.name}' {relation} '{target}', which is not declared"
        else:
            message = f"'{entry.name}' {relation} '{target}', which failed validation"
        raise DependencyUnresolved(message, {"entry": entry.name, "target": target})


def compile_topology(
    topology: Topology,
    context: PlanningContext | None = None,
    registry: ProvisionerRegistry | None = None,
) -> ProvisioningPlan:
    """Build a plan and raise its first error, if any."""
    ctx = context or PlanningContext.for_topology(topology)
    plan = PlanBuilder(ctx, registry).build(topology)
    plan.raise_for_errors()
    return plan
