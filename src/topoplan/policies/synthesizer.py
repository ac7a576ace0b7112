"""
Access policy synthesizer.

Derives network rules, trust policies and permission documents from the
completed graph. Runs after every provisioner and the existence resolver,
so all nodes (and the identity providers they trust) are known.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from topoplan.context import PlanningContext
from topoplan.core.errors import TopoplanError, ValidationError
from topoplan.graph.models import EdgeKind, ValueRef
from topoplan.graph.resource_graph import ResourceGraph
from topoplan.identity.resolver import (
    cluster_issuer_identity,
    identity_provider_id,
    normalize_issuer,
)
from topoplan.provisioners.base import security_group_id
from topoplan.provisioners.role import POLICY_VERSION, policy_id
from topoplan.specs.models import (
    AdminAccess,
    PermissionRequest,
    PrincipalSpec,
    Topology,
    TopologyEntry,
)

logger = structlog.get_logger()

ASSUME_ROLE_ACTION = "sts:AssumeRoleWithWebIdentity"


@dataclass(frozen=True)
class SecurityRule:
    """
    Ingress allowed into ``target_id``.

    The source is either another node's security group (``source_id``) or
    an address range (``source_cidr``) for administrative access.
    """

    target_id: str
    protocol: str
    port_from: int
    port_to: int
    source_id: str | None = None
    source_cidr: str | None = None
    direction: str = "ingress"

    @property
    def sort_key(self) -> tuple[str, str, str, int]:
        return (self.target_id, self.source_id or "", self.source_cidr or "", self.port_from)

    def ingress_entry(self) -> dict[str, Any]:
        """Security group ingress entry for this rule."""
        entry: dict[str, Any] = {
            "protocol": self.protocol,
            "from_port": self.port_from,
            "to_port": self.port_to,
        }
        if self.source_id is not None:
            entry["source_group_id"] = ValueRef(self.source_id, "group_id").placeholder
            entry["description"] = f"from {self.source_id}"
        else:
            entry["cidr"] = self.source_cidr
            entry["description"] = f"admin from {self.source_cidr}"
        return entry

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "target": self.target_id,
            "protocol": self.protocol,
            "port_range": [self.port_from, self.port_to],
            "direction": self.direction,
        }
        if self.source_id is not None:
            result["source"] = self.source_id
        if self.source_cidr is not None:
            result["source_cidr"] = self.source_cidr
        return result


@dataclass(frozen=True)
class PrincipalCondition:
    """Issuer plus the subject a web identity token must carry."""

    provider_id: str
    issuer_host: str
    subject_pattern: str
    audience: str

    @property
    def operator(self) -> str:
        return "StringLike" if "*" in self.subject_pattern else "StringEquals"

    def to_condition(self) -> dict[str, dict[str, str]]:
        return {
            self.operator: {
                f"{self.issuer_host}:sub": self.subject_pattern,
                f"{self.issuer_host}:aud": self.audience,
            }
        }


@dataclass(frozen=True)
class TrustPolicy:
    principal: PrincipalCondition
    resource_arn_pattern: str
    actions: frozenset[str] = frozenset({ASSUME_ROLE_ACTION})

    def to_statement(self) -> dict[str, Any]:
        return {
            "Effect": "Allow",
            "Principal": {"Federated": ValueRef(self.principal.provider_id, "arn").placeholder},
            "Action": sorted(self.actions)[0] if len(self.actions) == 1 else sorted(self.actions),
            "Condition": self.principal.to_condition(),
        }


@dataclass(frozen=True)
class PermissionStatement:
    """Actions allowed on resources of one kind."""

    resource_kind: str
    actions: tuple[str, ...]
    resources: tuple[str, ...]
    names: tuple[str, ...] = ()

    def to_statement(self) -> dict[str, Any]:
        return {
            "Effect": "Allow",
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }


@dataclass(frozen=True)
class IdentityBinding:
    """A federated principal allowed to assume a role, and what the role may do."""

    federated_principal: str
    role: str
    trust: tuple[TrustPolicy, ...]
    policies: tuple[PermissionStatement, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "federated_principal": self.federated_principal,
            "role": self.role,
            "conditions": [t.principal.to_condition() for t in self.trust],
            "policies": [p.to_statement() for p in self.policies],
        }


@dataclass
class SynthesisResult:
    security_rules: list[SecurityRule] = field(default_factory=list)
    bindings: list[IdentityBinding] = field(default_factory=list)
    errors: list[TopoplanError] = field(default_factory=list)


def provider_for_principal(principal: PrincipalSpec) -> str:
    """Node id of the identity provider a principal federates through."""
    if principal.cluster is not None:
        return identity_provider_id(cluster_issuer_identity(principal.cluster))
    return identity_provider_id(principal.issuer or "")


def _issuer_host(principal: PrincipalSpec, provider_id: str) -> str:
    if principal.cluster is not None:
        return ValueRef(provider_id, "issuer_host").placeholder
    return normalize_issuer(principal.issuer or "").removeprefix("https://")


class AccessPolicySynthesizer:
    """Fills security group ingress, trust documents and permission documents."""

    def __init__(self, ctx: PlanningContext) -> None:
        self.ctx = ctx

    def synthesize(self, graph: ResourceGraph, topology: Topology) -> SynthesisResult:
        result = SynthesisResult()
        result.security_rules.extend(self.network_rules(graph))
        result.security_rules.extend(self.admin_rules(graph, topology))
        result.security_rules.sort(key=lambda r: r.sort_key)
        self._attach_rules(graph, result.security_rules)

        for entry in topology.resources:
            if entry.kind != "role" or entry.name not in graph:
                continue
            try:
                result.bindings.extend(self.role_bindings(graph, topology, entry))
            except ValidationError as e:
                logger.warning("role_policy_rejected", role=entry.name, error=e.message)
                result.errors.append(e)

        result.bindings.sort(key=lambda b: (b.role, b.federated_principal))
        logger.debug(
            "policies_synthesized",
            rules=len(result.security_rules),
            bindings=len(result.bindings),
        )
        return result

    # -- network -----------------------------------------------------------

    def network_rules(self, graph: ResourceGraph) -> list[SecurityRule]:
        """One rule per network-access edge, into the resource's default port."""
        rules = []
        for edge in graph.edges(EdgeKind.NETWORK_ACCESS):
            port = graph.node(edge.to_id).configuration["port"]
            rules.append(
                SecurityRule(
                    source_id=security_group_id(edge.from_id),
                    target_id=edge.to_id,
                    protocol="tcp",
                    port_from=port,
                    port_to=port,
                )
            )
        return rules

    def admin_rules(self, graph: ResourceGraph, topology: Topology) -> list[SecurityRule]:
        rules = []
        for entry in topology.resources:
            admin = entry.configuration.get("admin_access")
            if admin is None or security_group_id(entry.name) not in graph:
                continue
            access = AdminAccess.model_validate(admin)
            for cidr in sorted(access.cidrs):
                rules.append(
                    SecurityRule(
                        source_cidr=cidr,
                        target_id=entry.name,
                        protocol=access.protocol,
                        port_from=access.port,
                        port_to=access.port,
                    )
                )
        return rules

    def _attach_rules(self, graph: ResourceGraph, rules: list[SecurityRule]) -> None:
        for rule in rules:
            group = graph.node(security_group_id(rule.target_id))
            group.configuration["ingress"] = [*group.configuration["ingress"], rule.ingress_entry()]
            graph.order_references(group.id)

    # -- identity ----------------------------------------------------------

    def role_bindings(
        self, graph: ResourceGraph, topology: Topology, entry: TopologyEntry
    ) -> list[IdentityBinding]:
        """Write trust and permission documents for one role."""
        config = entry.validated_configuration()
        role_arn = self.ctx.arn("iam", f"role/{entry.name}", regional=False)
        statements = self.permission_statements(topology, entry.name, config.permissions)

        conditions: dict[str, list[TrustPolicy]] = {}
        for principal in entry.trusted_by:
            provider_id = provider_for_principal(principal)
            if not graph.has_edge(provider_id, entry.name, EdgeKind.TRUST):
                continue
            condition = PrincipalCondition(
                provider_id=provider_id,
                issuer_host=_issuer_host(principal, provider_id),
                subject_pattern=principal.subject_pattern,
                audience=principal.audience,
            )
            conditions.setdefault(provider_id, []).append(TrustPolicy(condition, role_arn))

        role = graph.node(entry.name)
        trust_statements = []
        bindings = []
        for provider_id in sorted(conditions):
            trust = tuple(
                sorted(conditions[provider_id], key=lambda t: t.principal.subject_pattern)
            )
            trust_statements.extend(t.to_statement() for t in trust)
            bindings.append(
                IdentityBinding(
                    federated_principal=provider_id,
                    role=entry.name,
                    trust=trust,
                    policies=tuple(statements),
                )
            )
        role.configuration["assume_role_policy"] = {
            "Version": POLICY_VERSION,
            "Statement": trust_statements,
        }
        graph.order_references(role.id)

        if statements:
            policy = graph.node(policy_id(entry.name))
            policy.configuration["document"] = {
                "Version": POLICY_VERSION,
                "Statement": [s.to_statement() for s in statements],
            }
        return bindings

    def permission_statements(
        self, topology: Topology, role_name: str, requests: list[PermissionRequest]
    ) -> list[PermissionStatement]:
        """
        Scope each request to the narrowest ARNs the topology allows.

        Raises:
            ValidationError: If a named resource is not declared with the
                requested kind
        """
        statements = []
        for request in requests:
            names: tuple[str, ...] = ()
            if request.scope == "account":
                arns = [self.resource_arn(request.resource_kind, "*")]
            else:
                for name in request.resources:
                    target = topology.entry(name)
                    if target is None or target.kind != request.resource_kind:
                        raise ValidationError(
                            f"Role '{role_name}' requests {request.resource_kind} "
                            f"access to undeclared resource '{name}'",
                            {"role": role_name, "resource": name},
                        )
                names = tuple(sorted(request.resources))
                arns = [self.resource_arn(request.resource_kind, n) for n in names]
            statements.append(
                PermissionStatement(
                    resource_kind=request.resource_kind,
                    actions=tuple(sorted(set(request.actions))),
                    resources=tuple(sorted(set(arns))),
                    names=names,
                )
            )
        statements.sort(key=lambda s: (s.resource_kind, s.names, s.actions))
        return statements

    def resource_arn(self, kind: str, name: str) -> str:
        if kind == "table":
            return self.ctx.arn("dynamodb", f"table/{name}")
        if kind == "registry":
            return self.ctx.arn("ecr", f"repository/{name}")
        if kind == "broker":
            return self.ctx.arn("kafka", f"cluster/{name}/*")
        if kind == "database-cluster":
            return self.ctx.arn("rds", f"cluster:{name}")
        raise ValidationError(f"No ARN format for kind '{kind}'", {"kind": kind})

