"""
In-memory control plane and existence check.

Deterministic reference implementations for tests and dry runs. Provider
ids derive from idempotency keys, so replaying a create with the same key
returns the same resource instead of a second one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from topoplan.core.errors import ProvisioningFailure
from topoplan.providers.base import ExistingResource, ResourceState

logger = structlog.get_logger()


@dataclass
class StoredResource:
    provider_id: str
    kind: str
    label: str
    configuration: dict[str, Any]
    attributes: dict[str, Any] = field(default_factory=dict)
    state: ResourceState = "creating"
    pending_describes: int = 0


@dataclass
class _Injection:
    remaining: int | None

    def fire(self) -> bool:
        if self.remaining is None:
            return True
        if self.remaining <= 0:
            return False
        self.remaining -= 1
        return True


def resource_label(kind: str, configuration: dict[str, Any]) -> str:
    """Human name of a resource, used to target injected failures."""
    return str(configuration.get("name") or configuration.get("identifier") or kind)


class InMemoryControlPlane:
    """
    Control plane that keeps resources in a dict.

    Failures can be injected per resource label (the configuration's
    ``name`` or ``identifier``) and operation.
    """

    def __init__(
        self,
        *,
        account: str = "000000000000",
        region: str = "us-east-1",
        partition: str = "aws",
        latency: float = 0.0,
        pending_describes: int = 0,
    ) -> None:
        self.account = account
        self.region = region
        self.partition = partition
        self.latency = latency
        self.pending_describes = pending_describes

        self.resources: dict[str, StoredResource] = {}
        self.calls: list[tuple[str, str]] = []
        self._by_key: dict[str, str] = {}
        self._deleted_keys: set[str] = set()
        self._failures: dict[tuple[str, str], _Injection] = {}
        self._failed_states: set[str] = set()

        self.in_flight = 0
        self.max_in_flight = 0

    # -- failure injection ---------------------------------------------

    def fail(self, label: str, operation: str = "create", times: int | None = 1) -> None:
        """Raise ProvisioningFailure for ``times`` calls (``None`` for always)."""
        self._failures[(operation, label)] = _Injection(times)

    def fail_state(self, label: str) -> None:
        """Report the resource as ``failed`` once created."""
        self._failed_states.add(label)

    def adopt(self, reference: str, kind: str, **attributes: Any) -> None:
        """Register a resource that already exists outside any plan."""
        self.resources[reference] = StoredResource(
            provider_id=reference,
            kind=kind,
            label=reference,
            configuration={},
            attributes={"arn": reference, **attributes},
            state="available",
        )

    def _maybe_fail(self, operation: str, label: str) -> None:
        injection = self._failures.get((operation, label))
        if injection is not None and injection.fire():
            logger.debug("injected_failure", operation=operation, label=label)
            raise ProvisioningFailure(
                f"{operation} of '{label}' failed",
                {"operation": operation, "label": label},
            )

    # -- control plane -------------------------------------------------

    async def create(
        self,
        kind: str,
        configuration: dict[str, Any],
        *,
        idempotency_key: str,
    ) -> str:
        label = resource_label(kind, configuration)
        self.calls.append(("create", label))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            self._maybe_fail("create", label)

            existing = self._by_key.get(idempotency_key)
            if existing is not None:
                return existing

            provider_id = f"{kind}-{idempotency_key[:12]}"
            self.resources[provider_id] = StoredResource(
                provider_id=provider_id,
                kind=kind,
                label=label,
                configuration=configuration,
                attributes=self._attributes(kind, label, provider_id, configuration),
                state="failed" if label in self._failed_states else "creating",
                pending_describes=self.pending_describes,
            )
            self._by_key[idempotency_key] = provider_id
            return provider_id
        finally:
            self.in_flight -= 1

    async def describe(self, provider_id: str) -> dict[str, Any]:
        resource = self.resources.get(provider_id)
        if resource is None:
            raise ProvisioningFailure(
                f"Unknown resource '{provider_id}'", {"provider_id": provider_id}
            )
        self.calls.append(("describe", resource.label))
        self._maybe_fail("describe", resource.label)

        if resource.state == "creating":
            if resource.pending_describes > 0:
                resource.pending_describes -= 1
            else:
                resource.state = "available"
        return {"state": resource.state, **resource.attributes}

    async def delete(self, provider_id: str, *, idempotency_key: str) -> None:
        if idempotency_key in self._deleted_keys:
            return
        resource = self.resources.get(provider_id)
        if resource is None:
            raise ProvisioningFailure(
                f"Unknown resource '{provider_id}'", {"provider_id": provider_id}
            )
        self.calls.append(("delete", resource.label))
        self._maybe_fail("delete", resource.label)

        del self.resources[provider_id]
        self._deleted_keys.add(idempotency_key)

    # -- resolved attributes -------------------------------------------

    def _arn(self, service: str, resource: str, regional: bool = True) -> str:
        region = self.region if regional else ""
        return f"arn:{self.partition}:{service}:{region}:{self.account}:{resource}"

    def _attributes(
        self, kind: str, label: str, provider_id: str, configuration: dict[str, Any]
    ) -> dict[str, Any]:
        suffix = provider_id.rsplit("-", 1)[-1]
        if kind == "partition":
            subnets = configuration.get("subnets", [])
            return {
                "arn": self._arn("ec2", f"subnet-group/{label}"),
                "network_id": f"vpc-{self.account[-6:]}",
                "subnet_ids": [f"subnet-{suffix[:6]}{i}" for i in range(len(subnets))],
            }
        if kind == "cluster":
            return {
                "arn": self._arn("eks", f"cluster/{label}"),
                "endpoint": f"https://{suffix}.eks.{self.region}.example.com",
                "issuer_url": f"https://oidc.eks.{self.region}.example.com/id/{suffix.upper()}",
                "kubeconfig": f"kubeconfig-{label}-{suffix}",
            }
        if kind == "identity-provider":
            issuer = str(configuration.get("issuer_url", ""))
            host = issuer.removeprefix("https://").rstrip("/")
            return {
                "arn": self._arn("iam", f"oidc-provider/{host}", regional=False),
                "issuer_url": issuer,
                "issuer_host": host,
            }
        if kind == "security-group":
            return {"arn": self._arn("ec2", f"security-group/sg-{suffix}"), "group_id": f"sg-{suffix}"}
        if kind in ("role", "policy"):
            return {"arn": self._arn("iam", f"{kind}/{label}", regional=False), "name": label}
        if kind == "database-cluster":
            return {
                "arn": self._arn("rds", f"cluster:{label}"),
                "endpoint": f"{label}.cluster-{suffix}.{self.region}.rds.example.com",
                "reader_endpoint": f"{label}.cluster-ro-{suffix}.{self.region}.rds.example.com",
                "port": configuration.get("port"),
                "credential_ref": self._arn("secretsmanager", f"secret:{label}-credentials"),
            }
        if kind == "database-instance":
            return {
                "arn": self._arn("rds", f"db:{label}"),
                "endpoint": f"{label}.{suffix}.{self.region}.rds.example.com",
            }
        if kind == "broker":
            count = int(configuration.get("broker_count", 1))
            port = configuration.get("port", 9094)
            return {
                "arn": self._arn("kafka", f"cluster/{label}/{suffix}"),
                "bootstrap_brokers": ",".join(
                    f"b-{i + 1}.{label}.{suffix}.kafka.example.com:{port}" for i in range(count)
                ),
            }
        if kind == "table":
            return {"arn": self._arn("dynamodb", f"table/{label}"), "name": label}
        if kind == "registry":
            return {
                "arn": self._arn("ecr", f"repository/{label}"),
                "uri": f"{self.account}.dkr.ecr.{self.region}.example.com/{label}",
            }
        return {"arn": self._arn(kind, label)}


class InMemoryExistenceCheck:
    """Existence check over a fixed set of pre-existing resources."""

    def __init__(self, resources: dict[str, ExistingResource] | None = None) -> None:
        self.resources = dict(resources or {})
        self.calls: list[str] = []

    def add(self, lookup_key: str, reference: str, kind: str, **attributes: Any) -> None:
        self.resources[lookup_key] = ExistingResource(
            reference=reference, kind=kind, attributes=attributes
        )

    def exists(self, lookup_key: str) -> ExistingResource | None:
        self.calls.append(lookup_key)
        return self.resources.get(lookup_key)
