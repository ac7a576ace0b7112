from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

ResourceState = Literal["creating", "available", "deleting", "deleted", "failed"]


@dataclass(frozen=True)
class ExistingResource:
    """A resource the existence check found outside this planning run."""

    reference: str
    kind: str
    attributes: dict[str, Any] = field(default_factory=dict)


class ExistenceCheck(Protocol):
    """Looks up account-wide singletons. Must be idempotent and side-effect free."""

    def exists(self, lookup_key: str) -> ExistingResource | None:
        ...


class ControlPlane(Protocol):
    """
    Contract for the cloud control plane.

    Calls are at-least-once: the same idempotency key must never create a
    second resource. Retryable failures raise ProvisioningFailure.
    """

    async def create(
        self,
        kind: str,
        configuration: dict[str, Any],
        *,
        idempotency_key: str,
    ) -> str:
        ...

    async def describe(self, provider_id: str) -> dict[str, Any]:
        ...

    async def delete(self, provider_id: str, *, idempotency_key: str) -> None:
        ...
