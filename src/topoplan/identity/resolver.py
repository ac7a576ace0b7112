"""
Existence resolver for account-wide singleton resources.

Some resources may exist at most once per account and region for a given
identity (an identity provider bound to one issuer URL, for instance).
The resolver decides, once per planning run and per lookup key, whether to
bind a pre-existing resource or declare a new node.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog

from topoplan.context import PlanningContext
from topoplan.core.errors import Conflict
from topoplan.graph.models import NodeKind, ValueRef
from topoplan.graph.resource_graph import ResourceGraph
from topoplan.providers.base import ExistenceCheck

logger = structlog.get_logger()

DEFAULT_AUDIENCE = "sts.amazonaws.com"


@dataclass(frozen=True)
class GlobalSingleton:
    """Resolution of one lookup key."""

    lookup_key: str
    node_id: str
    kind: NodeKind
    existing_reference: str | None = None

    @property
    def bound(self) -> bool:
        return self.existing_reference is not None


def cluster_issuer_identity(cluster_id: str) -> str:
    """Issuer identity for a cluster whose URL is only known after creation."""
    return f"cluster/{cluster_id}"


def normalize_issuer(issuer_url: str) -> str:
    """
    Canonical spelling of an external issuer URL.

    Scheme and host are case-insensitive and a trailing slash is not part of
    the issuer, so ``https://Token.example.com/`` and
    ``https://token.example.com`` name the same provider. Path case is kept.
    """
    parts = urlsplit(issuer_url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def identity_provider_id(issuer: str) -> str:
    """Deterministic node id for the identity provider of ``issuer``."""
    if issuer.startswith("cluster/"):
        return f"{issuer.split('/', 1)[1]}-oidc"
    issuer = normalize_issuer(issuer)
    slug = re.sub(r"[^a-z0-9]+", "-", issuer.lower().removeprefix("https://")).strip("-")
    digest = hashlib.sha256(issuer.encode()).hexdigest()[:8]
    return f"oidc-{slug[:40].rstrip('-')}-{digest}"


@dataclass
class ExistenceResolver:
    """
    Resolves singleton resources against an injected existence check.

    Within one resolver (one planning run) a lookup key is checked at most
    once; later requests return the cached GlobalSingleton.
    """

    ctx: PlanningContext
    existence_check: ExistenceCheck | None = None

    _cache: dict[str, GlobalSingleton] = field(default_factory=dict)
    checks_issued: int = 0

    def __post_init__(self) -> None:
        if self.existence_check is None:
            self.existence_check = self.ctx.existence_check

    def lookup_key(self, kind: NodeKind, identity: str) -> str:
        """Stable key for a singleton of ``kind`` in this account/region."""
        return f"{kind.value}:{self.ctx.account}:{self.ctx.region}:{identity}"

    def resolved(self) -> list[GlobalSingleton]:
        """All resolutions made so far, sorted by key."""
        return [self._cache[k] for k in sorted(self._cache)]

    def resolve(
        self,
        graph: ResourceGraph,
        kind: NodeKind,
        lookup_key: str,
        node_id: str,
        configuration: dict[str, Any],
    ) -> GlobalSingleton:
        """
        Bind or declare the singleton for ``lookup_key``.

        Raises:
            Conflict: If the key was already resolved to another kind, the
                existing resource reports a different kind or issuer, or the
                node id is taken by an unrelated node
        """
        cached = self._cache.get(lookup_key)
        if cached is not None:
            if cached.kind is not kind:
                raise Conflict(
                    f"Lookup key '{lookup_key}' already resolved as {cached.kind.value}",
                    {"lookup_key": lookup_key, "requested_kind": kind.value},
                )
            return cached

        existing = None
        if self.existence_check is not None:
            self.checks_issued += 1
            existing = self.existence_check.exists(lookup_key)

        if existing is not None:
            if existing.kind != kind.value:
                raise Conflict(
                    f"Existing resource for '{lookup_key}' is a {existing.kind}, "
                    f"expected {kind.value}",
                    {"lookup_key": lookup_key, "reference": existing.reference},
                )
            declared_issuer = configuration.get("issuer_url")
            found_issuer = existing.attributes.get("issuer_url")
            if (
                isinstance(declared_issuer, str)
                and not declared_issuer.startswith("${")
                and found_issuer is not None
                and normalize_issuer(str(found_issuer)) != normalize_issuer(declared_issuer)
            ):
                raise Conflict(
                    f"Existing resource for '{lookup_key}' is bound to issuer {found_issuer}",
                    {"lookup_key": lookup_key, "declared_issuer": declared_issuer},
                )

        if node_id in graph:
            raise Conflict(
                f"Node id '{node_id}' for singleton '{lookup_key}' is already in use",
                {"lookup_key": lookup_key, "node_id": node_id},
            )

        graph.add_node(
            kind,
            {"name": node_id, **configuration, "lookup_key": lookup_key},
            node_id=node_id,
        )
        singleton = GlobalSingleton(
            lookup_key=lookup_key,
            node_id=node_id,
            kind=kind,
            existing_reference=existing.reference if existing else None,
        )
        if existing is not None:
            graph.node(node_id).existing_reference = existing.reference

        self._cache[lookup_key] = singleton
        logger.info(
            "singleton_resolved",
            lookup_key=lookup_key,
            node_id=node_id,
            bound=singleton.bound,
        )
        return singleton

    def resolve_identity_provider(
        self,
        graph: ResourceGraph,
        *,
        cluster_id: str | None = None,
        issuer_url: str | None = None,
    ) -> GlobalSingleton:
        """Resolve the identity provider for a cluster or an external issuer."""
        if (cluster_id is None) == (issuer_url is None):
            raise ValueError("exactly one of cluster_id or issuer_url is required")

        if cluster_id is not None:
            identity = cluster_issuer_identity(cluster_id)
            issuer_value = ValueRef(cluster_id, "issuer_url").placeholder
        else:
            identity = normalize_issuer(issuer_url or "")
            issuer_value = identity

        return self.resolve(
            graph,
            NodeKind.IDENTITY_PROVIDER,
            self.lookup_key(NodeKind.IDENTITY_PROVIDER, identity),
            identity_provider_id(identity),
            {
                "issuer_url": issuer_value,
                "client_ids": [DEFAULT_AUDIENCE],
            },
        )
