"""Tests for singleton resolution."""

from unittest.mock import MagicMock

import pytest
from topoplan.context import PlanningContext
from topoplan.core.errors import Conflict
from topoplan.graph import NodeKind, ResourceGraph
from topoplan.identity import ExistenceResolver, identity_provider_id, normalize_issuer


@pytest.fixture
def graph():
    g = ResourceGraph()
    g.add_node(NodeKind.CLUSTER, {"name": "workloads"}, node_id="workloads")
    return g


class TestLookupKey:
    """Tests for lookup key and node id derivation."""

    def test_lookup_key_format(self, ctx):
        resolver = ExistenceResolver(ctx)
        key = resolver.lookup_key(NodeKind.IDENTITY_PROVIDER, "https://issuer.example.com")
        assert key == "identity-provider:123456789012:us-east-1:https://issuer.example.com"

    def test_cluster_provider_id(self):
        assert identity_provider_id("cluster/workloads") == "workloads-oidc"

    def test_external_provider_id_is_stable(self):
        first = identity_provider_id("https://token.actions.example.com")
        assert first == identity_provider_id("https://token.actions.example.com")
        assert first.startswith("oidc-token-actions-example-com-")
        assert first != identity_provider_id("https://other.example.com")

    @pytest.mark.parametrize(
        "spelling",
        [
            "https://token.example.com",
            "https://token.example.com/",
            "https://Token.Example.com",
            "HTTPS://TOKEN.EXAMPLE.COM/",
        ],
    )
    def test_issuer_spellings_normalize(self, spelling):
        assert normalize_issuer(spelling) == "https://token.example.com"
        assert identity_provider_id(spelling) == identity_provider_id("https://token.example.com")

    def test_issuer_path_case_kept(self):
        assert normalize_issuer("https://Oidc.example.com/id/ABC/") == (
            "https://oidc.example.com/id/ABC"
        )


class TestResolve:
    """Tests for create-or-bind resolution."""

    def test_declares_new_node(self, ctx, graph, existence_check):
        resolver = ExistenceResolver(ctx)
        singleton = resolver.resolve_identity_provider(graph, cluster_id="workloads")

        assert singleton.node_id == "workloads-oidc"
        assert not singleton.bound
        node = graph.node("workloads-oidc")
        assert node.kind is NodeKind.IDENTITY_PROVIDER
        assert node.configuration["issuer_url"] == "${workloads.issuer_url}"
        assert node.configuration["lookup_key"] == singleton.lookup_key
        assert existence_check.calls == [singleton.lookup_key]

    def test_binds_existing_resource(self, ctx, graph, existence_check):
        key = "identity-provider:123456789012:us-east-1:https://issuer.example.com"
        existence_check.add(
            key,
            "arn:aws:iam::123456789012:oidc-provider/issuer.example.com",
            "identity-provider",
            issuer_url="https://issuer.example.com",
        )
        resolver = ExistenceResolver(ctx)
        singleton = resolver.resolve_identity_provider(
            graph, issuer_url="https://issuer.example.com"
        )

        assert singleton.bound
        node = graph.node(singleton.node_id)
        assert node.is_bound
        assert node.existing_reference == singleton.existing_reference

    def test_second_request_is_cached(self, ctx, graph, existence_check):
        resolver = ExistenceResolver(ctx)
        first = resolver.resolve_identity_provider(graph, cluster_id="workloads")
        second = resolver.resolve_identity_provider(graph, cluster_id="workloads")

        assert first is second
        assert resolver.checks_issued == 1
        assert len(existence_check.calls) == 1
        assert len(graph.nodes_of_kind(NodeKind.IDENTITY_PROVIDER)) == 1

    def test_issuer_spellings_share_one_provider(self, ctx, graph, existence_check):
        """Test differently spelled issuer URLs resolve to a single node."""
        resolver = ExistenceResolver(ctx)
        first = resolver.resolve_identity_provider(graph, issuer_url="https://token.example.com")
        second = resolver.resolve_identity_provider(
            graph, issuer_url="https://Token.example.com/"
        )

        assert first is second
        assert first.lookup_key == (
            "identity-provider:123456789012:us-east-1:https://token.example.com"
        )
        assert existence_check.calls == [first.lookup_key]
        assert len(graph.nodes_of_kind(NodeKind.IDENTITY_PROVIDER)) == 1
        assert graph.node(first.node_id).configuration["issuer_url"] == (
            "https://token.example.com"
        )

    def test_existence_check_is_injected(self, ctx, graph):
        check = MagicMock()
        check.exists.return_value = None
        resolver = ExistenceResolver(ctx, existence_check=check)
        resolver.resolve_identity_provider(graph, issuer_url="https://issuer.example.com")
        check.exists.assert_called_once()

    def test_no_existence_check(self, graph):
        resolver = ExistenceResolver(PlanningContext("core-bank", "123456789012", "us-east-1"))
        singleton = resolver.resolve_identity_provider(graph, cluster_id="workloads")
        assert resolver.checks_issued == 0
        assert not singleton.bound

    def test_requires_exactly_one_source(self, ctx, graph):
        resolver = ExistenceResolver(ctx)
        with pytest.raises(ValueError):
            resolver.resolve_identity_provider(graph)


class TestConflicts:
    """Tests for inconsistent singleton state."""

    def test_existing_resource_of_other_kind(self, ctx, graph, existence_check):
        resolver = ExistenceResolver(ctx)
        key = resolver.lookup_key(NodeKind.IDENTITY_PROVIDER, "cluster/workloads")
        existence_check.add(key, "arn:aws:iam::123456789012:role/x", "role")
        with pytest.raises(Conflict, match="is a role"):
            resolver.resolve_identity_provider(graph, cluster_id="workloads")

    def test_same_key_with_other_kind(self, ctx, graph):
        resolver = ExistenceResolver(ctx)
        resolver.resolve(graph, NodeKind.IDENTITY_PROVIDER, "shared-key", "shared", {})
        with pytest.raises(Conflict, match="already resolved"):
            resolver.resolve(graph, NodeKind.ROLE, "shared-key", "shared", {})

    def test_node_id_taken(self, ctx, graph):
        graph.add_node(NodeKind.ROLE, node_id="workloads-oidc")
        resolver = ExistenceResolver(ctx)
        with pytest.raises(Conflict, match="already in use"):
            resolver.resolve_identity_provider(graph, cluster_id="workloads")

    def test_existing_issuer_mismatch(self, ctx, graph, existence_check):
        resolver = ExistenceResolver(ctx)
        key = resolver.lookup_key(NodeKind.IDENTITY_PROVIDER, "https://issuer.example.com")
        existence_check.add(
            key,
            "arn:aws:iam::123456789012:oidc-provider/other",
            "identity-provider",
            issuer_url="https://other.example.com",
        )
        with pytest.raises(Conflict, match="bound to issuer"):
            resolver.resolve_identity_provider(graph, issuer_url="https://issuer.example.com")

    def test_existing_issuer_spelled_differently(self, ctx, graph, existence_check):
        """Test a stored issuer with a trailing slash still binds."""
        resolver = ExistenceResolver(ctx)
        key = resolver.lookup_key(NodeKind.IDENTITY_PROVIDER, "https://issuer.example.com")
        existence_check.add(
            key,
            "arn:aws:iam::123456789012:oidc-provider/issuer.example.com",
            "identity-provider",
            issuer_url="https://Issuer.example.com/",
        )
        singleton = resolver.resolve_identity_provider(
            graph, issuer_url="https://issuer.example.com/"
        )
        assert singleton.bound
