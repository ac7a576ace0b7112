"""Tests for the resource graph and deferred value references."""

import pytest
from topoplan.core.errors import DependencyUnresolved, ValidationError
from topoplan.graph import (
    DependencyEdge,
    EdgeKind,
    NodeKind,
    NodeStatus,
    ResourceGraph,
    ValueRef,
    find_references,
    substitute_references,
)


@pytest.fixture
def graph():
    g = ResourceGraph()
    g.add_node(NodeKind.PARTITION, {"name": "partition-private-isolated"}, node_id="net")
    g.add_node(NodeKind.DATABASE_CLUSTER, {"subnet_ids": "${net.subnet_ids}"}, node_id="orders")
    g.add_node(NodeKind.DATABASE_INSTANCE, {"cluster_arn": "${orders.arn}"}, node_id="writer-orders")
    return g


class TestAddNode:
    """Tests for node creation."""

    def test_explicit_id(self):
        g = ResourceGraph()
        assert g.add_node(NodeKind.TABLE, {"name": "customer"}, node_id="customer") == "customer"
        node = g.node("customer")
        assert node.kind is NodeKind.TABLE
        assert node.status is NodeStatus.DECLARED
        assert node.configuration == {"name": "customer"}

    def test_generated_ids_count_per_kind(self):
        g = ResourceGraph()
        assert g.add_node(NodeKind.TABLE) == "table-1"
        assert g.add_node(NodeKind.TABLE) == "table-2"
        assert g.add_node(NodeKind.ROLE) == "role-1"

    def test_generated_id_skips_taken_id(self):
        g = ResourceGraph()
        g.add_node(NodeKind.TABLE, node_id="table-1")
        assert g.add_node(NodeKind.TABLE) == "table-2"

    def test_duplicate_id_rejected(self):
        g = ResourceGraph()
        g.add_node(NodeKind.TABLE, node_id="customer")
        with pytest.raises(ValidationError, match="Duplicate node id"):
            g.add_node(NodeKind.REGISTRY, node_id="customer")

    def test_unknown_node_lookup(self):
        g = ResourceGraph()
        assert g.get("missing") is None
        with pytest.raises(DependencyUnresolved):
            g.node("missing")


class TestAddEdge:
    """Tests for edge creation and its invariants."""

    def test_edge_between_known_nodes(self, graph):
        edge = graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        assert edge == DependencyEdge("net", "orders", EdgeKind.CONTAINMENT)
        assert graph.has_edge("net", "orders")
        assert graph.has_edge("net", "orders", EdgeKind.CONTAINMENT)
        assert not graph.has_edge("net", "orders", EdgeKind.TRUST)
        assert graph.parent("orders") == "net"

    def test_missing_endpoint(self, graph):
        with pytest.raises(DependencyUnresolved) as exc_info:
            graph.add_edge("net", "ghost", EdgeKind.EXPLICIT_ORDER)
        assert "ghost" in exc_info.value.message

    def test_self_edge_rejected(self, graph):
        with pytest.raises(ValidationError):
            graph.add_edge("orders", "orders", EdgeKind.EXPLICIT_ORDER)

    def test_single_containment_parent(self, graph):
        graph.add_edge("net", "writer-orders", EdgeKind.CONTAINMENT)
        with pytest.raises(ValidationError, match="already contained"):
            graph.add_edge("orders", "writer-orders", EdgeKind.CONTAINMENT)

    def test_identical_edge_is_noop(self, graph):
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        assert len(graph.edges()) == 1

    def test_same_pair_with_two_kinds(self, graph):
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        graph.add_edge("net", "orders", EdgeKind.EXPLICIT_ORDER)
        kinds = [e.kind for e in graph.edges()]
        assert kinds == [EdgeKind.CONTAINMENT, EdgeKind.EXPLICIT_ORDER]


class TestQueries:
    """Tests for graph traversal helpers."""

    def test_nodes_sorted_by_id(self, graph):
        assert [n.id for n in graph.nodes()] == ["net", "orders", "writer-orders"]
        assert len(graph) == 3
        assert "orders" in graph

    def test_neighbors_by_kind(self, graph):
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        graph.add_edge("net", "writer-orders", EdgeKind.EXPLICIT_ORDER)
        assert graph.neighbors("net", EdgeKind.CONTAINMENT) == ["orders"]
        assert graph.successors("net") == ["orders", "writer-orders"]
        assert graph.predecessors("writer-orders") == ["net"]

    def test_transitive_dependents(self, graph):
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        graph.add_edge("orders", "writer-orders", EdgeKind.CONTAINMENT)
        assert graph.transitive_dependents("net") == ["orders", "writer-orders"]
        assert graph.transitive_dependents("writer-orders") == []

    def test_to_dict(self, graph):
        graph.add_edge("net", "orders", EdgeKind.CONTAINMENT)
        data = graph.to_dict()
        assert data["stats"] == {"node_count": 3, "edge_count": 1}
        assert data["edges"] == [{"from": "net", "to": "orders", "kind": "containment"}]


class TestOrderReferences:
    """Tests for backing placeholders with edges."""

    def test_adds_explicit_order_edge(self, graph):
        added = graph.order_references("orders")
        assert added == [DependencyEdge("net", "orders", EdgeKind.EXPLICIT_ORDER)]
        assert graph.order_references("orders") == []

    def test_existing_edge_is_enough(self, graph):
        graph.add_edge("orders", "writer-orders", EdgeKind.CONTAINMENT)
        assert graph.order_references("writer-orders") == []

    def test_unknown_reference(self):
        g = ResourceGraph()
        g.add_node(NodeKind.CLUSTER, {"subnet_ids": "${nowhere.subnet_ids}"}, node_id="workloads")
        with pytest.raises(DependencyUnresolved):
            g.order_references("workloads")

    def test_self_reference_ignored(self):
        g = ResourceGraph()
        g.add_node(NodeKind.SECURITY_GROUP, {"owner": "${sg.arn}"}, node_id="sg")
        assert g.order_references("sg") == []


class TestValueRefs:
    """Tests for placeholder discovery and substitution."""

    def test_placeholder_format(self):
        assert ValueRef("orders", "arn").placeholder == "${orders.arn}"
        assert str(ValueRef("orders", "arn")) == "${orders.arn}"

    def test_find_references_nested(self):
        value = {
            "a": "${net.subnet_ids}",
            "b": ["x", {"c": "prefix-${orders.endpoint}:5432"}],
            "${provider.issuer_host}:sub": "system:serviceaccount:default:app",
        }
        assert find_references(value) == {
            ValueRef("net", "subnet_ids"),
            ValueRef("orders", "endpoint"),
            ValueRef("provider", "issuer_host"),
        }

    def test_find_references_ignores_plain_strings(self):
        assert find_references({"a": "$notaref", "b": 5, "c": None}) == set()

    def test_whole_placeholder_becomes_raw_value(self):
        resolved = {ValueRef("net", "subnet_ids"): ["subnet-1", "subnet-2"]}
        result = substitute_references({"subnets": "${net.subnet_ids}"}, resolved.__getitem__)
        assert result == {"subnets": ["subnet-1", "subnet-2"]}

    def test_embedded_placeholder_is_interpolated(self):
        resolved = {ValueRef("provider", "issuer_host"): "oidc.example.com/id/ABC"}
        result = substitute_references(
            {"${provider.issuer_host}:aud": "sts.amazonaws.com"}, resolved.__getitem__
        )
        assert result == {"oidc.example.com/id/ABC:aud": "sts.amazonaws.com"}
