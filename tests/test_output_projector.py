"""Tests for output projection."""

import pytest
from topoplan.core.errors import OutputUnavailable
from topoplan.graph import NodeKind, NodeStatus, ResourceGraph
from topoplan.orchestration import ExecutionEngine, PlanBuilder
from topoplan.outputs import OutputProjector, OutputSpec, ProjectedOutput
from topoplan.specs.models import OutputDeclaration


@pytest.fixture
def graph():
    g = ResourceGraph()
    g.add_node(NodeKind.DATABASE_CLUSTER, {"identifier": "orders"}, node_id="orders")
    node = g.node("orders")
    node.status = NodeStatus.PROVISIONED
    node.resolved = {
        "endpoint": "orders.cluster-abc.us-east-1.rds.example.com",
        "credential_ref": "arn:aws:secretsmanager:us-east-1:123456789012:secret:orders-credentials",
    }
    g.add_node(NodeKind.TABLE, {"name": "customer"}, node_id="customer")
    return g


class TestProjection:
    """Tests for reading provisioned fields."""

    def test_plain_field(self, graph):
        output = OutputProjector(graph).project_one(OutputSpec("db", "orders", "endpoint"))
        assert output == ProjectedOutput(
            name="db", value="orders.cluster-abc.us-east-1.rds.example.com", sensitive=False
        )
        assert output.to_dict() == {
            "name": "db",
            "value": "orders.cluster-abc.us-east-1.rds.example.com",
            "sensitive": False,
        }

    def test_credential_field_always_sensitive(self, graph):
        output = OutputProjector(graph).project_one(OutputSpec("creds", "orders", "credential_ref"))
        assert output.sensitive
        assert output.to_dict()["value"] == "***"
        assert output.to_dict(redact=False)["value"].endswith("orders-credentials")

    def test_declared_sensitive(self, graph):
        declaration = OutputDeclaration(name="db", node="orders", field="endpoint", sensitive=True)
        output = OutputProjector(graph).project_one(OutputSpec.from_declaration(declaration))
        assert output.to_dict()["value"] == "***"

    def test_project_preserves_order(self, graph):
        outputs = OutputProjector(graph).project(
            [OutputSpec("b", "orders", "endpoint"), OutputSpec("a", "orders", "credential_ref")]
        )
        assert [o.name for o in outputs] == ["b", "a"]


class TestUnavailable:
    """Tests for outputs that cannot be read."""

    def test_unknown_node(self, graph):
        with pytest.raises(OutputUnavailable, match="unknown node"):
            OutputProjector(graph).project_one(OutputSpec("x", "ledger", "arn"))

    def test_node_not_provisioned(self, graph):
        with pytest.raises(OutputUnavailable, match="it is declared"):
            OutputProjector(graph).project_one(OutputSpec("x", "customer", "arn"))

    def test_missing_field(self, graph):
        with pytest.raises(OutputUnavailable, match="no field 'port'"):
            OutputProjector(graph).project_one(OutputSpec("x", "orders", "port"))

    def test_failed_node(self, graph):
        graph.node("orders").status = NodeStatus.FAILED
        with pytest.raises(OutputUnavailable) as exc_info:
            OutputProjector(graph).project([OutputSpec("db", "orders", "endpoint")])
        assert exc_info.value.details["status"] == "failed"


class TestAfterApply:
    """Outputs declared in a topology, read after apply."""

    @pytest.mark.asyncio
    async def test_outputs_from_applied_plan(self, ctx, make_topology, orders_entry, control_plane, fast_retry):
        topology = make_topology(
            orders_entry,
            outputs=[
                {"name": "db_endpoint", "node": "orders", "field": "endpoint"},
                {"name": "db_credentials", "node": "orders", "field": "credential_ref"},
            ],
        )
        plan = PlanBuilder(ctx).build(topology)
        await ExecutionEngine(control_plane, fast_retry, max_parallel=2).apply(plan)

        outputs = OutputProjector(plan.graph).project(plan.outputs)
        assert [o.to_dict()["sensitive"] for o in outputs] == [False, True]
        assert outputs[0].value == plan.graph.node("orders").resolved["endpoint"]
        assert outputs[1].to_dict()["value"] == "***"
