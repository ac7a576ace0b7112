"""Root test configuration."""

import copy
import logging
from typing import Any, Callable

import pytest
import structlog
from topoplan.context import PlanningContext
from topoplan.orchestration.engine import RetryPolicy
from topoplan.providers.memory import InMemoryControlPlane, InMemoryExistenceCheck
from topoplan.specs.models import Topology


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


ACCOUNT = "123456789012"
REGION = "us-east-1"

ORDERS_DATABASE = {
    "name": "orders",
    "kind": "database-cluster",
    "configuration": {
        "engine_version": "14.13",
        "instance_class": "db.r7g.large",
        "replica_count": 1,
    },
}

WORKLOADS_CLUSTER = {
    "name": "workloads",
    "kind": "cluster",
    "configuration": {"version": "1.32"},
    "accessTo": ["orders"],
}


@pytest.fixture
def existence_check() -> InMemoryExistenceCheck:
    return InMemoryExistenceCheck()


@pytest.fixture
def ctx(existence_check) -> PlanningContext:
    """Planning context for a fixed test account."""
    return PlanningContext(
        topology_name="core-bank",
        account=ACCOUNT,
        region=REGION,
        existence_check=existence_check,
    )


@pytest.fixture
def make_topology() -> Callable[..., Topology]:
    """Build a validated topology from resource entry mappings."""

    def _make(*resources: dict[str, Any], **sections: Any) -> Topology:
        data: dict[str, Any] = {
            "topology": {"name": "core-bank", "account": ACCOUNT, "region": REGION},
            "resources": [dict(r) for r in resources],
        }
        data.update(sections)
        return Topology.from_dict(data)

    return _make


@pytest.fixture
def orders_topology(make_topology) -> Topology:
    """A workloads cluster reaching an orders database with one replica."""
    return make_topology(copy.deepcopy(ORDERS_DATABASE), copy.deepcopy(WORKLOADS_CLUSTER))


@pytest.fixture
def control_plane() -> InMemoryControlPlane:
    return InMemoryControlPlane(account=ACCOUNT, region=REGION)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retries without sleeping."""
    return RetryPolicy(max_attempts=3, multiplier=0, max_wait=0, poll_attempts=5)


@pytest.fixture
def orders_entry() -> dict[str, Any]:
    return copy.deepcopy(ORDERS_DATABASE)


@pytest.fixture
def workloads_entry() -> dict[str, Any]:
    return copy.deepcopy(WORKLOADS_CLUSTER)
