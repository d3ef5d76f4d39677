"""Pytest configuration and shared fixtures."""

import pytest
from fakes import (
    EIP_TAG,
    FakeCoreV1Api,
    FakeInstances,
    FakeMetal,
    FakeProber,
    addresses,
    make_node,
    make_reservation,
    upstream_endpoints,
    upstream_service,
)
from hypothesis import Verbosity, settings

from endpoint_manager.manager import ControlPlaneEndpointManager
from endpoint_manager.models.config import EndpointConfig

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


@pytest.fixture
def fake_metal():
    return FakeMetal([make_reservation()])


@pytest.fixture
def fake_instances():
    return FakeInstances(
        addresses={
            "cp-1": addresses(("Hostname", "cp-1"), ("InternalIP", "10.0.0.11"), ("ExternalIP", "147.75.0.11")),
            "cp-2": addresses(("Hostname", "cp-2"), ("InternalIP", "10.0.0.12"), ("ExternalIP", "147.75.0.12")),
            "worker-1": addresses(("InternalIP", "10.0.0.21")),
        },
        instance_ids={"cp-1": "dev-1", "cp-2": "dev-2", "worker-1": "dev-w1"},
    )


@pytest.fixture
def fake_prober():
    return FakeProber()


@pytest.fixture
def fake_core_api():
    return FakeCoreV1Api(services=[upstream_service()], endpoints=[upstream_endpoints()])


@pytest.fixture
def cluster_nodes():
    return [make_node("cp-1"), make_node("worker-1", control_plane=False), make_node("cp-2")]


@pytest.fixture
def make_manager(fake_metal, fake_instances, fake_prober, fake_core_api):
    """Factory building a manager wired to the fakes."""

    def _make(api_server_port=6443, node_port=6443, **config):
        config.setdefault("project_id", "proj-1")
        config.setdefault("eip_tag", EIP_TAG)
        cfg = EndpointConfig(api_server_port=api_server_port, **config)
        manager = ControlPlaneEndpointManager(cfg, fake_metal, fake_instances, fake_core_api, prober=fake_prober)
        if node_port:
            manager.ports.observe_upstream_port(node_port)
        return manager

    return _make
