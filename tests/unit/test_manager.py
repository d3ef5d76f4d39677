"""Unit tests for the reconciler wiring."""

from unittest.mock import Mock

import pytest
import urllib3
from fakes import EIP_ADDRESS
from kubernetes.client.rest import ApiException

from endpoint_manager.exceptions import ConfigurationError, KubernetesError, ServiceNotFoundError
from endpoint_manager.manager import ControlPlaneEndpointManager
from endpoint_manager.metal import MetalClient
from endpoint_manager.models.config import EndpointConfig
from endpoint_manager.nodes import NodeReconcileOutcome
from endpoint_manager.services import ServiceReconcileOutcome


def test_sync_mirrors_services_before_checking_nodes(make_manager, fake_core_api, fake_prober, cluster_nodes):
    """Test that the node pass uses the port learned by the service pass."""
    fake_core_api.nodes = cluster_nodes
    fake_prober.set(EIP_ADDRESS, 6443, 200)
    manager = make_manager(api_server_port=0, node_port=0)

    report = manager.sync()

    assert report.ok
    assert report.service_outcome == ServiceReconcileOutcome.MIRRORED
    assert report.node_outcome == NodeReconcileOutcome.HEALTHY
    assert manager.ports.desired_port == 6443


def test_service_failure_does_not_block_node_pass(make_manager, fake_core_api, fake_prober, cluster_nodes):
    """Test that each reconciler reports its own failure."""
    del fake_core_api.services[("default", "kubernetes")]
    fake_core_api.nodes = cluster_nodes
    fake_prober.set(EIP_ADDRESS, 6443, 200)
    manager = make_manager()

    report = manager.sync()

    assert not report.ok
    assert report.service_outcome is None
    assert report.node_outcome == NodeReconcileOutcome.HEALTHY
    assert len(report.errors) == 1
    assert isinstance(report.errors[0], ServiceNotFoundError)


def test_listing_failures_become_kubernetes_errors(make_manager, fake_core_api, monkeypatch):
    """Test that API listing failures are reported, not raised."""

    def fail(**kwargs):
        raise ApiException(status=403, reason="Forbidden")

    monkeypatch.setattr(fake_core_api, "list_service_for_all_namespaces", fail)
    monkeypatch.setattr(fake_core_api, "list_node", fail)
    manager = make_manager()

    report = manager.sync()

    assert [type(e) for e in report.errors] == [KubernetesError, KubernetesError]
    assert "403" in report.errors[0].details


def test_from_config_requires_api_key(monkeypatch):
    """Test that a manager is not built without credentials."""
    monkeypatch.delenv("METAL_AUTH_TOKEN", raising=False)
    config = EndpointConfig(project_id="proj-1", eip_tag="cp-eip")

    with pytest.raises(ConfigurationError) as exc_info:
        ControlPlaneEndpointManager.from_config(config, Mock())

    assert "METAL_AUTH_TOKEN" in exc_info.value.details


def test_from_config_uses_environment_key(monkeypatch):
    """Test that the API key can come from the environment."""
    monkeypatch.setenv("METAL_AUTH_TOKEN", "env-token")
    config = EndpointConfig(project_id="proj-1", eip_tag="cp-eip", api_server_port=443)

    manager = ControlPlaneEndpointManager.from_config(config, Mock())

    assert isinstance(manager.resolver.metal, MetalClient)
    assert manager.resolver.metal.session.headers["X-Auth-Token"] == "env-token"
    assert manager.ports.desired_port == 443
    assert manager.ports.explicitly_configured
    assert manager.node_reconciler.guard is manager.guard


def test_unreachable_api_server_is_reported_not_raised(make_manager, fake_core_api, fake_prober, cluster_nodes, monkeypatch):
    """Test that connection failures on one reconciler leave the other running."""

    def unreachable(name, namespace, **kwargs):
        raise urllib3.exceptions.MaxRetryError(None, f"/api/v1/namespaces/{namespace}/endpoints/{name}")

    monkeypatch.setattr(fake_core_api, "read_namespaced_endpoints", unreachable)
    fake_core_api.nodes = cluster_nodes
    fake_prober.set(EIP_ADDRESS, 6443, 200)
    manager = make_manager()

    report = manager.sync()

    assert not report.ok
    assert [type(e) for e in report.errors] == [KubernetesError]
    assert report.node_outcome == NodeReconcileOutcome.HEALTHY


def test_listing_timeouts_are_reported(make_manager, fake_core_api, monkeypatch):
    """Test that timeouts while listing objects become KubernetesError."""

    def timed_out(**kwargs):
        raise urllib3.exceptions.ReadTimeoutError(None, "/api/v1/nodes", "Read timed out.")

    monkeypatch.setattr(fake_core_api, "list_service_for_all_namespaces", timed_out)
    monkeypatch.setattr(fake_core_api, "list_node", timed_out)
    manager = make_manager()

    report = manager.sync()

    assert [type(e) for e in report.errors] == [KubernetesError, KubernetesError]
    assert "Read timed out" in report.errors[1].details
