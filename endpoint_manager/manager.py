"""Wiring of the control plane endpoint reconcilers.

ControlPlaneEndpointManager checks the availability of an elastic IP for the
control plane and, if it exists, guarantees that it is attached to a healthy
control plane node and published through a LoadBalancer service.
"""

from dataclasses import dataclass, field

from endpoint_manager.exceptions import (
    KUBERNETES_API_ERRORS,
    ConfigurationError,
    EndpointManagerError,
    KubernetesError,
    describe_api_error,
)
from endpoint_manager.health import HealthProbe
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.config import EndpointConfig
from endpoint_manager.nodes import NodeReconcileOutcome, NodeReconciler
from endpoint_manager.reassignment import ReassignmentEngine
from endpoint_manager.reservations import ReservationResolver
from endpoint_manager.services import ServiceMirrorReconciler, ServiceReconcileOutcome, UpdateMode
from endpoint_manager.state import ExecutionGuard, PortState

logger = get_logger(__name__)


@dataclass
class SyncReport:
    """Outcome of one pass of both reconcilers."""

    service_outcome: ServiceReconcileOutcome | None = None
    node_outcome: NodeReconcileOutcome | None = None
    errors: list[EndpointManagerError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ControlPlaneEndpointManager:
    """Owns the shared state and both reconcilers."""

    def __init__(self, config: EndpointConfig, metal_client, instances, core_api, prober=None):
        """Initialize the manager.

        Args:
            config: Endpoint configuration
            metal_client: Client with list_reservations/assign_address/unassign_address
            instances: Lookup with node_addresses/instance_id
            core_api: kubernetes.client.CoreV1Api instance
            prober: Health probe; defaults to an HTTPS HealthProbe
        """
        self.config = config
        self.core_api = core_api
        self.ports = PortState(desired_port=config.api_server_port)
        self.guard = ExecutionGuard()
        self.prober = prober or HealthProbe(timeout_s=config.probe_timeout_s)
        self.resolver = ReservationResolver(metal_client, config.project_id)
        self.engine = ReassignmentEngine(metal_client, instances, self.prober, self.ports)
        self.node_reconciler = NodeReconciler(
            self.resolver,
            self.prober,
            self.engine,
            self.ports,
            config.eip_tag,
            guard=self.guard,
            transport_error_policy=config.transport_error_policy,
        )
        self.service_reconciler = ServiceMirrorReconciler(
            self.resolver, core_api, self.ports, config.eip_tag, request_timeout=config.api_timeout_s
        )

    @classmethod
    def from_config(cls, config: EndpointConfig, core_api) -> "ControlPlaneEndpointManager":
        """Build a manager talking to the real Metal API."""
        from endpoint_manager.instances import KubernetesInstances
        from endpoint_manager.metal import MetalClient

        api_key = config.resolved_api_key()
        if not api_key:
            raise ConfigurationError(
                "No Equinix Metal API key configured",
                "Set api_key in the configuration or export METAL_AUTH_TOKEN",
            )
        metal = MetalClient(api_key, api_url=config.api_url, timeout_s=config.api_timeout_s)
        instances = KubernetesInstances(core_api, request_timeout=config.api_timeout_s)
        return cls(config, metal, instances, core_api)

    def reconcile_nodes(self, nodes: list) -> NodeReconcileOutcome:
        return self.node_reconciler.reconcile(nodes)

    def reconcile_services(self, services: list, mode: UpdateMode = UpdateMode.SYNC) -> ServiceReconcileOutcome:
        return self.service_reconciler.reconcile(services, mode)

    def sync(self, mode: UpdateMode = UpdateMode.SYNC) -> SyncReport:
        """List services and nodes and run both reconcilers once.

        Services go first so the API server port is known before nodes are
        checked. A failure of one reconciler does not prevent the other.
        """
        report = SyncReport()
        timeout = self.config.api_timeout_s

        try:
            try:
                services = self.core_api.list_service_for_all_namespaces(_request_timeout=timeout).items
            except KUBERNETES_API_ERRORS as e:
                raise KubernetesError("Failed to list services", describe_api_error(e))
            report.service_outcome = self.reconcile_services(services, mode)
            logger.info(f"Service reconciliation: {report.service_outcome.value}")
        except EndpointManagerError as e:
            logger.error(f"Service reconciliation failed: {e.message}")
            report.errors.append(e)

        try:
            try:
                nodes = self.core_api.list_node(_request_timeout=timeout).items
            except KUBERNETES_API_ERRORS as e:
                raise KubernetesError("Failed to list nodes", describe_api_error(e))
            report.node_outcome = self.reconcile_nodes(nodes)
            logger.info(f"Node reconciliation: {report.node_outcome.value}")
        except EndpointManagerError as e:
            logger.error(f"Node reconciliation failed: {e.message}")
            report.errors.append(e)

        return report
