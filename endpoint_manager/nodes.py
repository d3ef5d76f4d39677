"""Node reconciliation: keep the floating IP on a healthy control plane node.

One pass:

1. Look up the elastic IP reservation by tag; without one there is nothing to do.
2. Health check the API server behind the elastic IP.
3. If it answers 200 the assignment is fine and the pass ends.
4. Otherwise probe the control plane nodes one address at a time and move the
   elastic IP to the first that answers 200.
5. If none answers the cluster is unhealthy; the assignment is left as it is.
"""

from enum import Enum

from endpoint_manager.exceptions import (
    ConfigurationError,
    EndpointManagerError,
    HealthCheckTransportError,
    MultipleAssignmentError,
)
from endpoint_manager.health import healthz_url
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.config import TransportErrorPolicy
from endpoint_manager.models.node import is_control_plane
from endpoint_manager.reassignment import ReassignmentEngine, ReassignmentResult
from endpoint_manager.reservations import ReservationResolver
from endpoint_manager.state import ExecutionGuard, PortState

logger = get_logger(__name__)


class NodeReconcileOutcome(str, Enum):
    SKIPPED = "skipped"
    NO_RESERVATION = "no-reservation"
    HEALTHY = "healthy"
    REASSIGNED = "reassigned"


class NodeReconciler:
    """Entry point called with the full node set on every tick."""

    def __init__(
        self,
        resolver: ReservationResolver,
        prober,
        engine: ReassignmentEngine,
        ports: PortState,
        eip_tag: str,
        guard: ExecutionGuard | None = None,
        transport_error_policy: TransportErrorPolicy = TransportErrorPolicy.UNHEALTHY,
    ):
        self.resolver = resolver
        self.prober = prober
        self.engine = engine
        self.ports = ports
        self.eip_tag = eip_tag
        self.guard = guard or ExecutionGuard()
        self.transport_error_policy = transport_error_policy
        self.last_reassignment: ReassignmentResult | None = None

    def reconcile(self, all_nodes: list) -> NodeReconcileOutcome:
        """Run one node reconciliation pass.

        Args:
            all_nodes: Every V1Node in the cluster; control plane nodes are selected here

        Returns:
            What the pass did

        Raises:
            ConfigurationError: If the elastic IP port or tag is not set
            MultipleAssignmentError: If the elastic IP is assigned to several devices
            NoHealthyCandidateError: If the elastic IP is down and no node is healthy
            HealthCheckTransportError: On a transport failure under the 'error' policy
            MetalAPIError, InstanceLookupError: Propagated from the collaborators
        """
        logger.debug("Control plane endpoint: new node reconciliation")
        with self.guard.attempt() as entered:
            if not entered:
                logger.debug(f"Control plane endpoint: guard is {self.guard.state.value}, not starting a new pass")
                return NodeReconcileOutcome.SKIPPED
            return self._reconcile(all_nodes)

    def _reconcile(self, all_nodes: list) -> NodeReconcileOutcome:
        desired_port = self.ports.desired_port
        if desired_port == 0:
            raise ConfigurationError(
                "Control plane API server port not provided or determined, cannot check",
                "Will try again on next loop",
            )

        reservation = self.resolver.resolve([self.eip_tag])
        if reservation is None:
            return NodeReconcileOutcome.NO_RESERVATION

        if len(reservation.assignments) > 1:
            logger.error(
                f"Elastic IP {reservation.address} ({reservation.id}) has "
                f"{len(reservation.assignments)} assignments"
            )
            raise MultipleAssignmentError(reservation.id, len(reservation.assignments))

        eip_url = healthz_url(reservation.address, desired_port)
        if not reservation.assignments:
            logger.warning(f"Elastic IP {reservation.address} is not assigned to any device, looking for a node")
        else:
            logger.info(f"Health checking elastic IP {eip_url}")
            result = self.prober.probe(reservation.address, desired_port)
            if result.healthy:
                return NodeReconcileOutcome.HEALTHY
            if result.transport_failed:
                if self.transport_error_policy == TransportErrorPolicy.ERROR:
                    raise HealthCheckTransportError(
                        f"Health check of elastic IP {eip_url} failed to complete",
                        result.error,
                    )
                logger.error(
                    f"HTTP client error during health check of {eip_url}, "
                    f"will try to reassign to a healthy node: {result.error}"
                )
            else:
                logger.warning(
                    f"Elastic IP {eip_url} returned HTTP {result.status_code}, "
                    "will try to reassign to a healthy node"
                )

        control_plane_nodes = []
        for node in all_nodes:
            if is_control_plane(node):
                logger.debug(f"Adding control plane node {node.metadata.name}")
                control_plane_nodes.append(node)

        try:
            self.last_reassignment = self.engine.reassign(control_plane_nodes, reservation, eip_url)
        except EndpointManagerError as e:
            logger.error(f"Error reassigning control plane endpoint to a different device: {e.message}")
            raise
        return NodeReconcileOutcome.REASSIGNED
