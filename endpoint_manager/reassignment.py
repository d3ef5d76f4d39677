"""Failover of the control plane floating IP to a healthy node."""

from dataclasses import dataclass

from endpoint_manager.exceptions import (
    MetalAPIError,
    MultipleAssignmentError,
    NoHealthyCandidateError,
    PortNotDeterminedError,
    ReassignmentIncompleteError,
)
from endpoint_manager.health import healthz_url
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.reservation import IPReservation
from endpoint_manager.state import PortState

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReassignmentResult:
    """Where the floating IP was moved to."""

    node_name: str
    address: str
    instance_id: str
    previous_assignment_id: str | None = None


class ReassignmentEngine:
    """Moves the floating IP to the first control plane node that answers healthy.

    Nodes are tried in the order given and, per node, addresses in the order
    the instance lookup returns them. Every address of a node is tried because
    the first one that works is not predictable (e.g. a misconfigured hostname
    or an unreachable private address).
    """

    def __init__(self, metal_client, instances, prober, ports: PortState):
        self.metal = metal_client
        self.instances = instances
        self.prober = prober
        self.ports = ports

    def reassign(self, nodes: list, reservation: IPReservation, eip_url: str) -> ReassignmentResult:
        """Assign ``reservation`` to the first healthy node.

        Args:
            nodes: Control plane V1Node objects, in priority order
            reservation: The floating IP reservation, with at most one assignment
            eip_url: Health check URL of the floating IP itself, never probed here

        Returns:
            ReassignmentResult describing the new assignment

        Raises:
            PortNotDeterminedError: If the node API server port is not known yet
            NoHealthyCandidateError: If no node answered healthy
            InstanceLookupError: If node addresses or the instance ID cannot be resolved
            MetalAPIError: If unassigning or assigning fails
        """
        node_port = self.ports.node_port
        if node_port == 0:
            raise PortNotDeterminedError(
                "Control plane node API server port not yet determined, cannot reassign",
                "It is learned from the default/kubernetes service; will try again on next loop",
            )
        if len(reservation.assignments) > 1:
            raise MultipleAssignmentError(reservation.id, len(reservation.assignments))

        checked = 0
        for node in nodes:
            node_name = node.metadata.name
            for addr in self.instances.node_addresses(node_name):
                if not addr.is_probe_target:
                    logger.debug(f"Skipping address check of type {addr.type}: {addr.address}")
                    continue
                url = healthz_url(addr.address, node_port)
                if url == eip_url:
                    logger.debug(f"Skipping address check for the elastic IP on node {node_name}: {eip_url}")
                    continue

                logger.info(f"Health checking node {node_name} at {url}")
                checked += 1
                result = self.prober.probe(addr.address, node_port)
                if not result.healthy:
                    if result.status_code is not None:
                        logger.info(
                            f"Will not assign control plane endpoint to node {node_name}: "
                            f"returned HTTP {result.status_code}"
                        )
                    continue

                instance_id = self.instances.instance_id(node_name)
                previous = self._move_reservation(reservation, instance_id)
                logger.info(f"Control plane endpoint {reservation.address} assigned to node {node_name}")
                return ReassignmentResult(
                    node_name=node_name,
                    address=addr.address,
                    instance_id=instance_id,
                    previous_assignment_id=previous,
                )

        logger.error(f"No healthy control plane candidate among {len(nodes)} node(s), {checked} address(es)")
        raise NoHealthyCandidateError(checked)

    def _move_reservation(self, reservation: IPReservation, instance_id: str) -> str | None:
        """Two-phase move: drop the current assignment, then assign to ``instance_id``.

        If phase two fails the reservation stays unassigned; the next node
        reconciliation sees zero assignments and searches for a candidate again.

        Returns:
            ID of the removed assignment, if there was one
        """
        previous = None
        if len(reservation.assignments) == 1:
            previous = reservation.assignments[0].id
            logger.info(f"Unassigning {reservation.address} from assignment {previous}")
            self.metal.unassign_address(previous)

        try:
            self.metal.assign_address(instance_id, reservation.address)
        except MetalAPIError as e:
            if previous is None:
                raise
            logger.error(
                f"Elastic IP {reservation.address} was unassigned but assigning it to "
                f"device {instance_id} failed: {e.message}"
            )
            raise ReassignmentIncompleteError(
                f"Elastic IP {reservation.address} is unassigned: assigning it to device {instance_id} failed",
                "The next reconciliation will search for a healthy node again",
                status_code=e.status_code,
            ) from e
        return previous
