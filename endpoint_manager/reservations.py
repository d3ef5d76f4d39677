"""Lookup of the control plane floating IP reservation by tag."""

from collections.abc import Iterable, Sequence

from endpoint_manager.exceptions import ConfigurationError
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.reservation import IPReservation

logger = get_logger(__name__)


def reservation_by_all_tags(tags: Sequence[str], reservations: Iterable[IPReservation]) -> IPReservation | None:
    """Return the first reservation carrying every tag in ``tags``."""
    for reservation in reservations:
        if reservation.has_all_tags(tags):
            return reservation
    return None


class ReservationResolver:
    """Finds the reservation matching the configured tags.

    The listing is repeated on every call: assignments change out of band
    (operators, other controllers, a half-finished failover).
    """

    def __init__(self, metal_client, project_id: str):
        self.metal = metal_client
        self.project_id = project_id

    def resolve(self, tags: Sequence[str]) -> IPReservation | None:
        """Resolve the reservation for ``tags``.

        Returns:
            The matching reservation, or None when no reservation matches

        Raises:
            ConfigurationError: If no usable tag is configured
            MetalAPIError: If the reservations cannot be listed
        """
        tags = [t for t in tags if t]
        if not tags:
            raise ConfigurationError(
                "Control plane load balancer elastic IP tag is empty. Nothing to do",
                "Set eip_tag in the configuration to the tag of the reserved elastic IP",
            )

        reservations = self.metal.list_reservations(self.project_id, include_assignments=True)
        reservation = reservation_by_all_tags(tags, reservations)
        if reservation is None:
            logger.error(f"Elastic IP not found. Please verify you have one with the expected tag: {', '.join(tags)}")
            return None

        logger.debug(
            f"Resolved elastic IP {reservation.address} ({reservation.id}) "
            f"with {len(reservation.assignments)} assignment(s)"
        )
        return reservation
