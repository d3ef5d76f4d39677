"""Data models for reservations, node addressing and configuration."""

from endpoint_manager.models.config import EndpointConfig, TransportErrorPolicy
from endpoint_manager.models.node import NodeAddress, is_control_plane
from endpoint_manager.models.reservation import IPAssignment, IPReservation

__all__ = [
    "EndpointConfig",
    "TransportErrorPolicy",
    "NodeAddress",
    "is_control_plane",
    "IPAssignment",
    "IPReservation",
]
