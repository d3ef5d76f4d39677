"""In-memory state shared by the reconcilers for the lifetime of the process."""

from contextlib import contextmanager
from enum import Enum
from threading import Lock

from endpoint_manager.logging_config import get_logger

logger = get_logger(__name__)


class GuardState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


class ExecutionGuard:
    """Single-flight guard: overlapping runs are dropped, never queued."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._state = GuardState.IDLE

    @property
    def state(self) -> GuardState:
        return self._state

    def try_enter(self) -> bool:
        """Compare-and-swap Idle -> Busy. Returns False, without waiting, if already Busy."""
        with self._lock:
            if self._state is GuardState.BUSY:
                return False
            self._state = GuardState.BUSY
            return True

    def exit(self) -> None:
        """Move Busy -> Idle."""
        with self._lock:
            if self._state is GuardState.IDLE:
                raise RuntimeError("ExecutionGuard.exit() called while idle")
            self._state = GuardState.IDLE

    @contextmanager
    def attempt(self):
        """Context manager yielding whether the guard was entered.

        Example:
            with guard.attempt() as entered:
                if not entered:
                    return
                ...
        """
        entered = self.try_enter()
        try:
            yield entered
        finally:
            if entered:
                self.exit()


class PortState:
    """Ports the floating IP and the API servers listen on.

    Ownership:
        - ``desired_port``: the port the floating IP is probed and published on.
          Set from configuration, or adopted once from the cluster.
        - ``node_port``: the port the API server listens on on each control
          plane node, taken from the upstream service's target port.

    Only the service mirror reconciler writes (through
    ``observe_upstream_port``); the node reconciler and the reassignment
    engine only read. 0 means unknown for both.
    """

    def __init__(self, desired_port: int = 0):
        self._lock = Lock()
        self._desired_port = desired_port
        self._node_port = 0
        self.explicitly_configured = desired_port != 0

    @property
    def desired_port(self) -> int:
        with self._lock:
            return self._desired_port

    @property
    def node_port(self) -> int:
        with self._lock:
            return self._node_port

    def observe_upstream_port(self, target_port: int) -> int:
        """Record the node-side port and adopt it as the desired port if none is set.

        The node port always tracks the latest observation. The desired port is
        first-observation-wins: once set (by configuration or by an earlier
        observation) it is never overwritten.

        Returns:
            The desired port after the observation
        """
        with self._lock:
            if self._node_port != target_port:
                logger.info(f"Control plane nodes serve the API on port {target_port}")
                if self.explicitly_configured and target_port != self._desired_port:
                    logger.info(
                        f"Elastic IP is published on the configured port {self._desired_port}, "
                        f"forwarding to node port {target_port}"
                    )
            self._node_port = target_port
            if self._desired_port == 0:
                self._desired_port = target_port
                logger.info(f"Adopted port {target_port} for the control plane elastic IP")
            return self._desired_port
