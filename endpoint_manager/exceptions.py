"""Custom exceptions for the endpoint manager."""

import urllib3
from kubernetes.client.rest import ApiException


class EndpointManagerError(Exception):
    """Base exception for all endpoint manager errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigurationError(EndpointManagerError):
    """Exception raised for configuration errors."""

    pass


class PortNotDeterminedError(ConfigurationError):
    """Raised when the node-side API server port has not been observed yet."""

    pass


class MetalAPIError(EndpointManagerError):
    """Exception raised for Equinix Metal API errors."""

    def __init__(self, message: str, details: str = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, details)


class ReassignmentIncompleteError(MetalAPIError):
    """Raised when the floating IP was unassigned but the new assignment failed.

    The reservation is left without an assignment; the next node reconciliation
    pass searches for a fresh candidate.
    """

    pass


class InstanceLookupError(EndpointManagerError):
    """Exception raised when a node's addresses or instance ID cannot be resolved."""

    pass


class KubernetesError(EndpointManagerError):
    """Exception raised for Kubernetes API errors."""

    pass


class MultipleAssignmentError(EndpointManagerError):
    """Raised when the floating IP is assigned to more than one device."""

    def __init__(self, reservation_id: str, count: int):
        self.reservation_id = reservation_id
        self.count = count
        super().__init__(
            f"The elastic IP {reservation_id} has {count} devices assigned to it, "
            "which is not supported",
            "Fix it manually by unassigning devices until at most one remains",
        )


class InvalidServiceError(EndpointManagerError):
    """Raised when the upstream API server service is unusable."""

    pass


class ServiceNotFoundError(EndpointManagerError):
    """Raised when a full sync pass does not include the upstream service."""

    pass


class NoHealthyCandidateError(EndpointManagerError):
    """Raised when no control plane node passed its health check."""

    def __init__(self, checked: int):
        self.checked = checked
        super().__init__(
            "Did not find a good candidate for the control plane elastic IP. Cluster is unhealthy",
            f"Checked {checked} address(es); the current assignment was left untouched",
        )


class HealthCheckTransportError(EndpointManagerError):
    """Raised for a transport failure on the floating IP probe under the 'error' policy."""

    pass


# The kubernetes client only wraps HTTP answers (and TLS failures) in ApiException;
# refused connections and timeouts surface as urllib3 errors
KUBERNETES_API_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def describe_api_error(e: Exception) -> str:
    """Short description of a Kubernetes API failure for error details."""
    if isinstance(e, ApiException):
        return f"{e.status} {e.reason}"
    return f"{type(e).__name__}: {e}"
