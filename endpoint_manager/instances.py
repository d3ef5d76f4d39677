"""Node to cloud instance lookups backed by the Kubernetes Node objects."""

from endpoint_manager.exceptions import KUBERNETES_API_ERRORS, InstanceLookupError, describe_api_error
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.node import NodeAddress

logger = get_logger(__name__)

PROVIDER_ID_PREFIXES = ("equinixmetal://", "packet://")


def instance_id_from_provider_id(provider_id: str) -> str:
    """Extract the device ID from a node ``spec.providerID``.

    Raises:
        InstanceLookupError: If the provider ID does not belong to Equinix Metal
    """
    for prefix in PROVIDER_ID_PREFIXES:
        if provider_id.startswith(prefix):
            instance_id = provider_id[len(prefix):].strip("/")
            if instance_id:
                return instance_id
    raise InstanceLookupError(
        f"Unrecognised provider ID '{provider_id}'",
        f"Expected one of the prefixes: {', '.join(PROVIDER_ID_PREFIXES)}",
    )


class KubernetesInstances:
    """Resolves node addresses and instance IDs from the Node API objects."""

    def __init__(self, core_api, request_timeout: float | None = None):
        """Initialize the lookup.

        Args:
            core_api: kubernetes.client.CoreV1Api instance
            request_timeout: Timeout passed to every API call
        """
        self.core_api = core_api
        self.request_timeout = request_timeout

    def _read_node(self, node_name: str):
        try:
            return self.core_api.read_node(node_name, _request_timeout=self.request_timeout)
        except KUBERNETES_API_ERRORS as e:
            logger.error(f"Failed to read node {node_name}: {describe_api_error(e)}")
            raise InstanceLookupError(f"Failed to read node {node_name}", describe_api_error(e))

    def node_addresses(self, node_name: str) -> list[NodeAddress]:
        """Typed addresses of ``node_name`` in the order the node reports them."""
        node = self._read_node(node_name)
        addresses = (node.status.addresses if node.status else None) or []
        return [NodeAddress(type=a.type, address=a.address) for a in addresses if a.address]

    def instance_id(self, node_name: str) -> str:
        """Cloud device ID of ``node_name``."""
        node = self._read_node(node_name)
        provider_id = node.spec.provider_id if node.spec else None
        if not provider_id:
            raise InstanceLookupError(
                f"Node {node_name} has no provider ID",
                "The cloud controller manager has not initialised this node yet",
            )
        return instance_id_from_provider_id(provider_id)
