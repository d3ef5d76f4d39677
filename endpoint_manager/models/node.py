"""Data models for node addressing."""

from pydantic import BaseModel, field_validator

HOSTNAME_ADDRESS_TYPE = "Hostname"

# Both labels are in use: "master" on older clusters, "control-plane" on newer ones
CONTROL_PLANE_LABELS = (
    "node-role.kubernetes.io/master",
    "node-role.kubernetes.io/control-plane",
)


class NodeAddress(BaseModel):
    """A typed network address of a node (Hostname, InternalIP, ExternalIP, ...)."""

    type: str
    address: str

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate the address is not empty."""
        if not v:
            raise ValueError("address cannot be empty")
        return v

    @property
    def is_probe_target(self) -> bool:
        """Hostname entries depend on DNS setup and are never probed directly."""
        return self.type != HOSTNAME_ADDRESS_TYPE


def is_control_plane(node) -> bool:
    """Return True if a Kubernetes node object carries a control-plane role label."""
    labels = (node.metadata.labels if node.metadata else None) or {}
    return any(label in labels for label in CONTROL_PLANE_LABELS)
