"""Configuration model for the endpoint manager."""

import os
from enum import Enum

from pydantic import BaseModel, field_validator

DEFAULT_METAL_API_URL = "https://api.equinix.com/metal/v1"
METAL_TOKEN_ENV = "METAL_AUTH_TOKEN"


class TransportErrorPolicy(str, Enum):
    """How a transport failure on the floating IP probe is interpreted.

    ``unhealthy``: treated like a non-200 answer and triggers failover.
    ``error``: raised as HealthCheckTransportError; no failover is attempted.

    Candidate probes during failover always treat transport errors as unhealthy.
    """

    UNHEALTHY = "unhealthy"
    ERROR = "error"


class EndpointConfig(BaseModel):
    """Settings for the control plane endpoint manager."""

    project_id: str
    eip_tag: str = ""
    api_key: str | None = None
    api_url: str = DEFAULT_METAL_API_URL
    api_server_port: int = 0
    probe_timeout_s: float = 5.0
    api_timeout_s: float = 30.0
    reconcile_interval_s: int = 30
    transport_error_policy: TransportErrorPolicy = TransportErrorPolicy.UNHEALTHY

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Validate project_id is not empty."""
        if not v:
            raise ValueError("project_id cannot be empty")
        return v

    @field_validator("api_server_port")
    @classmethod
    def validate_api_server_port(cls, v: int) -> int:
        """Validate the port; 0 means derive it from the cluster."""
        if not 0 <= v <= 65535:
            raise ValueError(f"api_server_port must be between 0 and 65535, got {v}")
        return v

    @field_validator("probe_timeout_s", "api_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeouts are positive."""
        if v <= 0:
            raise ValueError(f"timeout must be positive, got {v}")
        return v

    @field_validator("reconcile_interval_s")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Validate the reconcile interval is at least one second."""
        if v < 1:
            raise ValueError(f"reconcile_interval_s must be at least 1, got {v}")
        return v

    def resolved_api_key(self) -> str | None:
        """API key from the config, falling back to the environment."""
        return self.api_key or os.environ.get(METAL_TOKEN_ENV)

    def save(self, path: str) -> None:
        """Save configuration to YAML file."""
        import yaml

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)

    @classmethod
    def load(cls, path: str) -> "EndpointConfig":
        """Load configuration from YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)
