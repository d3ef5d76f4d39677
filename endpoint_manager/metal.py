"""Equinix Metal API client for floating IP reservations.

Only the three calls the failover logic needs are implemented: listing the
project's IP reservations with their assignments, assigning an address to a
device, and removing an assignment.
"""

from typing import Any

import requests

from endpoint_manager import __version__
from endpoint_manager.exceptions import MetalAPIError
from endpoint_manager.logging_config import get_logger
from endpoint_manager.models.config import DEFAULT_METAL_API_URL
from endpoint_manager.models.reservation import IPAssignment, IPReservation

logger = get_logger(__name__)

DEFAULT_API_TIMEOUT_S = 30.0
PAGE_SIZE = 250


class MetalClient:
    """Thin REST client for the Equinix Metal IP endpoints."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_METAL_API_URL,
        timeout_s: float = DEFAULT_API_TIMEOUT_S,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Metal API token, sent as X-Auth-Token
            api_url: API base URL
            timeout_s: Timeout applied to every request
            session: Optional preconfigured session
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "X-Auth-Token": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"cp-endpoint-manager/{__version__}",
            }
        )

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_url}{path}"
        logger.debug(f"Metal API {method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout_s, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Metal API request {method} {path} failed: {e}")
            raise MetalAPIError(f"Metal API request {method} {path} failed", str(e))

        if not response.ok:
            logger.error(f"Metal API {method} {path} returned HTTP {response.status_code}: {response.text}")
            raise MetalAPIError(
                f"Metal API {method} {path} returned HTTP {response.status_code}",
                response.text or None,
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MetalAPIError(f"Metal API {method} {path} returned invalid JSON", str(e))

    def list_reservations(self, project_id: str, include_assignments: bool = True) -> list[IPReservation]:
        """List every IP reservation of a project.

        Args:
            project_id: Metal project ID
            include_assignments: Inline the current device assignments

        Returns:
            Reservations in API order
        """
        params: dict[str, Any] = {"per_page": PAGE_SIZE, "page": 1}
        if include_assignments:
            params["include"] = "assignments"

        reservations: list[IPReservation] = []
        while True:
            data = self._request("GET", f"/projects/{project_id}/ips", params=dict(params)) or {}
            for item in data.get("ip_addresses", []):
                reservations.append(IPReservation.from_api_dict(item))

            last_page = (data.get("meta") or {}).get("last_page") or 1
            if params["page"] >= last_page:
                break
            params["page"] += 1

        logger.debug(f"Listed {len(reservations)} IP reservations in project {project_id}")
        return reservations

    def assign_address(self, instance_id: str, address: str) -> IPAssignment:
        """Assign ``address`` to the device ``instance_id``."""
        data = self._request("POST", f"/devices/{instance_id}/ips", json={"address": address})
        logger.info(f"Assigned {address} to device {instance_id}")
        if not data:
            return IPAssignment(id="", address=address, device_id=instance_id)
        return IPAssignment.from_api_dict(data)

    def unassign_address(self, assignment_id: str) -> None:
        """Remove the assignment ``assignment_id``."""
        self._request("DELETE", f"/ips/{assignment_id}")
        logger.info(f"Removed IP assignment {assignment_id}")
