"""HTTPS health probing of Kubernetes API servers."""

import ipaddress
from dataclasses import dataclass

import requests
import urllib3

from endpoint_manager.logging_config import get_logger

logger = get_logger(__name__)

HEALTHZ_PATH = "/healthz"
DEFAULT_PROBE_TIMEOUT_S = 5.0


def healthz_url(address: str, port: int) -> str:
    """Build the health check URL of an API server listening on ``address:port``."""
    host = address
    try:
        if ipaddress.ip_address(address).version == 6:
            host = f"[{address}]"
    except ValueError:
        pass
    return f"https://{host}:{port}{HEALTHZ_PATH}"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single health probe.

    Exactly one of ``status_code`` and ``error`` is set: a status code when the
    server answered, an error description when the request never completed.
    """

    url: str
    healthy: bool
    status_code: int | None = None
    error: str | None = None

    @property
    def transport_failed(self) -> bool:
        return self.error is not None


class HealthProbe:
    """Issues a single GET against an API server's /healthz endpoint.

    Certificates are not verified: the control plane serves a certificate
    signed by the cluster CA, which the caller usually does not hold.
    """

    def __init__(self, timeout_s: float = DEFAULT_PROBE_TIMEOUT_S, session: requests.Session | None = None):
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.verify = False
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def probe(self, address: str, port: int) -> ProbeResult:
        """Probe ``https://{address}:{port}/healthz``.

        Returns:
            ProbeResult, healthy only for an HTTP 200 answer
        """
        return self.probe_url(healthz_url(address, port))

    def probe_url(self, url: str) -> ProbeResult:
        logger.debug(f"Health checking {url}")
        try:
            with self.session.get(url, timeout=self.timeout_s, verify=False, allow_redirects=False) as resp:
                status_code = resp.status_code
        except requests.RequestException as e:
            logger.error(f"HTTP client error during health check of {url}: {e}")
            return ProbeResult(url=url, healthy=False, error=f"{type(e).__name__}: {e}")

        if status_code != requests.codes.ok:
            logger.info(f"Health check of {url} returned HTTP {status_code}")
            return ProbeResult(url=url, healthy=False, status_code=status_code)

        logger.debug(f"Health check of {url} succeeded")
        return ProbeResult(url=url, healthy=True, status_code=status_code)
