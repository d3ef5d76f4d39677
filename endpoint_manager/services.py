"""Service mirroring: publish the control plane behind the floating IP.

The upstream ``default/kubernetes`` service only has a cluster IP. It is
mirrored into a LoadBalancer service in kube-system whose load balancer IP
and status carry the elastic IP, with an endpoints object copying the
upstream endpoints, so consumers can discover the external control plane
address through ordinary Kubernetes objects.
"""

import copy
from enum import Enum

from kubernetes import client
from kubernetes.client.rest import ApiException

from endpoint_manager.exceptions import (
    KUBERNETES_API_ERRORS,
    InvalidServiceError,
    KubernetesError,
    MultipleAssignmentError,
    ServiceNotFoundError,
    describe_api_error,
)
from endpoint_manager.logging_config import get_logger
from endpoint_manager.reservations import ReservationResolver
from endpoint_manager.state import PortState

logger = get_logger(__name__)

UPSTREAM_SERVICE_NAMESPACE = "default"
UPSTREAM_SERVICE_NAME = "kubernetes"
EXTERNAL_SERVICE_NAME = "cloud-provider-equinix-metal-kubernetes-external"
EXTERNAL_SERVICE_NAMESPACE = "kube-system"
METALLB_ANNOTATION = "metallb.universe.tf/address-pool"
METALLB_DISABLED_TAG = "disabled-metallb-do-not-use-any-address-pool"


class UpdateMode(str, Enum):
    """Why the service set was handed over.

    ``SYNC``: a full listing of every service. The upstream service must be
    present; its absence is an error.
    ``ADD`` / ``REMOVE``: an incremental change containing only some services.
    Absence of the upstream service is expected and is not an error.
    """

    ADD = "add"
    REMOVE = "remove"
    SYNC = "sync"

    @property
    def expects_full_listing(self) -> bool:
        return self is UpdateMode.SYNC


class ServiceReconcileOutcome(str, Enum):
    NO_RESERVATION = "no-reservation"
    NOT_FOUND = "not-found"
    MIRRORED = "mirrored"


def target_port_value(port) -> int:
    """Numeric target port of a V1ServicePort.

    Named target ports cannot be resolved without the pods; the service port
    itself is used for them, as it is for an unset target port.
    """
    target = port.target_port
    if isinstance(target, int):
        return target
    if isinstance(target, str) and target.isdigit():
        return int(target)
    if target:
        logger.warning(f"Named target port '{target}' on the API server service, using port {port.port}")
    return port.port


def _is_not_found(e: Exception) -> bool:
    return isinstance(e, ApiException) and e.status == 404


class ServiceMirrorReconciler:
    """Entry point called with the service set on every tick.

    Concurrent calls are not serialised against each other.
    """

    def __init__(
        self,
        resolver: ReservationResolver,
        core_api,
        ports: PortState,
        eip_tag: str,
        request_timeout: float | None = None,
    ):
        self.resolver = resolver
        self.core_api = core_api
        self.ports = ports
        self.eip_tag = eip_tag
        self.request_timeout = request_timeout

    def reconcile(self, all_services: list, mode: UpdateMode = UpdateMode.SYNC) -> ServiceReconcileOutcome:
        """Mirror the API server service onto the elastic IP.

        Args:
            all_services: V1Service objects handed over by the caller
            mode: Whether ``all_services`` is a full listing

        Returns:
            What the pass did

        Raises:
            ConfigurationError: If the elastic IP tag is empty
            MultipleAssignmentError: If the elastic IP is assigned to several devices
            ServiceNotFoundError: If a SYNC pass lacks default/kubernetes
            InvalidServiceError: If default/kubernetes has no ports
            KubernetesError: If reading or writing the mirrored objects fails
        """
        reservation = self.resolver.resolve([self.eip_tag])
        if reservation is None:
            return ServiceReconcileOutcome.NO_RESERVATION
        if len(reservation.assignments) > 1:
            logger.error(
                f"Elastic IP {reservation.address} ({reservation.id}) has "
                f"{len(reservation.assignments)} assignments"
            )
            raise MultipleAssignmentError(reservation.id, len(reservation.assignments))

        eip = reservation.address
        for svc in all_services:
            if (
                svc.metadata.namespace != UPSTREAM_SERVICE_NAMESPACE
                or svc.metadata.name != UPSTREAM_SERVICE_NAME
            ):
                continue
            self._mirror(svc, eip)
            return ServiceReconcileOutcome.MIRRORED

        if mode.expects_full_listing:
            logger.error(f"Service {UPSTREAM_SERVICE_NAMESPACE}/{UPSTREAM_SERVICE_NAME} not found in sync")
            raise ServiceNotFoundError(
                f"Service {UPSTREAM_SERVICE_NAMESPACE}/{UPSTREAM_SERVICE_NAME} not found"
            )
        return ServiceReconcileOutcome.NOT_FOUND

    def _mirror(self, svc, eip: str) -> None:
        existing_ports = (svc.spec.ports if svc.spec else None) or []
        if not existing_ports:
            logger.error(f"{UPSTREAM_SERVICE_NAMESPACE}/{UPSTREAM_SERVICE_NAME} service has no ports")
            raise InvalidServiceError(
                f"{UPSTREAM_SERVICE_NAMESPACE}/{UPSTREAM_SERVICE_NAME} service does not have any ports defined"
            )

        desired_port = self.ports.observe_upstream_port(target_port_value(existing_ports[0]))

        self._mirror_endpoints(svc.metadata.namespace, svc.metadata.name)

        ports = [copy.deepcopy(p) for p in existing_ports]
        ports[0].port = desired_port
        self._mirror_service(eip, ports)
        self._publish_status(eip)

    def _mirror_endpoints(self, namespace: str, name: str) -> None:
        try:
            upstream = self.core_api.read_namespaced_endpoints(
                name, namespace, _request_timeout=self.request_timeout
            )
        except KUBERNETES_API_ERRORS as e:
            logger.error(f"Failed to get endpoints {namespace}/{name}: {describe_api_error(e)}")
            raise KubernetesError(f"Failed to get endpoints {namespace}/{name}", describe_api_error(e))

        existed = True
        try:
            mine = self.core_api.read_namespaced_endpoints(
                EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, _request_timeout=self.request_timeout
            )
        except KUBERNETES_API_ERRORS as e:
            if not _is_not_found(e):
                logger.error(f"Failed to get mirrored endpoints: {describe_api_error(e)}")
                raise KubernetesError(
                    f"Failed to get endpoints {EXTERNAL_SERVICE_NAMESPACE}/{EXTERNAL_SERVICE_NAME}",
                    describe_api_error(e),
                )
            logger.info(
                f"Endpoints {EXTERNAL_SERVICE_NAMESPACE}/{EXTERNAL_SERVICE_NAME} did not yet exist, creating"
            )
            mine = client.V1Endpoints(
                metadata=client.V1ObjectMeta(name=EXTERNAL_SERVICE_NAME, namespace=EXTERNAL_SERVICE_NAMESPACE)
            )
            existed = False

        mine.subsets = [copy.deepcopy(s) for s in upstream.subsets or []]

        try:
            if existed:
                self.core_api.replace_namespaced_endpoints(
                    EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, mine, _request_timeout=self.request_timeout
                )
            else:
                self.core_api.create_namespaced_endpoints(
                    EXTERNAL_SERVICE_NAMESPACE, mine, _request_timeout=self.request_timeout
                )
        except KUBERNETES_API_ERRORS as e:
            action = "update" if existed else "create"
            logger.error(f"Failed to {action} mirrored endpoints: {describe_api_error(e)}")
            raise KubernetesError(f"Failed to {action} mirrored endpoints", describe_api_error(e))

    def _desired_service(self, eip: str, ports: list):
        return client.V1Service(
            metadata=client.V1ObjectMeta(
                name=EXTERNAL_SERVICE_NAME,
                namespace=EXTERNAL_SERVICE_NAMESPACE,
                annotations={METALLB_ANNOTATION: METALLB_DISABLED_TAG},
            ),
            spec=client.V1ServiceSpec(type="LoadBalancer", load_balancer_ip=eip, ports=ports),
        )

    def _mirror_service(self, eip: str, ports: list) -> None:
        try:
            existing = self.core_api.read_namespaced_service(
                EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, _request_timeout=self.request_timeout
            )
        except KUBERNETES_API_ERRORS as e:
            if not _is_not_found(e):
                logger.error(f"Failed to get mirrored service: {describe_api_error(e)}")
                raise KubernetesError(
                    f"Failed to get service {EXTERNAL_SERVICE_NAMESPACE}/{EXTERNAL_SERVICE_NAME}",
                    describe_api_error(e),
                )
            existing = None

        try:
            if existing is not None:
                logger.debug(f"Service {EXTERNAL_SERVICE_NAME} already exists, just updating")
                # Only the address and ports are ours; the rest (node ports, labels, ...) is kept
                existing.spec.load_balancer_ip = eip
                existing.spec.ports = ports
                self.core_api.replace_namespaced_service(
                    EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, existing, _request_timeout=self.request_timeout
                )
            else:
                logger.info(f"Service {EXTERNAL_SERVICE_NAME} did not exist, creating")
                self.core_api.create_namespaced_service(
                    EXTERNAL_SERVICE_NAMESPACE, self._desired_service(eip, ports), _request_timeout=self.request_timeout
                )
        except KUBERNETES_API_ERRORS as e:
            action = "update" if existing is not None else "create"
            logger.error(f"Failed to {action} service: {describe_api_error(e)}")
            raise KubernetesError(f"Failed to {action} service {EXTERNAL_SERVICE_NAME}", describe_api_error(e))

    def _publish_status(self, eip: str) -> None:
        try:
            svc = self.core_api.read_namespaced_service(
                EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, _request_timeout=self.request_timeout
            )
            svc.status = client.V1ServiceStatus(
                load_balancer=client.V1LoadBalancerStatus(ingress=[client.V1LoadBalancerIngress(ip=eip)])
            )
            self.core_api.replace_namespaced_service_status(
                EXTERNAL_SERVICE_NAME, EXTERNAL_SERVICE_NAMESPACE, svc, _request_timeout=self.request_timeout
            )
        except KUBERNETES_API_ERRORS as e:
            logger.error(f"Failed to update service status: {describe_api_error(e)}")
            raise KubernetesError(f"Failed to update status of service {EXTERNAL_SERVICE_NAME}", describe_api_error(e))
        logger.debug(f"Published load balancer ingress {eip} on {EXTERNAL_SERVICE_NAME}")
