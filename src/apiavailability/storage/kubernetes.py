"""
Kubernetes API status store.

Writes the status sub-resource of apiregistration.k8s.io/v1 APIServices.
The resource version read by the controller is sent with the update, so a
concurrent writer makes the API server answer 409 Conflict.
"""

from __future__ import annotations

import logging
from typing import Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from apiavailability.contracts.timeouts import K8S_API_REQUEST_TIMEOUT_S
from apiavailability.errors import ConflictError, NotFoundError, TransportError
from apiavailability.kube import api_from_k8s, condition_to_k8s, load_kube_config
from apiavailability.models import AggregatedAPI
from apiavailability.storage.base import StatusStore, StoreType, register_backend

logger = logging.getLogger(__name__)


@register_backend(StoreType.KUBERNETES)
class KubernetesStatusStore(StatusStore):
    """
    APIService status store backed by the Kubernetes API.

    Args:
        kubeconfig: Path to kubeconfig (in-cluster config is tried first when unset)
        api: Preconfigured ApiregistrationV1Api (skips config loading)
    """

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        api: Optional[client.ApiregistrationV1Api] = None,
    ):
        if api is None:
            load_kube_config(kubeconfig)
            api = client.ApiregistrationV1Api()
        self.api = api
        logger.debug("KubernetesStatusStore initialized")

    def update_status(self, api: AggregatedAPI) -> AggregatedAPI:
        try:
            current = self.api.read_api_service(
                api.name, _request_timeout=K8S_API_REQUEST_TIMEOUT_S
            )
            # Keep the version the conditions were computed from, not the one just read
            if api.resource_version is not None:
                current.metadata.resource_version = api.resource_version

            kept = [
                c for c in (current.status.conditions if current.status else None) or []
                if api.get_condition(c.type) is None
            ]
            current.status = client.V1APIServiceStatus(
                conditions=kept + [condition_to_k8s(c) for c in api.status.conditions]
            )
            stored = self.api.replace_api_service_status(
                api.name, current, _request_timeout=K8S_API_REQUEST_TIMEOUT_S
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("APIService", api.name) from e
            if e.status == 409:
                raise ConflictError(api.name, api.resource_version) from e
            raise TransportError(f"updating status of {api.name}: {e.status} {e.reason}") from e
        except Exception as e:
            raise TransportError(f"updating status of {api.name}: {e}") from e

        return api_from_k8s(stored)
