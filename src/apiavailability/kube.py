"""
Kubernetes client helpers.

Loads client configuration and converts between kubernetes client objects
(V1APIService, V1Service, V1Endpoints) and apiavailability models.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from kubernetes import client, config

from apiavailability.contracts.types import ConditionStatus, ConditionType, ServiceType
from apiavailability.models import (
    AggregatedAPI,
    APIServiceCondition,
    APIServiceSpec,
    APIServiceStatus,
    BackingService,
    EndpointAddress,
    EndpointPort,
    EndpointSubset,
    ServiceEndpoints,
    ServicePort,
    ServiceReference,
)

logger = logging.getLogger(__name__)


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """Load an explicit kubeconfig, else in-cluster config, else the default kubeconfig."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def _condition_status(name: str, value: Optional[str]) -> ConditionStatus:
    try:
        return ConditionStatus(value)
    except ValueError:
        logger.warning(f"Unknown status {value!r} on APIService {name}, treating as Unknown")
        return ConditionStatus.UNKNOWN


def api_from_k8s(obj: client.V1APIService) -> AggregatedAPI:
    spec = obj.spec
    service = None
    if spec is not None and spec.service is not None:
        service = ServiceReference(
            namespace=spec.service.namespace,
            name=spec.service.name,
            port=spec.service.port or 443,
        )

    conditions: List[APIServiceCondition] = []
    if obj.status is not None:
        for c in obj.status.conditions or []:
            if c.type != ConditionType.AVAILABLE.value:
                # Only the Available condition is modelled
                continue
            conditions.append(APIServiceCondition(
                type=ConditionType(c.type),
                status=_condition_status(obj.metadata.name, c.status),
                reason=c.reason or "",
                message=c.message or "",
                last_transition_time=c.last_transition_time,
            ))

    return AggregatedAPI(
        name=obj.metadata.name,
        resource_version=obj.metadata.resource_version,
        spec=APIServiceSpec(
            group=(spec.group or "") if spec is not None else "",
            version=(spec.version or "") if spec is not None else "",
            service=service,
        ),
        status=APIServiceStatus(conditions=conditions),
    )


def condition_to_k8s(condition: APIServiceCondition) -> client.V1APIServiceCondition:
    return client.V1APIServiceCondition(
        type=condition.type.value,
        status=condition.status.value,
        reason=condition.reason or None,
        message=condition.message or None,
        last_transition_time=condition.last_transition_time,
    )


def service_from_k8s(obj: client.V1Service) -> BackingService:
    spec = obj.spec
    service_type = ServiceType.CLUSTER_IP
    ports: List[ServicePort] = []
    if spec is not None:
        if spec.type:
            try:
                service_type = ServiceType(spec.type)
            except ValueError:
                logger.warning(
                    f"Unknown type {spec.type!r} on service "
                    f"{obj.metadata.namespace}/{obj.metadata.name}, treating as ClusterIP"
                )
        ports = [ServicePort(port=p.port, name=p.name or "") for p in spec.ports or []]

    return BackingService(
        namespace=obj.metadata.namespace,
        name=obj.metadata.name,
        type=service_type,
        ports=ports,
    )


def endpoints_from_k8s(obj: client.V1Endpoints) -> ServiceEndpoints:
    subsets = [
        EndpointSubset(
            addresses=[EndpointAddress(ip=a.ip) for a in subset.addresses or []],
            ports=[EndpointPort(port=p.port, name=p.name or "") for p in subset.ports or []],
        )
        for subset in obj.subsets or []
    ]
    return ServiceEndpoints(
        namespace=obj.metadata.namespace,
        name=obj.metadata.name,
        subsets=subsets,
    )
