"""
Pydantic models for the objects the availability controller observes.

The shapes follow the Kubernetes wire format (apiregistration.k8s.io/v1
APIService, core/v1 Service and Endpoints), trimmed to the fields the
availability checks read. Field aliases use the camelCase wire names so that
raw API payloads validate directly:

    api = AggregatedAPI.model_validate(payload)
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from apiavailability.contracts.types import (
    ConditionStatus,
    ConditionType,
    ServiceType,
)


def service_key(namespace: str, name: str) -> str:
    """Stable cache key for namespaced objects (services and endpoints)."""
    return f"{namespace}/{name}"


class ServiceReference(BaseModel):
    """Reference from an APIService to the service fronting it."""
    namespace: str = Field(..., description="Service namespace")
    name: str = Field(..., description="Service name")
    port: int = Field(443, ge=1, le=65535, description="Service port number")

    @property
    def key(self) -> str:
        return service_key(self.namespace, self.name)


class APIServiceSpec(BaseModel):
    """Registration of an API group/version."""
    group: str = Field("", description="API group name")
    version: str = Field("", description="API version")
    service: Optional[ServiceReference] = Field(
        None, description="Backing service; None for locally served APIs"
    )


class APIServiceCondition(BaseModel):
    """A single status condition."""
    type: ConditionType = Field(ConditionType.AVAILABLE, description="Condition type")
    status: ConditionStatus = Field(..., description="True, False or Unknown")
    reason: str = Field("", description="Short machine-readable reason")
    message: str = Field("", description="Human-readable detail")
    last_transition_time: Optional[datetime] = Field(
        None, alias="lastTransitionTime", description="Last time status changed"
    )

    model_config = ConfigDict(populate_by_name=True)

    def same_state(self, other: Optional["APIServiceCondition"]) -> bool:
        """Compare everything except the transition time."""
        if other is None:
            return False
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )


class APIServiceStatus(BaseModel):
    """Status sub-resource of an APIService."""
    conditions: List[APIServiceCondition] = Field(default_factory=list)


class AggregatedAPI(BaseModel):
    """
    A registered API group/version (an APIService).

    Local APIs have no backing service and are served in-process; remote ones
    are proxied to ``spec.service``.
    """
    name: str = Field(..., description="Unique name, <version>.<group>")
    resource_version: Optional[str] = Field(
        None, alias="resourceVersion", description="Optimistic concurrency token"
    )
    spec: APIServiceSpec = Field(default_factory=APIServiceSpec)
    status: APIServiceStatus = Field(default_factory=APIServiceStatus)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def local(cls, name: str) -> "AggregatedAPI":
        """Build a locally served APIService."""
        return cls(name=name)

    @classmethod
    def remote(
        cls,
        name: str,
        namespace: str,
        service_name: str,
        port: int = 443,
    ) -> "AggregatedAPI":
        """Build an APIService backed by ``namespace/service_name:port``."""
        version, _, group = name.partition(".")
        return cls(
            name=name,
            spec=APIServiceSpec(
                group=group,
                version=version,
                service=ServiceReference(namespace=namespace, name=service_name, port=port),
            ),
        )

    @property
    def is_local(self) -> bool:
        return self.spec.service is None

    @property
    def backend_key(self) -> Optional[str]:
        """Key of the backing service, or None for local APIs."""
        if self.spec.service is None:
            return None
        return self.spec.service.key

    def get_condition(
        self, condition_type: ConditionType = ConditionType.AVAILABLE
    ) -> Optional[APIServiceCondition]:
        for condition in self.status.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def is_available(self) -> bool:
        condition = self.get_condition(ConditionType.AVAILABLE)
        return condition is not None and condition.status == ConditionStatus.TRUE


class ServicePort(BaseModel):
    """A port declared on a Service."""
    port: int = Field(..., ge=1, le=65535)
    name: str = Field("", description="Optional port name")


class BackingService(BaseModel):
    """The in-cluster Service fronting a remote APIService."""
    namespace: str
    name: str
    type: ServiceType = Field(ServiceType.CLUSTER_IP, description="Service type")
    ports: List[ServicePort] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return service_key(self.namespace, self.name)

    def find_port(self, number: int) -> Optional[ServicePort]:
        for port in self.ports:
            if port.port == number:
                return port
        return None


class EndpointAddress(BaseModel):
    ip: str


class EndpointPort(BaseModel):
    port: int
    name: str = ""


class EndpointSubset(BaseModel):
    """A group of addresses sharing the same set of ports."""
    addresses: List[EndpointAddress] = Field(default_factory=list)
    ports: List[EndpointPort] = Field(default_factory=list)


class ServiceEndpoints(BaseModel):
    """Live endpoint set of a Service (same namespace/name as the Service)."""
    namespace: str
    name: str
    subsets: List[EndpointSubset] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return service_key(self.namespace, self.name)

    def has_address_for_port(self, port_name: str) -> bool:
        """True if some subset has an address and a port named ``port_name``."""
        for subset in self.subsets:
            if not subset.addresses:
                continue
            if any(port.name == port_name for port in subset.ports):
                return True
        return False
