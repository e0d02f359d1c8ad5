"""
Service definitions and cluster-facing data models.

Service definitions are a tagged union on ``type`` (application, database, image).
Builders dispatch on the tag, so adding a variant means adding it here and to
every variant dispatch in the kubernetes helpers.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class ServiceType(str, Enum):
    APPLICATION = "application"
    DATABASE = "database"
    IMAGE = "image"


class WorkloadKind(str, Enum):
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"


class ServiceState(str, Enum):
    """Coarse service state reported to callers."""
    STOPPED = "stopped"
    RUNNING = "running"
    PENDING = "pending"
    ERROR = "error"


# =============================================================================
# Service definitions
# =============================================================================

class ResourceSpec(BaseModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None


class VolumeMount(BaseModel):
    container_path: str
    nfs_subpath: Optional[str] = None
    read_only: Optional[bool] = None
    host_path: Optional[str] = None


class BaseService(BaseModel):
    name: str
    env_vars: Dict[str, str] = Field(default_factory=dict)
    resource_limits: Optional[ResourceSpec] = None
    resource_requests: Optional[ResourceSpec] = None
    volumes: List[VolumeMount] = Field(default_factory=list)
    # Raw network configuration (legacy single-port or v2 multi-port shape);
    # see services.orchestration.kubernetes.network for normalization
    network_config: Optional[Dict[str, Any]] = None


class ApplicationService(BaseService):
    type: Literal["application"] = "application"
    built_image: Optional[str] = None
    replicas: int = 1
    command: Optional[str] = None
    port: Optional[int] = None


class DatabaseService(BaseService):
    type: Literal["database"] = "database"
    database_type: str
    version: Optional[str] = None
    port: Optional[int] = None
    external_port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    root_password: Optional[str] = None
    database_name: Optional[str] = None
    volume_size: Optional[str] = None
    replicas: int = 1
    command: Optional[str] = None


class ImageService(BaseService):
    type: Literal["image"] = "image"
    image: str
    tag: Optional[str] = None
    replicas: int = 1
    command: Optional[str] = None


Service = Annotated[
    Union[ApplicationService, DatabaseService, ImageService],
    Field(discriminator="type"),
]

service_adapter = TypeAdapter(Service)


def parse_service(data: Dict[str, Any]) -> Union[ApplicationService, DatabaseService, ImageService]:
    """Validate a raw service definition into its concrete variant."""
    return service_adapter.validate_python(data)


# =============================================================================
# Normalized network configuration
# =============================================================================

ServiceEndpointType = Literal["ClusterIP", "NodePort", "LoadBalancer"]
PortProtocol = Literal["TCP", "UDP"]


class PortDomain(BaseModel):
    host: str
    prefix: Optional[str] = None


class NormalizedPort(BaseModel):
    container_port: int = Field(..., gt=0)
    service_port: int = Field(..., gt=0)
    protocol: PortProtocol = "TCP"
    node_port: Optional[int] = Field(None, gt=0)
    domain: Optional[PortDomain] = None


class NormalizedNetworkConfig(BaseModel):
    service_type: ServiceEndpointType = "ClusterIP"
    ports: List[NormalizedPort] = Field(default_factory=list)
    # Also publish a "<name>-headless" endpoint (clusterIP None) for per-pod DNS
    headless_service_enabled: bool = False


# =============================================================================
# Cluster import
# =============================================================================

class ImportContainerInfo(BaseModel):
    name: str
    image: str
    tag: str = "latest"
    command: Optional[str] = None
    env: Optional[Dict[str, str]] = None


class ImportVolumeInfo(BaseModel):
    container_path: str
    host_path: Optional[str] = None
    read_only: Optional[bool] = None
    sub_path: Optional[str] = None


class ImportServicePort(BaseModel):
    name: Optional[str] = None
    port: int
    target_port: int
    protocol: PortProtocol = "TCP"
    node_port: Optional[int] = None


class ImportMatchedService(BaseModel):
    name: str
    type: str
    ports: List[ImportServicePort] = Field(default_factory=list)


class ImportCandidate(BaseModel):
    uid: str
    name: str
    namespace: str
    kind: WorkloadKind
    labels: Dict[str, str] = Field(default_factory=dict)
    replicas: int = 1
    image: str
    tag: str = "latest"
    command: Optional[str] = None
    containers: List[ImportContainerInfo] = Field(default_factory=list)
    volumes: List[ImportVolumeInfo] = Field(default_factory=list)
    services: List[ImportMatchedService] = Field(default_factory=list)
    network_config: Optional[NormalizedNetworkConfig] = None


class ImportResource(BaseModel):
    namespace: str
    name: str
    kind: WorkloadKind


class ImportRequest(BaseModel):
    project_id: str
    resource: ImportResource


# =============================================================================
# Operation results
# =============================================================================

class ServiceStatus(BaseModel):
    status: ServiceState
    kind: Optional[WorkloadKind] = None
    replicas: int = 0
    available_replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    message: Optional[str] = None


class LifecycleResult(BaseModel):
    success: bool = True
    kind: WorkloadKind
    replicas: Optional[int] = None
    message: str


class ApplyOutcome(str, Enum):
    CREATED = "created"
    REPLACED = "replaced"
    FAILED = "failed"


class ApplyResult(BaseModel):
    """Outcome of one create-or-replace call."""
    kind: str
    name: str
    outcome: ApplyOutcome
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome != ApplyOutcome.FAILED


class NamespaceState(str, Enum):
    EXISTS = "exists"
    CREATED = "created"


class DeployResult(BaseModel):
    namespace: str
    namespace_state: NamespaceState
    results: List[ApplyResult] = Field(default_factory=list)
