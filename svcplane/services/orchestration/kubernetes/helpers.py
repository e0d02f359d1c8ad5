"""
Kubernetes Manifest Helpers

This module builds every object the reconciler applies and the exporter renders:
- Workloads: Deployment (application/image services) or StatefulSet (databases)
- Pod template: image, command, env, resources, ports, shared-volume mounts
- Network endpoint: one Service per service, one port entry per normalized port,
  plus an optional headless companion Service
- Namespace and the shared PersistentVolumeClaim

All builders are pure; nothing here talks to the cluster.
"""

from kubernetes import client
from typing import Dict, List, Optional, Tuple, Union
import logging
import shlex

from ....config import Settings, get_settings
from ....schemas import (
    ApplicationService,
    DatabaseService,
    ImageService,
    NormalizedNetworkConfig,
    ResourceSpec,
    VolumeMount,
)
from ....utils.resource_naming import (
    container_port_name,
    generate_subpath,
    headless_port_name,
    headless_service_name,
)

logger = logging.getLogger(__name__)

AnyService = Union[ApplicationService, DatabaseService, ImageService]
Workload = Union[client.V1Deployment, client.V1StatefulSet]

# Data directories of the database engines that get a volume claim template
DATABASE_DATA_PATHS: Dict[str, str] = {
    "mysql": "/var/lib/mysql",
    "mariadb": "/var/lib/mysql",
    "postgresql": "/var/lib/postgresql/data",
    "mongodb": "/data/db",
    "redis": "/data",
}

DATA_VOLUME_NAME = "data"


# =============================================================================
# Labels
# =============================================================================

def get_selector_labels(service_name: str) -> Dict[str, str]:
    """Labels the endpoint and workload selectors match on."""
    return {"app": service_name}


def get_standard_labels(service_name: str, settings: Optional[Settings] = None) -> Dict[str, str]:
    """
    Get standard labels for managed resources.

    Args:
        service_name: Service name
        settings: Settings providing the managed-by marker

    Returns:
        Dict of labels
    """
    settings = settings or get_settings()
    return {
        **get_selector_labels(service_name),
        "managed-by": settings.k8s_managed_by,
    }


# =============================================================================
# Container building blocks
# =============================================================================

def resolve_image(service: AnyService, settings: Optional[Settings] = None) -> str:
    """Container image for a service variant."""
    settings = settings or get_settings()

    if isinstance(service, ApplicationService):
        return service.built_image or settings.k8s_fallback_image
    if isinstance(service, DatabaseService):
        return f"{service.database_type}:{service.version or 'latest'}"
    if isinstance(service, ImageService):
        return f"{service.image}:{service.tag or 'latest'}"
    raise TypeError(f"Unsupported service variant: {type(service).__name__}")


def build_default_env_vars(service: AnyService) -> Dict[str, str]:
    """
    Engine-specific environment for database services.

    Each engine's official image reads credentials from its own variable names.
    """
    if not isinstance(service, DatabaseService):
        return {}

    engine = (service.database_type or "").lower()
    env: Dict[str, str] = {}

    if engine in ("mysql", "mariadb"):
        pairs = [
            ("MYSQL_ROOT_PASSWORD", service.root_password),
            ("MYSQL_DATABASE", service.database_name),
            ("MYSQL_USER", service.username),
            ("MYSQL_PASSWORD", service.password),
        ]
    elif engine == "postgresql":
        pairs = [
            ("POSTGRES_DB", service.database_name),
            ("POSTGRES_USER", service.username),
            ("POSTGRES_PASSWORD", service.password),
        ]
    elif engine == "mongodb":
        pairs = [
            ("MONGO_INITDB_ROOT_USERNAME", service.username),
            ("MONGO_INITDB_ROOT_PASSWORD", service.password),
            ("MONGO_INITDB_DATABASE", service.database_name),
        ]
    elif engine == "redis":
        pairs = [("REDIS_PASSWORD", service.password)]
    else:
        pairs = []

    for name, value in pairs:
        if value:
            env[name] = value
    return env


def build_env_vars(service: AnyService) -> Optional[List[client.V1EnvVar]]:
    """Engine defaults overlaid with user variables (user values win)."""
    env = build_default_env_vars(service)
    for name, value in (service.env_vars or {}).items():
        if value is not None:
            env[name] = str(value)

    if not env:
        return None
    return [client.V1EnvVar(name=name, value=value) for name, value in env.items()]


def build_resources(
    limits: Optional[ResourceSpec],
    requests: Optional[ResourceSpec] = None
) -> Optional[client.V1ResourceRequirements]:
    """Pass cpu/memory through verbatim; no block at all when nothing is set."""
    def _values(spec: Optional[ResourceSpec]) -> Dict[str, str]:
        if spec is None:
            return {}
        return {key: value for key, value in (("cpu", spec.cpu), ("memory", spec.memory)) if value}

    limit_values = _values(limits)
    request_values = _values(requests)
    if not limit_values and not request_values:
        return None

    return client.V1ResourceRequirements(
        limits=limit_values or None,
        requests=request_values or None
    )


def build_volume_mounts(
    volumes: List[VolumeMount],
    service_name: str,
    settings: Optional[Settings] = None
) -> List[client.V1VolumeMount]:
    """All mounts share one volume and are told apart by subPath."""
    settings = settings or get_settings()
    return [
        client.V1VolumeMount(
            name=settings.k8s_shared_volume_name,
            mount_path=volume.container_path,
            sub_path=generate_subpath(service_name, volume.nfs_subpath, volume.container_path),
            read_only=volume.read_only
        )
        for volume in volumes or []
    ]


def build_volumes(volumes: List[VolumeMount], settings: Optional[Settings] = None) -> List[client.V1Volume]:
    """One pod volume backed by the namespace's shared claim, if anything mounts it."""
    if not volumes:
        return []
    settings = settings or get_settings()
    return [
        client.V1Volume(
            name=settings.k8s_shared_volume_name,
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=settings.k8s_shared_pvc_name
            )
        )
    ]


def _split_command_line(text: str) -> List[str]:
    try:
        return shlex.split(text)
    except ValueError:
        # Unbalanced quotes: fall back to a plain whitespace split
        return text.split()


def parse_command(command: Optional[str]) -> Tuple[Optional[List[str]], Optional[List[str]]]:
    """
    Split a start command into container command and args.

    "sh -c ..." and "bash -c ..." keep the shell script as a single argument.

    Returns:
        (command, args); both None for empty input
    """
    if not command or not isinstance(command, str) or not command.strip():
        return None, None

    parts = _split_command_line(command.strip())
    if not parts:
        return None, None

    if len(parts) >= 3 and parts[0] in ("sh", "bash") and parts[1] == "-c":
        return [parts[0], "-c"], [" ".join(parts[2:])]

    return [parts[0]], parts[1:]


def effective_command(service: AnyService) -> Optional[str]:
    """Start command, with the password flag injected for bare redis databases."""
    if (
        isinstance(service, DatabaseService)
        and (service.database_type or "").lower() == "redis"
        and service.password
        and not service.command
    ):
        return f"redis-server --requirepass {service.password}"
    return service.command


def build_container_ports(network: Optional[NormalizedNetworkConfig]) -> Optional[List[client.V1ContainerPort]]:
    if network is None or not network.ports:
        return None
    return [
        client.V1ContainerPort(
            container_port=port.container_port,
            protocol=port.protocol,
            name=container_port_name(port.container_port, index)
        )
        for index, port in enumerate(network.ports)
    ]


def resolve_replicas(service: AnyService) -> int:
    replicas = getattr(service, "replicas", None)
    if isinstance(replicas, int) and replicas > 0:
        return replicas
    return 1


# =============================================================================
# Pod template (shared by Deployment and StatefulSet)
# =============================================================================

def create_pod_template(
    service: AnyService,
    network: Optional[NormalizedNetworkConfig],
    settings: Optional[Settings] = None
) -> client.V1PodTemplateSpec:
    """
    Build the pod template for a service.

    Args:
        service: Service definition
        network: Normalized network config (container ports come from here)
        settings: Settings (shared volume names, fallback image)

    Returns:
        V1PodTemplateSpec
    """
    settings = settings or get_settings()
    command, args = parse_command(effective_command(service))

    volume_mounts = build_volume_mounts(service.volumes, service.name, settings)
    volumes = build_volumes(service.volumes, settings)

    # Databases with a storage size get their data directory on a claim template
    if isinstance(service, DatabaseService) and service.volume_size and service.volume_size.strip():
        data_path = DATABASE_DATA_PATHS.get((service.database_type or "").lower())
        if data_path and not any(
            mount.name == DATA_VOLUME_NAME or mount.mount_path == data_path for mount in volume_mounts
        ):
            volume_mounts.append(client.V1VolumeMount(name=DATA_VOLUME_NAME, mount_path=data_path))

    container = client.V1Container(
        name=service.name,
        image=resolve_image(service, settings),
        command=command,
        args=args,
        ports=build_container_ports(network),
        env=build_env_vars(service),
        resources=build_resources(service.resource_limits, service.resource_requests),
        volume_mounts=volume_mounts or None
    )

    return client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=get_standard_labels(service.name, settings)),
        spec=client.V1PodSpec(
            containers=[container],
            volumes=volumes or None
        )
    )


# =============================================================================
# Workloads
# =============================================================================

def create_deployment_manifest(
    service: AnyService,
    namespace: str,
    network: Optional[NormalizedNetworkConfig],
    settings: Optional[Settings] = None
) -> client.V1Deployment:
    """Deployment for application and image services."""
    settings = settings or get_settings()
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(
            name=service.name,
            namespace=namespace,
            labels=get_standard_labels(service.name, settings)
        ),
        spec=client.V1DeploymentSpec(
            replicas=resolve_replicas(service),
            selector=client.V1LabelSelector(match_labels=get_selector_labels(service.name)),
            template=create_pod_template(service, network, settings)
        )
    )


def create_statefulset_manifest(
    service: DatabaseService,
    namespace: str,
    network: Optional[NormalizedNetworkConfig],
    settings: Optional[Settings] = None
) -> client.V1StatefulSet:
    """
    StatefulSet for database services.

    A ReadWriteOnce claim template named "data" is added when the database has
    a storage size and a known data directory.
    """
    settings = settings or get_settings()

    claim_templates = None
    volume_size = (service.volume_size or "").strip()
    if volume_size and DATABASE_DATA_PATHS.get((service.database_type or "").lower()):
        claim_templates = [
            client.V1PersistentVolumeClaim(
                metadata=client.V1ObjectMeta(
                    name=DATA_VOLUME_NAME,
                    labels=get_standard_labels(service.name, settings)
                ),
                spec=client.V1PersistentVolumeClaimSpec(
                    access_modes=["ReadWriteOnce"],
                    resources=client.V1VolumeResourceRequirements(requests={"storage": volume_size})
                )
            )
        ]

    return client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(
            name=service.name,
            namespace=namespace,
            labels=get_standard_labels(service.name, settings)
        ),
        spec=client.V1StatefulSetSpec(
            service_name=service.name,
            replicas=resolve_replicas(service),
            selector=client.V1LabelSelector(match_labels=get_selector_labels(service.name)),
            template=create_pod_template(service, network, settings),
            volume_claim_templates=claim_templates
        )
    )


def create_workload_manifest(
    service: AnyService,
    namespace: str,
    network: Optional[NormalizedNetworkConfig],
    settings: Optional[Settings] = None
) -> Workload:
    """Workload object for any service variant."""
    if isinstance(service, DatabaseService):
        return create_statefulset_manifest(service, namespace, network, settings)
    if isinstance(service, (ApplicationService, ImageService)):
        return create_deployment_manifest(service, namespace, network, settings)
    raise TypeError(f"Unsupported service variant: {type(service).__name__}")


# =============================================================================
# Network endpoint
# =============================================================================

def create_service_manifest(
    service_name: str,
    namespace: str,
    network: NormalizedNetworkConfig,
    settings: Optional[Settings] = None
) -> Optional[client.V1Service]:
    """
    Create the network endpoint (Service) for a service.

    nodePort is only set for NodePort endpoints that asked for one; otherwise
    the cluster assigns it.

    Returns:
        V1Service manifest, or None when there are no ports to expose
    """
    if not network.ports:
        return None

    settings = settings or get_settings()

    ports = []
    for index, port in enumerate(network.ports):
        service_port = client.V1ServicePort(
            name=container_port_name(port.container_port, index),
            port=port.service_port,
            target_port=port.container_port,
            protocol=port.protocol
        )
        if network.service_type == "NodePort" and port.node_port:
            service_port.node_port = port.node_port
        ports.append(service_port)

    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=service_name,
            namespace=namespace,
            labels=get_standard_labels(service_name, settings)
        ),
        spec=client.V1ServiceSpec(
            selector=get_selector_labels(service_name),
            type=network.service_type,
            ports=ports
        )
    )


def get_cluster_ips(spec: client.V1ServiceSpec) -> Optional[List[str]]:
    """clusterIPs of a Service spec; generated clients up to 35.x name the attribute cluster_i_ps."""
    if hasattr(spec, "cluster_i_ps"):
        return spec.cluster_i_ps
    return getattr(spec, "cluster_ips", None)


def set_cluster_ips(spec: client.V1ServiceSpec, cluster_ips: Optional[List[str]]) -> None:
    if hasattr(spec, "cluster_i_ps"):
        spec.cluster_i_ps = cluster_ips
    else:
        spec.cluster_ips = cluster_ips


def create_headless_service_manifest(
    service_name: str,
    namespace: str,
    network: NormalizedNetworkConfig,
    settings: Optional[Settings] = None
) -> Optional[client.V1Service]:
    """
    Create the headless companion endpoint ("<name>-headless", clusterIP None).

    It resolves to the individual pod addresses, including pods that are not
    ready yet, which is what peers of a StatefulSet need to find each other.

    Returns:
        V1Service manifest, or None when the network config does not ask for one
    """
    if not network.headless_service_enabled or not network.ports:
        return None

    settings = settings or get_settings()
    name = headless_service_name(service_name)

    spec = client.V1ServiceSpec(
        selector=get_selector_labels(service_name),
        type="ClusterIP",
        cluster_ip="None",
        publish_not_ready_addresses=True,
        ports=[
            client.V1ServicePort(
                name=headless_port_name(port.container_port, index),
                port=port.service_port,
                target_port=port.container_port,
                protocol=port.protocol
            )
            for index, port in enumerate(network.ports)
        ]
    )
    set_cluster_ips(spec, ["None"])

    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={
                **get_standard_labels(service_name, settings),
                settings.headless_service_label: "true",
            }
        ),
        spec=spec
    )


# =============================================================================
# Namespace and shared volume claim
# =============================================================================

def create_namespace_manifest(namespace: str, settings: Optional[Settings] = None) -> client.V1Namespace:
    settings = settings or get_settings()
    return client.V1Namespace(
        api_version="v1",
        kind="Namespace",
        metadata=client.V1ObjectMeta(
            name=namespace,
            labels={"managed-by": settings.k8s_managed_by}
        )
    )


def create_pvc_manifest(namespace: str, settings: Optional[Settings] = None) -> client.V1PersistentVolumeClaim:
    """
    Create the shared PVC manifest for a namespace.

    Every service in the namespace mounts this claim under its own subPath,
    so the access mode has to allow concurrent writers on different nodes.
    """
    settings = settings or get_settings()
    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(
            name=settings.k8s_shared_pvc_name,
            namespace=namespace,
            labels={"managed-by": settings.k8s_managed_by}
        ),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=[settings.k8s_pvc_access_mode],
            storage_class_name=settings.k8s_storage_class,
            volume_mode="Filesystem",
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": settings.k8s_pvc_size}
            )
        )
    )
