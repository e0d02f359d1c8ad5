"""
Cluster import.

Inverse of the manifest builders: reconstructs platform-shaped service
definitions from workloads already running in a namespace.

Everything here is best-effort. Workloads that cannot be described are skipped
and endpoint ports whose target cannot be resolved are dropped; nothing raises.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from kubernetes import client

from ....schemas import (
    ImportCandidate,
    ImportContainerInfo,
    ImportMatchedService,
    ImportServicePort,
    ImportVolumeInfo,
    NormalizedNetworkConfig,
    NormalizedPort,
    WorkloadKind,
)
from .helpers import get_cluster_ips

logger = logging.getLogger(__name__)

Workload = Union[client.V1Deployment, client.V1StatefulSet]

HEADLESS = "Headless"
EXTERNAL_NAME = "ExternalName"


def parse_image(image: Optional[str]) -> Tuple[str, str]:
    """
    Split an image reference into (repository, tag).

    A digest is stripped before looking for the tag, and a colon only starts a
    tag when it comes after the last "/" (otherwise it is a registry port).

    Examples:
        >>> parse_image("nginx")
        ("nginx", "latest")
        >>> parse_image("registry.local:5000/app:1.2")
        ("registry.local:5000/app", "1.2")
        >>> parse_image("app@sha256:abcd")
        ("app", "latest")
    """
    if not image:
        return "unknown", "latest"

    workable = image.split("@", 1)[0]
    last_slash = workable.rfind("/")
    last_colon = workable.rfind(":")

    if last_colon > last_slash:
        return workable[:last_colon], workable[last_colon + 1:] or "latest"
    return workable, "latest"


def _join_command(container: client.V1Container) -> Optional[str]:
    parts = [part.strip() for part in (container.command or []) + (container.args or []) if part and part.strip()]
    return " ".join(parts) if parts else None


def _extract_env(container: client.V1Container) -> Dict[str, str]:
    # valueFrom references have no literal value to carry over
    return {env.name: env.value for env in container.env or [] if env.value is not None}


def extract_volumes(pod_spec: client.V1PodSpec, container: client.V1Container) -> List[ImportVolumeInfo]:
    """Mounts of the container that are backed by a host path volume."""
    volumes_by_name = {volume.name: volume for volume in pod_spec.volumes or []}

    result = []
    for mount in container.volume_mounts or []:
        volume = volumes_by_name.get(mount.name)
        host_path = volume.host_path.path if volume is not None and volume.host_path is not None else None
        if not host_path or not mount.mount_path:
            continue
        sub_path = mount.sub_path.strip() if mount.sub_path and mount.sub_path.strip() else None
        result.append(ImportVolumeInfo(
            container_path=mount.mount_path,
            host_path=host_path,
            read_only=mount.read_only if isinstance(mount.read_only, bool) else None,
            sub_path=sub_path,
        ))
    return result


def is_service_match(service: client.V1Service, namespace: str, labels: Dict[str, str]) -> bool:
    """A non-empty selector in the same namespace that is a subset of the pod labels."""
    service_namespace = (service.metadata.namespace if service.metadata else None) or "default"
    if service_namespace != namespace:
        return False

    selector = service.spec.selector if service.spec else None
    if not selector:
        return False
    return all(labels.get(key) == value for key, value in selector.items())


def is_headless(service: client.V1Service) -> bool:
    spec = service.spec
    if spec is None:
        return False
    if isinstance(spec.cluster_ip, str) and spec.cluster_ip.strip().lower() == "none":
        return True
    return any(isinstance(ip, str) and ip.strip().lower() == "none" for ip in get_cluster_ips(spec) or [])


def _normalize_endpoint_type(value: Optional[str]) -> str:
    lowered = (value or "").lower()
    if lowered == "nodeport":
        return "NodePort"
    if lowered == "loadbalancer":
        return "LoadBalancer"
    if lowered == "externalname":
        return EXTERNAL_NAME
    return "ClusterIP"


def resolve_target_port(port: client.V1ServicePort, containers: List[client.V1Container]) -> int:
    """
    Numeric target port of an endpoint port.

    Numeric targets are used as-is and named targets are looked up among the
    container ports. Otherwise the endpoint's own port is used; 0 means unresolved.
    """
    target = port.target_port

    if isinstance(target, int) and not isinstance(target, bool):
        return target

    if isinstance(target, str) and target:
        for container in containers:
            for container_port in container.ports or []:
                if container_port.name == target and container_port.container_port:
                    return container_port.container_port
        if target.isdigit() and int(target) > 0:
            return int(target)

    if port.port and port.port > 0:
        return port.port
    return 0


def to_matched_service(service: client.V1Service, containers: List[client.V1Container]) -> Optional[ImportMatchedService]:
    ports = []
    for port in (service.spec.ports if service.spec else None) or []:
        target_port = resolve_target_port(port, containers)
        if not target_port:
            continue
        ports.append(ImportServicePort(
            name=port.name or None,
            port=port.port or target_port,
            target_port=target_port,
            protocol="UDP" if port.protocol == "UDP" else "TCP",
            node_port=port.node_port or None,
        ))

    if not ports:
        return None

    endpoint_type = HEADLESS if is_headless(service) else _normalize_endpoint_type(service.spec.type)
    name = (service.metadata.name if service.metadata else None) or "service"
    return ImportMatchedService(name=name, type=endpoint_type, ports=ports)


def build_network_config_from_services(services: List[ImportMatchedService]) -> Optional[NormalizedNetworkConfig]:
    """
    Fold matched endpoints into one network config.

    Ports come from the first regular endpoint; a headless endpoint is only
    used for ports when nothing else matched, but any headless match turns the
    headless companion endpoint on.
    """
    primary = next((svc for svc in services if svc.type not in (HEADLESS, EXTERNAL_NAME)), None)
    headless = next((svc for svc in services if svc.type == HEADLESS), None)
    source = primary or headless
    if source is None:
        return None

    ports = [
        NormalizedPort(
            container_port=port.target_port,
            service_port=port.port,
            protocol=port.protocol,
            node_port=port.node_port,
        )
        for port in source.ports
        if port.target_port > 0
    ]
    if not ports:
        return None

    service_type = primary.type if primary is not None else "ClusterIP"
    return NormalizedNetworkConfig(
        service_type=service_type,
        ports=ports,
        headless_service_enabled=headless is not None,
    )


def build_import_candidate(
    workload: Workload,
    kind: WorkloadKind,
    services: Iterable[client.V1Service]
) -> Optional[ImportCandidate]:
    """
    Describe one cluster workload as an import candidate.

    Returns:
        None when the workload has no containers or no primary image
    """
    metadata = workload.metadata
    spec = workload.spec
    pod_spec = spec.template.spec if spec is not None and spec.template is not None else None
    if metadata is None or not metadata.name or pod_spec is None:
        return None

    containers = pod_spec.containers or []
    if not containers or not containers[0].image:
        logger.debug(f"[K8S:IMPORT] Skipping {kind.value} {metadata.name}: no primary image")
        return None

    namespace = metadata.namespace or "default"
    labels = dict(metadata.labels or {})
    primary = containers[0]
    repository, tag = parse_image(primary.image)

    # Endpoints select pods, so match against the pod template labels when present
    pod_labels = dict((spec.template.metadata.labels if spec.template.metadata else None) or labels)

    matched = []
    for service in services:
        if not is_service_match(service, namespace, pod_labels):
            continue
        matched_service = to_matched_service(service, containers)
        if matched_service is not None:
            matched.append(matched_service)

    container_infos = []
    for container in containers:
        container_repository, container_tag = parse_image(container.image)
        env = _extract_env(container)
        container_infos.append(ImportContainerInfo(
            name=container.name or container_repository,
            image=container_repository,
            tag=container_tag,
            command=_join_command(container),
            env=env or None,
        ))

    return ImportCandidate(
        uid=metadata.uid or f"{namespace}/{metadata.name}",
        name=metadata.name,
        namespace=namespace,
        kind=kind,
        labels=labels,
        replicas=spec.replicas if spec.replicas is not None else 1,
        image=repository,
        tag=tag,
        command=_join_command(primary),
        containers=container_infos,
        volumes=extract_volumes(pod_spec, primary),
        services=matched,
        network_config=build_network_config_from_services(matched),
    )


def candidate_to_create_request(project_id: str, candidate: ImportCandidate) -> Dict[str, Any]:
    """
    Service-creation payload for an import candidate.

    Imported workloads always become image services. Across containers the
    first value seen for an env var wins.
    """
    env_vars: Dict[str, str] = {}
    for container in candidate.containers:
        for key, value in (container.env or {}).items():
            if key and isinstance(value, str) and key not in env_vars:
                env_vars[key] = value

    volumes = []
    for volume in candidate.volumes:
        container_path = (volume.container_path or "").strip()
        if not container_path:
            continue
        entry: Dict[str, Any] = {"container_path": container_path}
        if volume.sub_path:
            entry["nfs_subpath"] = volume.sub_path
        if volume.host_path and volume.host_path.strip():
            entry["host_path"] = volume.host_path.strip()
        if isinstance(volume.read_only, bool):
            entry["read_only"] = volume.read_only
        volumes.append(entry)

    payload: Dict[str, Any] = {
        "project_id": project_id,
        "name": candidate.name,
        "type": "image",
        "image": candidate.image,
        "tag": candidate.tag,
        "command": candidate.command,
        "replicas": candidate.replicas,
    }
    if env_vars:
        payload["env_vars"] = env_vars
    if volumes:
        payload["volumes"] = volumes
    if candidate.network_config is not None:
        network = candidate.network_config.model_dump(exclude_none=True, exclude={"headless_service_enabled"})
        if candidate.network_config.headless_service_enabled:
            network["headless_service_enabled"] = True
        payload["network_config"] = network
    return payload
