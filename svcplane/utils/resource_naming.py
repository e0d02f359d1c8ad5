"""
Resource naming utilities for managed cluster objects.

Centralized functions for generating consistent identifiers across:
- Workload, endpoint and port names (DNS-1123 labels)
- Shared volume sub-paths (namespaced per service)

Kubernetes naming constraints:
- Labels: max 63 chars, alphanumeric + '-'
- Names must start and end with an alphanumeric character
"""

import re
from typing import Optional

DNS_LABEL_MAX_LENGTH = 63


def _sanitize_label(value: str) -> str:
    value = value.lower()
    value = re.sub(r"[^a-z0-9-]", "-", value)
    value = re.sub(r"-+", "-", value)
    value = value.strip("-")
    return value[:DNS_LABEL_MAX_LENGTH]


def sanitize_k8s_resource_name(value: str) -> str:
    """
    Turn arbitrary text into a DNS-1123 label.

    Examples:
        >>> sanitize_k8s_resource_name("My_API Service")
        "my-api-service"
    """
    if not value:
        return ""
    return _sanitize_label(value.strip())


def container_port_name(container_port: int, index: int) -> str:
    """
    Name shared by a container port and the endpoint port routing to it.

    Endpoint ports reference container ports by number, but keeping the names
    aligned lets named target ports resolve when the objects are imported back.
    """
    return f"port-{container_port}-{index}"


def headless_service_name(service_name: str) -> str:
    return f"{service_name}-headless"


def headless_port_name(container_port: int, index: int) -> str:
    return f"headless-port-{container_port}-{index}"


def generate_subpath(service_name: str, user_subpath: Optional[str] = None, container_path: Optional[str] = None) -> str:
    """
    Get the sub-path a service uses inside the shared volume.

    Every sub-path is namespaced by service name so services never collide
    inside the shared claim.

    Args:
        service_name: Owning service name
        user_subpath: Optional explicit sub-path from the service definition
        container_path: Absolute mount path inside the container

    Returns:
        Sub-path string: "{service_name}/{user_subpath or derived path}"

    Examples:
        >>> generate_subpath("api", None, "/data/logs")
        "api/data-logs"
        >>> generate_subpath("api", "api/custom", "/data")
        "api/custom"
        >>> generate_subpath("api", "custom", "/data")
        "api/custom"
    """
    if user_subpath:
        if user_subpath.startswith(f"{service_name}/"):
            return user_subpath
        return f"{service_name}/{user_subpath}"

    if container_path:
        # Drop the leading separator, flatten the rest
        normalized = re.sub(r"^/", "", container_path).replace("/", "-")
        return f"{service_name}/{normalized}"

    return service_name
