"""Utility modules for svcplane."""

from .resource_naming import (
    sanitize_k8s_resource_name,
    container_port_name,
    headless_service_name,
    headless_port_name,
    generate_subpath,
)

__all__ = [
    'sanitize_k8s_resource_name',
    'container_port_name',
    'headless_service_name',
    'headless_port_name',
    'generate_subpath',
]
