"""
Kubernetes Orchestration Module

This module contains all Kubernetes-specific service code:
- KubernetesClient: Low-level Kubernetes API interactions
- helpers / network: Manifest builders and network config normalization
- KubernetesServiceManager: Reconcile, lifecycle, status, export and import

Deploy flow:
1. Normalize the service's network config
2. Build the workload (Deployment or StatefulSet), its Service and, when
   requested, the headless companion Service
3. Ensure namespace and shared PVC, then create-or-replace each object
"""

from .client import KubernetesClient, get_k8s_client, reset_k8s_client
from .errors import (
    KubernetesOperationError,
    PartialApplyError,
    ServiceNotFoundError,
    describe_api_error,
)
from .exporter import export_manifests, load_manifests
from .helpers import (
    get_standard_labels,
    create_pod_template,
    create_workload_manifest,
    create_service_manifest,
    create_headless_service_manifest,
    create_namespace_manifest,
    create_pvc_manifest,
)
from .importer import build_import_candidate, candidate_to_create_request, parse_image
from .manager import KubernetesServiceManager, get_k8s_service_manager
from .network import NetworkConfigStatus, NetworkParseResult, normalize_network_config
from .status import aggregate_status

__all__ = [
    # Client
    "KubernetesClient",
    "get_k8s_client",
    "reset_k8s_client",
    # Errors
    "KubernetesOperationError",
    "PartialApplyError",
    "ServiceNotFoundError",
    "describe_api_error",
    # Manifest Helpers
    "get_standard_labels",
    "create_pod_template",
    "create_workload_manifest",
    "create_service_manifest",
    "create_headless_service_manifest",
    "create_namespace_manifest",
    "create_pvc_manifest",
    # Network
    "NetworkConfigStatus",
    "NetworkParseResult",
    "normalize_network_config",
    # Export / import
    "export_manifests",
    "load_manifests",
    "build_import_candidate",
    "candidate_to_create_request",
    "parse_image",
    # Status
    "aggregate_status",
    # Manager
    "KubernetesServiceManager",
    "get_k8s_service_manager",
]
