"""
Kubernetes Client for Managed Services

Thin async wrapper over the official API clients. Every method issues blocking
calls through asyncio.to_thread and translates the two tolerated API statuses
(404, 409) into explicit results; anything else, connection failures included,
becomes KubernetesOperationError.

The API handles are injected, so tests can hand in fakes and callers decide how
the connection was bootstrapped (see get_k8s_client).
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional, Union

import yaml

from ....config import Settings, get_settings
from ....schemas import ApplyOutcome, ApplyResult, NamespaceState, WorkloadKind
from .errors import (
    CLUSTER_ERRORS,
    KubernetesOperationError,
    describe_api_error,
    is_conflict,
    is_not_found,
)
from .helpers import create_namespace_manifest, create_pvc_manifest, get_cluster_ips, set_cluster_ips

logger = logging.getLogger(__name__)

Workload = Union[client.V1Deployment, client.V1StatefulSet]


def _operation_error(operation: str, exc: Exception) -> KubernetesOperationError:
    status = exc.status if isinstance(exc, ApiException) else None
    return KubernetesOperationError(operation, describe_api_error(exc), status=status)


class KubernetesClient:
    """
    Issues the cluster calls the service manager needs.

    Holds no per-service state; one instance can serve concurrent operations
    on different services and namespaces.
    """

    def __init__(
        self,
        apps_v1: client.AppsV1Api,
        core_v1: client.CoreV1Api,
        settings: Optional[Settings] = None
    ):
        self.apps_v1 = apps_v1
        self.core_v1 = core_v1
        self.settings = settings or get_settings()

    # =========================================================================
    # NAMESPACE MANAGEMENT
    # =========================================================================

    async def _read_namespace(self, namespace: str) -> client.V1Namespace:
        return await asyncio.to_thread(self.core_v1.read_namespace, name=namespace)

    async def ensure_namespace(self, namespace: str) -> NamespaceState:
        """
        Make sure a namespace exists.

        Read, create on 404, then re-read so the caller only proceeds once the
        namespace is visible. A 409 on create means a concurrent caller won the
        race and is treated as "exists".

        Raises:
            KubernetesOperationError: on any other API failure
        """
        if namespace == self.settings.k8s_default_namespace:
            return NamespaceState.EXISTS

        operation = f"Ensure namespace {namespace}"
        try:
            await self._read_namespace(namespace)
            logger.debug(f"[K8S] Namespace {namespace} already exists")
            return NamespaceState.EXISTS
        except CLUSTER_ERRORS as e:
            if not is_not_found(e):
                logger.error(f"[K8S] Failed to read namespace {namespace}: {describe_api_error(e)}")
                raise _operation_error(operation, e) from e

        try:
            await asyncio.to_thread(
                self.core_v1.create_namespace,
                body=create_namespace_manifest(namespace, self.settings)
            )
            state = NamespaceState.CREATED
        except CLUSTER_ERRORS as e:
            if not is_conflict(e):
                logger.error(f"[K8S] Failed to create namespace {namespace}: {describe_api_error(e)}")
                raise _operation_error(operation, e) from e
            logger.info(f"[K8S] Namespace {namespace} was created concurrently")
            state = NamespaceState.EXISTS

        try:
            await self._read_namespace(namespace)
        except CLUSTER_ERRORS as e:
            raise _operation_error(operation, e) from e

        if state == NamespaceState.CREATED:
            logger.info(f"[K8S] ✅ Created namespace: {namespace}")
        return state

    async def ensure_shared_volume_claim(self, namespace: str) -> bool:
        """
        Make sure the namespace's shared PVC exists.

        Returns:
            True if this call created the claim
        """
        if namespace == self.settings.k8s_default_namespace:
            return False

        pvc_name = self.settings.k8s_shared_pvc_name
        operation = f"Ensure volume claim {pvc_name} in {namespace}"
        try:
            await asyncio.to_thread(
                self.core_v1.read_namespaced_persistent_volume_claim,
                name=pvc_name,
                namespace=namespace
            )
            logger.debug(f"[K8S] PVC {pvc_name} already exists in {namespace}")
            return False
        except CLUSTER_ERRORS as e:
            if not is_not_found(e):
                raise _operation_error(operation, e) from e

        try:
            await asyncio.to_thread(
                self.core_v1.create_namespaced_persistent_volume_claim,
                namespace=namespace,
                body=create_pvc_manifest(namespace, self.settings)
            )
        except CLUSTER_ERRORS as e:
            if is_conflict(e):
                logger.info(f"[K8S] PVC {pvc_name} already exists in {namespace}, skipping")
                return False
            logger.error(f"[K8S] Failed to create PVC {pvc_name}: {describe_api_error(e)}")
            raise _operation_error(operation, e) from e

        logger.info(f"[K8S] ✅ Created PVC: {pvc_name} in {namespace}")
        return True

    async def list_namespaces(self) -> List[str]:
        try:
            namespaces = await asyncio.to_thread(self.core_v1.list_namespace)
        except CLUSTER_ERRORS as e:
            raise _operation_error("List namespaces", e) from e
        return [item.metadata.name for item in namespaces.items if item.metadata and item.metadata.name]

    # =========================================================================
    # WORKLOADS
    # =========================================================================

    def _workload_calls(self, kind: str) -> Dict[str, Any]:
        if kind == WorkloadKind.STATEFULSET.value:
            return {
                "create": self.apps_v1.create_namespaced_stateful_set,
                "read": self.apps_v1.read_namespaced_stateful_set,
                "replace": self.apps_v1.replace_namespaced_stateful_set,
                "delete": self.apps_v1.delete_namespaced_stateful_set,
            }
        return {
            "create": self.apps_v1.create_namespaced_deployment,
            "read": self.apps_v1.read_namespaced_deployment,
            "replace": self.apps_v1.replace_namespaced_deployment,
            "delete": self.apps_v1.delete_namespaced_deployment,
        }

    async def apply_workload(self, workload: Workload, namespace: str) -> ApplyResult:
        """
        Create a Deployment or StatefulSet, replacing it when it already exists.

        Replace is a full overwrite carrying only the live resourceVersion.
        """
        kind = workload.kind or (
            WorkloadKind.STATEFULSET.value if isinstance(workload, client.V1StatefulSet)
            else WorkloadKind.DEPLOYMENT.value
        )
        name = workload.metadata.name
        calls = self._workload_calls(kind)

        try:
            await asyncio.to_thread(calls["create"], namespace=namespace, body=workload)
            logger.info(f"[K8S] ✅ Created {kind}: {name}")
            return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.CREATED)
        except CLUSTER_ERRORS as e:
            if not is_conflict(e):
                logger.error(f"[K8S] Failed to create {kind} {name}: {describe_api_error(e)}")
                return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.FAILED, error=describe_api_error(e))

        logger.info(f"[K8S] {kind} {name} exists, replacing...")
        try:
            existing = await asyncio.to_thread(calls["read"], name=name, namespace=namespace)
            if existing.metadata is not None:
                workload.metadata.resource_version = existing.metadata.resource_version
            await asyncio.to_thread(calls["replace"], name=name, namespace=namespace, body=workload)
        except CLUSTER_ERRORS as e:
            logger.error(f"[K8S] Failed to replace {kind} {name}: {describe_api_error(e)}")
            return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.FAILED, error=describe_api_error(e))

        logger.info(f"[K8S] ✅ Replaced {kind}: {name}")
        return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.REPLACED)

    async def read_workload(self, name: str, namespace: str) -> Optional[Workload]:
        """
        Read a service's workload, Deployment first, then StatefulSet.

        Returns:
            The workload, or None when neither kind exists
        """
        for kind in (WorkloadKind.DEPLOYMENT.value, WorkloadKind.STATEFULSET.value):
            try:
                workload = await asyncio.to_thread(
                    self._workload_calls(kind)["read"],
                    name=name,
                    namespace=namespace
                )
            except CLUSTER_ERRORS as e:
                if is_not_found(e):
                    continue
                raise _operation_error(f"Read workload {name}", e) from e
            # Read responses leave kind unset
            workload.kind = kind
            return workload
        return None

    async def replace_workload(self, workload: Workload, namespace: str) -> None:
        """Write back a workload previously returned by read_workload."""
        kind = workload.kind or WorkloadKind.DEPLOYMENT.value
        name = workload.metadata.name
        try:
            await asyncio.to_thread(
                self._workload_calls(kind)["replace"],
                name=name,
                namespace=namespace,
                body=workload
            )
        except CLUSTER_ERRORS as e:
            logger.error(f"[K8S] Failed to update {kind} {name}: {describe_api_error(e)}")
            raise _operation_error(f"Update {kind} {name}", e) from e

    async def delete_workload(self, kind: str, name: str, namespace: str) -> bool:
        """
        Delete a workload of the given kind.

        Returns:
            False when it did not exist
        """
        try:
            await asyncio.to_thread(
                self._workload_calls(kind)["delete"],
                name=name,
                namespace=namespace
            )
        except CLUSTER_ERRORS as e:
            if is_not_found(e):
                logger.debug(f"[K8S] {kind} {name} not found, nothing to delete")
                return False
            raise _operation_error(f"Delete {kind} {name}", e) from e
        logger.info(f"[K8S] Deleted {kind}: {name}")
        return True

    async def list_deployments(self, namespace: str) -> List[client.V1Deployment]:
        try:
            result = await asyncio.to_thread(self.apps_v1.list_namespaced_deployment, namespace=namespace)
        except CLUSTER_ERRORS as e:
            raise _operation_error(f"List deployments in {namespace}", e) from e
        return list(result.items or [])

    async def list_stateful_sets(self, namespace: str) -> List[client.V1StatefulSet]:
        try:
            result = await asyncio.to_thread(self.apps_v1.list_namespaced_stateful_set, namespace=namespace)
        except CLUSTER_ERRORS as e:
            raise _operation_error(f"List stateful sets in {namespace}", e) from e
        return list(result.items or [])

    # =========================================================================
    # SERVICE (NETWORK ENDPOINT) MANAGEMENT
    # =========================================================================

    @staticmethod
    def _carry_assigned_fields(desired: client.V1Service, existing: client.V1Service) -> None:
        # Fields the cluster assigned that a full replace must not drop
        if existing.metadata is not None:
            desired.metadata.resource_version = existing.metadata.resource_version

        live_spec = existing.spec
        if live_spec is None:
            return
        if live_spec.cluster_ip is not None:
            desired.spec.cluster_ip = live_spec.cluster_ip
        live_cluster_ips = get_cluster_ips(live_spec)
        if live_cluster_ips is not None:
            set_cluster_ips(desired.spec, live_cluster_ips)

        if desired.spec.type != "NodePort":
            return
        assigned = {}
        for port in live_spec.ports or []:
            if port.node_port:
                assigned[port.name or port.port] = port.node_port
        for port in desired.spec.ports or []:
            if not port.node_port:
                port.node_port = assigned.get(port.name) or assigned.get(port.port)

    async def apply_service(self, service: client.V1Service, namespace: str) -> ApplyResult:
        """Create a Service, or replace it keeping the cluster-assigned addresses."""
        kind = "Service"
        name = service.metadata.name
        try:
            await asyncio.to_thread(
                self.core_v1.create_namespaced_service,
                namespace=namespace,
                body=service
            )
            logger.info(f"[K8S] ✅ Created service: {name}")
            return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.CREATED)
        except CLUSTER_ERRORS as e:
            if not is_conflict(e):
                logger.error(f"[K8S] Failed to create service {name}: {describe_api_error(e)}")
                return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.FAILED, error=describe_api_error(e))

        logger.info(f"[K8S] Service {name} exists, replacing...")
        try:
            existing = await asyncio.to_thread(
                self.core_v1.read_namespaced_service,
                name=name,
                namespace=namespace
            )
            self._carry_assigned_fields(service, existing)
            await asyncio.to_thread(
                self.core_v1.replace_namespaced_service,
                name=name,
                namespace=namespace,
                body=service
            )
        except CLUSTER_ERRORS as e:
            logger.error(f"[K8S] Failed to replace service {name}: {describe_api_error(e)}")
            return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.FAILED, error=describe_api_error(e))

        logger.info(f"[K8S] ✅ Replaced service: {name}")
        return ApplyResult(kind=kind, name=name, outcome=ApplyOutcome.REPLACED)

    async def delete_service(self, name: str, namespace: str) -> bool:
        """Delete a Service; False when it did not exist."""
        try:
            await asyncio.to_thread(
                self.core_v1.delete_namespaced_service,
                name=name,
                namespace=namespace
            )
        except CLUSTER_ERRORS as e:
            if is_not_found(e):
                return False
            raise _operation_error(f"Delete service {name}", e) from e
        logger.info(f"[K8S] Deleted service: {name}")
        return True

    async def list_services(self, namespace: str) -> List[client.V1Service]:
        try:
            result = await asyncio.to_thread(self.core_v1.list_namespaced_service, namespace=namespace)
        except CLUSTER_ERRORS as e:
            raise _operation_error(f"List services in {namespace}", e) from e
        return list(result.items or [])

    # =========================================================================
    # PODS
    # =========================================================================

    async def list_pods(self, namespace: str, label_selector: str) -> List[client.V1Pod]:
        try:
            pods = await asyncio.to_thread(
                self.core_v1.list_namespaced_pod,
                namespace=namespace,
                label_selector=label_selector
            )
        except CLUSTER_ERRORS as e:
            raise _operation_error(f"List pods in {namespace}", e) from e
        return list(pods.items or [])


# =============================================================================
# Connection bootstrap
# =============================================================================

def decode_kubeconfig_content(content: str) -> str:
    """Inline kubeconfig may be raw YAML or base64; return the YAML text."""
    text = content.strip()
    try:
        decoded = base64.b64decode(text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return text
    if "apiVersion" in decoded or "clusters" in decoded:
        return decoded
    return text


def load_cluster_config(settings: Settings) -> None:
    """
    Load connection config: inline content, then file path, then the default
    local kubeconfig, then in-cluster config.
    """
    try:
        if settings.k8s_kubeconfig_content.strip():
            config_dict = yaml.safe_load(decode_kubeconfig_content(settings.k8s_kubeconfig_content))
            config.load_kube_config_from_dict(config_dict)
            logger.info("Loaded Kubernetes configuration from inline content")
        elif settings.k8s_kubeconfig_path:
            config.load_kube_config(config_file=settings.k8s_kubeconfig_path)
            logger.info(f"Loaded kubeconfig from {settings.k8s_kubeconfig_path}")
        else:
            try:
                config.load_kube_config()
                logger.info("Loaded default kubeconfig")
            except config.ConfigException:
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes configuration")
    except (config.ConfigException, OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        raise KubernetesOperationError("Load Kubernetes configuration", describe_api_error(e)) from e


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        settings = get_settings()
        load_cluster_config(settings)
        _k8s_client_instance = KubernetesClient(client.AppsV1Api(), client.CoreV1Api(), settings)
    return _k8s_client_instance


def reset_k8s_client() -> None:
    """Drop the cached client so the next call reloads the connection config."""
    global _k8s_client_instance
    _k8s_client_instance = None
