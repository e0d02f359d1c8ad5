"""
Kubernetes Service Manager

Reconciles service definitions onto the cluster and drives their lifecycle.
Handles deploy, stop/start/restart/scale, delete, status, YAML export and
cluster import.

Holds no state between calls: every operation re-reads the live objects
before changing them, and lifecycle bookkeeping lives in annotations.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from kubernetes import client

from ....config import Settings, get_settings
from ....schemas import (
    ApplicationService,
    ApplyOutcome,
    DatabaseService,
    DeployResult,
    ImageService,
    ImportCandidate,
    LifecycleResult,
    ServiceState,
    ServiceStatus,
    WorkloadKind,
)
from ....utils.resource_naming import headless_service_name
from .client import KubernetesClient, Workload
from .errors import KubernetesOperationError, PartialApplyError, ServiceNotFoundError
from .exporter import export_manifests
from .helpers import create_headless_service_manifest, create_service_manifest, create_workload_manifest
from .importer import build_import_candidate, candidate_to_create_request
from .network import effective_network_config
from .status import aggregate_status, find_image_pull_failure

logger = logging.getLogger(__name__)

AnyService = Union[ApplicationService, DatabaseService, ImageService]


def _parse_replicas(value: Optional[str]) -> int:
    # Absent, unparseable or non-positive values restore a single replica
    try:
        replicas = int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 1
    return replicas if replicas > 0 else 1


class KubernetesServiceManager:
    """
    Service-level operations on top of KubernetesClient.

    Features:
    - Idempotent deploy (create, or replace what already exists)
    - Stop/start that remembers the replica count in an annotation
    - Rolling restart through a pod template annotation
    - Status aggregated into stopped/running/pending/error
    - YAML export of exactly what deploy would apply
    - Import of existing workloads as image services
    """

    def __init__(self, k8s_client: KubernetesClient, settings: Optional[Settings] = None):
        self.k8s_client = k8s_client
        self.settings = settings or get_settings()

    def _namespace(self, namespace: Optional[str]) -> str:
        return (namespace or "").strip() or self.settings.k8s_default_namespace

    # =========================================================================
    # RECONCILE
    # =========================================================================

    def build_manifests(
        self,
        service: AnyService,
        namespace: Optional[str] = None
    ) -> Tuple[Workload, Optional[client.V1Service], Optional[client.V1Service]]:
        """Workload, network endpoint and headless endpoint (both optional) for a service."""
        namespace = self._namespace(namespace)
        network = effective_network_config(service)
        workload = create_workload_manifest(service, namespace, network, self.settings)
        endpoint = headless = None
        if network is not None:
            endpoint = create_service_manifest(service.name, namespace, network, self.settings)
            headless = create_headless_service_manifest(service.name, namespace, network, self.settings)
        return workload, endpoint, headless

    async def deploy_service(self, service: AnyService, namespace: Optional[str] = None) -> DeployResult:
        """
        Apply a service to the cluster.

        The workload and the endpoints are applied independently; there is no
        rollback if a later apply fails. A headless endpoint left over from an
        earlier deploy that no longer asks for one is removed.

        Raises:
            KubernetesOperationError: namespace, volume claim or workload could not be applied
            PartialApplyError: the workload was applied but an endpoint was not
        """
        namespace = self._namespace(namespace)
        operation = f"Deploy service {service.name}"
        logger.info(f"[K8S:MANAGER] Deploying {service.type} service {service.name} to {namespace}")

        namespace_state = await self.k8s_client.ensure_namespace(namespace)
        if service.volumes:
            await self.k8s_client.ensure_shared_volume_claim(namespace)

        workload, endpoint, headless = self.build_manifests(service, namespace)

        workload_result = await self.k8s_client.apply_workload(workload, namespace)
        results = [workload_result]
        if workload_result.outcome == ApplyOutcome.FAILED:
            raise KubernetesOperationError(operation, workload_result.error or "workload apply failed")

        for label, manifest in (("network endpoint", endpoint), ("headless endpoint", headless)):
            if manifest is None:
                continue
            endpoint_result = await self.k8s_client.apply_service(manifest, namespace)
            results.append(endpoint_result)
            if endpoint_result.outcome == ApplyOutcome.FAILED:
                logger.error(
                    f"[K8S:MANAGER] {workload_result.kind} {service.name} applied but its {label} failed: "
                    f"{endpoint_result.error}"
                )
                raise PartialApplyError(
                    operation,
                    f"workload applied, {label} failed: {endpoint_result.error}",
                    results
                )

        if headless is None:
            stale = headless_service_name(service.name)
            if await self.k8s_client.delete_service(stale, namespace):
                logger.info(f"[K8S:MANAGER] Removed headless endpoint {stale}, no longer requested")

        logger.info(f"[K8S:MANAGER] ✅ Deployed service {service.name} in {namespace}")
        return DeployResult(namespace=namespace, namespace_state=namespace_state, results=results)

    def generate_service_yaml(self, service: AnyService, namespace: Optional[str] = None) -> str:
        """Multi-document YAML of the objects deploy_service would apply."""
        return export_manifests(list(self.build_manifests(service, namespace)))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _require_workload(self, operation: str, name: str, namespace: str) -> Workload:
        workload = await self.k8s_client.read_workload(name, namespace)
        if workload is None:
            raise ServiceNotFoundError(operation, name, namespace)
        return workload

    async def stop_service(self, name: str, namespace: Optional[str] = None) -> LifecycleResult:
        """
        Scale a service to zero, remembering its replica count.

        Stopping an already stopped service keeps the count recorded by the
        first stop.
        """
        namespace = self._namespace(namespace)
        workload = await self._require_workload(f"Stop service {name}", name, namespace)

        annotation = self.settings.original_replicas_annotation
        current = workload.spec.replicas or 0
        if workload.metadata.annotations is None:
            workload.metadata.annotations = {}

        if current > 0 or annotation not in workload.metadata.annotations:
            workload.metadata.annotations[annotation] = str(current)
        workload.spec.replicas = 0

        await self.k8s_client.replace_workload(workload, namespace)
        logger.info(f"[K8S:MANAGER] Stopped {workload.kind} {name} (was {current} replicas)")
        return LifecycleResult(
            kind=WorkloadKind(workload.kind),
            replicas=0,
            message=f"Service {name} stopped"
        )

    async def start_service(self, name: str, namespace: Optional[str] = None) -> LifecycleResult:
        """Restore the replica count recorded by stop (1 when nothing usable was recorded)."""
        namespace = self._namespace(namespace)
        workload = await self._require_workload(f"Start service {name}", name, namespace)

        annotations = workload.metadata.annotations or {}
        replicas = _parse_replicas(annotations.get(self.settings.original_replicas_annotation))
        workload.spec.replicas = replicas

        await self.k8s_client.replace_workload(workload, namespace)
        logger.info(f"[K8S:MANAGER] Started {workload.kind} {name} with {replicas} replicas")
        return LifecycleResult(
            kind=WorkloadKind(workload.kind),
            replicas=replicas,
            message=f"Service {name} started with {replicas} replicas"
        )

    async def restart_service(self, name: str, namespace: Optional[str] = None) -> LifecycleResult:
        """Roll all pods by stamping the pod template; the replica count is untouched."""
        namespace = self._namespace(namespace)
        workload = await self._require_workload(f"Restart service {name}", name, namespace)

        template = workload.spec.template
        if template.metadata is None:
            template.metadata = client.V1ObjectMeta()
        if template.metadata.annotations is None:
            template.metadata.annotations = {}
        template.metadata.annotations[self.settings.restarted_at_annotation] = (
            datetime.now(timezone.utc).isoformat()
        )

        await self.k8s_client.replace_workload(workload, namespace)
        logger.info(f"[K8S:MANAGER] Restarted {workload.kind} {name}")
        return LifecycleResult(
            kind=WorkloadKind(workload.kind),
            replicas=workload.spec.replicas,
            message=f"Service {name} restarting"
        )

    async def scale_service(self, name: str, replicas: int, namespace: Optional[str] = None) -> LifecycleResult:
        if replicas < 0:
            raise ValueError("replicas must be >= 0")

        namespace = self._namespace(namespace)
        workload = await self._require_workload(f"Scale service {name}", name, namespace)
        workload.spec.replicas = replicas

        await self.k8s_client.replace_workload(workload, namespace)
        logger.info(f"[K8S:MANAGER] Scaled {workload.kind} {name} to {replicas} replicas")
        return LifecycleResult(
            kind=WorkloadKind(workload.kind),
            replicas=replicas,
            message=f"Service {name} scaled to {replicas} replicas"
        )

    async def delete_service(self, name: str, namespace: Optional[str] = None) -> Dict[str, bool]:
        """
        Remove the workload (either kind) and then both network endpoints.

        Missing objects are not an error.

        Returns:
            Which objects actually existed and were deleted
        """
        namespace = self._namespace(namespace)
        deleted = {}
        for kind in (WorkloadKind.DEPLOYMENT, WorkloadKind.STATEFULSET):
            deleted[kind.value] = await self.k8s_client.delete_workload(kind.value, name, namespace)
        deleted["Service"] = await self.k8s_client.delete_service(name, namespace)
        deleted["HeadlessService"] = await self.k8s_client.delete_service(headless_service_name(name), namespace)

        logger.info(f"[K8S:MANAGER] Deleted service {name} from {namespace}")
        return deleted

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_service_status(self, name: str, namespace: Optional[str] = None) -> ServiceStatus:
        """
        Aggregated status of a service.

        A missing workload is reported as an error status instead of raising.
        """
        namespace = self._namespace(namespace)
        workload = await self.k8s_client.read_workload(name, namespace)
        if workload is None:
            return ServiceStatus(
                status=ServiceState.ERROR,
                message=f'Service "{name}" is not deployed in namespace "{namespace}"'
            )

        kind = WorkloadKind(workload.kind)
        desired = workload.spec.replicas or 0
        raw = workload.status
        ready = (raw.ready_replicas if raw else None) or 0
        updated = (raw.updated_replicas if raw else None) or 0
        if kind == WorkloadKind.STATEFULSET:
            available = (raw.current_replicas if raw else None) or 0
        else:
            available = (raw.available_replicas if raw else None) or 0

        state = aggregate_status(desired, available, ready)
        message = None

        if desired > 0:
            try:
                pods = await self.k8s_client.list_pods(namespace, f"app={name}")
            except KubernetesOperationError as e:
                logger.warning(f"[K8S:MANAGER] Could not list pods for {name}: {e}")
                pods = []
            message = find_image_pull_failure(pods)
            if message:
                state = ServiceState.ERROR

        return ServiceStatus(
            status=state,
            kind=kind,
            replicas=desired,
            available_replicas=available,
            ready_replicas=ready,
            updated_replicas=updated,
            message=message
        )

    # =========================================================================
    # DISCOVERY AND IMPORT
    # =========================================================================

    async def list_namespaces(self) -> List[str]:
        """Namespace names, sorted, with the default namespace first."""
        names = set(await self.k8s_client.list_namespaces())
        default = self.settings.k8s_default_namespace
        names.discard(default)
        return [default] + sorted(names)

    async def list_import_candidates(self, namespace: Optional[str] = None) -> List[ImportCandidate]:
        namespace = self._namespace(namespace)
        deployments = await self.k8s_client.list_deployments(namespace)
        stateful_sets = await self.k8s_client.list_stateful_sets(namespace)
        services = await self.k8s_client.list_services(namespace)

        candidates = []
        for kind, workloads in ((WorkloadKind.DEPLOYMENT, deployments), (WorkloadKind.STATEFULSET, stateful_sets)):
            for workload in workloads:
                candidate = build_import_candidate(workload, kind, services)
                if candidate is not None:
                    candidates.append(candidate)

        logger.info(f"[K8S:MANAGER] Found {len(candidates)} import candidates in {namespace}")
        return candidates

    async def build_service_payload(
        self,
        project_id: str,
        namespace: Optional[str],
        name: str,
        kind: WorkloadKind
    ) -> Optional[Dict[str, Any]]:
        """
        Service-creation payload for one existing workload.

        Returns:
            None when the workload does not exist or cannot be described
        """
        namespace = self._namespace(namespace)
        kind = WorkloadKind(kind)
        if kind == WorkloadKind.STATEFULSET:
            workloads = await self.k8s_client.list_stateful_sets(namespace)
        else:
            workloads = await self.k8s_client.list_deployments(namespace)

        workload = next((item for item in workloads if item.metadata and item.metadata.name == name), None)
        if workload is None:
            return None

        services = await self.k8s_client.list_services(namespace)
        candidate = build_import_candidate(workload, kind, services)
        if candidate is None:
            return None
        return candidate_to_create_request(project_id, candidate)


# Global instance - lazily initialized
_k8s_service_manager: Optional[KubernetesServiceManager] = None


def get_k8s_service_manager() -> KubernetesServiceManager:
    """Get or create the global service manager bound to the global client."""
    global _k8s_service_manager
    if _k8s_service_manager is None:
        from .client import get_k8s_client
        _k8s_service_manager = KubernetesServiceManager(get_k8s_client())
    return _k8s_service_manager
