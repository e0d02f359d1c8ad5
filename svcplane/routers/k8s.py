"""
Cluster discovery API Router.

Namespace listing and import of workloads that already run on the cluster.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..schemas import ImportCandidate, ImportRequest
from ..services.orchestration.kubernetes import KubernetesOperationError, KubernetesServiceManager
from .services import get_service_manager, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/k8s", tags=["k8s"])


@router.get("/namespaces", response_model=List[str])
async def list_namespaces(manager: KubernetesServiceManager = Depends(get_service_manager)):
    try:
        return await manager.list_namespaces()
    except KubernetesOperationError as e:
        logger.error(f"Failed to list namespaces: {e}")
        raise to_http_error(e)


@router.get("/services/import", response_model=List[ImportCandidate])
async def list_import_candidates(
    namespace: str = Query("", description="Namespace to scan (default namespace when empty)"),
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    """Workloads in a namespace that can be imported as services."""
    try:
        return await manager.list_import_candidates(namespace)
    except KubernetesOperationError as e:
        logger.error(f"Failed to list import candidates in {namespace or 'default'}: {e}")
        raise to_http_error(e)


@router.post("/services/import")
async def import_service(
    request: ImportRequest,
    manager: KubernetesServiceManager = Depends(get_service_manager)
) -> Dict[str, Any]:
    """Build the service-creation payload for one workload."""
    resource = request.resource
    try:
        payload = await manager.build_service_payload(
            request.project_id,
            resource.namespace,
            resource.name,
            resource.kind
        )
    except KubernetesOperationError as e:
        raise to_http_error(e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Cannot build a service from {resource.kind.value} {resource.namespace}/{resource.name}"
        )
    return payload
