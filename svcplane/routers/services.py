"""
Services API Router.

Deploy, lifecycle, status and YAML export endpoints. Service definitions
arrive in the request body; nothing is persisted here.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..schemas import DeployResult, LifecycleResult, Service, ServiceStatus
from ..services.orchestration.kubernetes import (
    KubernetesOperationError,
    KubernetesServiceManager,
    PartialApplyError,
    ServiceNotFoundError,
    get_k8s_service_manager,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/services", tags=["services"])


# ============================================================================
# Request/Response Models
# ============================================================================

class ServiceRequest(BaseModel):
    """A service definition and the namespace it goes to."""
    namespace: str = Field("", description="Target namespace (default namespace when empty)")
    service: Service


class ScaleRequest(BaseModel):
    replicas: int = Field(..., ge=0)


def get_service_manager() -> KubernetesServiceManager:
    return get_k8s_service_manager()


def to_http_error(e: KubernetesOperationError) -> HTTPException:
    """Map domain errors onto HTTP errors."""
    if isinstance(e, ServiceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, PartialApplyError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(e), "results": [result.model_dump(mode="json") for result in e.results]}
        )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/deploy", response_model=DeployResult)
async def deploy_service(
    request: ServiceRequest,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    """Create or replace the service's workload and network endpoint."""
    try:
        return await manager.deploy_service(request.service, request.namespace)
    except KubernetesOperationError as e:
        logger.error(f"Deploy of {request.service.name} failed: {e}")
        raise to_http_error(e)


@router.post("/yaml", response_class=PlainTextResponse)
async def export_service_yaml(
    request: ServiceRequest,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    return PlainTextResponse(
        manager.generate_service_yaml(request.service, request.namespace),
        media_type="text/yaml"
    )


@router.post("/{namespace}/{name}/stop", response_model=LifecycleResult)
async def stop_service(
    namespace: str,
    name: str,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    try:
        return await manager.stop_service(name, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)


@router.post("/{namespace}/{name}/start", response_model=LifecycleResult)
async def start_service(
    namespace: str,
    name: str,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    try:
        return await manager.start_service(name, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)


@router.post("/{namespace}/{name}/restart", response_model=LifecycleResult)
async def restart_service(
    namespace: str,
    name: str,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    try:
        return await manager.restart_service(name, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)


@router.post("/{namespace}/{name}/scale", response_model=LifecycleResult)
async def scale_service(
    namespace: str,
    name: str,
    request: ScaleRequest,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    try:
        return await manager.scale_service(name, request.replicas, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)


@router.delete("/{namespace}/{name}")
async def delete_service(
    namespace: str,
    name: str,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    """Delete the workload and endpoint; deleting something already gone succeeds."""
    try:
        deleted = await manager.delete_service(name, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)
    return {"message": f"Service {name} deleted", "deleted": deleted}


@router.get("/{namespace}/{name}/status", response_model=ServiceStatus)
async def get_service_status(
    namespace: str,
    name: str,
    manager: KubernetesServiceManager = Depends(get_service_manager)
):
    try:
        return await manager.get_service_status(name, namespace)
    except KubernetesOperationError as e:
        raise to_http_error(e)
