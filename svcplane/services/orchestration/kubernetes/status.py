"""
Service status aggregation.

Maps raw workload replica counts onto the coarse states the API reports.
"""

from typing import Iterable, Optional

from kubernetes import client

from ....schemas import ServiceState

IMAGE_PULL_FAILURES = ("ErrImagePull", "ImagePullBackOff")


def aggregate_status(desired: Optional[int], available: Optional[int], ready: Optional[int]) -> ServiceState:
    """
    Coarse state from (desired, available, ready) replica counts.

    Unset counts are read as 0, the way the API reports a workload with no pods yet.
    """
    desired = desired or 0
    available = available or 0
    ready = ready or 0

    if desired == 0:
        return ServiceState.STOPPED
    if available == desired and ready == desired:
        return ServiceState.RUNNING
    if available == 0:
        return ServiceState.ERROR
    return ServiceState.PENDING


def find_image_pull_failure(pods: Iterable[client.V1Pod]) -> Optional[str]:
    """Message of the first container stuck pulling its image, if any."""
    for pod in pods:
        statuses = (pod.status.container_statuses if pod.status else None) or []
        for container_status in statuses:
            waiting = container_status.state.waiting if container_status.state else None
            if waiting is not None and waiting.reason in IMAGE_PULL_FAILURES:
                detail = f": {waiting.message}" if waiting.message else ""
                return f"Container {container_status.name} cannot pull its image ({waiting.reason}){detail}"
    return None
