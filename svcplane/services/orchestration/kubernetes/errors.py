"""
Kubernetes operation errors.

Only two API statuses carry a tolerated meaning in this package:
- 404: target missing (success for deletes, descriptive status for reads)
- 409: object already exists / concurrent write (turned into replace or "exists")

Everything else, including transport failures that never got an HTTP
response, is wrapped into KubernetesOperationError with a readable message.
"""

from typing import List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

NOT_FOUND = 404
CONFLICT = 409

# API errors plus transport failures (MaxRetryError, ProtocolError, ...) raised
# by urllib3 when the API server cannot be reached at all
CLUSTER_ERRORS = (ApiException, HTTPError)


class KubernetesOperationError(RuntimeError):
    """A cluster operation failed for a reason the caller has to handle."""

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        self.operation = operation
        self.status = status
        super().__init__(f"{operation} failed: {message}")


class ServiceNotFoundError(KubernetesOperationError):
    """Neither a Deployment nor a StatefulSet exists for the service."""

    def __init__(self, operation: str, service_name: str, namespace: str):
        self.service_name = service_name
        self.namespace = namespace
        super().__init__(
            operation,
            f'service "{service_name}" does not exist in namespace "{namespace}". Deploy it first.',
            status=NOT_FOUND,
        )


class PartialApplyError(KubernetesOperationError):
    """The workload was applied but the network endpoint was not."""

    def __init__(self, operation: str, message: str, results: List, status: Optional[int] = None):
        self.results = results
        super().__init__(operation, message, status=status)


def is_not_found(exc: Exception) -> bool:
    return isinstance(exc, ApiException) and exc.status == NOT_FOUND


def is_conflict(exc: Exception) -> bool:
    return isinstance(exc, ApiException) and exc.status == CONFLICT


def describe_api_error(exc: Exception) -> str:
    """
    Get a human-readable description of a cluster error.

    Recognizable connectivity and credential problems get a hint appended;
    anything else is reported verbatim.
    """
    if isinstance(exc, ApiException):
        raw = exc.reason or ""
        if exc.body:
            raw = f"{raw} {exc.body}".strip()
        if exc.status in (401, 403):
            return f"{raw} (check the cluster credentials and their RBAC permissions)"
    else:
        raw = str(exc) or exc.__class__.__name__

    if "HTTP protocol is not allowed" in raw:
        return f"{raw} (the API server address in the kubeconfig is not reachable; check its server URL)"
    if any(pattern in raw for pattern in ("Connection refused", "ECONNREFUSED", "Name or service not known", "ENOTFOUND", "Max retries exceeded")):
        return f"{raw} (cannot reach the Kubernetes cluster; make sure it is running and reachable)"
    return raw
