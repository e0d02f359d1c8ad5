from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # Namespace used when a caller passes an empty one
    k8s_default_namespace: str = "default"

    # Value of the "managed-by" label stamped on every managed object
    k8s_managed_by: str = "svcplane"

    # Lifecycle bookkeeping lives in annotations under this prefix:
    #   <prefix>/original-replicas  (stop/start)
    #   <prefix>/restartedAt        (forced rolling restart)
    # and the label marking headless companion endpoints (<prefix>/headless-service)
    k8s_annotation_prefix: str = "svcplane.io"

    # Shared volume claim (one per namespace, mounted with per-service subPaths)
    k8s_shared_pvc_name: str = "shared-nfs-pvc"
    k8s_shared_volume_name: str = "shared-volume"
    k8s_storage_class: str = "nfs-sc"
    k8s_pvc_size: str = "10Gi"
    k8s_pvc_access_mode: str = "ReadWriteMany"

    # Placeholder image for application services that have not been built yet
    k8s_fallback_image: str = "nginx:latest"

    # Cluster credentials, resolved in this order:
    #   1. k8s_kubeconfig_content (raw YAML or base64)
    #   2. k8s_kubeconfig_path
    #   3. default local kubeconfig (~/.kube/config)
    #   4. in-cluster service account
    k8s_kubeconfig_content: str = ""
    k8s_kubeconfig_path: str = ""

    @property
    def original_replicas_annotation(self) -> str:
        return f"{self.k8s_annotation_prefix}/original-replicas"

    @property
    def restarted_at_annotation(self) -> str:
        return f"{self.k8s_annotation_prefix}/restartedAt"

    @property
    def headless_service_label(self) -> str:
        return f"{self.k8s_annotation_prefix}/headless-service"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields from .env file
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
