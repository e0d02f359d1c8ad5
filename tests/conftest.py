"""
Test configuration and fixtures for pytest.

Fixtures wire the service manager to an in-memory control plane (tests/fakes.py),
so reconcile and lifecycle tests exercise real client models end to end.
"""

import os
import sys
from pathlib import Path

import pytest

# Make the repository root importable without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Pins settings that tests assert on and registers custom markers.
    """
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["K8S_MANAGED_BY"] = "svcplane"
    os.environ["K8S_ANNOTATION_PREFIX"] = "svcplane.io"

    from svcplane.config import get_settings
    get_settings.cache_clear()

    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "kubernetes: mark test as exercising Kubernetes objects")


@pytest.fixture
def settings():
    from svcplane.config import Settings
    return Settings()


@pytest.fixture
def apps_v1():
    from fakes import FakeAppsV1Api
    return FakeAppsV1Api()


@pytest.fixture
def core_v1():
    from fakes import FakeCoreV1Api
    return FakeCoreV1Api()


@pytest.fixture
def k8s_client(apps_v1, core_v1, settings):
    from svcplane.services.orchestration.kubernetes.client import KubernetesClient
    return KubernetesClient(apps_v1, core_v1, settings)


@pytest.fixture
def manager(k8s_client, settings):
    from svcplane.services.orchestration.kubernetes.manager import KubernetesServiceManager
    return KubernetesServiceManager(k8s_client, settings)


@pytest.fixture
def app_service():
    """Image service with two ports on a NodePort endpoint."""
    from svcplane.schemas import parse_service
    return parse_service({
        "type": "image",
        "name": "api",
        "image": "registry.local:5000/team/api",
        "tag": "1.4.2",
        "replicas": 3,
        "command": "gunicorn app:app --bind 0.0.0.0:8000",
        "env_vars": {"LOG_LEVEL": "info"},
        "resource_limits": {"cpu": "500m", "memory": "512Mi"},
        "network_config": {
            "service_type": "NodePort",
            "ports": [
                {"container_port": 8000, "service_port": 80, "node_port": 30080},
                {"container_port": "9090", "protocol": "udp"},
            ],
        },
    })


@pytest.fixture
def db_service():
    from svcplane.schemas import parse_service
    return parse_service({
        "type": "database",
        "name": "orders-db",
        "database_type": "postgresql",
        "version": "16",
        "username": "orders",
        "password": "s3cret",
        "database_name": "orders",
        "volume_size": "5Gi",
        "external_port": 31432,
    })
