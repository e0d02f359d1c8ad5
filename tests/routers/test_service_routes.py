"""
Tests for the HTTP routers.

The manager dependency is overridden with one bound to the in-memory control
plane, so requests go through routing, validation and error mapping for real.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from svcplane.main import app
from svcplane.routers.services import get_service_manager
from svcplane.services.orchestration.kubernetes.errors import KubernetesOperationError


IMAGE_SERVICE = {
    "type": "image",
    "name": "web",
    "image": "nginx",
    "tag": "1.25",
    "replicas": 2,
    "network_config": {"container_port": 80},
}


@pytest.fixture
def api(manager):
    app.dependency_overrides[get_service_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.kubernetes
class TestServiceRoutes:

    def test_deploy(self, api, apps_v1):
        response = api.post("/api/services/deploy", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        assert response.status_code == 200
        body = response.json()
        assert body["namespace_state"] == "created"
        assert [r["outcome"] for r in body["results"]] == ["created", "created"]
        assert ("team-a", "web") in apps_v1.deployments.objects

    def test_deploy_rejects_unknown_type(self, api):
        response = api.post("/api/services/deploy", json={"service": {"type": "lambda", "name": "x"}})
        assert response.status_code == 422

    def test_partial_apply_is_bad_gateway(self, api, core_v1):
        core_v1.failures["create_namespaced_service"] = ApiException(status=500, reason="boom")

        response = api.post("/api/services/deploy", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        assert response.status_code == 502
        assert [r["outcome"] for r in response.json()["detail"]["results"]] == ["created", "failed"]

    def test_lifecycle_and_status(self, api):
        api.post("/api/services/deploy", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        stop = api.post("/api/services/team-a/web/stop")
        assert stop.status_code == 200
        assert stop.json()["replicas"] == 0
        assert api.get("/api/services/team-a/web/status").json()["status"] == "stopped"

        start = api.post("/api/services/team-a/web/start")
        assert start.json()["replicas"] == 2

        scale = api.post("/api/services/team-a/web/scale", json={"replicas": 4})
        assert scale.json()["replicas"] == 4

        assert api.post("/api/services/team-a/web/restart").status_code == 200

    def test_scale_validation(self, api):
        response = api.post("/api/services/team-a/web/scale", json={"replicas": -1})
        assert response.status_code == 422

    def test_unknown_service_is_404(self, api):
        response = api.post("/api/services/team-a/ghost/stop")

        assert response.status_code == 404
        assert "ghost" in response.json()["detail"]

    def test_missing_service_status_is_reported(self, api):
        response = api.get("/api/services/team-a/ghost/status")

        assert response.status_code == 200
        assert response.json()["status"] == "error"

    def test_delete(self, api):
        api.post("/api/services/deploy", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        first = api.delete("/api/services/team-a/web")
        second = api.delete("/api/services/team-a/web")

        assert first.json()["deleted"]["Deployment"] is True
        assert second.status_code == 200
        assert second.json()["deleted"]["Deployment"] is False

    def test_unreachable_cluster_is_bad_gateway(self, api, core_v1):
        core_v1.failures["read_namespace"] = MaxRetryError(None, "/api/v1/namespaces/team-a", reason="Connection refused")

        response = api.post("/api/services/deploy", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        assert response.status_code == 502
        assert "cannot reach the Kubernetes cluster" in response.json()["detail"]

    def test_delete_reports_headless_endpoint(self, api, core_v1):
        service = {**IMAGE_SERVICE, "network_config": {"container_port": 80, "headless_service_enabled": True}}
        api.post("/api/services/deploy", json={"namespace": "team-a", "service": service})
        assert ("team-a", "web-headless") in core_v1.services.objects

        deleted = api.delete("/api/services/team-a/web").json()["deleted"]

        assert deleted["HeadlessService"] is True
        assert core_v1.services.objects == {}

    def test_yaml_export(self, api):
        response = api.post("/api/services/yaml", json={"namespace": "team-a", "service": IMAGE_SERVICE})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/yaml")
        assert "kind: Deployment" in response.text
        assert "kind: Service" in response.text


@pytest.mark.kubernetes
class TestK8sRoutes:

    def test_namespaces(self, api):
        api.post("/api/services/deploy", json={"namespace": "apps", "service": IMAGE_SERVICE})

        assert api.get("/api/k8s/namespaces").json() == ["default", "apps", "kube-system"]

    def test_import_candidates_and_payload(self, api):
        api.post("/api/services/deploy", json={"namespace": "apps", "service": IMAGE_SERVICE})

        candidates = api.get("/api/k8s/services/import", params={"namespace": "apps"}).json()
        assert [c["name"] for c in candidates] == ["web"]
        assert candidates[0]["kind"] == "Deployment"

        payload = api.post("/api/k8s/services/import", json={
            "project_id": "proj-1",
            "resource": {"namespace": "apps", "name": "web", "kind": "Deployment"},
        })
        assert payload.status_code == 200
        assert payload.json()["image"] == "nginx"
        assert payload.json()["tag"] == "1.25"

    def test_import_unknown_workload_is_422(self, api):
        response = api.post("/api/k8s/services/import", json={
            "project_id": "proj-1",
            "resource": {"namespace": "apps", "name": "ghost", "kind": "StatefulSet"},
        })
        assert response.status_code == 422


@pytest.mark.unit
def test_cluster_errors_map_to_bad_gateway():
    manager = Mock()
    manager.list_namespaces = AsyncMock(
        side_effect=KubernetesOperationError("List namespaces", "connection refused")
    )
    app.dependency_overrides[get_service_manager] = lambda: manager
    try:
        response = TestClient(app).get("/api/k8s/namespaces")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 502
    assert "connection refused" in response.json()["detail"]


@pytest.mark.unit
def test_health():
    assert TestClient(app).get("/health").json()["status"] == "healthy"
