"""
Unit tests for KubernetesClient namespace / PVC ensurers and apply outcomes.

The namespace state machine is driven with Mock API handles so each
response in the read/create/re-read sequence can be scripted.
"""

import pytest
from unittest.mock import Mock, patch

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ProtocolError

from svcplane.schemas import ApplyOutcome, NamespaceState, NormalizedNetworkConfig, NormalizedPort
from svcplane.services.orchestration.kubernetes.client import KubernetesClient, decode_kubeconfig_content
from svcplane.services.orchestration.kubernetes.errors import KubernetesOperationError
from svcplane.services.orchestration.kubernetes.helpers import create_service_manifest


def run_inline(f, *args, **kwargs):
    async def _call():
        return f(*args, **kwargs)
    return _call()


@pytest.fixture
def mock_client(settings):
    return KubernetesClient(apps_v1=Mock(), core_v1=Mock(), settings=settings)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestEnsureNamespace:

    @pytest.mark.asyncio
    async def test_default_namespace_is_never_touched(self, mock_client):
        state = await mock_client.ensure_namespace("default")

        assert state == NamespaceState.EXISTS
        assert not mock_client.core_v1.read_namespace.called
        assert not mock_client.core_v1.create_namespace.called

    @pytest.mark.asyncio
    async def test_existing_namespace(self, mock_client):
        mock_client.core_v1.read_namespace.return_value = Mock()

        with patch('asyncio.to_thread', new=run_inline):
            state = await mock_client.ensure_namespace("team-a")

        assert state == NamespaceState.EXISTS
        assert not mock_client.core_v1.create_namespace.called

    @pytest.mark.asyncio
    async def test_missing_namespace_is_created_and_verified(self, mock_client):
        mock_client.core_v1.read_namespace.side_effect = [ApiException(status=404), Mock()]

        with patch('asyncio.to_thread', new=run_inline):
            state = await mock_client.ensure_namespace("team-a")

        assert state == NamespaceState.CREATED
        assert mock_client.core_v1.read_namespace.call_count == 2
        body = mock_client.core_v1.create_namespace.call_args.kwargs['body']
        assert body.metadata.name == "team-a"
        assert body.metadata.labels['managed-by'] == "svcplane"

    @pytest.mark.asyncio
    async def test_conflict_on_create_means_exists(self, mock_client):
        mock_client.core_v1.read_namespace.side_effect = [ApiException(status=404), Mock()]
        mock_client.core_v1.create_namespace.side_effect = ApiException(status=409)

        with patch('asyncio.to_thread', new=run_inline):
            state = await mock_client.ensure_namespace("team-a")

        assert state == NamespaceState.EXISTS
        assert mock_client.core_v1.read_namespace.call_count == 2

    @pytest.mark.asyncio
    async def test_forbidden_is_fatal(self, mock_client):
        mock_client.core_v1.read_namespace.side_effect = ApiException(status=403, reason="Forbidden")

        with patch('asyncio.to_thread', new=run_inline):
            with pytest.raises(KubernetesOperationError) as exc_info:
                await mock_client.ensure_namespace("team-a")

        assert exc_info.value.status == 403
        assert "RBAC" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_create_failure_is_fatal(self, mock_client):
        mock_client.core_v1.read_namespace.side_effect = ApiException(status=404)
        mock_client.core_v1.create_namespace.side_effect = ApiException(status=500, reason="Internal Server Error")

        with patch('asyncio.to_thread', new=run_inline):
            with pytest.raises(KubernetesOperationError):
                await mock_client.ensure_namespace("team-a")


@pytest.mark.unit
@pytest.mark.kubernetes
class TestEnsureSharedVolumeClaim:

    @pytest.mark.asyncio
    async def test_created_once(self, k8s_client, core_v1, settings):
        assert await k8s_client.ensure_shared_volume_claim("team-a") is True
        assert await k8s_client.ensure_shared_volume_claim("team-a") is False

        pvc = core_v1.pvcs.objects[("team-a", settings.k8s_shared_pvc_name)]
        assert pvc.spec.access_modes == ["ReadWriteMany"]

    @pytest.mark.asyncio
    async def test_never_in_default_namespace(self, k8s_client, core_v1):
        assert await k8s_client.ensure_shared_volume_claim("default") is False
        assert core_v1.pvcs.objects == {}

    @pytest.mark.asyncio
    async def test_conflict_on_create_is_success(self, k8s_client, core_v1):
        core_v1.failures["create_namespaced_persistent_volume_claim"] = ApiException(status=409)

        assert await k8s_client.ensure_shared_volume_claim("team-a") is False

    @pytest.mark.asyncio
    async def test_other_errors_raise(self, k8s_client, core_v1):
        core_v1.failures["read_namespaced_persistent_volume_claim"] = ApiException(status=500, reason="boom")

        with pytest.raises(KubernetesOperationError):
            await k8s_client.ensure_shared_volume_claim("team-a")


@pytest.mark.unit
@pytest.mark.kubernetes
class TestApplyService:

    @staticmethod
    def _endpoint(settings, node_port=None):
        network = NormalizedNetworkConfig(
            service_type="NodePort",
            ports=[NormalizedPort(container_port=8080, service_port=80, node_port=node_port)],
        )
        return create_service_manifest("web", "team-a", network, settings)

    @pytest.mark.asyncio
    async def test_replace_keeps_cluster_assigned_fields(self, k8s_client, core_v1, settings):
        first = await k8s_client.apply_service(self._endpoint(settings), "team-a")
        live = core_v1.services.objects[("team-a", "web")]
        cluster_ip, node_port = live.spec.cluster_ip, live.spec.ports[0].node_port

        second = await k8s_client.apply_service(self._endpoint(settings), "team-a")
        live = core_v1.services.objects[("team-a", "web")]

        assert first.outcome == ApplyOutcome.CREATED
        assert second.outcome == ApplyOutcome.REPLACED
        assert live.spec.cluster_ip == cluster_ip
        assert live.spec.ports[0].node_port == node_port

    @pytest.mark.asyncio
    async def test_explicit_node_port_wins_on_replace(self, k8s_client, core_v1, settings):
        await k8s_client.apply_service(self._endpoint(settings), "team-a")
        await k8s_client.apply_service(self._endpoint(settings, node_port=31000), "team-a")

        assert core_v1.services.objects[("team-a", "web")].spec.ports[0].node_port == 31000

    @pytest.mark.asyncio
    async def test_failure_is_an_outcome_not_an_exception(self, k8s_client, core_v1, settings):
        core_v1.failures["create_namespaced_service"] = ApiException(status=422, reason="Invalid")

        result = await k8s_client.apply_service(self._endpoint(settings), "team-a")

        assert result.outcome == ApplyOutcome.FAILED
        assert "Invalid" in result.error


@pytest.mark.unit
@pytest.mark.kubernetes
class TestWorkloadReads:

    @pytest.mark.asyncio
    async def test_read_falls_back_to_statefulset(self, k8s_client, apps_v1):
        apps_v1.stateful_sets.create("ns", client.V1StatefulSet(
            metadata=client.V1ObjectMeta(name="db"),
            spec=client.V1StatefulSetSpec(
                service_name="db",
                selector=client.V1LabelSelector(match_labels={"app": "db"}),
                template=client.V1PodTemplateSpec(),
            ),
        ))

        workload = await k8s_client.read_workload("db", "ns")

        assert workload.kind == "StatefulSet"
        assert await k8s_client.read_workload("missing", "ns") is None

    @pytest.mark.asyncio
    async def test_read_error_is_wrapped(self, k8s_client, apps_v1):
        apps_v1.failures["read_namespaced_deployment"] = ApiException(status=500, reason="etcd unavailable")

        with pytest.raises(KubernetesOperationError) as exc_info:
            await k8s_client.read_workload("web", "ns")

        assert exc_info.value.status == 500


@pytest.mark.unit
@pytest.mark.kubernetes
class TestUnreachableApiServer:

    @pytest.mark.asyncio
    async def test_namespace_read_connection_error_is_wrapped(self, mock_client):
        mock_client.core_v1.read_namespace.side_effect = MaxRetryError(
            None, "/api/v1/namespaces/team-a", reason="Connection refused"
        )

        with patch('asyncio.to_thread', new=run_inline):
            with pytest.raises(KubernetesOperationError) as exc_info:
                await mock_client.ensure_namespace("team-a")

        assert exc_info.value.status is None
        assert "cannot reach the Kubernetes cluster" in str(exc_info.value)
        assert not mock_client.core_v1.create_namespace.called

    @pytest.mark.asyncio
    async def test_apply_connection_error_is_failed_outcome(self, k8s_client, apps_v1):
        apps_v1.failures["create_namespaced_deployment"] = ProtocolError("Connection aborted.")
        workload = client.V1Deployment(kind="Deployment", metadata=client.V1ObjectMeta(name="web"))

        result = await k8s_client.apply_workload(workload, "ns")

        assert result.outcome == ApplyOutcome.FAILED
        assert "Connection aborted" in result.error

    @pytest.mark.asyncio
    async def test_list_connection_error_is_wrapped(self, k8s_client, core_v1):
        core_v1.failures["list_namespace"] = ProtocolError("Connection aborted.")

        with pytest.raises(KubernetesOperationError):
            await k8s_client.list_namespaces()


@pytest.mark.unit
class TestKubeconfigContent:

    def test_raw_yaml_passes_through(self):
        raw = "apiVersion: v1\nclusters: []\n"
        assert decode_kubeconfig_content(raw) == raw.strip()

    def test_base64_is_decoded(self):
        import base64
        raw = "apiVersion: v1\nclusters: []\n"
        assert decode_kubeconfig_content(base64.b64encode(raw.encode()).decode()) == raw
