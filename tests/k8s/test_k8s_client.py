"""
Unit tests for the Kubernetes resource client.

Tests:
- Absence on get/delete is not an error
- Create-or-update idempotence
- Conflict and error wrapping on create/update
- Scale sub-resource access
- Stack deployment listing
"""

import pytest
from unittest.mock import patch

pytest.importorskip("kubernetes")

from kubernetes import client

from conftest import api_exception
from datalab_stacks.errors import ConflictError, OrchestratorError
from datalab_stacks.services.orchestration.kubernetes.client import (
    KubernetesClient,
    ResourceKind,
    remote_message,
    to_document,
)


def _config_map(name, value="1"):
    return client.V1ConfigMap(metadata=client.V1ObjectMeta(name=name), data={"key": value})


def _deployment(name, labels=None, replicas=1):
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={"name": name}),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels or {"name": name}),
                spec=client.V1PodSpec(containers=[client.V1Container(name="main", image="busybox")])
            )
        )
    )


@pytest.mark.unit
class TestGetAndDelete:
    """Absence is reported as None or success."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, k8s_client):
        assert await k8s_client.config_maps.get("missing", "myproject") is None

    @pytest.mark.asyncio
    async def test_delete_missing_succeeds(self, k8s_client, fake_api):
        await k8s_client.deployments.delete("missing", "myproject")

        assert fake_api.call_names() == ["delete_namespaced_deployment"]

    @pytest.mark.asyncio
    async def test_delete_server_error_propagates(self, k8s_client, fake_api):
        fake_api.failures["delete_namespaced_service"] = api_exception(500, "etcd unavailable")

        with pytest.raises(OrchestratorError) as exc_info:
            await k8s_client.services.delete("svc", "myproject")

        assert "Unable to delete kubernetes service 'svc' - etcd unavailable" in exc_info.value.message
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_get_server_error_propagates(self, k8s_client, fake_api):
        fake_api.failures["read_namespaced_config_map"] = api_exception(403, "forbidden")

        with pytest.raises(OrchestratorError):
            await k8s_client.config_maps.get("cm", "myproject")


@pytest.mark.unit
class TestCreateAndUpdate:
    """Test create/update error contract and create-or-update."""

    @pytest.mark.asyncio
    async def test_create_remote_error_names_resource_and_message(self, k8s_client, fake_api):
        fake_api.failures["create_namespaced_deployment"] = api_exception(
            400, "spec.template.spec.containers: Required value"
        )

        with pytest.raises(OrchestratorError) as exc_info:
            await k8s_client.deployments.create("jupyter-nb01", "myproject", _deployment("jupyter-nb01"))

        assert exc_info.value.message == (
            "Kubernetes API: Unable to create kubernetes deployment 'jupyter-nb01' - "
            "spec.template.spec.containers: Required value"
        )
        assert exc_info.value.resource_name == "jupyter-nb01"
        assert exc_info.value.remote_message == "spec.template.spec.containers: Required value"

    @pytest.mark.asyncio
    async def test_create_duplicate_is_conflict(self, k8s_client):
        await k8s_client.config_maps.create("cm", "myproject", _config_map("cm"))

        with pytest.raises(ConflictError):
            await k8s_client.config_maps.create("cm", "myproject", _config_map("cm"))

    @pytest.mark.asyncio
    async def test_update_uses_replace(self, k8s_client, fake_api):
        await k8s_client.config_maps.create("cm", "myproject", _config_map("cm"))
        await k8s_client.config_maps.update("cm", "myproject", _config_map("cm", "2"))

        stored = await k8s_client.config_maps.get("cm", "myproject")
        assert stored.data == {"key": "2"}
        assert "replace_namespaced_config_map" in fake_api.call_names()

    @pytest.mark.asyncio
    async def test_create_or_update_creates_when_absent(self, k8s_client, fake_api):
        await k8s_client.services.create_or_update("svc", "myproject", client.V1Service(
            metadata=client.V1ObjectMeta(name="svc")
        ))

        assert fake_api.call_names() == ["read_namespaced_service", "create_namespaced_service"]

    @pytest.mark.asyncio
    async def test_create_or_update_is_idempotent(self, k8s_client, fake_api):
        await k8s_client.config_maps.create_or_update("cm", "myproject", _config_map("cm"))
        once = to_document(await k8s_client.config_maps.get("cm", "myproject"))

        await k8s_client.config_maps.create_or_update("cm", "myproject", _config_map("cm"))
        twice = to_document(await k8s_client.config_maps.get("cm", "myproject"))

        assert once == twice
        assert fake_api.call_names().count("create_namespaced_config_map") == 1
        assert fake_api.call_names().count("replace_namespaced_config_map") == 1

    @pytest.mark.asyncio
    async def test_calls_pass_request_timeout(self, k8s_client, fake_api):
        await k8s_client.auto_scalers.get("hpa", "myproject")

        kwargs = fake_api.calls_to("read_namespaced_horizontal_pod_autoscaler")[0]
        assert kwargs["_request_timeout"] == 5


@pytest.mark.unit
class TestPatchAndScale:
    """Test merge patches and the scale sub-resource."""

    @pytest.mark.asyncio
    async def test_merge_patch_content_type(self, k8s_client, fake_api):
        await k8s_client.deployments.create("dep", "myproject", _deployment("dep"))

        await k8s_client.deployments.merge_patch("dep", "myproject", {"metadata": {"labels": {"a": "b"}}})

        kwargs = fake_api.calls_to("patch_namespaced_deployment")[0]
        assert kwargs["_content_type"] == "application/merge-patch+json"
        assert kwargs["body"] == {"metadata": {"labels": {"a": "b"}}}

    @pytest.mark.asyncio
    async def test_get_scale(self, k8s_client, fake_api):
        fake_api.scale_traces["dep"] = [(2, 1)]

        state = await k8s_client.deployments.get_scale("dep", "myproject")

        assert (state.spec_replicas, state.status_replicas) == (2, 1)
        assert not state.converged

    @pytest.mark.asyncio
    async def test_patch_scale_body(self, k8s_client, fake_api):
        await k8s_client.deployments.patch_scale("dep", "myproject", 0)

        kwargs = fake_api.calls_to("patch_namespaced_deployment_scale")[0]
        assert kwargs["body"] == {"spec": {"replicas": 0}}
        assert kwargs["_content_type"] == "application/merge-patch+json"

    @pytest.mark.asyncio
    async def test_patch_scale_failure_is_wrapped(self, k8s_client, fake_api):
        fake_api.failures["patch_namespaced_deployment_scale"] = api_exception(404, "not found")

        with pytest.raises(OrchestratorError, match="'dep' - not found"):
            await k8s_client.deployments.patch_scale("dep", "myproject", 1)


@pytest.mark.unit
class TestListing:
    """Test deployment listing."""

    @pytest.mark.asyncio
    async def test_list_in_namespace(self, k8s_client):
        await k8s_client.config_maps.create("a", "ns1", _config_map("a"))
        await k8s_client.config_maps.create("b", "ns2", _config_map("b"))

        items = await k8s_client.config_maps.list(namespace="ns1")

        assert [item.metadata.name for item in items] == ["a"]

    @pytest.mark.asyncio
    async def test_list_stack_deployments_filters_user_pods(self, k8s_client):
        await k8s_client.deployments.create("jupyter-nb01", "proj1", _deployment(
            "jupyter-nb01", labels={"name": "jupyter-nb01-po", "user-pod": "jupyter"}, replicas=1
        ))
        await k8s_client.deployments.create("infra", "kube-system", _deployment("infra"))

        summaries = await k8s_client.deployments.list_stack_deployments()

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.deployment_name == "jupyter-nb01"
        assert summary.name == "jupyter-nb01-po"
        assert summary.namespace == "proj1"
        assert summary.replicas == 1
        assert summary.type == "jupyter"


@pytest.mark.unit
class TestHelpers:
    """Test module helpers."""

    def test_remote_message_prefers_body(self):
        assert remote_message(api_exception(422, "bad field")) == "bad field"

    def test_remote_message_falls_back_to_reason(self):
        assert remote_message(api_exception(503, reason="Service Unavailable")) == "Service Unavailable"

    def test_api_for_each_kind(self, k8s_client):
        for kind in ResourceKind:
            assert k8s_client.api_for(kind).kind == kind

    def test_from_config_falls_back_to_kubeconfig(self):
        with patch("datalab_stacks.services.orchestration.kubernetes.client.config") as mock_config:
            mock_config.ConfigException = Exception
            mock_config.load_incluster_config.side_effect = Exception("not in cluster")

            k8s = KubernetesClient.from_config(request_timeout=7)

        mock_config.load_kube_config.assert_called_once()
        assert k8s.deployments.request_timeout == 7
