"""
Kubernetes Client for Stack Resources

This module provides a typed wrapper over the Kubernetes API for the resource
kinds that make up a stack: Deployments, Services, ConfigMaps, NetworkPolicies
and HorizontalPodAutoscalers.

Each kind gets the same contract:
- get() returns None when the resource does not exist
- delete() succeeds when the resource does not exist
- create()/update() raise ConflictError on 409 and OrchestratorError on any
  other failure, with the remote message embedded and the resource named

The client has no knowledge of stack semantics.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ....errors import ConflictError, OrchestratorError
from ....models import ScaleState, StackDeploymentSummary

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class ResourceKind(Enum):
    """
    Resource kinds managed for stacks.

    The value pairs the human-readable name used in error messages with the
    suffix of the generated kubernetes client methods for the kind
    (e.g. read_namespaced_<suffix>).
    """

    DEPLOYMENT = ("deployment", "deployment")
    SERVICE = ("service", "service")
    CONFIG_MAP = ("config map", "config_map")
    NETWORK_POLICY = ("network policy", "network_policy")
    AUTO_SCALER = ("auto-scaler", "horizontal_pod_autoscaler")

    @property
    def display_name(self) -> str:
        return self.value[0]

    @property
    def method_suffix(self) -> str:
        return self.value[1]


def remote_message(e: ApiException) -> str:
    """Extract the API server's message from an ApiException."""
    if e.body:
        try:
            body = json.loads(e.body)
        except (TypeError, ValueError):
            body = None
        if isinstance(body, dict) and body.get("message"):
            return body["message"]
    return e.reason or f"Request failed with status code {e.status}"


_serializer: Optional[client.ApiClient] = None


def to_document(resource: Any) -> Any:
    """Convert a kubernetes model object to its plain dict/list form."""
    global _serializer
    if _serializer is None:
        _serializer = client.ApiClient()
    return _serializer.sanitize_for_serialization(resource)


class KubernetesResourceApi:
    """
    Namespaced CRUD for one resource kind.

    `api` is the generated kubernetes API object that serves the kind
    (AppsV1Api for deployments, CoreV1Api for services and config maps, ...).
    Every call runs in a worker thread so callers can await it.
    """

    def __init__(self, kind: ResourceKind, api: Any, request_timeout: int = 30):
        self.kind = kind
        self.api = api
        self.request_timeout = request_timeout

    def _method(self, verb: str):
        return getattr(self.api, f"{verb}_namespaced_{self.kind.method_suffix}")

    async def _call(self, method, **kwargs):
        return await asyncio.to_thread(method, _request_timeout=self.request_timeout, **kwargs)

    def _error(self, action: str, name: str, e: ApiException) -> OrchestratorError:
        message = remote_message(e)
        return OrchestratorError(
            f"Kubernetes API: Unable to {action} kubernetes {self.kind.display_name} '{name}' - {message}",
            status=e.status,
            remote_message=message,
            resource_name=name,
        )

    async def get(self, name: str, namespace: str) -> Optional[Any]:
        """Get a resource, or None if it does not exist."""
        try:
            return await self._call(self._method("read"), name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[K8S] {self.kind.display_name} {name} not found in {namespace}")
                return None
            raise self._error("get", name, e) from e

    async def create(self, name: str, namespace: str, manifest: Any) -> Any:
        try:
            created = await self._call(self._method("create"), namespace=namespace, body=manifest)
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"Kubernetes API: Unable to create kubernetes {self.kind.display_name} "
                    f"'{name}' - {remote_message(e)}"
                ) from e
            raise self._error("create", name, e) from e
        logger.info(f"[K8S] ✅ Created {self.kind.display_name}: {name} in {namespace}")
        return created

    async def update(self, name: str, namespace: str, manifest: Any) -> Any:
        """Replace an existing resource with the given manifest."""
        try:
            updated = await self._call(
                self._method("replace"), name=name, namespace=namespace, body=manifest
            )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"Kubernetes API: Unable to update kubernetes {self.kind.display_name} "
                    f"'{name}' - {remote_message(e)}"
                ) from e
            raise self._error("update", name, e) from e
        logger.info(f"[K8S] ✅ Updated {self.kind.display_name}: {name} in {namespace}")
        return updated

    async def create_or_update(self, name: str, namespace: str, manifest: Any) -> Any:
        """
        Create the resource if it is absent, otherwise replace it.

        Not atomic: a concurrent request may create the resource between the
        get and the create, in which case the create fails with a conflict.
        Retrying converges on the same state.
        """
        existing = await self.get(name, namespace)
        if existing is None:
            return await self.create(name, namespace, manifest)
        return await self.update(name, namespace, manifest)

    async def delete(self, name: str, namespace: str) -> None:
        """Delete a resource. Deleting a resource that does not exist succeeds."""
        try:
            await self._call(self._method("delete"), name=name, namespace=namespace)
            logger.info(f"[K8S] Deleted {self.kind.display_name}: {name} in {namespace}")
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[K8S] {self.kind.display_name} {name} already absent from {namespace}")
                return
            raise self._error("delete", name, e) from e

    async def merge_patch(self, name: str, namespace: str, patch: Dict[str, Any]) -> Any:
        """Apply a JSON merge patch to a resource."""
        try:
            patched = await self._call(
                self._method("patch"),
                name=name,
                namespace=namespace,
                body=patch,
                _content_type=MERGE_PATCH,
            )
        except ApiException as e:
            raise self._error("patch", name, e) from e
        logger.info(f"[K8S] Patched {self.kind.display_name}: {name} in {namespace}")
        return patched

    async def list(
        self,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None
    ) -> List[Any]:
        """List resources in a namespace, or across all namespaces if none is given."""
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            if namespace:
                result = await self._call(self._method("list"), namespace=namespace, **kwargs)
            else:
                method = getattr(self.api, f"list_{self.kind.method_suffix}_for_all_namespaces")
                result = await self._call(method, **kwargs)
        except ApiException as e:
            raise self._error("list", namespace or "all namespaces", e) from e
        return list(result.items or [])


class DeploymentApi(KubernetesResourceApi):
    """Deployments, plus access to the /scale sub-resource."""

    def __init__(self, api: Any, request_timeout: int = 30):
        super().__init__(ResourceKind.DEPLOYMENT, api, request_timeout)

    async def get_scale(self, name: str, namespace: str) -> ScaleState:
        try:
            scale = await self._call(
                self.api.read_namespaced_deployment_scale, name=name, namespace=namespace
            )
        except ApiException as e:
            raise self._error("get scale of", name, e) from e
        return ScaleState.from_scale(scale)

    async def patch_scale(self, name: str, namespace: str, replicas: int) -> None:
        try:
            await self._call(
                self.api.patch_namespaced_deployment_scale,
                name=name,
                namespace=namespace,
                body={"spec": {"replicas": replicas}},
                _content_type=MERGE_PATCH,
            )
        except ApiException as e:
            raise self._error("scale", name, e) from e
        logger.info(f"[K8S] Deployment {name} scaled to {replicas} replicas")

    async def list_stack_deployments(self) -> List[StackDeploymentSummary]:
        """
        List deployments that belong to user stacks in any namespace.

        A deployment belongs to a stack when its pod template carries a
        `user-pod` label (whose value is the stack type).
        """
        summaries = []
        for deployment in await self.list():
            template_metadata = deployment.spec.template.metadata if deployment.spec.template else None
            labels = (template_metadata.labels if template_metadata else None) or {}
            if "user-pod" not in labels:
                continue
            summaries.append(StackDeploymentSummary(
                deployment_name=deployment.metadata.name,
                name=labels.get("name", deployment.metadata.name),
                namespace=deployment.metadata.namespace,
                replicas=deployment.spec.replicas or 0,
                type=labels["user-pod"],
            ))
        return summaries


class KubernetesClient:
    """
    Groups the resource APIs a stack needs.

    Use KubernetesClient.from_config() (or get_k8s_client()) in production;
    construct directly with API objects in tests.
    """

    def __init__(
        self,
        apps_v1: Any,
        core_v1: Any,
        networking_v1: Any,
        autoscaling_v2: Any,
        request_timeout: int = 30
    ):
        self.deployments = DeploymentApi(apps_v1, request_timeout)
        self.services = KubernetesResourceApi(ResourceKind.SERVICE, core_v1, request_timeout)
        self.config_maps = KubernetesResourceApi(ResourceKind.CONFIG_MAP, core_v1, request_timeout)
        self.network_policies = KubernetesResourceApi(
            ResourceKind.NETWORK_POLICY, networking_v1, request_timeout
        )
        self.auto_scalers = KubernetesResourceApi(
            ResourceKind.AUTO_SCALER, autoscaling_v2, request_timeout
        )

    def api_for(self, kind: ResourceKind) -> KubernetesResourceApi:
        return {
            ResourceKind.DEPLOYMENT: self.deployments,
            ResourceKind.SERVICE: self.services,
            ResourceKind.CONFIG_MAP: self.config_maps,
            ResourceKind.NETWORK_POLICY: self.network_policies,
            ResourceKind.AUTO_SCALER: self.auto_scalers,
        }[kind]

    @classmethod
    def from_config(cls, request_timeout: int = 30) -> "KubernetesClient":
        """Initialize with in-cluster config, falling back to kubeconfig."""
        try:
            # Try in-cluster config first (for production)
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            try:
                # Fall back to kubeconfig (for development)
                config.load_kube_config()
                logger.info("Loaded kubeconfig for development")
            except config.ConfigException as e:
                logger.error(f"Failed to load Kubernetes config: {e}")
                raise RuntimeError("Cannot load Kubernetes configuration") from e

        return cls(
            apps_v1=client.AppsV1Api(),
            core_v1=client.CoreV1Api(),
            networking_v1=client.NetworkingV1Api(),
            autoscaling_v2=client.AutoscalingV2Api(),
            request_timeout=request_timeout,
        )


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        from ....config import get_settings
        _k8s_client_instance = KubernetesClient.from_config(
            request_timeout=get_settings().k8s_request_timeout_seconds
        )
    return _k8s_client_instance
