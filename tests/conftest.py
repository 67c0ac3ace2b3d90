"""
Test configuration and fixtures for pytest.

Provides an in-memory stand-in for the Kubernetes API objects, a configured
orchestration context, mocked collaborators and a ready StackManager.
"""

import json
import os
import sys
import threading
import time
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

# Add the repository root to sys.path
repo_dir = Path(__file__).parent.parent
sys.path.insert(0, str(repo_dir))


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Sets up test environment variables and registers custom markers.
    """
    # Set test environment variables BEFORE any package imports
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["DATALAB_DOMAIN"] = "datalab.test"

    from datalab_stacks.config import get_settings
    get_settings.cache_clear()

    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def api_exception(status: int, message: str = None, reason: str = None):
    """Build an ApiException shaped like the ones the kubernetes client raises."""
    from kubernetes.client.rest import ApiException

    e = ApiException(status=status, reason=reason or {404: "Not Found", 409: "Conflict"}.get(status, "Error"))
    if message:
        e.body = json.dumps({"kind": "Status", "status": "Failure", "message": message, "code": status})
    return e


class FakeKubernetesApi:
    """
    In-memory replacement for the generated kubernetes API objects.

    Serves read/create/replace/delete/patch/list for any resource kind by
    method name, stores resources per (kind, namespace, name), and records
    every call in `calls` in the order it was made.

    Options:
        failures: method name -> exception to raise from that method
        delays: method name -> seconds to block before answering
        scale_traces: deployment name -> list of (spec, status) replicas
            returned by successive scale reads (the last one repeats)
    """

    def __init__(self):
        self.store = {}
        self.calls = []
        self.failures = {}
        self.delays = {}
        self.scale_traces = {}
        self._lock = threading.Lock()

    def calls_to(self, method: str):
        return [kwargs for name, kwargs in self.calls if name == method]

    def call_names(self):
        return [name for name, _ in self.calls]

    def __getattr__(self, method: str):
        if method.startswith("_"):
            raise AttributeError(method)

        def call(**kwargs):
            with self._lock:
                self.calls.append((method, kwargs))
            if method in self.delays:
                time.sleep(self.delays[method])
            if method in self.failures:
                raise self.failures[method]
            return self._dispatch(method, kwargs)

        return call

    def _dispatch(self, method: str, kwargs: dict):
        if method.endswith("_for_all_namespaces"):
            kind = method[len("list_"):-len("_for_all_namespaces")]
            return SimpleNamespace(items=[obj for (k, _, _), obj in self.store.items() if k == kind])

        if method == "read_namespaced_deployment_scale":
            trace = self.scale_traces.get(kwargs["name"], [(1, 1)])
            spec, status = trace.pop(0) if len(trace) > 1 else trace[0]
            return {"spec": {"replicas": spec}, "status": {"replicas": status}}
        if method == "patch_namespaced_deployment_scale":
            return kwargs["body"]

        verb, kind = method.split("_namespaced_", 1)
        namespace = kwargs.get("namespace")
        key = (kind, namespace, kwargs.get("name"))

        if verb == "read":
            if key not in self.store:
                raise api_exception(404, f'{kind} "{kwargs["name"]}" not found')
            return self.store[key]
        if verb == "create":
            body = kwargs["body"]
            key = (kind, namespace, body.metadata.name)
            if key in self.store:
                raise api_exception(409, f'{kind} "{body.metadata.name}" already exists')
            body.metadata.namespace = namespace
            self.store[key] = body
            return body
        if verb == "replace":
            if key not in self.store:
                raise api_exception(404, f'{kind} "{kwargs["name"]}" not found')
            kwargs["body"].metadata.namespace = namespace
            self.store[key] = kwargs["body"]
            return kwargs["body"]
        if verb == "delete":
            if key not in self.store:
                raise api_exception(404, f'{kind} "{kwargs["name"]}" not found')
            del self.store[key]
            return SimpleNamespace(status="Success")
        if verb == "patch":
            if key not in self.store:
                raise api_exception(404, f'{kind} "{kwargs["name"]}" not found')
            return self.store[key]
        if verb == "list":
            return SimpleNamespace(items=[obj for (k, ns, _), obj in self.store.items() if k == kind and ns == namespace])
        raise AttributeError(method)


@pytest.fixture
def fake_api():
    return FakeKubernetesApi()


@pytest.fixture
def k8s_client(fake_api):
    """KubernetesClient whose API objects are all the same in-memory fake."""
    from datalab_stacks.services.orchestration.kubernetes.client import KubernetesClient
    return KubernetesClient(
        apps_v1=fake_api,
        core_v1=fake_api,
        networking_v1=fake_api,
        autoscaling_v2=fake_api,
        request_timeout=5,
    )


@pytest.fixture
def context():
    from datalab_stacks.config import load_cluster_config, load_image_config
    from datalab_stacks.services.stacks.context import OrchestrationContext
    from datalab_stacks.services.stacks.scaling import ConvergencePolicy

    return OrchestrationContext(
        image_config=load_image_config(),
        cluster_config=load_cluster_config(),
        domain="datalab.test",
        convergence=ConvergencePolicy(interval_seconds=0, timeout_seconds=5),
    )


@pytest.fixture
def user():
    from datalab_stacks.models import User
    return User(sub="user-1", token="test-token")


@pytest.fixture
def stack_repository():
    from datalab_stacks.services.stacks.repositories import StackRepository
    repository = AsyncMock(spec=StackRepository)
    repository.get_one_by_name.return_value = None
    repository.user_can_restart_stack.return_value = True
    repository.user_can_delete_stack.return_value = True

    from datalab_stacks.models import StackRecord, StackType

    def updated(project_key, user, name, details):
        return StackRecord(project_key=project_key, name=name, type=StackType.JUPYTER, **details)

    repository.update.side_effect = updated
    return repository


@pytest.fixture
def asset_repository():
    from datalab_stacks.services.stacks.repositories import CentralAssetRepository
    repository = AsyncMock(spec=CentralAssetRepository)
    repository.get_assets_by_ids.return_value = []
    return repository


@pytest.fixture
def sharing_handler():
    from datalab_stacks.services.stacks.repositories import SharingHandler
    return AsyncMock(spec=SharingHandler)


@pytest.fixture
def stack_manager(k8s_client, context, stack_repository, asset_repository, sharing_handler):
    from datalab_stacks.services.stacks.stack_manager import StackManager
    return StackManager(
        k8s_client=k8s_client,
        context=context,
        stack_repository=stack_repository,
        asset_repository=asset_repository,
        sharing_handler=sharing_handler,
    )
