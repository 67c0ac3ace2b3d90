"""
Stack Builder

Composes manifest generation with the resource client. Each create_* method
returns a thunk that, when awaited, renders the manifest and applies it with
create-or-update semantics. Stack definitions assemble these thunks into
ordered or concurrent batches without knowing each generator's parameters.
"""

import logging
from typing import Any, Awaitable, Callable

from ..orchestration.kubernetes.client import KubernetesClient, KubernetesResourceApi
from ..orchestration.kubernetes.deployment_generator import StackParams, manifest_name
from .context import OrchestrationContext

logger = logging.getLogger(__name__)

Generator = Callable[[Any, OrchestrationContext], Any]
Thunk = Callable[[], Awaitable[Any]]


class StackBuilder:
    def __init__(self, k8s_client: KubernetesClient, context: OrchestrationContext):
        self.k8s = k8s_client
        self.context = context

    def _ensure(self, api: KubernetesResourceApi, params: StackParams, generator: Generator) -> Thunk:
        async def ensure():
            manifest = generator(params, self.context)
            name = manifest_name(manifest)
            logger.debug(f"[STACKS] Ensuring {api.kind.display_name} {name} in {params.namespace}")
            return await api.create_or_update(name, params.namespace, manifest)

        return ensure

    def create_deployment(self, params: StackParams, generator: Generator) -> Thunk:
        return self._ensure(self.k8s.deployments, params, generator)

    def create_service(self, params: StackParams, generator: Generator) -> Thunk:
        return self._ensure(self.k8s.services, params, generator)

    def create_config_map(self, params: StackParams, generator: Generator) -> Thunk:
        return self._ensure(self.k8s.config_maps, params, generator)

    def create_network_policy(self, params: StackParams, generator: Generator) -> Thunk:
        return self._ensure(self.k8s.network_policies, params, generator)

    def create_auto_scaler(self, params: StackParams, generator: Generator) -> Thunk:
        return self._ensure(self.k8s.auto_scalers, params, generator)
