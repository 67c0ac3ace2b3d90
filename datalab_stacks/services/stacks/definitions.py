"""
Stack Definitions

One StackDefinition per StackType, describing:
- which parameter struct the type is built from
- how its resources are created (order and concurrency)
- which deployments and resources it owns

Every StackType must have a definition; this is checked when the module is
imported.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Type

from ...models import StackCategory, StackType, WorkspaceSpec
from ...utils import resource_naming as naming
from ..orchestration.kubernetes import deployment_generator as generator
from ..orchestration.kubernetes.client import ResourceKind
from ..orchestration.kubernetes.deployment_generator import (
    ClusterParams,
    NotebookParams,
    SiteParams,
    StackParams,
    StorageParams,
)
from .builders import StackBuilder
from .cluster_manager import (
    cluster_deployments,
    cluster_resources,
    create_cluster_stack,
    gather_all,
    validate_cluster_params,
)
from .context import OrchestrationContext


Resources = List[Tuple[ResourceKind, str]]


@dataclass(frozen=True)
class StackDefinition:
    params_type: Type[StackParams]
    create: Callable[[StackBuilder, StackParams], Awaitable[None]]
    deployments: Callable[[str, StackType], List[str]]
    resources: Callable[[str, StackType], Resources]
    # Checks run before anything is persisted or created
    validate: Optional[Callable[[StackParams, OrchestrationContext], None]] = None

    def build_params(self, spec: WorkspaceSpec) -> StackParams:
        common = dict(
            project_key=spec.project_key,
            name=spec.name,
            type=spec.type,
            version=spec.version,
            volume_mount=spec.volume_mount,
            conda_path=spec.conda_path,
        )
        if self.params_type is SiteParams:
            return SiteParams(**common, source_path=spec.source_path, filename=spec.filename, url=spec.url)
        if self.params_type is ClusterParams:
            return ClusterParams(
                **common,
                max_workers=spec.max_workers,
                max_worker_memory_gb=spec.max_worker_memory_gb,
                max_worker_cpu=spec.max_worker_cpu,
            )
        return self.params_type(**common)


# =============================================================================
# Creation
# =============================================================================

async def create_jupyter_stack(builder: StackBuilder, params: NotebookParams) -> None:
    # The deployment mounts all three config maps
    await builder.create_config_map(params, generator.create_py_spark_config_map)()
    await builder.create_config_map(params, generator.create_dask_config_map)()
    await builder.create_config_map(params, generator.create_jupyter_config_map)()

    await gather_all(
        builder.create_deployment(params, generator.create_jupyter_deployment)(),
        builder.create_service(params, generator.create_service)(),
        builder.create_service(params, generator.create_spark_driver_headless_service)(),
    )


async def create_rstudio_stack(builder: StackBuilder, params: NotebookParams) -> None:
    await builder.create_config_map(params, generator.create_rstudio_config_map)()
    await gather_all(
        builder.create_deployment(params, generator.create_rstudio_deployment)(),
        builder.create_service(params, generator.create_service)(),
    )


def _deployment_and_service(deployment_generator):
    async def create(builder: StackBuilder, params: StackParams) -> None:
        await gather_all(
            builder.create_deployment(params, deployment_generator)(),
            builder.create_service(params, generator.create_service)(),
        )

    return create


# =============================================================================
# Owned resources
# =============================================================================

def single_deployment(name: str, stack_type: StackType) -> List[str]:
    return [naming.deployment_name(name, stack_type)]


def _base_resources(name: str, stack_type: StackType) -> Resources:
    return [
        (ResourceKind.DEPLOYMENT, naming.deployment_name(name, stack_type)),
        (ResourceKind.SERVICE, naming.service_name(name, stack_type)),
    ]


def jupyter_resources(name: str, stack_type: StackType) -> Resources:
    deployment = naming.deployment_name(name, stack_type)
    return _base_resources(name, stack_type) + [
        (ResourceKind.SERVICE, naming.spark_driver_headless_service(deployment)),
        (ResourceKind.CONFIG_MAP, naming.py_spark_config_map(deployment)),
        (ResourceKind.CONFIG_MAP, naming.dask_config_map(deployment)),
        (ResourceKind.CONFIG_MAP, naming.jupyter_config_map(deployment)),
    ]


def rstudio_resources(name: str, stack_type: StackType) -> Resources:
    deployment = naming.deployment_name(name, stack_type)
    return _base_resources(name, stack_type) + [
        (ResourceKind.CONFIG_MAP, naming.rstudio_config_map(deployment)),
    ]


_JUPYTER = StackDefinition(NotebookParams, create_jupyter_stack, single_deployment, jupyter_resources)
_SITE = StackDefinition(
    SiteParams, _deployment_and_service(generator.create_site_deployment), single_deployment, _base_resources
)
_CLUSTER = StackDefinition(
    ClusterParams,
    create_cluster_stack,
    cluster_deployments,
    cluster_resources,
    validate=lambda params, context: validate_cluster_params(params, context.cluster_config),
)

STACK_DEFINITIONS: Dict[StackType, StackDefinition] = {
    StackType.JUPYTER: _JUPYTER,
    StackType.JUPYTERLAB: _JUPYTER,
    StackType.ZEPPELIN: StackDefinition(
        NotebookParams,
        _deployment_and_service(generator.create_zeppelin_deployment),
        single_deployment,
        _base_resources,
    ),
    StackType.RSTUDIO: StackDefinition(NotebookParams, create_rstudio_stack, single_deployment, rstudio_resources),
    StackType.RSHINY: _SITE,
    StackType.NBVIEWER: _SITE,
    StackType.PANEL: _SITE,
    StackType.VOILA: _SITE,
    StackType.MINIO: StackDefinition(
        StorageParams,
        _deployment_and_service(generator.create_minio_deployment),
        single_deployment,
        _base_resources,
    ),
    StackType.DASK: _CLUSTER,
    StackType.SPARK: _CLUSTER,
}

_undefined = [stack_type.value for stack_type in StackType if stack_type not in STACK_DEFINITIONS]
if _undefined:
    raise RuntimeError(f"Stack types without a definition: {_undefined}")


def get_definition(stack_type: StackType) -> StackDefinition:
    return STACK_DEFINITIONS[StackType(stack_type)]


def mounts_assets(stack_type: StackType) -> bool:
    """Linked assets are mounted into notebook and site stacks only."""
    return StackType(stack_type).category in (StackCategory.ANALYSIS, StackCategory.PUBLISH)
