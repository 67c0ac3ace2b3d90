"""
Stack Manifest Generation

Maps a stack's typed parameters to the kubernetes manifest of each resource
it needs. Every function here is pure: it resolves names, labels and images,
then renders a template through generate_manifest().

Parameter structs:
- StackParams: identity and placement shared by every stack
- NotebookParams: interactive notebooks and IDEs
- SiteParams: published sites
- StorageParams: object-storage gateways
- ClusterParams: Dask/Spark compute clusters
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ....config import ImageConfig, ImageVersion
from ....errors import ImageNotFoundError
from ....models import StackType
from ....utils import resource_naming as naming
from .helpers import (
    AutoScalerTemplates,
    ConfigMapTemplates,
    DeploymentTemplates,
    NetworkPolicyTemplates,
    ServiceTemplates,
    generate_manifest,
)

if TYPE_CHECKING:
    from ...stacks.context import OrchestrationContext


# =============================================================================
# Parameters
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class StackParams:
    project_key: str
    name: str
    type: StackType
    version: Optional[str] = None
    volume_mount: Optional[str] = None
    conda_path: Optional[str] = None

    @property
    def namespace(self) -> str:
        return naming.project_namespace(self.project_key)

    @property
    def deployment_name(self) -> str:
        return naming.deployment_name(self.name, self.type)

    def host(self, context: "OrchestrationContext") -> str:
        if context.single_hostname:
            return context.domain
        return f"{self.project_key}-{self.name}.{context.domain}"

    def base_path(self, context: "OrchestrationContext") -> str:
        return naming.base_path(self.project_key, self.name, context.single_hostname)


@dataclass(frozen=True, kw_only=True)
class NotebookParams(StackParams):
    @property
    def collaborative(self) -> bool:
        return self.type == StackType.JUPYTERLAB


@dataclass(frozen=True, kw_only=True)
class SiteParams(StackParams):
    source_path: str
    filename: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class StorageParams(StackParams):
    pass


@dataclass(frozen=True, kw_only=True)
class ClusterParams(StackParams):
    max_workers: int
    max_worker_memory_gb: float
    max_worker_cpu: float

    @property
    def scheduler_deployment_name(self) -> str:
        return naming.deployment_name(naming.scheduler_name(self.name), self.type)

    @property
    def worker_deployment_name(self) -> str:
        return naming.deployment_name(naming.worker_name(self.name), self.type)


# =============================================================================
# Images
# =============================================================================

def get_image(image_config: ImageConfig, stack_type: str, version: Optional[str] = None) -> ImageVersion:
    """
    Get the image for a stack type.

    Uses the type's default image unless a version is given.

    Raises:
        ImageNotFoundError: If the type or version is not configured
    """
    if version:
        return image_config.image(stack_type, version)
    return image_config.default_image(stack_type)


def _connect_image(image: ImageVersion, stack_type: StackType) -> str:
    if not image.connect_image:
        raise ImageNotFoundError(f"No connect image configured for type '{stack_type}'")
    return image.connect_image


def _quantity_gb(value: float) -> str:
    return f"{value:g}Gi"


def _strip_scheme(url: str) -> str:
    return re.sub(r"^https://", "", url)


# =============================================================================
# Notebooks
# =============================================================================

def create_jupyter_deployment(params: NotebookParams, context: "OrchestrationContext"):
    image = get_image(context.image_config, params.type, params.version)
    deployment = params.deployment_name
    return generate_manifest({
        "name": deployment,
        "labels": naming.stack_labels(params.project_key, params.name, params.type),
        "image": image.image,
        "domain": params.host(context),
        "base_path": params.base_path(context),
        "service_account": naming.compute_submission_service_account(params.project_key),
        "py_spark_config_map": naming.py_spark_config_map(deployment),
        "dask_config_map": naming.dask_config_map(deployment),
        "jupyter_config_map": naming.jupyter_config_map(deployment),
        "start_cmd": "lab" if params.type == StackType.JUPYTERLAB else "notebook",
        "collaborative": params.collaborative,
        "volume_mount": params.volume_mount,
        "image_pull_policy": context.image_pull_policy,
    }, DeploymentTemplates.JUPYTER_DEPLOYMENT)


def create_zeppelin_deployment(params: NotebookParams, context: "OrchestrationContext"):
    image = get_image(context.image_config, params.type, params.version)
    spark = context.image_config.spark
    return generate_manifest({
        "name": params.deployment_name,
        "labels": naming.stack_labels(params.project_key, params.name, params.type),
        "image": image.image,
        "connect_image": _connect_image(image, params.type),
        "spark_master_address": spark.master_address,
        "shared_r_libs": spark.shared_r_libs,
        "volume_mount": params.volume_mount,
        "image_pull_policy": context.image_pull_policy,
    }, DeploymentTemplates.ZEPPELIN_DEPLOYMENT)


def create_rstudio_deployment(params: NotebookParams, context: "OrchestrationContext"):
    image = get_image(context.image_config, params.type, params.version)
    deployment = params.deployment_name
    return generate_manifest({
        "name": deployment,
        "labels": naming.stack_labels(params.project_key, params.name, params.type),
        "image": image.image,
        "connect_image": _connect_image(image, params.type),
        "rstudio_config_map": naming.rstudio_config_map(deployment),
        "volume_mount": params.volume_mount,
        "image_pull_policy": context.image_pull_policy,
    }, DeploymentTemplates.RSTUDIO_DEPLOYMENT)


def create_py_spark_config_map(params: NotebookParams, context: "OrchestrationContext"):
    spark_image = get_image(context.image_config, StackType.SPARK)
    return generate_manifest({
        "config_map_name": naming.py_spark_config_map(params.deployment_name),
        "spark_image": spark_image.image,
        "project_namespace": params.namespace,
        "project_compute_namespace": naming.project_compute_namespace(params.project_key),
        "spark_driver_headless_service_name": naming.spark_driver_headless_service(params.deployment_name),
        "job_name": naming.spark_job(params.deployment_name),
    }, ConfigMapTemplates.PYSPARK_CONFIGMAP)


def create_dask_config_map(params: NotebookParams, context: "OrchestrationContext"):
    dask_image = get_image(context.image_config, StackType.DASK)
    return generate_manifest({
        "config_map_name": naming.dask_config_map(params.deployment_name),
        "dask_image": dask_image.image,
        "project_namespace": params.namespace,
        "project_compute_namespace": naming.project_compute_namespace(params.project_key),
    }, ConfigMapTemplates.DASK_CONFIGMAP)


def create_jupyter_config_map(params: NotebookParams, context: "OrchestrationContext"):
    return generate_manifest({
        "config_map_name": naming.jupyter_config_map(params.deployment_name),
    }, ConfigMapTemplates.JUPYTER_CONFIGMAP)


def create_rstudio_config_map(params: NotebookParams, context: "OrchestrationContext"):
    return generate_manifest({
        "config_map_name": naming.rstudio_config_map(params.deployment_name),
        "base_path": params.base_path(context),
    }, ConfigMapTemplates.RSTUDIO_CONFIGMAP)


# =============================================================================
# Sites and storage
# =============================================================================

_SITE_DEPLOYMENTS = {
    StackType.RSHINY: DeploymentTemplates.RSHINY_DEPLOYMENT,
    StackType.NBVIEWER: DeploymentTemplates.NBVIEWER_DEPLOYMENT,
    StackType.PANEL: DeploymentTemplates.PANEL_DEPLOYMENT,
    StackType.VOILA: DeploymentTemplates.VOILA_DEPLOYMENT,
}

_SERVICES = {
    StackType.JUPYTER: ServiceTemplates.JUPYTER_SERVICE,
    StackType.JUPYTERLAB: ServiceTemplates.JUPYTER_SERVICE,
    StackType.ZEPPELIN: ServiceTemplates.ZEPPELIN_SERVICE,
    StackType.RSTUDIO: ServiceTemplates.RSTUDIO_SERVICE,
    StackType.RSHINY: ServiceTemplates.RSHINY_SERVICE,
    StackType.NBVIEWER: ServiceTemplates.NBVIEWER_SERVICE,
    StackType.PANEL: ServiceTemplates.PANEL_SERVICE,
    StackType.VOILA: ServiceTemplates.VOILA_SERVICE,
    StackType.MINIO: ServiceTemplates.MINIO_SERVICE,
}


def create_site_deployment(params: SiteParams, context: "OrchestrationContext"):
    image = get_image(context.image_config, params.type, params.version)
    return generate_manifest({
        "name": params.deployment_name,
        "labels": naming.stack_labels(params.project_key, params.name, params.type),
        "image": image.image,
        "source_path": params.source_path,
        "filename": params.filename,
        "url": _strip_scheme(params.url or params.host(context)),
        "volume_mount": params.volume_mount,
        "conda_path": params.conda_path,
        "image_pull_policy": context.image_pull_policy,
    }, _SITE_DEPLOYMENTS[params.type])


def create_minio_deployment(params: StorageParams, context: "OrchestrationContext"):
    image = get_image(context.image_config, params.type, params.version)
    return generate_manifest({
        "name": params.deployment_name,
        "labels": naming.stack_labels(params.project_key, params.name, params.type),
        "image": image.image,
        "connect_image": _connect_image(image, params.type),
        # Storage volumes are named after the stack itself
        "volume_name": params.name,
        "domain": params.host(context),
        "image_pull_policy": context.image_pull_policy,
    }, DeploymentTemplates.MINIO_DEPLOYMENT)


def create_service(params: StackParams, context: "OrchestrationContext"):
    """Service in front of a single-deployment stack."""
    return generate_manifest({
        "name": naming.service_name(params.name, params.type),
        "pod_label": naming.pod_label(params.name, params.type),
    }, _SERVICES[params.type])


def create_spark_driver_headless_service(params: NotebookParams, context: "OrchestrationContext"):
    return generate_manifest({
        "name": naming.spark_driver_headless_service(params.deployment_name),
        "pod_label": naming.pod_label(params.name, params.type),
    }, ServiceTemplates.SPARK_DRIVER_HEADLESS_SERVICE)


# =============================================================================
# Clusters
# =============================================================================

_SCHEDULER_DEPLOYMENTS = {
    StackType.DASK: DeploymentTemplates.DASK_SCHEDULER_DEPLOYMENT,
    StackType.SPARK: DeploymentTemplates.SPARK_SCHEDULER_DEPLOYMENT,
}
_WORKER_DEPLOYMENTS = {
    StackType.DASK: DeploymentTemplates.DASK_WORKER_DEPLOYMENT,
    StackType.SPARK: DeploymentTemplates.SPARK_WORKER_DEPLOYMENT,
}
_SCHEDULER_SERVICES = {
    StackType.DASK: ServiceTemplates.DASK_SCHEDULER_SERVICE,
    StackType.SPARK: ServiceTemplates.SPARK_SCHEDULER_SERVICE,
}
_SCHEDULER_NETWORK_POLICIES = {
    StackType.DASK: NetworkPolicyTemplates.DASK_SCHEDULER_NETWORK_POLICY,
    StackType.SPARK: NetworkPolicyTemplates.SPARK_SCHEDULER_NETWORK_POLICY,
}


def cluster_runtime(params: ClusterParams, context: "OrchestrationContext") -> dict:
    """
    Resolve the image and executables a cluster runs with.

    A Dask cluster mounted on project storage with a conda environment runs
    the JupyterLab image and the environment's executables, so it matches the
    notebooks that use it. Otherwise it runs the cluster image as shipped.
    """
    if params.type == StackType.DASK and params.volume_mount and params.conda_path:
        return {
            "image": get_image(context.image_config, StackType.JUPYTERLAB).image,
            "scheduler_path": f"{params.conda_path}/bin/dask-scheduler",
            "worker_path": f"{params.conda_path}/bin/dask-worker",
        }
    return {
        "image": get_image(context.image_config, params.type, params.version).image,
        "scheduler_path": "dask-scheduler",
        "worker_path": "dask-worker",
    }


def create_cluster_scheduler_deployment(params: ClusterParams, context: "OrchestrationContext"):
    sizing = context.cluster_config.for_type(params.type).scheduler
    scheduler = naming.scheduler_name(params.name)
    return generate_manifest({
        "name": params.scheduler_deployment_name,
        "labels": naming.stack_labels(params.project_key, scheduler, params.type, role="scheduler"),
        "cluster_name": params.type.value,
        "scheduler_memory": _quantity_gb(sizing.memory_max_gb),
        "scheduler_cpu": sizing.cpu_max_vcpu,
        "volume_mount": params.volume_mount,
        "image_pull_policy": context.image_pull_policy,
        **cluster_runtime(params, context),
    }, _SCHEDULER_DEPLOYMENTS[params.type])


def create_cluster_worker_deployment(params: ClusterParams, context: "OrchestrationContext"):
    workers = context.cluster_config.for_type(params.type).workers
    worker = naming.worker_name(params.name)
    return generate_manifest({
        "name": params.worker_deployment_name,
        "labels": naming.stack_labels(params.project_key, worker, params.type, role="worker"),
        "scheduler_service_name": naming.service_name(naming.scheduler_name(params.name), params.type),
        "worker_memory": _quantity_gb(params.max_worker_memory_gb),
        "worker_cpu": params.max_worker_cpu,
        "n_threads": workers.n_threads,
        "death_timeout_sec": workers.death_timeout_sec,
        "volume_mount": params.volume_mount,
        "image_pull_policy": context.image_pull_policy,
        **cluster_runtime(params, context),
    }, _WORKER_DEPLOYMENTS[params.type])


def create_cluster_scheduler_service(params: ClusterParams, context: "OrchestrationContext"):
    scheduler = naming.scheduler_name(params.name)
    return generate_manifest({
        "name": naming.service_name(scheduler, params.type),
        "scheduler_pod_label": naming.pod_label(scheduler, params.type),
    }, _SCHEDULER_SERVICES[params.type])


def create_cluster_network_policy(params: ClusterParams, context: "OrchestrationContext"):
    scheduler = naming.scheduler_name(params.name)
    return generate_manifest({
        "name": naming.network_policy_name(scheduler, params.type),
        "scheduler_pod_label": naming.pod_label(scheduler, params.type),
        "project_key": params.project_key,
        "project_compute_namespace": naming.project_compute_namespace(params.project_key),
    }, _SCHEDULER_NETWORK_POLICIES[params.type])


def create_cluster_auto_scaler(params: ClusterParams, context: "OrchestrationContext"):
    workers = context.cluster_config.for_type(params.type).workers
    return generate_manifest({
        "name": naming.auto_scaler_name(naming.worker_name(params.name), params.type),
        "scale_deployment_name": params.worker_deployment_name,
        "max_replicas": params.max_workers,
        "target_cpu_utilization": workers.target_cpu_utilization_percent,
        "target_memory_utilization": workers.target_memory_utilization_percent,
        "scale_down_window_sec": workers.scale_down_window_sec,
    }, AutoScalerTemplates.AUTO_SCALER)


def manifest_name(manifest: Any) -> str:
    """Name a rendered manifest will be created under."""
    return manifest.metadata.name
