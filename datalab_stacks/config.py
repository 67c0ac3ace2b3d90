from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel
from pydantic_settings import BaseSettings

from .errors import ImageNotFoundError

RESOURCES_DIR = Path(__file__).parent / "resources"


class Settings(BaseSettings):
    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # Domain that stack hostnames are created under (e.g. "<project>-<name>.<domain>")
    datalab_domain: str = "datalab.localhost"
    # Serve every stack under the domain at /resource/<project>/<name> instead of its own hostname
    single_hostname_routing: bool = False

    # Image and cluster sizing configuration, bundled defaults unless overridden
    image_config_path: str = str(RESOURCES_DIR / "image_config.yml")
    cluster_config_path: str = str(RESOURCES_DIR / "cluster_config.yml")

    k8s_image_pull_policy: str = "IfNotPresent"
    k8s_request_timeout_seconds: int = 30

    # ==========================================================================
    # Restart convergence polling
    # ==========================================================================
    # Fixed interval between scale status polls
    k8s_scale_poll_interval_seconds: float = 1.0
    # When > 0, back off exponentially from the interval up to this ceiling
    k8s_scale_poll_max_interval_seconds: float = 0
    # Give up waiting for convergence after this long (0 = wait indefinitely)
    k8s_scale_poll_timeout_seconds: float = 300
    # Give up after this many polls (0 = no limit)
    k8s_scale_poll_max_attempts: int = 0

    # ==========================================================================
    # Central asset repository mounts
    # ==========================================================================
    assets_volume_claim: str = "assets-pvc"
    assets_mount_root: str = "/assets"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = False


@lru_cache()
def get_settings():
    return Settings()


# =============================================================================
# Image configuration
# =============================================================================

class ImageVersion(BaseModel):
    display_name: str
    version_number: str
    image: str
    connect_image: Optional[str] = None
    default: bool = False


class ImageTypeConfig(BaseModel):
    versions: List[ImageVersion]


class SparkConfig(BaseModel):
    master_address: str
    shared_r_libs: str


class ImageConfig(BaseModel):
    """Images available to each stack type, keyed by type name."""

    images: Dict[str, ImageTypeConfig]
    spark: SparkConfig

    def version_list(self, stack_type: str) -> List[str]:
        type_config = self.images.get(str(stack_type))
        if type_config is None:
            return []
        return [version.version_number for version in type_config.versions]

    def image(self, stack_type: str, version: str) -> ImageVersion:
        type_config = self._type_config(stack_type)
        for candidate in type_config.versions:
            if candidate.version_number == version:
                return candidate
        raise ImageNotFoundError(
            f"Version '{version}' not found for image type '{stack_type}'. "
            f"Must be one of {self.version_list(stack_type)}."
        )

    def default_image(self, stack_type: str) -> ImageVersion:
        type_config = self._type_config(stack_type)
        for candidate in type_config.versions:
            if candidate.default:
                return candidate
        # Fall back to the first listed version when none is flagged
        return type_config.versions[0]

    def _type_config(self, stack_type: str) -> ImageTypeConfig:
        type_config = self.images.get(str(stack_type))
        if type_config is None or not type_config.versions:
            raise ImageNotFoundError(f"No images configured for type '{stack_type}'")
        return type_config


# =============================================================================
# Cluster configuration
# =============================================================================

class SchedulerSizing(BaseModel):
    memory_max_gb: float
    cpu_max_vcpu: float


class WorkerSizing(BaseModel):
    n_threads: int
    death_timeout_sec: int
    target_cpu_utilization_percent: int
    target_memory_utilization_percent: int
    scale_down_window_sec: int


class ClusterLimits(BaseModel):
    max_workers: int
    max_worker_memory_gb: float
    max_worker_cpu: float


class ClusterTypeConfig(BaseModel):
    scheduler: SchedulerSizing
    workers: WorkerSizing
    limits: ClusterLimits


class ClusterConfig(BaseModel):
    clusters: Dict[str, ClusterTypeConfig]

    def for_type(self, cluster_type: str) -> ClusterTypeConfig:
        try:
            return self.clusters[str(cluster_type)]
        except KeyError:
            raise ValueError(f"No cluster configuration for type '{cluster_type}'") from None


def _load_yaml(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_image_config(path: Optional[str] = None) -> ImageConfig:
    return ImageConfig.model_validate(_load_yaml(path or get_settings().image_config_path))


def load_cluster_config(path: Optional[str] = None) -> ClusterConfig:
    return ClusterConfig.model_validate(_load_yaml(path or get_settings().cluster_config_path))
