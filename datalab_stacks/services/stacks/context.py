from dataclasses import dataclass
from typing import Optional

from ...config import (
    ClusterConfig,
    ImageConfig,
    Settings,
    get_settings,
    load_cluster_config,
    load_image_config,
)
from .scaling import ConvergencePolicy


@dataclass(frozen=True)
class OrchestrationContext:
    """Everything the orchestration core reads from configuration, resolved once."""

    image_config: ImageConfig
    cluster_config: ClusterConfig
    domain: str
    single_hostname: bool = False
    image_pull_policy: str = "IfNotPresent"
    convergence: ConvergencePolicy = ConvergencePolicy()
    assets_volume_claim: str = "assets-pvc"
    assets_mount_root: str = "/assets"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OrchestrationContext":
        settings = settings or get_settings()
        return cls(
            image_config=load_image_config(settings.image_config_path),
            cluster_config=load_cluster_config(settings.cluster_config_path),
            domain=settings.datalab_domain,
            single_hostname=settings.single_hostname_routing,
            image_pull_policy=settings.k8s_image_pull_policy,
            convergence=ConvergencePolicy(
                interval_seconds=settings.k8s_scale_poll_interval_seconds,
                max_interval_seconds=settings.k8s_scale_poll_max_interval_seconds,
                timeout_seconds=settings.k8s_scale_poll_timeout_seconds,
                max_attempts=settings.k8s_scale_poll_max_attempts,
            ),
            assets_volume_claim=settings.assets_volume_claim,
            assets_mount_root=settings.assets_mount_root,
        )
