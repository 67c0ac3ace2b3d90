"""
Kubernetes Orchestration Module

Resource client, manifest templates and manifest generation for stacks.
"""

from .client import (
    DeploymentApi,
    KubernetesClient,
    KubernetesResourceApi,
    ResourceKind,
    get_k8s_client,
)
from .helpers import generate_manifest

__all__ = [
    "DeploymentApi",
    "KubernetesClient",
    "KubernetesResourceApi",
    "ResourceKind",
    "generate_manifest",
    "get_k8s_client",
]
