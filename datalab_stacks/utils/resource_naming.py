"""
Resource naming utilities for stacks.

Centralized functions for deriving Kubernetes names, labels and namespaces
from a stack's identity (project key + stack name + stack type).

Every name is a pure function of its inputs so that:
- Resources can be found again without storing any external ID
- Create-or-update calls are idempotent
- Two stacks in the same project never share a resource name

Inputs that are not DNS-1123 safe are rejected rather than rewritten, since
rewriting could map two different stacks onto the same name.
"""

import re
from typing import Dict, Optional, Union

from ..models import StackType

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_MAX_NAME_LENGTH = 63

MANAGED_BY = "datalab-infrastructure-api"
SCHEDULER_PREFIX = "scheduler-"
WORKER_PREFIX = "worker-"


def _check(value: str, what: str) -> str:
    if not value or not _DNS_LABEL.match(value):
        raise ValueError(f"Invalid {what} '{value}': must be lowercase alphanumeric or '-'")
    return value


def _bounded(name: str) -> str:
    if len(name) > _MAX_NAME_LENGTH:
        raise ValueError(f"Generated resource name '{name}' exceeds {_MAX_NAME_LENGTH} characters")
    return name


def deployment_name(name: str, stack_type: Union[StackType, str]) -> str:
    """
    Get the deployment name for a stack.

    Examples:
        >>> deployment_name("notebook1", StackType.JUPYTERLAB)
        "jupyterlab-notebook1"

        >>> deployment_name(scheduler_name("mycluster"), StackType.DASK)
        "dask-scheduler-mycluster"
    """
    return _bounded(f"{_check(str(stack_type), 'stack type')}-{_check(name, 'stack name')}")


def service_name(name: str, stack_type: Union[StackType, str]) -> str:
    """Services share their deployment's name."""
    return deployment_name(name, stack_type)


def base_path(project_key: str, name: str, single_hostname: bool = False) -> str:
    """
    Get the URL path a stack is served under.

    Stacks get their own hostname by default and are served from the root.
    Under single-hostname routing they share the domain and are told to
    serve from a per-stack prefix.

    Example:
        >>> base_path("proj", "notebook1", single_hostname=True)
        "/resource/proj/notebook1"
    """
    if not single_hostname:
        return "/"
    return f"/resource/{_check(project_key, 'project key')}/{_check(name, 'stack name')}"


def pod_label(name: str, stack_type: Union[StackType, str]) -> str:
    """
    Get the value of the `name` label that selects a stack's pods.

    Example:
        >>> pod_label("notebook1", StackType.JUPYTER)
        "jupyter-notebook1-po"
    """
    return _bounded(f"{deployment_name(name, stack_type)}-po")


def network_policy_name(name: str, stack_type: Union[StackType, str]) -> str:
    return _bounded(f"{deployment_name(name, stack_type)}-netpol")


def auto_scaler_name(name: str, stack_type: Union[StackType, str]) -> str:
    return _bounded(f"{deployment_name(name, stack_type)}-hpa")


def scheduler_name(name: str) -> str:
    """Role-qualified stack name for a cluster's scheduler resources."""
    return f"{SCHEDULER_PREFIX}{_check(name, 'stack name')}"


def worker_name(name: str) -> str:
    """Role-qualified stack name for a cluster's worker resources."""
    return f"{WORKER_PREFIX}{_check(name, 'stack name')}"


def py_spark_config_map(deployment: str) -> str:
    return _bounded(f"{deployment}-pyspark-cm")


def dask_config_map(deployment: str) -> str:
    return _bounded(f"{deployment}-dask-cm")


def jupyter_config_map(deployment: str) -> str:
    return _bounded(f"{deployment}-jupyter-cm")


def rstudio_config_map(deployment: str) -> str:
    return _bounded(f"{deployment}-rstudio-cm")


def spark_driver_headless_service(name: str) -> str:
    return _bounded(f"{name}-spark-driver-headless")


def spark_job(name: str) -> str:
    return _bounded(f"{name}-spark-job")


def project_namespace(project_key: str) -> str:
    """
    Get the namespace that holds a project's stacks.

    Example:
        >>> project_namespace("myproject")
        "myproject"
    """
    return _check(project_key, "project key")


def project_compute_namespace(project_key: str) -> str:
    """Namespace for compute spawned from notebooks (Dask/Spark jobs)."""
    return _bounded(f"{project_namespace(project_key)}-compute")


def compute_submission_service_account(project_key: str) -> str:
    return _bounded(f"{project_namespace(project_key)}-compute-submission-account")


def stack_labels(
    project_key: str,
    name: str,
    stack_type: Union[StackType, str],
    role: Optional[str] = None
) -> Dict[str, str]:
    """
    Get standard labels for a stack's resources.

    `name` is the pod label used by selectors and `user-pod` marks pods that
    belong to user stacks, which is what deployment listing filters on.

    Args:
        project_key: Project key
        name: Stack name (role-qualified for cluster resources)
        stack_type: Stack type
        role: Optional cluster role (scheduler or worker)

    Returns:
        Dict of labels
    """
    labels = {
        "app.kubernetes.io/managed-by": MANAGED_BY,
        "datalab.io/project-key": project_key,
        "name": pod_label(name, stack_type),
        "user-pod": str(stack_type),
    }

    if role:
        labels["datalab.io/role"] = role

    return labels
