"""
Compute cluster stacks (Dask, Spark).

A cluster is two groups of resources:
- scheduler: deployment + service + network policy
- workers: deployment + horizontal autoscaler

The network policy is created before anything else so a scheduler pod is
never reachable without it. Everything after the policy is independent and
is created concurrently.
"""

import asyncio
import logging
from typing import List, Tuple

from ...config import ClusterConfig
from ...errors import InvalidRequestError
from ...models import StackType
from ...utils import resource_naming as naming
from ..orchestration.kubernetes import deployment_generator as generator
from ..orchestration.kubernetes.client import ResourceKind
from ..orchestration.kubernetes.deployment_generator import ClusterParams
from .builders import StackBuilder

logger = logging.getLogger(__name__)


def validate_cluster_params(params: ClusterParams, cluster_config: ClusterConfig) -> None:
    """
    Raises:
        InvalidRequestError: If requested sizing exceeds the type's limits
    """
    limits = cluster_config.for_type(params.type).limits
    problems = []
    if params.max_workers > limits.max_workers:
        problems.append(f"maxWorkers must be at most {limits.max_workers}")
    if params.max_worker_memory_gb > limits.max_worker_memory_gb:
        problems.append(f"maxWorkerMemoryGb must be at most {limits.max_worker_memory_gb:g}")
    if params.max_worker_cpu > limits.max_worker_cpu:
        problems.append(f"maxWorkerCpu must be at most {limits.max_worker_cpu:g}")
    if problems:
        raise InvalidRequestError(f"Invalid {params.type} cluster request: {'; '.join(problems)}")


async def gather_all(*awaitables) -> list:
    """
    Await every call, then raise the first failure if any failed.

    Calls that already succeeded are left in place.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def create_cluster_stack(builder: StackBuilder, params: ClusterParams) -> None:
    logger.info(f"[CLUSTER] Creating {params.type} cluster {params.name} in {params.namespace}")

    await builder.create_network_policy(params, generator.create_cluster_network_policy)()

    await gather_all(
        builder.create_deployment(params, generator.create_cluster_scheduler_deployment)(),
        builder.create_service(params, generator.create_cluster_scheduler_service)(),
        builder.create_deployment(params, generator.create_cluster_worker_deployment)(),
        builder.create_auto_scaler(params, generator.create_cluster_auto_scaler)(),
    )

    logger.info(f"[CLUSTER] ✅ {params.type} cluster {params.name} created")


def cluster_deployments(name: str, cluster_type: StackType) -> List[str]:
    return [
        naming.deployment_name(naming.scheduler_name(name), cluster_type),
        naming.deployment_name(naming.worker_name(name), cluster_type),
    ]


def cluster_resources(name: str, cluster_type: StackType) -> List[Tuple[ResourceKind, str]]:
    """Every resource of a cluster, network policy last."""
    scheduler = naming.scheduler_name(name)
    worker = naming.worker_name(name)
    return [
        (ResourceKind.AUTO_SCALER, naming.auto_scaler_name(worker, cluster_type)),
        (ResourceKind.DEPLOYMENT, naming.deployment_name(worker, cluster_type)),
        (ResourceKind.DEPLOYMENT, naming.deployment_name(scheduler, cluster_type)),
        (ResourceKind.SERVICE, naming.service_name(scheduler, cluster_type)),
        (ResourceKind.NETWORK_POLICY, naming.network_policy_name(scheduler, cluster_type)),
    ]
