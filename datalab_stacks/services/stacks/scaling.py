"""
Replica scaling and the restart state machine.

Restart is scale-to-zero followed by scale-back-to-previous, each phase
blocking until the deployment's desired and observed replica counts agree:

    IDLE -> SCALING_DOWN -> DOWN_CONVERGED -> SCALING_UP -> UP_CONVERGED

Polling is driven by a ConvergencePolicy built on tenacity. The policy only
retries while the deployment has not converged; HTTP errors raised while
polling propagate on the first occurrence.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_exponential,
    wait_fixed,
)

from ...errors import ConvergenceTimeoutError
from ...models import ScaleState
from ..orchestration.kubernetes.client import DeploymentApi

logger = logging.getLogger(__name__)


class RestartState(str, Enum):
    IDLE = "idle"
    SCALING_DOWN = "scaling_down"
    DOWN_CONVERGED = "down_converged"
    SCALING_UP = "scaling_up"
    UP_CONVERGED = "up_converged"


@dataclass(frozen=True)
class ConvergencePolicy:
    """
    How to poll a deployment's scale until it converges.

    Attributes:
        interval_seconds: Wait between polls (initial wait when backing off)
        max_interval_seconds: When > 0, back off exponentially up to this wait
        timeout_seconds: When > 0, give up after this long
        max_attempts: When > 0, give up after this many polls
    """

    interval_seconds: float = 1.0
    max_interval_seconds: float = 0
    timeout_seconds: float = 300
    max_attempts: int = 0

    def _wait(self):
        if self.max_interval_seconds and self.max_interval_seconds > self.interval_seconds:
            return wait_exponential(
                multiplier=self.interval_seconds,
                min=self.interval_seconds,
                max=self.max_interval_seconds,
            )
        return wait_fixed(self.interval_seconds)

    def _stop(self):
        stop = None
        if self.timeout_seconds and self.timeout_seconds > 0:
            stop = stop_after_delay(self.timeout_seconds)
        if self.max_attempts and self.max_attempts > 0:
            attempts = stop_after_attempt(self.max_attempts)
            stop = attempts if stop is None else stop | attempts
        return stop or stop_never

    def retrying(self, replicas: int) -> AsyncRetrying:
        """Retry controller that polls until the scale reaches `replicas`."""
        return AsyncRetrying(
            retry=retry_if_result(lambda state: not state.converged_at(replicas)),
            wait=self._wait(),
            stop=self._stop(),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=False,
        )


async def wait_for_replicas(
    deployments: DeploymentApi,
    name: str,
    namespace: str,
    replicas: int,
    policy: ConvergencePolicy
) -> ScaleState:
    """
    Poll a deployment's scale until spec and status both equal `replicas`.

    Raises:
        ConvergenceTimeoutError: If the policy stops before convergence
        OrchestratorError: If a poll fails
    """
    try:
        return await policy.retrying(replicas)(deployments.get_scale, name, namespace)
    except RetryError as e:
        last = e.last_attempt.result() if not e.last_attempt.failed else None
        raise ConvergenceTimeoutError(
            f"Deployment '{name}' did not converge to {replicas} replicas "
            f"(last observed {last.spec_replicas if last else '?'}/"
            f"{last.status_replicas if last else '?'})",
            resource_name=name,
        ) from e


class DeploymentRestart:
    """
    Restart of a single deployment.

    `state` records progress so a failure can be reported with the phase
    it happened in. `history` keeps every state entered, in order.
    """

    def __init__(self, deployments: DeploymentApi, name: str, namespace: str, policy: ConvergencePolicy):
        self.deployments = deployments
        self.name = name
        self.namespace = namespace
        self.policy = policy
        self.state = RestartState.IDLE
        self.history: List[RestartState] = [RestartState.IDLE]
        self.previous_replicas: Optional[int] = None

    def _enter(self, state: RestartState) -> None:
        logger.debug(f"[RESTART] {self.namespace}/{self.name}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def run(self) -> RestartState:
        current = await self.deployments.get_scale(self.name, self.namespace)
        self.previous_replicas = current.spec_replicas
        logger.info(
            f"[RESTART] Restarting {self.namespace}/{self.name} "
            f"(returning to {self.previous_replicas} replicas)"
        )

        self._enter(RestartState.SCALING_DOWN)
        await self.deployments.patch_scale(self.name, self.namespace, 0)
        await wait_for_replicas(self.deployments, self.name, self.namespace, 0, self.policy)
        self._enter(RestartState.DOWN_CONVERGED)

        self._enter(RestartState.SCALING_UP)
        await self.deployments.patch_scale(self.name, self.namespace, self.previous_replicas)
        await wait_for_replicas(
            self.deployments, self.name, self.namespace, self.previous_replicas, self.policy
        )
        self._enter(RestartState.UP_CONVERGED)

        logger.info(f"[RESTART] ✅ {self.namespace}/{self.name} restarted")
        return self.state


async def restart_deployment(
    deployments: DeploymentApi,
    name: str,
    namespace: str,
    policy: ConvergencePolicy
) -> DeploymentRestart:
    restart = DeploymentRestart(deployments, name, namespace, policy)
    await restart.run()
    return restart


async def scale_deployment(deployments: DeploymentApi, name: str, namespace: str, replicas: int) -> None:
    """Set the desired replica count without waiting for it to be reached."""
    await deployments.patch_scale(name, namespace, replicas)
