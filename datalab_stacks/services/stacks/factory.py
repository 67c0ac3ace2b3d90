"""
Stack Manager Factory

Builds the process-wide StackManager on first use and caches it.
Collaborators must be supplied on the first call; later calls return the
cached instance.
"""

import logging
from typing import Optional

from ...config import get_settings
from ...log import configure_logging
from ..orchestration.kubernetes.client import get_k8s_client
from .context import OrchestrationContext
from .repositories import CentralAssetRepository, SharingHandler, StackRepository
from .stack_manager import StackManager

logger = logging.getLogger(__name__)

# Cached manager instance (singleton pattern)
_stack_manager: Optional[StackManager] = None


def get_stack_manager(
    stack_repository: Optional[StackRepository] = None,
    asset_repository: Optional[CentralAssetRepository] = None,
    sharing_handler: Optional[SharingHandler] = None,
) -> StackManager:
    """
    Get or create the global stack manager.

    Raises:
        RuntimeError: If called for the first time without collaborators
    """
    global _stack_manager
    if _stack_manager is not None:
        return _stack_manager

    if stack_repository is None or asset_repository is None or sharing_handler is None:
        raise RuntimeError("Stack manager is not initialized: collaborators are required on first use")

    settings = get_settings()
    configure_logging(settings)

    _stack_manager = StackManager(
        k8s_client=get_k8s_client(),
        context=OrchestrationContext.from_settings(settings),
        stack_repository=stack_repository,
        asset_repository=asset_repository,
        sharing_handler=sharing_handler,
    )
    logger.info("[STACKS] Created stack manager")
    return _stack_manager


def reset_stack_manager() -> None:
    """Drop the cached manager (used by tests)."""
    global _stack_manager
    _stack_manager = None
