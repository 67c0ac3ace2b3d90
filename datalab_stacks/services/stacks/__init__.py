"""
Stack lifecycle orchestration.
"""

from .context import OrchestrationContext
from .factory import get_stack_manager
from .repositories import CentralAssetRepository, SharingHandler, StackRepository
from .scaling import ConvergencePolicy, RestartState
from .stack_manager import StackManager

__all__ = [
    "CentralAssetRepository",
    "ConvergencePolicy",
    "OrchestrationContext",
    "RestartState",
    "SharingHandler",
    "StackManager",
    "StackRepository",
    "get_stack_manager",
]
