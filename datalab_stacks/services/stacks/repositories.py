"""
Collaborator Interfaces

Persistence, authorization, asset tracking and visibility propagation are
owned by other services. The orchestration core talks to them only through
these interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ...models import Asset, StackRecord, User, Visibility


class StackRepository(ABC):
    """
    Stack metadata store.

    Also answers authorization questions about stacks, since rights are
    derived from the stored metadata.
    """

    # =========================================================================
    # METADATA
    # =========================================================================

    @abstractmethod
    async def get_one_by_name(self, project_key: str, name: str) -> Optional[StackRecord]:
        """Return the stack, or None if no stack has this name in the project."""
        pass

    @abstractmethod
    async def create_or_update(self, project_key: str, user: User, record: StackRecord) -> StackRecord:
        pass

    @abstractmethod
    async def update(self, project_key: str, user: User, name: str, details: Dict[str, Any]) -> StackRecord:
        """Apply a partial update of user-updatable fields."""
        pass

    @abstractmethod
    async def delete(self, project_key: str, user: User, name: str) -> None:
        pass

    @abstractmethod
    async def reset_access_time(self, project_key: str, user: User, name: str) -> None:
        pass

    @abstractmethod
    async def update_access_time_to_now(self, project_key: str, user: User, name: str) -> None:
        pass

    # =========================================================================
    # AUTHORIZATION
    # =========================================================================

    @abstractmethod
    async def user_can_restart_stack(self, project_key: str, user: User, name: str) -> bool:
        pass

    @abstractmethod
    async def user_can_delete_stack(self, project_key: str, user: User, name: str) -> bool:
        pass


class CentralAssetRepository(ABC):
    @abstractmethod
    async def set_last_added_date_to_now(self, asset_ids: List[str]) -> None:
        """Record that the assets were just linked to a stack."""
        pass

    @abstractmethod
    async def get_assets_by_ids(self, asset_ids: List[str]) -> List[Asset]:
        pass


class SharingHandler(ABC):
    @abstractmethod
    async def handle_shared_change(
        self,
        params: Any,
        existing: StackRecord,
        new_visibility: Visibility,
        user_token: Optional[str]
    ) -> None:
        """Propagate a change of a stack's visibility to whatever depends on it."""
        pass
