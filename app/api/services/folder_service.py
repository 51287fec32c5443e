"""
Folder Service.
Owner-checked folder operations on top of a FolderStore.
"""

from typing import List, Optional

from app.core.exceptions import FolderNotFoundError, ForbiddenError
from app.core.logging import get_logger
from app.domain.models.address import Handle
from app.domain.models.folder import FolderCreateModel, FolderModel, FolderUpdateModel
from app.domain.repositories.folder_repository import FolderStore
from app.api.services.social_resolver import SocialResolver, social_resolver

logger = get_logger(__name__)


class FolderService:
    """Service for user folders."""

    def __init__(self, store: FolderStore, resolver: Optional[SocialResolver] = None):
        self.store = store
        self.resolver = resolver or social_resolver

    async def list_folders(self, owner: str) -> List[FolderModel]:
        return await self.store.list_for_owner(owner)

    async def get_folder(self, folder_id: str, caller: Optional[str]) -> FolderModel:
        """
        Get a folder visible to the caller.

        Public folders are visible to everyone; private ones only to their owner.
        """
        folder = await self.store.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        if not folder.is_public and folder.owner != caller:
            logger.warning(f"User {caller} denied access to private folder {folder_id}")
            raise ForbiddenError("You do not have access to this folder")
        return folder

    async def create_folder(self, owner: str, data: FolderCreateModel) -> FolderModel:
        folder = await self.store.create(owner, data)
        logger.info(f"User {owner} created folder {folder.id}")
        return folder

    async def _owned(self, folder_id: str, caller: str) -> FolderModel:
        folder = await self.store.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        if folder.owner != caller:
            logger.warning(f"User {caller} attempted to modify folder {folder_id} owned by {folder.owner}")
            raise ForbiddenError("Only the owner can modify this folder")
        return folder

    async def update_folder(self, folder_id: str, caller: str, data: FolderUpdateModel) -> FolderModel:
        await self._owned(folder_id, caller)
        updated = await self.store.update(folder_id, data)
        if updated is None:
            raise FolderNotFoundError(folder_id)
        return updated

    async def delete_folder(self, folder_id: str, caller: str) -> None:
        await self._owned(folder_id, caller)
        if not await self.store.delete(folder_id):
            raise FolderNotFoundError(folder_id)
        logger.info(f"User {caller} deleted folder {folder_id}")

    async def public_folders(self, username: str) -> List[FolderModel]:
        """Public folders of the identity behind `username`."""
        profile = await self.resolver.resolve(Handle.for_username(username))
        return await self.store.list_for_owner(str(profile.fid), public_only=True)
