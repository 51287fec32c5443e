"""
Folder Repository for MongoDB operations.
Handles CRUD operations for user folders in MongoDB.
"""

from datetime import datetime, timezone
from typing import List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import settings
from app.core.logging import get_logger
from app.domain.models.folder import FolderCreateModel, FolderModel, FolderUpdateModel

logger = get_logger(__name__)


class FolderStore(Protocol):
    """Persistence boundary for folders: CRUD on {id, owner, name, isPublic, items}."""

    async def list_for_owner(self, owner: str, public_only: bool = False) -> List[FolderModel]:
        ...

    async def get(self, folder_id: str) -> Optional[FolderModel]:
        ...

    async def create(self, owner: str, data: FolderCreateModel) -> FolderModel:
        ...

    async def update(self, folder_id: str, data: FolderUpdateModel) -> Optional[FolderModel]:
        ...

    async def delete(self, folder_id: str) -> bool:
        ...


def _object_id(folder_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(folder_id)
    except (InvalidId, TypeError):
        logger.debug(f"Not a valid folder id: {folder_id}")
        return None


class FolderRepository:
    """MongoDB-backed FolderStore."""

    def __init__(self):
        """Initialize folder repository."""
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = None
        self.collection = None

    async def connect(self):
        """Connect to MongoDB."""
        if not self.client:
            self.client = AsyncIOMotorClient(settings.MONGO_URI)
            self.db = self.client[settings.MONGO_DB_NAME]
            self.collection = self.db["folders"]
            logger.info("Connected to MongoDB folders collection")

    async def disconnect(self):
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB")

    async def list_for_owner(self, owner: str, public_only: bool = False) -> List[FolderModel]:
        """
        List folders belonging to an owner, newest first.

        Args:
            owner: Owner's numeric social id
            public_only: Only return folders marked public

        Returns:
            List of folders
        """
        await self.connect()

        query = {"owner": owner}
        if public_only:
            query["is_public"] = True

        cursor = self.collection.find(query).sort("created_at", -1)
        documents = await cursor.to_list(length=None)
        logger.info(f"Retrieved {len(documents)} folders for owner {owner}")
        return [FolderModel(**doc) for doc in documents]

    async def get(self, folder_id: str) -> Optional[FolderModel]:
        """
        Get folder by ID.

        Args:
            folder_id: Folder ID (MongoDB ObjectId as string)

        Returns:
            Folder or None if not found
        """
        object_id = _object_id(folder_id)
        if object_id is None:
            return None

        await self.connect()
        document = await self.collection.find_one({"_id": object_id})
        return FolderModel(**document) if document else None

    async def create(self, owner: str, data: FolderCreateModel) -> FolderModel:
        """
        Create a new folder.

        Args:
            owner: Owner's numeric social id
            data: Folder fields

        Returns:
            Created folder with its id
        """
        await self.connect()

        folder = FolderModel(owner=owner, **data.model_dump())
        document = folder.model_dump(exclude={"id"})

        result = await self.collection.insert_one(document)
        logger.info(f"Created folder with ID: {result.inserted_id}")
        return folder.model_copy(update={"id": str(result.inserted_id)})

    async def update(self, folder_id: str, data: FolderUpdateModel) -> Optional[FolderModel]:
        """
        Apply a partial update.

        Args:
            folder_id: Folder ID
            data: Fields to change

        Returns:
            Updated folder or None if not found
        """
        object_id = _object_id(folder_id)
        if object_id is None:
            return None

        await self.connect()

        changes = data.model_dump(exclude_none=True)
        changes["updated_at"] = datetime.now(timezone.utc)
        await self.collection.update_one({"_id": object_id}, {"$set": changes})
        return await self.get(folder_id)

    async def delete(self, folder_id: str) -> bool:
        """
        Delete a folder.

        Args:
            folder_id: Folder ID

        Returns:
            True if a document was deleted
        """
        object_id = _object_id(folder_id)
        if object_id is None:
            return False

        await self.connect()
        result = await self.collection.delete_one({"_id": object_id})
        return result.deleted_count > 0


# Global repository instance
folder_repository = FolderRepository()
