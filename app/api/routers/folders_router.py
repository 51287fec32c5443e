"""
Folders Router.
CRUD for user folders of saved NFTs plus a public listing by username.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status

from app.api.deps.auth_guard import get_current_user_id, get_folder_service, get_optional_user_id
from app.api.services.folder_service import FolderService
from app.domain.models.folder import FolderCreateModel, FolderModel, FolderUpdateModel

# Create router
router = APIRouter()


def _render(folder: FolderModel) -> Dict[str, Any]:
    return folder.model_dump(mode="json", by_alias=True)


@router.get("")
async def list_folders(
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
) -> List[Dict[str, Any]]:
    """List the caller's folders."""
    return [_render(folder) for folder in await service.list_folders(user_id)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_folder(
    data: FolderCreateModel,
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
) -> Dict[str, Any]:
    """Create a folder owned by the caller."""
    return _render(await service.create_folder(user_id, data))


@router.get("/public/{username}")
async def public_folders(
    username: str,
    service: FolderService = Depends(get_folder_service),
) -> List[Dict[str, Any]]:
    """Public folders of the account behind `username`."""
    return [_render(folder) for folder in await service.public_folders(username)]


@router.get("/{folder_id}")
async def get_folder(
    folder_id: str,
    user_id: Optional[str] = Depends(get_optional_user_id),
    service: FolderService = Depends(get_folder_service),
) -> Dict[str, Any]:
    """Get a folder; private folders are only visible to their owner."""
    return _render(await service.get_folder(folder_id, user_id))


@router.put("/{folder_id}")
async def update_folder(
    folder_id: str,
    data: FolderUpdateModel,
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
) -> Dict[str, Any]:
    """Update a folder owned by the caller."""
    return _render(await service.update_folder(folder_id, user_id, data))


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: str,
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
) -> Dict[str, Any]:
    """Delete a folder owned by the caller."""
    await service.delete_folder(folder_id, user_id)
    return {"success": True, "message": "Folder deleted"}
