"""
Caller identity and folder store dependencies for FastAPI.

The caller's numeric social id is asserted in the Authorization header and
trusted as is.
"""

from typing import Optional

from fastapi import Depends, Request

from app.core.config import settings
from app.core.exceptions import UnauthorizedError
from app.core.logging import get_logger
from app.domain.repositories.folder_repository import FolderStore, folder_repository
from app.api.services.folder_service import FolderService

logger = get_logger(__name__)


def _asserted_user_id(request: Request) -> Optional[str]:
    value = request.headers.get("authorization", "").strip()
    if value.lower().startswith("bearer "):
        value = value[len("bearer "):].strip()
    return value or None


async def get_optional_user_id(request: Request) -> Optional[str]:
    """Caller id if one is asserted (or auth is disabled), else None."""
    if settings.DISABLE_AUTH:
        return settings.DEFAULT_USER_ID
    return _asserted_user_id(request)


async def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency returning the caller's id.

    Raises:
        UnauthorizedError: No Authorization header and auth is enabled
    """
    user_id = await get_optional_user_id(request)
    if not user_id:
        logger.debug(f"Missing Authorization header on {request.method} {request.url.path}")
        raise UnauthorizedError()
    return user_id


async def get_folder_store() -> FolderStore:
    """Folder persistence; overridden in tests."""
    return folder_repository


async def get_folder_service(store: FolderStore = Depends(get_folder_store)) -> FolderService:
    return FolderService(store)
