import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
os.environ.setdefault("ANYIO_BACKEND", "asyncio")

from app.main import app  # noqa: E402
from app.api.deps.auth_guard import get_folder_store  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.domain.models.folder import FolderCreateModel, FolderModel, FolderUpdateModel  # noqa: E402
from app.infrastructure.cache import cache_service  # noqa: E402
from app.infrastructure.upstream.client import upstream_client  # noqa: E402
from app.infrastructure.upstream.projection import projection_stats  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    """Fresh cache and stats, and fixed upstream credentials, for every test."""
    monkeypatch.setattr(settings, "NEYNAR_API_KEY", "test-neynar-key")
    monkeypatch.setattr(settings, "ALCHEMY_API_KEY", "test-alchemy-key")
    monkeypatch.setattr(settings, "ZAPPER_API_KEY", "test-zapper-key")
    monkeypatch.setattr(settings, "DIAGNOSTIC_API_KEY", "test-diagnostic-key")
    monkeypatch.setattr(settings, "DISABLE_AUTH", False)
    cache_service.clear_all()
    projection_stats.reset()
    yield
    cache_service.clear_all()
    app.dependency_overrides.clear()


@pytest.fixture
async def mock_upstream():
    """
    Route every outbound call through an httpx.MockTransport.

    Usage: `calls = await mock_upstream(handler)`; `calls` records each request.
    """
    calls: List[httpx.Request] = []

    async def install(handler):
        def record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        await upstream_client.use_transport(httpx.MockTransport(record))
        return calls

    yield install
    await upstream_client.use_transport(None)


@pytest.fixture
async def async_client():
    """Shared HTTPX async client with FastAPI lifespan handling."""
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


class InMemoryFolderStore:
    """FolderStore kept in a dict."""

    def __init__(self):
        self.folders: Dict[str, FolderModel] = {}
        self._next_id = 0

    async def list_for_owner(self, owner: str, public_only: bool = False) -> List[FolderModel]:
        return [
            folder for folder in self.folders.values()
            if folder.owner == owner and (folder.is_public or not public_only)
        ]

    async def get(self, folder_id: str) -> Optional[FolderModel]:
        return self.folders.get(folder_id)

    async def create(self, owner: str, data: FolderCreateModel) -> FolderModel:
        self._next_id += 1
        folder = FolderModel(id=f"folder-{self._next_id}", owner=owner, **data.model_dump())
        self.folders[folder.id] = folder
        return folder

    async def update(self, folder_id: str, data: FolderUpdateModel) -> Optional[FolderModel]:
        existing = self.folders.get(folder_id)
        if existing is None:
            return None
        fields = {**existing.model_dump(), **data.model_dump(exclude_unset=True)}
        fields["updated_at"] = datetime.now(timezone.utc)
        folder = FolderModel(**fields)
        self.folders[folder_id] = folder
        return folder

    async def delete(self, folder_id: str) -> bool:
        return self.folders.pop(folder_id, None) is not None


@pytest.fixture
def folder_store() -> InMemoryFolderStore:
    """Swap the MongoDB folder store for an in-memory one."""
    store = InMemoryFolderStore()

    async def _override_folder_store() -> InMemoryFolderStore:
        return store

    app.dependency_overrides[get_folder_store] = _override_folder_store
    return store


def neynar_user(
    fid: int,
    username: str,
    custody: Optional[str] = None,
    verified: Optional[List[str]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """A v2 social indexer user record."""
    return {
        "object": "user",
        "fid": fid,
        "username": username,
        "display_name": username.title(),
        "pfp_url": f"https://img.example/{username}.png",
        "custody_address": custody,
        "verified_addresses": {"eth_addresses": verified or [], "sol_addresses": []},
        "follower_count": 10,
        "following_count": 5,
        **extra,
    }


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)
