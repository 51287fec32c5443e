"""
ASGI middleware for the NFT Gallery Gateway.
"""

from typing import Dict

from starlette.datastructures import QueryParams
from starlette.types import ASGIApp, Receive, Scope, Send

from app.core.logging import get_logger

logger = get_logger(__name__)


class ActionDispatchMiddleware:
    """
    Route requests carrying a known `action` query parameter to that action's
    path, whatever path they were sent to.
    """

    def __init__(self, app: ASGIApp, actions: Dict[str, str]):
        self.app = app
        self.actions = actions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            action = QueryParams(scope.get("query_string", b"")).get("action")
            path = self.actions.get(action) if action else None
            if path and scope["path"] != path:
                logger.debug(f"Dispatching action {action} from {scope['path']} to {path}")
                scope = dict(scope)
                scope["path"] = path
                scope["raw_path"] = path.encode("latin-1")

        await self.app(scope, receive, send)
