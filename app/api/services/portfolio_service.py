"""
Portfolio Service.
Proxies GraphQL queries to the portfolio service with primary/backup fallback.
"""

import hashlib
import json
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.infrastructure.cache import CacheKind, CacheService, cache_service
from app.infrastructure.upstream.client import UpstreamClient, UpstreamRequest, upstream_client
from app.infrastructure.upstream.providers import Provider, zapper_endpoints, zapper_headers

logger = get_logger(__name__)


def query_digest(query: str, variables: Optional[Dict[str, Any]]) -> str:
    body = json.dumps({"query": query, "variables": variables or {}}, sort_keys=True, default=str)
    return hashlib.sha256(body.encode()).hexdigest()


class PortfolioService:
    """Service for portfolio GraphQL queries."""

    def __init__(
        self,
        client: Optional[UpstreamClient] = None,
        cache: Optional[CacheService] = None,
    ):
        """Initialize portfolio service."""
        self.client = client or upstream_client
        self.cache = cache or cache_service

    async def execute(
        self,
        query: Optional[str],
        variables: Optional[Dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> Any:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL document
            variables: Query variables
            operation_name: Optional operation name

        Returns:
            The GraphQL response. Responses carrying non-fatal `errors` are
            returned but not cached.

        Raises:
            BadRequestError: No query was given
            UpstreamNotFoundError: The service reported a not-found error
            UpstreamClientError: The service rejected the query
        """
        if not query or not query.strip():
            raise BadRequestError("Missing GraphQL query in request body")

        cache_key = f"zapper:{query_digest(query, variables)}"
        cached = await self.cache.get(CacheKind.GENERIC, cache_key)
        if cached is not None:
            return cached

        body: Dict[str, Any] = {"query": query, "variables": variables or {}}
        if operation_name:
            body["operationName"] = operation_name

        request = UpstreamRequest(
            provider=Provider.ZAPPER.value,
            endpoint=operation_name or "graphql",
            url=zapper_endpoints()[0],
            method="POST",
            json=body,
            headers=zapper_headers(),
            timeout=settings.GRAPHQL_TIMEOUT_SECONDS,
            graphql=True,
        )
        payload = await self.client.call_with_fallback(zapper_endpoints(), request)

        if isinstance(payload, dict) and payload.get("errors"):
            logger.warning(f"GraphQL errors from portfolio service: {payload['errors']}")
            return payload

        await self.cache.set(CacheKind.GENERIC, cache_key, payload)
        return payload


# Global portfolio service instance
portfolio_service = PortfolioService()


async def get_portfolio_service() -> PortfolioService:
    """
    Get portfolio service instance.

    Returns:
        PortfolioService: Portfolio service instance
    """
    return portfolio_service
