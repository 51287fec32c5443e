"""
Portfolio GraphQL Router.
Forwards GraphQL documents to the portfolio service with endpoint fallback.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.api.dto.system_dto import GraphQLRequestDTO
from app.api.services.portfolio_service import PortfolioService, get_portfolio_service
from app.infrastructure.upstream.client import run_with_deadline

# Create router
router = APIRouter()


@router.post("/zapper")
async def zapper_graphql(
    payload: GraphQLRequestDTO,
    portfolio_service: PortfolioService = Depends(get_portfolio_service),
) -> Dict[str, Any]:
    """
    Execute a GraphQL query against the portfolio service.

    GraphQL-level errors are returned in the body as the upstream sent them.
    """
    return await run_with_deadline(
        portfolio_service.execute(payload.query, payload.variables, payload.operation_name)
    )
