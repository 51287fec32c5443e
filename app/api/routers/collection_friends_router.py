"""
Collection Friends Router.
Answers which followed accounts hold a token in a collection.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.api.services.collection_friends_service import (
    CollectionFriendsService,
    get_collection_friends_service,
)
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.domain.models.address import Address, Handle
from app.domain.models.chain import Chain
from app.infrastructure.upstream.client import run_with_deadline

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.get("/collection-friends")
async def collection_friends(
    contract_address: Optional[str] = Query(None, alias="contractAddress"),
    fid: Optional[str] = Query(None, description="Numeric id of the caller"),
    network: Optional[str] = Query(None, description="Chain name or alias"),
    chain: Optional[str] = Query(None, description="Synonym for network"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum friends returned"),
    service: CollectionFriendsService = Depends(get_collection_friends_service),
) -> Dict[str, Any]:
    """
    List wallets of followed accounts holding a token in the collection.

    Raises:
        BadRequestError: Missing or malformed contractAddress or fid
        UpstreamUnavailableError: The following list could not be fully enumerated
    """
    if not contract_address:
        raise BadRequestError("contractAddress is required")
    if not fid:
        raise BadRequestError("fid (Farcaster ID) is required")

    contract = Address(contract_address)
    handle = Handle.for_fid(fid)
    logger.info(f"Collection friends for fid {handle} in {contract}")

    result = await run_with_deadline(
        service.find_friends(handle.fid, contract, Chain.fold(network or chain), limit)
    )
    return result.model_dump(mode="json", by_alias=True)


@router.get("/all-in-one")
async def all_in_one(action: Optional[str] = Query(None)) -> Dict[str, Any]:
    """
    Single-entry alias for action-dispatched clients.

    Known actions are rewritten to their route before reaching this handler.
    """
    if not action:
        raise BadRequestError("Missing action parameter")
    raise BadRequestError(f"Unknown action: {action}")
