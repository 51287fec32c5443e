"""
Profile Router.
Resolves social identities to profiles with wallet addresses.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.api.services.social_resolver import SocialResolver, get_social_resolver
from app.core.logging import get_logger
from app.domain.models.address import Handle
from app.infrastructure.upstream.client import run_with_deadline

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.get("/farcaster-profile")
async def get_farcaster_profile(
    username: Optional[str] = Query(None, description="Username (case-insensitive)"),
    fid: Optional[str] = Query(None, description="Numeric id; wins over username"),
    resolver: SocialResolver = Depends(get_social_resolver),
) -> Dict[str, Any]:
    """
    Look up a profile by username or numeric id.

    Returns:
        Profile with `custodyAddress` and `connectedAddresses`

    Raises:
        BadRequestError: Neither parameter given
        ProfileNotFoundError: No source knows the identity
    """
    handle = Handle.from_query(username=username, fid=fid)
    logger.info(f"Profile lookup by {handle.kind.value}: {handle}")

    profile = await run_with_deadline(resolver.resolve(handle))
    return profile.model_dump(mode="json", by_alias=True)
