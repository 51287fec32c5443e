"""
Collection Friends Service.
Finds the wallets of followed accounts that hold a token in a given collection.
"""

from typing import List, Optional

from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError
from app.core.logging import get_logger
from app.domain.models.address import Address
from app.domain.models.chain import Chain
from app.domain.models.profile import FriendOwner, FriendsResult
from app.infrastructure.cache import CacheKind, CacheService, cache_service
from app.infrastructure.upstream.client import gather_all
from app.infrastructure.upstream.providers import Provider
from app.api.services.nft_indexer_service import NftIndexerService, nft_indexer_service
from app.api.services.social_resolver import SocialResolver, social_resolver

logger = get_logger(__name__)


class CollectionFriendsService:
    """Service composing the social graph with collection ownership."""

    def __init__(
        self,
        resolver: Optional[SocialResolver] = None,
        indexer: Optional[NftIndexerService] = None,
        cache: Optional[CacheService] = None,
    ):
        """Initialize collection friends service."""
        self.resolver = resolver or social_resolver
        self.indexer = indexer or nft_indexer_service
        self.cache = cache or cache_service

    async def find_friends(
        self,
        fid: int,
        contract: Address,
        chain: Chain = Chain.ETHEREUM,
        limit: Optional[int] = None,
    ) -> FriendsResult:
        """
        Which wallets of accounts `fid` follows hold a token in `contract`.

        Args:
            fid: Numeric id of the caller
            contract: Collection contract
            chain: Folded chain of the collection
            limit: Maximum number of friends returned

        Returns:
            FriendsResult with one FriendOwner per matched address, in
            following order; `total` counts all matches before truncation

        Raises:
            UpstreamUnavailableError: The following list could only be
                fetched partially
        """
        limit = settings.COLLECTION_FRIENDS_DEFAULT_LIMIT if limit is None else limit
        cache_key = f"{contract}:{fid}:{chain.value}"

        matches: Optional[List[FriendOwner]] = await self.cache.get(CacheKind.FRIENDS, cache_key)
        if matches is None:
            matches = await self._match(fid, contract, chain)
            await self.cache.set(CacheKind.FRIENDS, cache_key, matches)

        total = len(matches)
        return FriendsResult(
            contract=contract,
            friends=matches[:limit],
            total=total,
            has_more=total > limit,
        )

    async def _match(self, fid: int, contract: Address, chain: Chain) -> List[FriendOwner]:
        following, owners = await gather_all(
            self.resolver.list_following(fid),
            self.indexer.owners_for_contract(chain, contract),
        )

        if following.partial:
            raise UpstreamUnavailableError(
                Provider.NEYNAR.value,
                f"Following list for fid {fid} could only be fetched partially",
                {"pages": following.pages, "users": len(following.users)},
            )

        if not following.users:
            logger.info(f"fid {fid} follows nobody, no collection friends")
            return []

        matches: List[FriendOwner] = []
        seen = set()
        for profile in following.users:
            for address in profile.connected_addresses:
                if address in owners and address not in seen:
                    seen.add(address)
                    matches.append(
                        FriendOwner(
                            fid=profile.fid,
                            username=profile.username,
                            display_name=profile.display_name,
                            image_url=profile.image_url,
                            address=address,
                        )
                    )

        logger.info(
            f"{len(matches)} of {len(following.users)} followed accounts' wallets hold "
            f"{contract} on {chain.value} ({len(owners)} owners)"
        )
        return matches


# Global collection friends service instance
collection_friends_service = CollectionFriendsService()


async def get_collection_friends_service() -> CollectionFriendsService:
    """
    Get collection friends service instance.

    Returns:
        CollectionFriendsService: Collection friends service instance
    """
    return collection_friends_service
