"""
Social Resolver Service.
Resolves usernames and numeric ids to profiles with their wallet addresses,
and enumerates following lists.
"""

from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import (
    ProfileNotFoundError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamNotFoundError,
)
from app.core.logging import get_logger
from app.domain.models.address import Address, Handle, normalize_addresses
from app.domain.models.profile import FollowingList, Profile
from app.infrastructure.cache import CacheKind, CacheService, cache_service
from app.infrastructure.upstream.client import UpstreamClient, UpstreamRequest, upstream_client
from app.infrastructure.upstream.pagination import iterate_pages
from app.infrastructure.upstream.projection import project_users
from app.infrastructure.upstream.providers import (
    Provider,
    neynar_headers,
    neynar_url,
    zapper_endpoints,
    zapper_headers,
)

logger = get_logger(__name__)

PROFILE_QUERY = """
query FarcasterProfile($username: String, $fid: Int) {
  farcasterProfile(username: $username, fid: $fid) {
    username
    fid
    metadata {
      displayName
      description
      imageUrl
      warpcast
    }
    custodyAddress
    connectedAddresses
  }
}
"""


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def profile_from_user(raw: Dict[str, Any]) -> Optional[Profile]:
    """
    Normalize one upstream user record into a Profile.

    Understands the social indexer's v2 (snake_case) and v1 (camelCase)
    records and the GraphQL `farcasterProfile` record. Returns None when the
    record lacks a numeric id or a username.
    """
    if not isinstance(raw, dict):
        return None

    fid = _as_int(raw.get("fid"))
    username = raw.get("username")
    if fid is None or not isinstance(username, str) or not username:
        return None

    metadata = raw.get("metadata") or {}
    pfp = raw.get("pfp") or {}
    bio = (raw.get("profile") or {}).get("bio") or {}

    addresses: List[Any] = []
    verified = raw.get("verified_addresses")
    if isinstance(verified, dict):
        addresses.extend(verified.get("eth_addresses") or [])
    addresses.extend(raw.get("connectedAddresses") or [])
    addresses.extend(raw.get("addresses") or [])

    return Profile(
        fid=fid,
        username=username,
        display_name=_first(raw, "display_name", "displayName") or metadata.get("displayName"),
        image_url=_first(raw, "pfp_url", "avatar") or pfp.get("url") or metadata.get("imageUrl"),
        bio=(bio.get("text") if isinstance(bio, dict) else None) or metadata.get("description"),
        custody_address=Address.parse(_first(raw, "custody_address", "custodyAddress")),
        connected_addresses=normalize_addresses(addresses),
        follower_count=_as_int(_first(raw, "follower_count", "followerCount", "followers")),
        following_count=_as_int(_first(raw, "following_count", "followingCount", "following")),
    )


def _unwrap_follow(item: Dict[str, Any]) -> Dict[str, Any]:
    """Following pages list either users or `{object: follow, user}` wrappers."""
    if "fid" not in item and isinstance(item.get("user"), dict):
        return item["user"]
    return item


def _next_cursor(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for container in (payload, payload.get("result") or {}):
        cursor = (container.get("next") or {}).get("cursor")
        if cursor:
            return cursor
    return None


class SocialResolver:
    """Service for social identity lookups."""

    def __init__(
        self,
        client: Optional[UpstreamClient] = None,
        cache: Optional[CacheService] = None,
    ):
        """Initialize social resolver."""
        self.client = client or upstream_client
        self.cache = cache or cache_service

    async def resolve(self, handle: Handle) -> Profile:
        """
        Resolve a handle to a profile and its address set.

        Sources are tried in order: cache, social indexer, then the GraphQL
        portfolio service (primary and backup endpoints).

        Args:
            handle: Username or numeric id

        Returns:
            Profile with normalized connected addresses

        Raises:
            ProfileNotFoundError: No source knows the identity
            UpstreamError: The last source failed transiently
            ConfigurationError: The GraphQL service is needed but has no key
        """
        cached = await self.cache.get(CacheKind.PROFILES, handle.cache_key)
        if cached is not None:
            return cached

        errors: List[str] = []
        profile: Optional[Profile] = None

        try:
            profile = await self._from_indexer(handle)
        except UpstreamNotFoundError:
            logger.info(f"Social indexer has no profile for {handle.kind.value} {handle}")
        except UpstreamError as exc:
            logger.warning(f"Social indexer lookup failed for {handle}: {exc.message}")
            errors.append(f"{Provider.NEYNAR.value}: {exc.message}")

        if profile is None:
            try:
                profile = await self._from_graphql(handle)
            except UpstreamNotFoundError:
                logger.info(f"GraphQL service has no profile for {handle.kind.value} {handle}")
            except UpstreamError as exc:
                logger.error(f"GraphQL profile lookup failed for {handle}: {exc.message}")
                raise

        if profile is None:
            raise ProfileNotFoundError(str(handle), errors or None)

        if len(profile.connected_addresses) <= (1 if profile.custody_address else 0):
            profile = await self._enrich_addresses(profile)

        for alias in {handle, *profile.handles()}:
            await self.cache.set(CacheKind.PROFILES, alias.cache_key, profile)

        logger.info(
            f"Resolved {handle} to fid {profile.fid} with "
            f"{len(profile.connected_addresses)} addresses"
        )
        return profile

    async def _from_indexer(self, handle: Handle) -> Optional[Profile]:
        if handle.is_fid:
            request = UpstreamRequest(
                provider=Provider.NEYNAR.value,
                endpoint="user/bulk",
                url=neynar_url("/v2/farcaster/user/bulk"),
                params={"fids": handle.value},
                headers=neynar_headers(),
            )
        else:
            request = UpstreamRequest(
                provider=Provider.NEYNAR.value,
                endpoint="user/search",
                url=neynar_url("/v2/farcaster/user/search"),
                params={"q": handle.value, "limit": 5},
                headers=neynar_headers(),
            )

        payload = await self.client.call(request)
        users = [p for p in (profile_from_user(u) for u in project_users(payload, request.provider)) if p]
        return self._select(handle, users)

    def _select(self, handle: Handle, users: List[Profile]) -> Optional[Profile]:
        """Exact case-insensitive match first, else the first result."""
        if not users:
            return None

        if handle.is_fid:
            for user in users:
                if user.fid == handle.fid:
                    return user
            return None

        for user in users:
            if user.username.lower() == handle.value:
                return user

        logger.warning(
            f"No exact username match for '{handle}', using approximate match '{users[0].username}'"
        )
        return users[0]

    async def _from_graphql(self, handle: Handle) -> Optional[Profile]:
        variables = {"fid": handle.fid} if handle.is_fid else {"username": handle.value}
        request = UpstreamRequest(
            provider=Provider.ZAPPER.value,
            endpoint="farcasterProfile",
            url=zapper_endpoints()[0],
            method="POST",
            json={"query": PROFILE_QUERY, "variables": variables},
            headers=zapper_headers(),
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
            graphql=True,
        )

        payload = await self.client.call_with_fallback(zapper_endpoints(), request)
        users = [p for p in (profile_from_user(u) for u in project_users(payload, request.provider)) if p]
        return users[0] if users else None

    async def _enrich_addresses(self, profile: Profile) -> Profile:
        """Merge verified addresses from the indexer; failures leave the profile as is."""
        request = UpstreamRequest(
            provider=Provider.NEYNAR.value,
            endpoint="user/verified-addresses",
            url=neynar_url("/v2/farcaster/user/verified-addresses"),
            params={"fid": profile.fid},
            headers=neynar_headers(),
        )
        try:
            payload = await self.client.call(request)
        except UpstreamError as exc:
            logger.warning(f"Could not fetch verified addresses for fid {profile.fid}: {exc.message}")
            return profile

        entries = payload.get("verified_addresses") if isinstance(payload, dict) else None
        addresses = [
            entry.get("addr")
            for entry in entries or []
            if isinstance(entry, dict) and entry.get("type", "ethereum") == "ethereum"
        ]
        if addresses:
            logger.info(f"Found {len(addresses)} verified addresses for fid {profile.fid}")
            return profile.merge_addresses(normalize_addresses(addresses))
        return profile

    async def list_following(
        self,
        fid: int,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> FollowingList:
        """
        Enumerate the identities `fid` follows, in upstream page order.

        Users are deduplicated by fid. A failure after the first page returns
        what was collected so far with `partial=True`; complete lists are cached.

        Args:
            fid: Numeric id of the follower
            page_size: Users per page
            max_pages: Page cap

        Returns:
            FollowingList
        """
        page_size = page_size or settings.FOLLOWING_PAGE_SIZE
        max_pages = max_pages or settings.FOLLOWING_MAX_PAGES
        cache_key = f"following:{fid}:{page_size}:{max_pages}"

        cached = await self.cache.get(CacheKind.PROFILES, cache_key)
        if cached is not None:
            return cached

        try:
            result = await self._enumerate(fid, page_size, max_pages, "/v2/farcaster/following")
        except (UpstreamNotFoundError, UpstreamHTTPError) as exc:
            status = 404 if isinstance(exc, UpstreamNotFoundError) else exc.status_code
            if status not in (400, 404):
                raise
            logger.warning(
                f"Following endpoint returned {status} for fid {fid}, using the v1 following endpoint"
            )
            result = await self._enumerate(fid, page_size, max_pages, "/v1/farcaster/following")

        if not result.partial:
            await self.cache.set(CacheKind.PROFILES, cache_key, result)
        return result

    async def _enumerate(self, fid: int, page_size: int, max_pages: int, path: str) -> FollowingList:
        async def fetch(cursor: Optional[str]) -> Tuple[List[Profile], Optional[str]]:
            params: Dict[str, Any] = {"fid": fid, "limit": page_size}
            if cursor:
                params["cursor"] = cursor
            payload = await self.client.call(
                UpstreamRequest(
                    provider=Provider.NEYNAR.value,
                    endpoint=path.strip("/"),
                    url=neynar_url(path),
                    params=params,
                    headers=neynar_headers(),
                )
            )
            records = project_users(payload, Provider.NEYNAR.value)
            users = [p for p in (profile_from_user(_unwrap_follow(r)) for r in records) if p]
            return users, _next_cursor(payload)

        users: List[Profile] = []
        seen = set()
        pages = 0
        partial = False

        try:
            async for page in iterate_pages(fetch, max_pages, label=f"following of fid {fid}"):
                pages = page.number
                for user in page.items:
                    if user.fid not in seen:
                        seen.add(user.fid)
                        users.append(user)
        except UpstreamError as exc:
            if pages == 0:
                raise
            partial = True
            logger.warning(
                f"Following enumeration for fid {fid} stopped after {pages} pages: {exc.message}"
            )

        logger.info(f"Fetched {len(users)} following users for fid {fid} in {pages} pages")
        return FollowingList(fid=fid, users=users, partial=partial, pages=pages)


# Global social resolver instance
social_resolver = SocialResolver()


async def get_social_resolver() -> SocialResolver:
    """
    Get social resolver instance.

    Returns:
        SocialResolver: Social resolver instance
    """
    return social_resolver
