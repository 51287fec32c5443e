"""
Media URL rewriting for IPFS, Arweave and the NFT CDN.
Builds the first fetch URL for an image and the fallback state used when it fails.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_IPFS_PATH = re.compile(r"/ipfs/([^?#]+)")
_FORBIDDEN_HOSTS = {"localhost", "127.0.0.1"}
_CDN_VARIANTS = ("/original", "/thumb")


class InvalidMediaUrl(ValueError):
    """The requested media URL cannot be fetched."""


@dataclass(frozen=True)
class IpfsFallback:
    """
    Walk an ordered gateway list for one IPFS path.
    Index -1 stands for the caller's own gateway URL, tried before the list.
    """

    gateways: Tuple[str, ...]
    index: int
    path: str

    @property
    def url(self) -> str:
        return f"{self.gateways[self.index]}{self.path}"

    def advance(self) -> Optional["IpfsFallback"]:
        if self.index + 1 >= len(self.gateways):
            return None
        return replace(self, index=self.index + 1)


@dataclass(frozen=True)
class CdnVariantSwap:
    """NFT CDN retries: swap the size variant once, then drop the query once."""

    swapped: bool = False
    stripped: bool = False


@dataclass(frozen=True)
class DirectFetch:
    """Plain URL with no alternative; only transient failures are retried."""


@dataclass(frozen=True)
class GiveUp:
    """No alternatives left."""


FallbackState = Union[IpfsFallback, CdnVariantSwap, DirectFetch, GiveUp]


@dataclass(frozen=True)
class MediaTarget:
    """The URL to fetch next and the fallback state that produced it."""

    original: str
    url: str
    state: FallbackState


def sniff_image_type(head: bytes) -> Optional[str]:
    """Detect an image MIME type from the first bytes of a body."""
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[4:12] in (b"ftypavif", b"ftypavis"):
        return "image/avif"
    if head.startswith(b"BM"):
        return "image/bmp"
    if head.startswith(b"\x00\x00\x01\x00"):
        return "image/x-icon"

    text = head.lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if text.startswith(b"<svg") or (text.startswith(b"<?xml") and b"<svg" in text):
        return "image/svg+xml"
    return None


def is_forbidden_host(url: str) -> bool:
    """True when the decoded target points at the local machine."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    return host in _FORBIDDEN_HOSTS


def swap_cdn_variant(url: str) -> Optional[str]:
    """Swap /original and /thumb in the URL path."""
    parts = urlsplit(url)
    if "/original" in parts.path:
        path = parts.path.replace("/original", "/thumb", 1)
    elif "/thumb" in parts.path:
        path = parts.path.replace("/thumb", "/original", 1)
    else:
        return None
    return urlunsplit(parts._replace(path=path))


def strip_query(url: str) -> Optional[str]:
    parts = urlsplit(url)
    if not parts.query:
        return None
    return urlunsplit(parts._replace(query=""))


class MediaGateways:
    """Rewrites NFT media URLs onto fetchable HTTP gateways."""

    def __init__(
        self,
        ipfs_gateways: Optional[Sequence[str]] = None,
        arweave_gateway: Optional[str] = None,
        cdn_host: Optional[str] = None,
    ):
        """Initialize media gateways."""
        self.ipfs_gateways = tuple(ipfs_gateways or settings.IPFS_GATEWAYS)
        self.arweave_gateway = arweave_gateway or settings.ARWEAVE_GATEWAY
        self.cdn_host = (cdn_host or settings.ALCHEMY_CDN_HOST).lower()

    def fallback_gateways(self, url: str) -> Tuple[str, ...]:
        """Configured gateways minus the one the URL is already served from."""
        host = (urlsplit(url).hostname or "").lower()
        return tuple(
            gateway for gateway in self.ipfs_gateways
            if (urlsplit(gateway).hostname or "").lower() != host
        )

    def is_cdn(self, url: str) -> bool:
        return (urlsplit(url).hostname or "").lower() == self.cdn_host

    def cdn_url(self, url: str) -> str:
        """Add the /original variant and the API key to an NFT CDN URL."""
        parts = urlsplit(url)
        path = parts.path
        if not any(variant in path for variant in _CDN_VARIANTS):
            path = f"{path.rstrip('/')}/original"

        query = parts.query
        api_key = settings.ALCHEMY_API_KEY
        if api_key and "apiKey" not in dict(parse_qsl(query)):
            query = f"{query}&{urlencode({'apiKey': api_key})}" if query else urlencode({"apiKey": api_key})

        return urlunsplit(parts._replace(path=path, query=query))

    def rewrite(self, url: str) -> MediaTarget:
        """
        Build the first fetch target for a media URL.

        Args:
            url: Raw URL as stored in NFT metadata

        Returns:
            MediaTarget with the URL to fetch and its fallback state

        Raises:
            InvalidMediaUrl: The URL has no usable scheme or host
        """
        raw = (url or "").strip()
        if not raw:
            raise InvalidMediaUrl("Empty media URL")

        if raw.startswith("ipfs://"):
            path = raw[len("ipfs://"):]
            if path.startswith("ipfs/"):
                path = path[len("ipfs/"):]
            if not path:
                raise InvalidMediaUrl(f"IPFS URL without a content id: {raw}")
            state = IpfsFallback(self.ipfs_gateways, 0, path)
            return MediaTarget(original=raw, url=state.url, state=state)

        if raw.startswith("ar://"):
            raw_id = raw[len("ar://"):]
            if not raw_id:
                raise InvalidMediaUrl(f"Arweave URL without an id: {raw}")
            target = f"{self.arweave_gateway}{raw_id}"
            return MediaTarget(original=raw, url=target, state=DirectFetch())

        try:
            parts = urlsplit(raw)
        except ValueError as exc:
            raise InvalidMediaUrl(f"Malformed media URL: {raw}") from exc
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise InvalidMediaUrl(f"Unsupported media URL: {raw}")

        match = _IPFS_PATH.search(parts.path)
        if match:
            state = IpfsFallback(self.fallback_gateways(raw), -1, match.group(1))
            return MediaTarget(original=raw, url=raw, state=state)

        if self.is_cdn(raw):
            return MediaTarget(original=raw, url=self.cdn_url(raw), state=CdnVariantSwap())

        return MediaTarget(original=raw, url=raw, state=DirectFetch())


def next_target(target: MediaTarget, status_code: Optional[int]) -> Optional[MediaTarget]:
    """
    Decide the next fetch after a failed attempt.

    Args:
        target: The target that just failed
        status_code: Upstream HTTP status, or None for a network error

    Returns:
        The next target, or None when there is nothing left to try
    """
    state = target.state

    if isinstance(state, IpfsFallback):
        advanced = state.advance()
        if advanced is None:
            return None
        return replace(target, url=advanced.url, state=advanced)

    if isinstance(state, CdnVariantSwap):
        if status_code is None or not 400 <= status_code < 500:
            return target
        if not state.swapped:
            swapped_url = swap_cdn_variant(target.url)
            if swapped_url:
                return replace(target, url=swapped_url, state=replace(state, swapped=True))
        if not state.stripped:
            stripped_url = strip_query(target.url)
            if stripped_url:
                return replace(target, url=stripped_url, state=CdnVariantSwap(swapped=True, stripped=True))
        return None

    if isinstance(state, DirectFetch):
        if status_code is None or status_code >= 500 or status_code == 429:
            return target
        return None

    return None


# Global media gateways instance
media_gateways = MediaGateways()
