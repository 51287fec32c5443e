"""
Image Proxy Service.
Fetches NFT media through IPFS, Arweave and CDN fallbacks and never fails:
when every attempt is exhausted a placeholder SVG is served instead.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Tuple
from xml.sax.saxutils import escape

import httpx

from app.core.config import settings
from app.core.exceptions import BadRequestError, UpstreamError
from app.core.logging import get_logger, redact
from app.infrastructure.media.gateways import (
    InvalidMediaUrl,
    MediaGateways,
    MediaTarget,
    is_forbidden_host,
    media_gateways,
    next_target,
    sniff_image_type,
)
from app.infrastructure.upstream.client import UpstreamClient, upstream_client
from app.infrastructure.upstream.providers import Provider, media_headers

logger = get_logger(__name__)

CACHE_FOREVER = "public, max-age=31536000"
PLACEHOLDER_CONTENT_TYPE = "image/svg+xml"

# Synthetic status for a 2xx body that is not an image
_NOT_AN_IMAGE = 415
_SNIFF_BYTES = 64

PLACEHOLDER_TEMPLATE = """<svg width="400" height="400" xmlns="http://www.w3.org/2000/svg">
  <rect width="400" height="400" fill="#f0f0f0"/>
  <text x="50%" y="40%" dominant-baseline="middle" text-anchor="middle" font-family="sans-serif" font-size="24px" fill="#666666">Image Not Available</text>
  <text x="50%" y="60%" dominant-baseline="middle" text-anchor="middle" font-family="sans-serif" font-size="12px" fill="#999999">{excerpt}</text>
</svg>"""


def placeholder_svg(url: str) -> bytes:
    """400x400 placeholder naming the first 30 characters of the URL."""
    excerpt = url if len(url) <= 30 else f"{url[:30]}..."
    return PLACEHOLDER_TEMPLATE.format(excerpt=escape(excerpt)).encode("utf-8")


@dataclass
class ImageResult:
    """Either a streamed upstream body or an in-memory placeholder."""

    content_type: str
    body: Optional[bytes] = None
    stream: Optional[AsyncIterator[bytes]] = None
    close: Optional[Callable[[], Awaitable[None]]] = None
    source: Optional[str] = None
    attempts: int = 0

    @property
    def is_placeholder(self) -> bool:
        return self.stream is None

    @property
    def headers(self) -> dict:
        if self.is_placeholder:
            return {}
        return {"Cache-Control": CACHE_FOREVER}


def _declared_image_type(response: httpx.Response) -> Optional[str]:
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type.startswith("image/"):
        return content_type
    return None


async def _peek(response: httpx.Response) -> Tuple[bytes, AsyncIterator[bytes]]:
    """Read enough of the body to sniff it; return the head and the rest of the stream."""
    chunks = response.aiter_bytes()
    head = b""
    async for chunk in chunks:
        head += chunk
        if len(head) >= _SNIFF_BYTES:
            break

    async def body() -> AsyncIterator[bytes]:
        if head:
            yield head
        async for chunk in chunks:
            yield chunk

    return head, body()


class ImageProxyService:
    """Service for proxying NFT images."""

    def __init__(
        self,
        client: Optional[UpstreamClient] = None,
        gateways: Optional[MediaGateways] = None,
    ):
        """Initialize image proxy service."""
        self.client = client or upstream_client
        self.gateways = gateways or media_gateways

    def placeholder(self, url: str, attempts: int = 0) -> ImageResult:
        return ImageResult(
            content_type=PLACEHOLDER_CONTENT_TYPE,
            body=placeholder_svg(url),
            attempts=attempts,
        )

    async def fetch(self, url: Optional[str]) -> ImageResult:
        """
        Fetch an image, walking gateway and variant fallbacks.

        Args:
            url: Decoded media URL (http(s), ipfs:// or ar://)

        Returns:
            ImageResult streaming the upstream body, or a placeholder

        Raises:
            BadRequestError: The url is missing or targets the local machine
        """
        if not url or not url.strip():
            raise BadRequestError("Missing url parameter")

        try:
            target: Optional[MediaTarget] = self.gateways.rewrite(url)
        except InvalidMediaUrl as exc:
            logger.info(
                f"Serving placeholder for unusable media URL: {redact(str(exc), settings.ALCHEMY_API_KEY)}"
            )
            return self.placeholder(url)

        if is_forbidden_host(target.url):
            raise BadRequestError("Proxying to local addresses is not allowed", {"url": url})

        attempts = 0
        while target is not None and attempts < settings.IMAGE_PROXY_MAX_ATTEMPTS:
            attempts += 1
            outcome = await self._attempt(target)
            if isinstance(outcome, ImageResult):
                outcome.attempts = attempts
                return outcome

            logger.info(
                f"Image attempt {attempts} failed for {redact(target.url, settings.ALCHEMY_API_KEY)} "
                f"({'network error' if outcome is None else outcome})"
            )
            target = next_target(target, outcome)

        logger.warning(
            f"Image proxy gave up on {redact(url, settings.ALCHEMY_API_KEY)} "
            f"after {attempts} attempts, serving placeholder"
        )
        return self.placeholder(url, attempts)

    async def _attempt(self, target: MediaTarget):
        """One fetch. Returns an ImageResult on success, else the failing status (None for network)."""
        try:
            response = await self.client.open_stream(
                target.url,
                headers=media_headers(),
                timeout=settings.IMAGE_TIMEOUT_SECONDS,
                provider=Provider.MEDIA.value,
                secret=settings.ALCHEMY_API_KEY,
                is_forbidden=is_forbidden_host,
            )
        except UpstreamError:
            return None

        if not response.is_success:
            await response.aclose()
            return response.status_code

        try:
            head, stream = await _peek(response)
        except httpx.HTTPError as e:
            logger.info(f"Image body read failed for {redact(target.url, settings.ALCHEMY_API_KEY)}: {e}")
            await response.aclose()
            return None

        content_type = _declared_image_type(response) or sniff_image_type(head)
        if content_type is None:
            await response.aclose()
            return _NOT_AN_IMAGE

        return ImageResult(
            content_type=content_type,
            stream=stream,
            close=response.aclose,
            source=target.url,
        )


# Global image proxy service instance
image_proxy_service = ImageProxyService()


async def get_image_proxy_service() -> ImageProxyService:
    """
    Get image proxy service instance.

    Returns:
        ImageProxyService: Image proxy service instance
    """
    return image_proxy_service
