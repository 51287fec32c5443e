"""
Per-provider URL construction and header policy.
"""

from enum import Enum
from typing import Dict, List

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.domain.models.chain import Chain


class Provider(str, Enum):
    """Upstream providers, used in logs and error details."""

    NEYNAR = "neynar"
    ALCHEMY = "alchemy"
    ZAPPER = "zapper"
    MEDIA = "media"


# Social indexer

def neynar_url(path: str) -> str:
    return f"{settings.NEYNAR_API_BASE.rstrip('/')}/{path.lstrip('/')}"


def neynar_headers() -> Dict[str, str]:
    """Neynar takes its key in an `api_key` header; the docs key is the public fallback."""
    return {
        "accept": "application/json",
        "api_key": settings.NEYNAR_API_KEY or "NEYNAR_API_DOCS",
    }


# NFT indexer

def alchemy_api_key() -> str:
    if not settings.ALCHEMY_API_KEY:
        raise ConfigurationError("Alchemy API key is not configured")
    return settings.ALCHEMY_API_KEY


def alchemy_nft_url(chain: Chain, endpoint: str) -> str:
    """NFT API v3 REST url, e.g. getNFTsForOwner."""
    return f"https://{chain.alchemy_network}.g.alchemy.com/nft/v3/{alchemy_api_key()}/{endpoint}"


def alchemy_rpc_url(chain: Chain) -> str:
    """Core JSON-RPC url."""
    return f"https://{chain.alchemy_network}.g.alchemy.com/v2/{alchemy_api_key()}"


# Portfolio GraphQL

def zapper_endpoints() -> List[str]:
    """Equivalent GraphQL endpoints, primary first."""
    return [settings.ZAPPER_GRAPHQL_PRIMARY_URL, settings.ZAPPER_GRAPHQL_BACKUP_URL]


def zapper_headers() -> Dict[str, str]:
    if not settings.ZAPPER_API_KEY:
        raise ConfigurationError("Zapper API key is not configured")
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "x-zapper-api-key": settings.ZAPPER_API_KEY,
    }


# Media

def media_headers() -> Dict[str, str]:
    return {
        "User-Agent": "Mozilla/5.0 (compatible; NFTGalleryImageProxy/1.0)",
        "Referer": settings.IMAGE_PROXY_REFERER,
        "Accept": "image/avif,image/webp,image/png,image/jpeg,image/*;q=0.8,*/*;q=0.5",
    }
