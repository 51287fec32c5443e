"""
Configuration management for the NFT Gallery Gateway.
Handles environment variables and settings for the social, NFT indexer,
portfolio GraphQL and media upstreams.
"""

from typing import Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "NFT Gallery Gateway"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS: List[str] = [
        "X-CSRF-Token",
        "X-Requested-With",
        "Accept",
        "Accept-Version",
        "Content-Length",
        "Content-MD5",
        "Content-Type",
        "Date",
        "X-Api-Version",
        "X-Api-Key",
        "Authorization",
    ]

    # Social graph indexer (Neynar)
    NEYNAR_API_KEY: str = "NEYNAR_API_DOCS"
    NEYNAR_API_BASE: str = "https://api.neynar.com"

    # NFT indexer (Alchemy)
    ALCHEMY_API_KEY: Optional[str] = None
    ALCHEMY_CDN_HOST: str = "nft-cdn.alchemy.com"

    # Portfolio GraphQL service (Zapper)
    ZAPPER_API_KEY: Optional[str] = None
    ZAPPER_GRAPHQL_PRIMARY_URL: str = "https://public.zapper.xyz/graphql"
    ZAPPER_GRAPHQL_BACKUP_URL: str = "https://api.zapper.xyz/v2/graphql"

    # Media gateways
    IPFS_GATEWAYS: List[str] = [
        "https://cloudflare-ipfs.com/ipfs/",
        "https://ipfs.io/ipfs/",
        "https://gateway.pinata.cloud/ipfs/",
        "https://dweb.link/ipfs/",
        "https://ipfs.infura.io/ipfs/",
    ]
    ARWEAVE_GATEWAY: str = "https://arweave.net/"
    IMAGE_PROXY_MAX_ATTEMPTS: int = 4
    IMAGE_PROXY_REFERER: str = "https://gall3ry.vercel.app/"

    # Timeouts (seconds)
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    GRAPHQL_TIMEOUT_SECONDS: float = 15.0
    INDEXER_TIMEOUT_SECONDS: float = 15.0
    IMAGE_TIMEOUT_SECONDS: float = 10.0
    REQUEST_TIMEOUT_SECONDS: float = 60.0

    # In-memory cache
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_TTL_GENERIC: int = 300
    CACHE_TTL_PROFILES: int = 600
    CACHE_TTL_FRIENDS: int = 600
    CACHE_TTL_TRANSFERS: int = 600

    # Pagination
    FOLLOWING_PAGE_SIZE: int = 100
    FOLLOWING_MAX_PAGES: int = 100
    OWNERS_MAX_PAGES: int = 100
    COLLECTION_FRIENDS_DEFAULT_LIMIT: int = 50

    # Folders - MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "nft_gallery"
    DISABLE_AUTH: bool = False
    DEFAULT_USER_ID: str = "1234"

    # Diagnostics
    DIAGNOSTIC_API_KEY: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator(
        "IPFS_GATEWAYS",
        "CORS_ALLOW_ORIGINS",
        "CORS_ALLOW_METHODS",
        "CORS_ALLOW_HEADERS",
        mode="before",
    )
    @classmethod
    def parse_comma_separated(cls, v):
        """Parse list settings from a comma-separated string or list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("IPFS_GATEWAYS")
    @classmethod
    def ensure_gateway_suffix(cls, v):
        """Gateway prefixes are joined directly with a CID, so they end in '/'."""
        return [gateway if gateway.endswith("/") else f"{gateway}/" for gateway in v]

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v

    def cache_ttls(self) -> Dict[str, int]:
        """Per-kind cache TTLs in seconds."""
        return {
            "generic": self.CACHE_TTL_GENERIC,
            "transfers": self.CACHE_TTL_TRANSFERS,
            "profiles": self.CACHE_TTL_PROFILES,
            "friends": self.CACHE_TTL_FRIENDS,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Create global settings instance
settings = Settings()


def is_production() -> bool:
    """Check if running in production environment."""
    return settings.ENVIRONMENT == "production"
