"""
Supported EVM chains and alias folding.
"""

from enum import Enum
from typing import Optional

from app.core.logging import get_logger

logger = get_logger(__name__)


class Chain(str, Enum):
    """Chains served by the NFT indexer."""

    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    BASE = "base"
    ZORA = "zora"

    @classmethod
    def fold(cls, value: Optional[str]) -> "Chain":
        """
        Map a user-supplied chain string onto the closed chain set.

        Aliases (eth, arb, opt) fold to their canonical chain. Anything
        unknown maps to ethereum and is logged.
        """
        if isinstance(value, Chain):
            return value
        if not value:
            return cls.ETHEREUM

        key = value.strip().lower()
        key = CHAIN_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            logger.warning(f"Unknown chain '{value}', falling back to ethereum")
            return cls.ETHEREUM

    @property
    def alchemy_network(self) -> str:
        """Network slug used in indexer hostnames."""
        return ALCHEMY_NETWORKS[self]


CHAIN_ALIASES = {
    "eth": "ethereum",
    "arb": "arbitrum",
    "opt": "optimism",
}

ALCHEMY_NETWORKS = {
    Chain.ETHEREUM: "eth-mainnet",
    Chain.POLYGON: "polygon-mainnet",
    Chain.ARBITRUM: "arb-mainnet",
    Chain.OPTIMISM: "opt-mainnet",
    Chain.BASE: "base-mainnet",
    Chain.ZORA: "zora-mainnet",
}
