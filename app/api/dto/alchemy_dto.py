"""
DTOs (Data Transfer Objects) for NFT indexer endpoints.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


# Request DTOs
class AssetTransfersRequestDTO(BaseModel):
    """Request body for getAssetTransfers."""

    addresses: List[str] = Field(..., description="Owner addresses (list or comma-separated string)")
    chain: Optional[str] = Field(None, description="Chain name or alias")
    network: Optional[str] = Field(None, description="Synonym for chain")
    order: str = Field("desc", description="desc (newest first) or asc")

    @field_validator("addresses", mode="before")
    @classmethod
    def split_addresses(cls, v: Union[str, List[str]]):
        """Accept comma-separated strings."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


# Response DTOs
class OwnedNftsResponseDTO(BaseModel):
    """Response DTO for getNFTsForOwner."""

    owned_nfts: List[Dict[str, Any]] = Field(..., alias="ownedNfts")
    page_key: Optional[str] = Field(None, alias="pageKey")
    page_keys: Optional[Dict[str, Optional[str]]] = Field(None, alias="pageKeys")
    total_count: Optional[int] = Field(None, alias="totalCount")

    class Config:
        populate_by_name = True


class OwnersResponseDTO(BaseModel):
    """Response DTO for getOwnersForContract."""

    owners: List[str]
    total_count: int = Field(..., alias="totalCount")

    class Config:
        populate_by_name = True
