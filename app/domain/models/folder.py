"""
MongoDB models for user folders.
"""

from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, Field, field_validator


class FolderItem(BaseModel):
    """An NFT saved into a folder."""

    token_id: str = Field(..., alias="tokenId")
    contract_address: str = Field(..., alias="contractAddress")
    network: str = Field("ethereum", description="Chain name")
    name: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    collection_name: Optional[str] = Field(None, alias="collectionName")
    estimated_value_usd: Optional[float] = Field(None, alias="estimatedValueUsd")
    added_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="addedAt"
    )

    class Config:
        populate_by_name = True


class FolderModel(BaseModel):
    """A named, optionally public collection of NFTs owned by one user."""

    id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("_id", "id"),
        description="MongoDB document ID",
    )
    owner: str = Field(..., description="Owner's numeric social id")
    name: str = Field(..., min_length=1)
    description: str = ""
    is_public: bool = Field(False, alias="isPublic")
    items: List[FolderItem] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="updatedAt"
    )

    @field_validator("id", mode="before")
    @classmethod
    def convert_objectid_to_str(cls, v):
        """Convert MongoDB ObjectId to string."""
        if isinstance(v, ObjectId):
            return str(v)
        return v

    class Config:
        populate_by_name = True


class FolderCreateModel(BaseModel):
    """Fields accepted when creating a folder."""

    name: str = Field(..., min_length=1)
    description: str = ""
    is_public: bool = Field(False, alias="isPublic")
    items: List[FolderItem] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class FolderUpdateModel(BaseModel):
    """Fields accepted when updating a folder; omitted fields are unchanged."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    is_public: Optional[bool] = Field(None, alias="isPublic")
    items: Optional[List[FolderItem]] = None

    class Config:
        populate_by_name = True
