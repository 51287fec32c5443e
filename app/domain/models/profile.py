"""
Social profile models.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.domain.models.address import Address, Handle, normalize_addresses


class Profile(BaseModel):
    """Normalized social profile with its on-chain addresses."""

    fid: int = Field(..., ge=0, description="Numeric social id")
    username: str = Field(..., description="Username")
    display_name: Optional[str] = Field(None, alias="displayName")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    bio: Optional[str] = Field(None, description="Profile bio")
    custody_address: Optional[Address] = Field(None, alias="custodyAddress")
    connected_addresses: List[Address] = Field(
        default_factory=list, alias="connectedAddresses"
    )
    follower_count: Optional[int] = Field(None, ge=0, alias="followerCount")
    following_count: Optional[int] = Field(None, ge=0, alias="followingCount")
    fetched_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="fetchedAt"
    )

    @model_validator(mode="after")
    def include_custody_address(self):
        """Connected addresses are a deduplicated set that includes custody."""
        addresses = list(self.connected_addresses)
        if self.custody_address is not None:
            addresses.append(self.custody_address)
        self.connected_addresses = normalize_addresses(addresses)
        return self

    def merge_addresses(self, addresses: List[Address]) -> "Profile":
        """Return a copy whose connected addresses include `addresses`."""
        merged = normalize_addresses([*self.connected_addresses, *addresses])
        return self.model_copy(update={"connected_addresses": merged})

    def handles(self) -> List[Handle]:
        """Both cache namespaces this profile can be reached under."""
        return [Handle.for_fid(self.fid), Handle.for_username(self.username)]

    class Config:
        populate_by_name = True


class FollowingList(BaseModel):
    """Result of enumerating an identity's following list."""

    fid: int
    users: List[Profile] = Field(default_factory=list)
    partial: bool = Field(False, description="True when a page failed mid-enumeration")
    pages: int = Field(0, description="Number of pages fetched")


class FriendOwner(BaseModel):
    """A followed identity holding a token, one record per matched address."""

    fid: int
    username: str
    display_name: Optional[str] = Field(None, alias="displayName")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    address: Address

    class Config:
        populate_by_name = True


class FriendsResult(BaseModel):
    """Collection-friends answer."""

    contract: Address
    friends: List[FriendOwner] = Field(default_factory=list)
    total: int = Field(0, ge=0)
    has_more: bool = Field(False, alias="hasMore")

    class Config:
        populate_by_name = True
