"""
NFT, transfer and paging models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Generic, Iterable, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from app.domain.models.address import Address
from app.domain.models.chain import Chain

T = TypeVar("T")


class Nft(BaseModel):
    """Normalized NFT holding."""

    chain: Chain
    contract: Address
    token_id: str = Field(..., alias="tokenId")
    owner_address: Address = Field(..., alias="ownerAddress")
    name: str
    collection_name: str = Field(..., alias="collectionName")
    media_urls: List[str] = Field(
        default_factory=list, alias="mediaUrls", description="Media in preference order"
    )
    floor_price_usd: Optional[Decimal] = Field(None, alias="floorPriceUsd")
    transfer_timestamp: Optional[datetime] = Field(None, alias="transferTimestamp")

    class Config:
        populate_by_name = True


class Transfer(BaseModel):
    """A single ERC721/ERC1155 transfer event."""

    chain: Chain
    contract: Address
    token_id: str = Field(..., alias="tokenId")
    from_address: Address = Field(..., alias="from")
    to_address: Address = Field(..., alias="to")
    timestamp: datetime
    tx_hash: str = Field(..., alias="txHash")

    @field_validator("tx_hash")
    @classmethod
    def validate_tx_hash(cls, v):
        """Transaction hashes are 32 bytes of hex."""
        value = v.lower()
        if not value.startswith("0x") or len(value) != 66:
            raise ValueError(f"Invalid transaction hash: {v}")
        int(value, 16)
        return value

    class Config:
        populate_by_name = True


def transfer_key(contract: str, token_id: str) -> str:
    """Key of the per-token latest-transfer map."""
    return f"{contract.lower()}:{token_id}"


class TransferIndex(BaseModel):
    """Latest transfer per (contract, tokenId) for an owner set on one chain."""

    chain: Chain
    owners: List[Address] = Field(default_factory=list)
    latest: Dict[str, Transfer] = Field(default_factory=dict)
    transfers: List[Transfer] = Field(default_factory=list)

    @classmethod
    def build(
        cls, chain: Chain, owners: Iterable[Address], transfers: Iterable[Transfer]
    ) -> "TransferIndex":
        latest: Dict[str, Transfer] = {}
        flat: List[Transfer] = []
        for transfer in transfers:
            flat.append(transfer)
            key = transfer_key(transfer.contract, transfer.token_id)
            current = latest.get(key)
            if current is None or transfer.timestamp > current.timestamp:
                latest[key] = transfer
        return cls(chain=chain, owners=list(owners), latest=latest, transfers=flat)

    def latest_to(self, owner: Address, contract: str, token_id: str) -> Optional[Transfer]:
        """Most recent transfer of the token into `owner`."""
        best: Optional[Transfer] = None
        key = transfer_key(contract, token_id)
        for transfer in self.transfers:
            if transfer.to_address != owner:
                continue
            if transfer_key(transfer.contract, transfer.token_id) != key:
                continue
            if best is None or transfer.timestamp > best.timestamp:
                best = transfer
        return best

    def to_response(self) -> Dict:
        """Render as `{transfers, transferMap, count}`."""
        return {
            "chain": self.chain.value,
            "transfers": [t.model_dump(mode="json", by_alias=True) for t in self.transfers],
            "transferMap": {
                key: t.model_dump(mode="json", by_alias=True)
                for key, t in self.latest.items()
            },
            "count": len(self.transfers),
        }


class PagedList(BaseModel, Generic[T]):
    """One page of a cursor-paginated listing."""

    items: List[T] = Field(default_factory=list)
    page_key: Optional[str] = Field(None, alias="pageKey")
    total_count: Optional[int] = Field(None, alias="totalCount")

    class Config:
        populate_by_name = True
