"""
NFT Indexer Service.
Chain-aware queries against the NFT indexer: holdings by owner, owners of a
contract and asset transfers, normalized into domain models.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from dateutil.parser import isoparse
from pydantic import ValidationError
from web3 import Web3

from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    UpstreamHTTPError,
    UpstreamNotFoundError,
    UpstreamProtocolError,
)
from app.core.logging import get_logger
from app.domain.models.address import Address, normalize_addresses
from app.domain.models.chain import Chain
from app.domain.models.nft import Nft, PagedList, Transfer, TransferIndex
from app.infrastructure.cache import CacheKind, CacheService, cache_service
from app.infrastructure.upstream.client import UpstreamClient, UpstreamRequest, gather_all, upstream_client
from app.infrastructure.upstream.pagination import iterate_pages
from app.infrastructure.upstream.providers import (
    Provider,
    alchemy_api_key,
    alchemy_nft_url,
    alchemy_rpc_url,
)

logger = get_logger(__name__)

# Lowercased endpoint name -> canonical NFT API name
NFT_ENDPOINTS = {
    "getnftsforowner": "getNFTsForOwner",
    "getownersforcontract": "getOwnersForContract",
    "getnftsforcollection": "getNFTsForCollection",
    "getnftmetadata": "getNFTMetadata",
    "getcontractmetadata": "getContractMetadata",
    "getcontractsforowner": "getContractsForOwner",
}

TRANSFER_CATEGORIES = ["ERC721", "ERC1155"]


def decimal_token_id(value: Any) -> Optional[str]:
    """Token ids arrive as decimal strings or 0x-hex; normalize to decimal."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.lower().startswith("0x"):
        return str(Web3.to_int(hexstr=text))
    if text.isdigit():
        return str(int(text))
    return text


def transfers_cache_key(chain: Chain, owners: Iterable[str], order: str = "desc") -> str:
    key = f"{chain.value}_{','.join(sorted(owners))}"
    return key if order == "desc" else f"{key}_{order}"


def _media_urls(raw: Dict[str, Any]) -> List[str]:
    urls: List[Any] = []
    image = raw.get("image") or {}
    if isinstance(image, dict):
        urls.extend(image.get(key) for key in ("cachedUrl", "pngUrl", "thumbnailUrl", "originalUrl"))
    for media in raw.get("media") or []:
        if isinstance(media, dict):
            urls.extend([media.get("gateway"), media.get("raw")])
    metadata = (raw.get("raw") or {}).get("metadata") or raw.get("metadata") or {}
    if isinstance(metadata, dict):
        urls.extend([metadata.get("image"), metadata.get("image_url")])

    seen = set()
    result = []
    for url in urls:
        if isinstance(url, str) and url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def normalize_nft(raw: Dict[str, Any], chain: Chain, owner: Address) -> Optional[Nft]:
    """
    Map one indexer NFT record onto the Nft model.

    Collection name is taken from the contract, then the collection object,
    then legacy contract metadata, then a "Contract 0xabcd..." label. Token
    name falls back to "#<tokenId>".
    """
    contract_info = raw.get("contract") or {}
    contract = Address.parse(contract_info.get("address"))
    try:
        token_id = decimal_token_id(raw.get("tokenId") or (raw.get("id") or {}).get("tokenId"))
    except ValueError:
        token_id = None
    if contract is None or token_id is None:
        logger.debug(f"Skipping NFT record without contract or token id on {chain.value}")
        return None

    collection = raw.get("collection") or {}
    legacy_metadata = raw.get("contractMetadata") or {}
    collection_name = (
        contract_info.get("name")
        or collection.get("name")
        or legacy_metadata.get("name")
        or f"Contract {contract.short()}"
    )

    return Nft(
        chain=chain,
        contract=contract,
        token_id=token_id,
        owner_address=owner,
        name=raw.get("name") or raw.get("title") or f"#{token_id}",
        collection_name=collection_name,
        media_urls=_media_urls(raw),
        floor_price_usd=raw.get("floorPriceUsd"),
    )


def parse_transfers(chain: Chain, records: Iterable[Dict[str, Any]]) -> List[Transfer]:
    """Decode alchemy_getAssetTransfers records; malformed records are skipped."""
    transfers: List[Transfer] = []
    for record in records:
        contract = (record.get("rawContract") or {}).get("address")
        timestamp = (record.get("metadata") or {}).get("blockTimestamp")
        token_ids = [record.get("tokenId")]
        if record.get("erc1155Metadata"):
            token_ids = [item.get("tokenId") for item in record["erc1155Metadata"]]

        for token_id in token_ids:
            try:
                transfers.append(
                    Transfer(
                        chain=chain,
                        contract=contract,
                        token_id=decimal_token_id(token_id),
                        from_address=record.get("from"),
                        to_address=record.get("to"),
                        timestamp=isoparse(timestamp),
                        tx_hash=record.get("hash"),
                    )
                )
            except (ValidationError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed transfer {record.get('hash')}: {e}")
    return transfers


class NftIndexerService:
    """Service for NFT indexer queries."""

    def __init__(
        self,
        client: Optional[UpstreamClient] = None,
        cache: Optional[CacheService] = None,
    ):
        """Initialize NFT indexer service."""
        self.client = client or upstream_client
        self.cache = cache or cache_service

    def _request(self, endpoint: str, url: str, **kwargs) -> UpstreamRequest:
        return UpstreamRequest(
            provider=Provider.ALCHEMY.value,
            endpoint=endpoint,
            url=url,
            timeout=settings.INDEXER_TIMEOUT_SECONDS,
            secret=alchemy_api_key(),
            **kwargs,
        )

    async def nfts_for_owner(
        self,
        chain: Chain,
        owner: Address,
        page_key: Optional[str] = None,
        page_size: int = 100,
        exclude_filters: Optional[Sequence[str]] = None,
        with_metadata: bool = True,
    ) -> PagedList[Nft]:
        """
        One page of NFTs held by `owner` on `chain`.

        Args:
            chain: Folded chain
            owner: Owner address
            page_key: Opaque cursor from the previous page
            page_size: Items per page
            exclude_filters: Indexer filters; defaults to SPAM
            with_metadata: Ask the indexer for metadata

        Returns:
            PagedList of normalized Nft records, enriched with transfer time
            when a transfer index for the owner is cached
        """
        filters = list(exclude_filters) if exclude_filters is not None else ["SPAM"]
        params: Dict[str, Any] = {
            "owner": owner,
            "withMetadata": "true" if with_metadata else "false",
            "pageSize": page_size,
            "excludeFilters[]": filters,
            "includeMedia": "true",
        }
        if page_key:
            params["pageKey"] = page_key

        cache_key = self.cache.generate_key(
            "getnftsforowner", chain.value, owner, pageKey=page_key or "",
            pageSize=page_size, excludeFilters=filters, withMetadata=with_metadata,
        )
        page = await self.cache.get(CacheKind.GENERIC, cache_key)
        if page is None:
            url = alchemy_nft_url(chain, "getNFTsForOwner")
            payload = await self.client.call(self._request("getNFTsForOwner", url, params=params))
            if not isinstance(payload, dict):
                raise UpstreamProtocolError("Unexpected getNFTsForOwner response", Provider.ALCHEMY.value)

            items = [
                nft for nft in (normalize_nft(raw, chain, owner) for raw in payload.get("ownedNfts") or [])
                if nft is not None
            ]
            page = PagedList[Nft](
                items=items,
                page_key=payload.get("pageKey"),
                total_count=payload.get("totalCount"),
            )
            await self.cache.set(CacheKind.GENERIC, cache_key, page)
            logger.info(f"Fetched {len(items)} NFTs for {owner} on {chain.value}")

        return await self._enrich(page, chain, owner)

    async def _enrich(self, page: PagedList[Nft], chain: Chain, owner: Address) -> PagedList[Nft]:
        index: Optional[TransferIndex] = await self.cache.get(
            CacheKind.TRANSFERS, transfers_cache_key(chain, [owner])
        )
        if index is None:
            return page

        enriched = []
        for nft in page.items:
            transfer = index.latest_to(owner, nft.contract, nft.token_id)
            if transfer is not None:
                nft = nft.model_copy(update={"transfer_timestamp": transfer.timestamp})
            enriched.append(nft)
        return page.model_copy(update={"items": enriched})

    async def nfts_for_owner_on_chains(
        self,
        chains: Sequence[Chain],
        owner: Address,
        **options,
    ) -> Tuple[List[Nft], Dict[str, Optional[str]]]:
        """
        Fan out `nfts_for_owner` across chains in parallel.

        Returns:
            The merged NFT list in chain order and the next page key per chain
        """
        unique = list(dict.fromkeys(chains))
        pages = await gather_all(
            *(self.nfts_for_owner(chain, owner, **options) for chain in unique)
        )
        nfts: List[Nft] = []
        page_keys: Dict[str, Optional[str]] = {}
        for chain, page in zip(unique, pages):
            nfts.extend(page.items)
            page_keys[chain.value] = page.page_key
        return nfts, page_keys

    async def owners_for_contract(self, chain: Chain, contract: Address) -> Set[Address]:
        """
        Every owner of a token in `contract`, lowercased.

        Walks the paged owners endpoint; on any 4xx/5xx from it, the legacy
        owners RPC is tried once.
        """
        cache_key = f"owners:{chain.value}:{contract}"
        cached = await self.cache.get(CacheKind.GENERIC, cache_key)
        if cached is not None:
            return cached

        try:
            owners = await self._owners_paged(chain, contract)
        except (UpstreamHTTPError, UpstreamNotFoundError) as exc:
            logger.warning(
                f"Owners endpoint failed for {contract} on {chain.value} ({exc.error_code}), "
                "trying legacy owners RPC"
            )
            owners = await self._owners_legacy(chain, contract)

        result = frozenset(owners)
        await self.cache.set(CacheKind.GENERIC, cache_key, result)
        logger.info(f"Found {len(result)} owners for {contract} on {chain.value}")
        return result

    async def _owners_paged(self, chain: Chain, contract: Address) -> List[Address]:
        url = alchemy_nft_url(chain, "getOwnersForContract")

        async def fetch(cursor: Optional[str]) -> Tuple[List[Address], Optional[str]]:
            params: Dict[str, Any] = {"contractAddress": contract, "withTokenBalances": "false"}
            if cursor:
                params["pageKey"] = cursor
            payload = await self.client.call(self._request("getOwnersForContract", url, params=params))
            if not isinstance(payload, dict):
                raise UpstreamProtocolError("Unexpected getOwnersForContract response", Provider.ALCHEMY.value)
            items = [
                owner.get("ownerAddress") if isinstance(owner, dict) else owner
                for owner in payload.get("owners") or []
            ]
            return normalize_addresses(items), payload.get("pageKey")

        owners: List[Address] = []
        async for page in iterate_pages(fetch, settings.OWNERS_MAX_PAGES, label=f"owners of {contract}"):
            owners.extend(page.items)
        return owners

    async def _owners_legacy(self, chain: Chain, contract: Address) -> List[Address]:
        payload = await self.client.call(
            self._request(
                "alchemy_getOwnersForToken",
                alchemy_rpc_url(chain),
                method="POST",
                json={
                    "id": 1,
                    "jsonrpc": "2.0",
                    "method": "alchemy_getOwnersForToken",
                    "params": [contract, None],
                },
            )
        )
        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            raise UpstreamProtocolError(
                "Unexpected alchemy_getOwnersForToken response", Provider.ALCHEMY.value,
                payload.get("error") if isinstance(payload, dict) else None,
            )
        return normalize_addresses(result.get("owners") or [])

    async def asset_transfers(
        self,
        chain: Chain,
        addresses: Iterable[Any],
        order: str = "desc",
    ) -> TransferIndex:
        """
        NFT transfers into the given owners, as one RPC call for the chain.

        Args:
            chain: Folded chain
            addresses: Owner addresses
            order: "desc" (newest first) or "asc"

        Returns:
            TransferIndex with the latest transfer per (contract, tokenId)
        """
        owners = normalize_addresses(addresses)
        if not owners:
            raise BadRequestError("No addresses provided for getAssetTransfers")
        order = "asc" if order == "asc" else "desc"

        cache_key = transfers_cache_key(chain, owners, order)
        cached = await self.cache.get(CacheKind.TRANSFERS, cache_key)
        if cached is not None:
            return cached

        params: Dict[str, Any] = {
            "category": TRANSFER_CATEGORIES,
            "fromBlock": "0x0",
            "toBlock": "latest",
            "withMetadata": True,
            "excludeZeroValue": True,
            "maxCount": "0x64",
            "order": order,
            "toAddress": owners[0] if len(owners) == 1 else list(owners),
        }
        payload = await self.client.call(
            self._request(
                "alchemy_getAssetTransfers",
                alchemy_rpc_url(chain),
                method="POST",
                json={"id": 1, "jsonrpc": "2.0", "method": "alchemy_getAssetTransfers", "params": [params]},
            )
        )

        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            raise UpstreamProtocolError(
                "Unexpected alchemy_getAssetTransfers response", Provider.ALCHEMY.value,
                payload.get("error") if isinstance(payload, dict) else None,
            )

        transfers = parse_transfers(chain, result.get("transfers") or [])
        index = TransferIndex.build(chain, owners, transfers)
        await self.cache.set(CacheKind.TRANSFERS, cache_key, index)
        logger.info(f"Indexed {len(transfers)} transfers for {len(owners)} owners on {chain.value}")
        return index

    async def passthrough(self, endpoint: str, chain: Chain, params: Dict[str, Any]) -> Any:
        """
        Forward a read-only NFT API call and cache the raw response.

        Args:
            endpoint: Endpoint name as requested (any case)
            chain: Folded chain
            params: Remaining query parameters

        Returns:
            Upstream JSON payload
        """
        name = NFT_ENDPOINTS.get(endpoint.lower())
        if name is None:
            if "nft" not in endpoint.lower():
                raise BadRequestError(f"Unsupported endpoint: {endpoint}")
            name = endpoint

        cache_key = self.cache.generate_key(name.lower(), chain.value, params)
        cached = await self.cache.get(CacheKind.GENERIC, cache_key)
        if cached is not None:
            return cached

        payload = await self.client.call(
            self._request(name, alchemy_nft_url(chain, name), params=params)
        )
        await self.cache.set(CacheKind.GENERIC, cache_key, payload)
        return payload


# Global NFT indexer service instance
nft_indexer_service = NftIndexerService()


async def get_nft_indexer_service() -> NftIndexerService:
    """
    Get NFT indexer service instance.

    Returns:
        NftIndexerService: NFT indexer service instance
    """
    return nft_indexer_service
