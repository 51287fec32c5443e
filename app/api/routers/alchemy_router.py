"""
NFT Indexer Router.
Exposes holdings, owners, transfers and read-only passthrough calls keyed by `endpoint`.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError

from app.api.dto.alchemy_dto import AssetTransfersRequestDTO, OwnedNftsResponseDTO, OwnersResponseDTO
from app.api.services.nft_indexer_service import NftIndexerService, get_nft_indexer_service
from app.core.exceptions import BadRequestError, MethodNotAllowedError
from app.core.logging import get_logger
from app.domain.models.address import Address
from app.domain.models.chain import Chain
from app.infrastructure.upstream.client import run_with_deadline

logger = get_logger(__name__)

# Create router
router = APIRouter()

_ROUTING_PARAMS = {"endpoint", "chain", "network"}


def _extra_params(request: Request) -> Dict[str, Any]:
    """Query parameters other than the routing ones; repeated keys become lists."""
    params: Dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in _ROUTING_PARAMS:
            continue
        if key in params:
            existing = params[key]
            params[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


def _chains(value: Optional[str]) -> List[Chain]:
    if not value:
        return [Chain.ETHEREUM]
    return [Chain.fold(item) for item in value.split(",") if item.strip()] or [Chain.ETHEREUM]


@router.api_route("/alchemy", methods=["GET", "POST"])
async def alchemy(
    request: Request,
    endpoint: Optional[str] = Query(None, description="Indexer endpoint name (any case)"),
    chain: Optional[str] = Query(None, description="Chain or comma-separated chains"),
    network: Optional[str] = Query(None, description="Synonym for chain"),
    indexer: NftIndexerService = Depends(get_nft_indexer_service),
) -> Dict[str, Any]:
    """
    Dispatch an NFT indexer request by endpoint name.

    Supported:
        getNFTsForOwner: normalized holdings, fanned out across chains
        getOwnersForContract: every owner of a contract
        getAssetTransfers: transfer index for owner addresses (POST body)
        getNFTsForCollection, getNFTMetadata, getContractMetadata,
        getContractsForOwner and other NFT API names: passthrough
    """
    if not endpoint:
        raise BadRequestError("Missing endpoint parameter")

    name = endpoint.lower()
    chain_value = chain or network
    logger.info(f"Indexer request {endpoint} on {chain_value or 'ethereum'}")

    if name == "getassettransfers":
        return await run_with_deadline(_asset_transfers(request, chain_value, indexer))

    if request.method != "GET":
        raise MethodNotAllowedError(request.method)

    params = _extra_params(request)

    if name == "getnftsforowner":
        return await run_with_deadline(_nfts_for_owner(params, chain_value, indexer))

    if name == "getownersforcontract":
        contract = params.get("contractAddress")
        if not contract:
            raise BadRequestError("Missing contractAddress parameter")
        owners = await run_with_deadline(
            indexer.owners_for_contract(_chains(chain_value)[0], Address(contract))
        )
        return OwnersResponseDTO(owners=sorted(owners), total_count=len(owners)).model_dump(by_alias=True)

    return await run_with_deadline(indexer.passthrough(endpoint, _chains(chain_value)[0], params))


async def _nfts_for_owner(
    params: Dict[str, Any], chain_value: Optional[str], indexer: NftIndexerService
) -> Dict[str, Any]:
    owner = params.get("owner")
    if not owner:
        raise BadRequestError("Missing owner parameter")

    filters = params.get("excludeFilters[]", params.get("excludeFilters"))
    if isinstance(filters, str):
        filters = [filters]

    try:
        page_size = int(params.get("pageSize", 100))
    except (TypeError, ValueError):
        raise BadRequestError("pageSize must be an integer")

    options = {
        "page_key": params.get("pageKey"),
        "page_size": page_size,
        "exclude_filters": filters,
        "with_metadata": params.get("withMetadata") != "false",
    }
    chains = _chains(chain_value)
    address = Address(owner)

    if len(set(chains)) == 1:
        page = await indexer.nfts_for_owner(chains[0], address, **options)
        response = OwnedNftsResponseDTO(
            owned_nfts=[nft.model_dump(mode="json", by_alias=True) for nft in page.items],
            page_key=page.page_key,
            total_count=page.total_count,
        )
        return response.model_dump(by_alias=True, exclude={"page_keys"})

    nfts, page_keys = await indexer.nfts_for_owner_on_chains(chains, address, **options)
    response = OwnedNftsResponseDTO(
        owned_nfts=[nft.model_dump(mode="json", by_alias=True) for nft in nfts],
        page_keys=page_keys,
    )
    return response.model_dump(by_alias=True, exclude={"page_key", "total_count"})


async def _asset_transfers(
    request: Request, chain_value: Optional[str], indexer: NftIndexerService
) -> Dict[str, Any]:
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            raise BadRequestError("Request body must be JSON")
        if not isinstance(body, dict):
            raise BadRequestError("Request body must be a JSON object")
    else:
        body = {
            "addresses": request.query_params.get("addresses", ""),
            "order": request.query_params.get("order", "desc"),
        }

    try:
        dto = AssetTransfersRequestDTO(**body)
    except ValidationError as e:
        raise BadRequestError(
            "No addresses provided for getAssetTransfers",
            [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        )

    chain = Chain.fold(dto.chain or dto.network or chain_value)
    index = await indexer.asset_transfers(chain, dto.addresses, dto.order)
    return index.to_response()
