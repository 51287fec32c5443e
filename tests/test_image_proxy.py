import httpx
import pytest
from structlog.testing import capture_logs

from app.infrastructure.media.gateways import (
    CdnVariantSwap,
    DirectFetch,
    IpfsFallback,
    MediaGateways,
    next_target,
    sniff_image_type,
)
from conftest import PNG_BYTES

pytestmark = pytest.mark.anyio("asyncio")

GATEWAYS = ["https://gw-one.example/ipfs/", "https://gw-two.example/ipfs/", "https://gw-three.example/ipfs/"]


@pytest.mark.anyio
async def test_ipfs_walks_gateways_until_an_image_is_served(async_client, mock_upstream):
    def handler(request):
        if request.url.host == "cloudflare-ipfs.com":
            return httpx.Response(403, text="forbidden")
        return httpx.Response(200, content=PNG_BYTES)

    calls = await mock_upstream(handler)

    response = await async_client.get("/api/image-proxy", params={"url": "ipfs://QmXyz/1.png"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "public, max-age=31536000"
    assert response.content == PNG_BYTES
    assert [str(call.url) for call in calls] == [
        "https://cloudflare-ipfs.com/ipfs/QmXyz/1.png",
        "https://ipfs.io/ipfs/QmXyz/1.png",
    ]


@pytest.mark.anyio
async def test_exhausted_attempts_serve_a_placeholder(async_client, mock_upstream):
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    calls = await mock_upstream(handler)

    response = await async_client.get(
        "/api/image-proxy", params={"url": "https://invalid.example/nope.png"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/svg+xml"
    assert "cache-control" not in response.headers
    assert b"Image Not Available" in response.content
    assert b"invalid.example" in response.content
    assert len(calls) == 4


@pytest.mark.anyio
async def test_cdn_swaps_variant_on_client_error(async_client, mock_upstream):
    def handler(request):
        if request.url.path.endswith("/original"):
            return httpx.Response(404)
        return httpx.Response(200, content=b"\xff\xd8\xff\xe0jpeg", headers={"content-type": "image/jpeg"})

    calls = await mock_upstream(handler)

    response = await async_client.get(
        "/api/image-proxy", params={"url": "https://nft-cdn.alchemy.com/eth-mainnet/abc123"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert [call.url.path for call in calls] == ["/eth-mainnet/abc123/original", "/eth-mainnet/abc123/thumb"]
    assert calls[0].url.params["apiKey"] == "test-alchemy-key"


@pytest.mark.anyio
async def test_cdn_network_error_retries_the_same_variant(async_client, mock_upstream):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, content=PNG_BYTES)

    calls = await mock_upstream(handler)

    response = await async_client.get(
        "/api/image-proxy", params={"url": "https://nft-cdn.alchemy.com/eth-mainnet/abc123"}
    )

    assert response.headers["content-type"] == "image/png"
    assert [call.url.path for call in calls] == ["/eth-mainnet/abc123/original", "/eth-mainnet/abc123/original"]


@pytest.mark.anyio
async def test_cdn_api_key_stays_out_of_the_logs(async_client, mock_upstream):
    await mock_upstream(lambda request: httpx.Response(404))

    with capture_logs() as logs:
        response = await async_client.get(
            "/api/image-proxy", params={"url": "https://nft-cdn.alchemy.com/eth-mainnet/abc123"}
        )

    assert response.headers["content-type"] == "image/svg+xml"
    media_calls = [entry for entry in logs if entry.get("provider") == "media"]
    assert media_calls
    assert any("apiKey=[REDACTED]" in entry["endpoint"] for entry in media_calls)
    assert "test-alchemy-key" not in repr(logs)


@pytest.mark.anyio
async def test_redirects_to_local_addresses_are_refused(async_client, mock_upstream):
    def handler(request):
        if request.url.host == "images.example":
            return httpx.Response(302, headers={"location": "http://127.0.0.1:8080/admin.png"})
        return httpx.Response(200, content=PNG_BYTES)

    calls = await mock_upstream(handler)

    response = await async_client.get("/api/image-proxy", params={"url": "https://images.example/a.png"})

    assert response.status_code == 400
    assert response.json()["message"] == "Proxying to local addresses is not allowed"
    assert [call.url.host for call in calls] == ["images.example"]


@pytest.mark.anyio
async def test_redirects_to_public_hosts_are_followed(async_client, mock_upstream):
    def handler(request):
        if request.url.host == "images.example":
            return httpx.Response(301, headers={"location": "https://cdn.example/moved.png"})
        return httpx.Response(200, content=PNG_BYTES)

    calls = await mock_upstream(handler)

    response = await async_client.get("/api/image-proxy", params={"url": "https://images.example/a.png"})

    assert response.status_code == 200
    assert response.content == PNG_BYTES
    assert [call.url.host for call in calls] == ["images.example", "cdn.example"]


@pytest.mark.anyio
async def test_non_image_bodies_are_not_proxied(async_client, mock_upstream):
    await mock_upstream(
        lambda request: httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})
    )

    response = await async_client.get("/api/image-proxy", params={"url": "https://example.com/a.png"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/svg+xml"


@pytest.mark.anyio
async def test_sniffed_type_replaces_generic_content_type(async_client, mock_upstream):
    await mock_upstream(
        lambda request: httpx.Response(
            200, content=b"GIF89a" + b"\x00" * 32, headers={"content-type": "application/octet-stream"}
        )
    )

    response = await async_client.get("/api/image-proxy", params={"url": "ar://tx-id"})

    assert response.headers["content-type"] == "image/gif"


@pytest.mark.anyio
async def test_unusable_urls_get_a_placeholder(async_client):
    response = await async_client.get("/api/image-proxy", params={"url": "ftp://files.example/a.png"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/svg+xml"


@pytest.mark.anyio
async def test_local_targets_and_missing_url_are_rejected(async_client):
    local = await async_client.get("/api/image-proxy", params={"url": "http://localhost:8000/secret.png"})
    missing = await async_client.get("/api/image-proxy")

    assert local.status_code == 400
    assert missing.status_code == 400
    assert missing.json()["message"] == "Missing url parameter"


def test_rewrite_rules():
    gateways = MediaGateways(GATEWAYS, "https://arweave.example/", "nft-cdn.alchemy.com")

    ipfs = gateways.rewrite("ipfs://ipfs/QmHash")
    assert ipfs.url == "https://gw-one.example/ipfs/QmHash"
    assert isinstance(ipfs.state, IpfsFallback)

    arweave = gateways.rewrite("ar://abc")
    assert arweave.url == "https://arweave.example/abc"
    assert isinstance(arweave.state, DirectFetch)

    hosted = gateways.rewrite("https://gw-two.example/ipfs/QmHash/meta.png")
    assert hosted.url == "https://gw-two.example/ipfs/QmHash/meta.png"
    assert hosted.state.gateways == (GATEWAYS[0], GATEWAYS[2])

    cdn = gateways.rewrite("https://nft-cdn.alchemy.com/eth-mainnet/x/thumb")
    assert isinstance(cdn.state, CdnVariantSwap)


def test_ipfs_fallback_advances_then_gives_up():
    gateways = MediaGateways(GATEWAYS[:2], "https://arweave.example/", "nft-cdn.alchemy.com")
    target = gateways.rewrite("ipfs://QmHash")

    second = next_target(target, 404)
    assert second.url == "https://gw-two.example/ipfs/QmHash"
    assert next_target(second, None) is None


def test_cdn_fallback_swaps_then_strips_query():
    gateways = MediaGateways(GATEWAYS, "https://arweave.example/", "nft-cdn.alchemy.com")
    target = gateways.rewrite("https://nft-cdn.alchemy.com/eth-mainnet/x/original?apiKey=k")

    assert next_target(target, 503) is target
    assert next_target(target, None) is target
    swapped = next_target(target, 404)
    assert swapped.url == "https://nft-cdn.alchemy.com/eth-mainnet/x/thumb?apiKey=k"
    stripped = next_target(swapped, 403)
    assert stripped.url == "https://nft-cdn.alchemy.com/eth-mainnet/x/thumb"
    assert next_target(stripped, 404) is None


def test_direct_fetch_retries_only_transient_failures():
    gateways = MediaGateways(GATEWAYS, "https://arweave.example/", "nft-cdn.alchemy.com")
    target = gateways.rewrite("https://example.com/a.png")

    assert next_target(target, None) is target
    assert next_target(target, 502) is target
    assert next_target(target, 429) is target
    assert next_target(target, 404) is None


@pytest.mark.parametrize(
    "head,expected",
    [
        (PNG_BYTES, "image/png"),
        (b"\xff\xd8\xff\xdb", "image/jpeg"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"\x00\x00\x00\x1cftypavif", "image/avif"),
        (b'<?xml version="1.0"?><svg xmlns="http://www.w3.org/2000/svg">', "image/svg+xml"),
        (b"<html></html>", None),
    ],
)
def test_magic_bytes(head, expected):
    assert sniff_image_type(head) == expected
