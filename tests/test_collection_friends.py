import httpx
import pytest

from conftest import neynar_user

pytestmark = pytest.mark.anyio("asyncio")

CONTRACT = "0x" + "cc" * 20
ADDR_A = "0x" + "a" * 38 + "01"
ADDR_B = "0x" + "b" * 38 + "02"
ADDR_C = "0x" + "c" * 38 + "03"
ADDR_D = "0x" + "d" * 38 + "04"


def _upstream(following, owners, following_status=200):
    def handler(request):
        if request.url.path == "/v2/farcaster/following":
            assert request.url.params["fid"] == "7"
            if following_status != 200:
                return httpx.Response(following_status, text="unavailable")
            return httpx.Response(
                200, json={"users": [{"object": "follow", "user": user} for user in following], "next": {"cursor": None}}
            )
        if request.url.path.endswith("/getOwnersForContract"):
            return httpx.Response(200, json={"owners": owners})
        raise AssertionError(f"unexpected call {request.url}")

    return handler


FOLLOWING = [
    neynar_user(100, "alpha", verified=[ADDR_A.upper().replace("0X", "0x")]),
    neynar_user(200, "beta", verified=[ADDR_B, ADDR_C]),
]


@pytest.mark.anyio
async def test_friends_are_followed_accounts_holding_the_collection(async_client, mock_upstream):
    calls = await mock_upstream(_upstream(FOLLOWING, [ADDR_B, ADDR_D]))

    response = await async_client.get(
        "/api/collection-friends",
        params={"contractAddress": CONTRACT, "fid": "7", "network": "eth", "limit": "50"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["hasMore"] is False
    assert body["contract"] == CONTRACT
    assert body["friends"] == [
        {
            "fid": 200,
            "username": "beta",
            "displayName": "Beta",
            "imageUrl": "https://img.example/beta.png",
            "address": ADDR_B,
        }
    ]
    assert {call.url.host for call in calls} == {"api.neynar.com", "eth-mainnet.g.alchemy.com"}


@pytest.mark.anyio
async def test_limit_truncates_but_total_counts_everything(async_client, mock_upstream):
    calls = await mock_upstream(_upstream(FOLLOWING, [ADDR_A, ADDR_B, ADDR_C]))

    params = {"contractAddress": CONTRACT, "fid": "7", "limit": "2"}
    response = await async_client.get("/api/collection-friends", params=params)

    body = response.json()
    assert body["total"] == 3
    assert body["hasMore"] is True
    assert [(f["fid"], f["address"]) for f in body["friends"]] == [(100, ADDR_A), (200, ADDR_B)]

    # The full match list is cached; a different limit is served from it
    wider = await async_client.get("/api/collection-friends", params={**params, "limit": "10"})
    assert wider.json()["total"] == 3
    assert len(wider.json()["friends"]) == 3
    assert len(calls) == 2


@pytest.mark.anyio
async def test_shared_address_goes_to_the_first_followed_profile(async_client, mock_upstream):
    following = [
        neynar_user(100, "alpha", verified=[ADDR_A]),
        neynar_user(200, "beta", verified=[ADDR_A, ADDR_B]),
    ]
    await mock_upstream(_upstream(following, [ADDR_A]))

    response = await async_client.get(
        "/api/collection-friends", params={"contractAddress": CONTRACT, "fid": "7"}
    )

    body = response.json()
    assert body["total"] == 1
    assert [(f["fid"], f["address"]) for f in body["friends"]] == [(100, ADDR_A)]


@pytest.mark.anyio
async def test_custody_address_alone_is_matched(async_client, mock_upstream):
    following = [neynar_user(300, "gamma", custody=ADDR_D.upper().replace("0X", "0x"))]
    await mock_upstream(_upstream(following, [ADDR_D]))

    response = await async_client.get(
        "/api/collection-friends", params={"contractAddress": CONTRACT, "fid": "7"}
    )

    body = response.json()
    assert body["total"] == 1
    assert body["friends"][0]["fid"] == 300
    assert body["friends"][0]["address"] == ADDR_D


@pytest.mark.anyio
async def test_following_nobody_is_an_empty_success(async_client, mock_upstream):
    await mock_upstream(_upstream([], [ADDR_A]))

    response = await async_client.get(
        "/api/collection-friends", params={"contractAddress": CONTRACT, "fid": "7"}
    )

    assert response.status_code == 200
    assert response.json()["friends"] == []
    assert response.json()["total"] == 0


@pytest.mark.anyio
async def test_social_indexer_failure_is_a_5xx(async_client, mock_upstream):
    await mock_upstream(_upstream(FOLLOWING, [ADDR_A], following_status=503))

    response = await async_client.get(
        "/api/collection-friends", params={"contractAddress": CONTRACT, "fid": "7"}
    )

    assert response.status_code == 502
    assert response.json()["error"] == "Upstream Error"


@pytest.mark.anyio
async def test_action_parameter_dispatches_regardless_of_path(async_client, mock_upstream):
    await mock_upstream(_upstream(FOLLOWING, [ADDR_B]))
    params = {"action": "collectionFriends", "contractAddress": CONTRACT, "fid": "7"}

    via_alias = await async_client.get("/api/all-in-one", params=params)
    via_other_path = await async_client.get("/api/anything/else", params=params)

    assert via_alias.status_code == 200
    assert via_alias.json()["total"] == 1
    assert via_other_path.json() == via_alias.json()


@pytest.mark.anyio
async def test_all_in_one_without_action_is_400(async_client):
    missing = await async_client.get("/api/all-in-one")
    unknown = await async_client.get("/api/all-in-one", params={"action": "teleport"})

    assert missing.status_code == 400
    assert missing.json()["message"] == "Missing action parameter"
    assert unknown.status_code == 400


@pytest.mark.anyio
async def test_parameters_are_validated(async_client):
    no_contract = await async_client.get("/api/collection-friends", params={"fid": "7"})
    no_fid = await async_client.get("/api/collection-friends", params={"contractAddress": CONTRACT})
    bad_contract = await async_client.get(
        "/api/collection-friends", params={"contractAddress": "0xKKK", "fid": "7"}
    )
    bad_limit = await async_client.get(
        "/api/collection-friends", params={"contractAddress": CONTRACT, "fid": "7", "limit": "0"}
    )

    assert no_contract.json()["message"] == "contractAddress is required"
    assert no_fid.json()["message"] == "fid (Farcaster ID) is required"
    assert bad_contract.status_code == 400
    assert bad_limit.status_code == 400
