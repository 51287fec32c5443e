import httpx
import pytest

from app.api.services.social_resolver import profile_from_user, social_resolver
from app.core.exceptions import UpstreamHTTPError
from app.domain.models.address import Handle
from conftest import json_body, neynar_user

pytestmark = pytest.mark.anyio("asyncio")

DWR_CUSTODY = "0x5a927ac639636e534b678e81768ca19e2c6280b7"
V_CUSTODY = "0x4114e33eb831858649ea3702e1c9a2db3f626446"
V_VERIFIED = "0x" + "ab" * 20


def _not_found_graphql():
    return httpx.Response(
        200, json={"data": {"farcasterProfile": None}, "errors": [{"message": "Profile not found"}]}
    )


@pytest.mark.anyio
async def test_profile_lookup_by_username(async_client, mock_upstream):
    def handler(request):
        if request.url.path == "/v2/farcaster/user/search":
            assert request.url.params["q"] == "dwr"
            assert request.headers["api_key"] == "test-neynar-key"
            return httpx.Response(
                200, json={"result": {"users": [neynar_user(1, "dwr", custody=DWR_CUSTODY.upper().replace("0X", "0x"))]}}
            )
        if request.url.path == "/v2/farcaster/user/verified-addresses":
            return httpx.Response(200, json={"verified_addresses": []})
        raise AssertionError(f"unexpected call {request.url}")

    await mock_upstream(handler)

    response = await async_client.get("/api/farcaster-profile", params={"username": "dwr"})

    assert response.status_code == 200
    body = response.json()
    assert body["fid"] == 1
    assert body["username"] == "dwr"
    assert body["custodyAddress"] == DWR_CUSTODY
    assert body["connectedAddresses"] == [DWR_CUSTODY]


@pytest.mark.anyio
async def test_profile_lookup_by_fid_falls_back_to_graphql(async_client, mock_upstream):
    def handler(request):
        if request.url.host == "api.neynar.com":
            return httpx.Response(500, json={"message": "internal error"})
        if request.url.host == "public.zapper.xyz":
            assert request.headers["x-zapper-api-key"] == "test-zapper-key"
            assert json_body(request)["variables"] == {"fid": 2}
            return httpx.Response(
                200,
                json={
                    "data": {
                        "farcasterProfile": {
                            "username": "v",
                            "fid": 2,
                            "metadata": {"displayName": "Varun", "description": "gm", "imageUrl": None},
                            "custodyAddress": V_CUSTODY,
                            "connectedAddresses": [V_VERIFIED],
                        }
                    }
                },
            )
        raise AssertionError(f"unexpected call {request.url}")

    calls = await mock_upstream(handler)

    response = await async_client.get("/api/farcaster-profile", params={"fid": "2"})

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "v"
    assert body["displayName"] == "Varun"
    assert body["bio"] == "gm"
    assert set(body["connectedAddresses"]) == {V_CUSTODY, V_VERIFIED}
    assert [call.url.host for call in calls] == ["api.neynar.com", "public.zapper.xyz"]


@pytest.mark.anyio
async def test_unknown_username_is_404(async_client, mock_upstream):
    def handler(request):
        if request.url.host == "api.neynar.com":
            return httpx.Response(200, json={"result": {"users": []}})
        return _not_found_graphql()

    calls = await mock_upstream(handler)

    response = await async_client.get(
        "/api/farcaster-profile", params={"username": "this-handle-does-not-exist-xyz"}
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Profile Not Found"
    # Not-found on the primary GraphQL endpoint does not try the backup
    assert [call.url.host for call in calls] == ["api.neynar.com", "public.zapper.xyz"]


@pytest.mark.anyio
async def test_missing_parameters_is_400(async_client):
    response = await async_client.get("/api/farcaster-profile")

    assert response.status_code == 400
    assert response.json() == {
        "error": "Bad Request",
        "message": "Either username or fid parameter is required",
    }


@pytest.mark.anyio
@pytest.mark.parametrize("fid", ["\u00b2", "\u0663", "-5"])
async def test_non_ascii_digit_fids_are_400(async_client, fid):
    profile = await async_client.get("/api/farcaster-profile", params={"fid": fid})
    friends = await async_client.get(
        "/api/collection-friends", params={"fid": fid, "contractAddress": "0x" + "cc" * 20}
    )

    assert profile.status_code == 400
    assert friends.status_code == 400
    assert profile.json()["message"] == "fid must be a non-negative integer"


@pytest.mark.anyio
async def test_profiles_are_cached_under_both_handles(async_client, mock_upstream):
    def handler(request):
        if request.url.path == "/v2/farcaster/user/search":
            return httpx.Response(
                200, json={"result": {"users": [neynar_user(1, "dwr", custody=DWR_CUSTODY, verified=[V_VERIFIED])]}}
            )
        raise AssertionError(f"unexpected call {request.url}")

    calls = await mock_upstream(handler)

    first = await async_client.get("/api/farcaster-profile", params={"username": "DWR"})
    by_name = await async_client.get("/api/farcaster-profile", params={"username": "dwr"})
    by_fid = await async_client.get("/api/farcaster-profile", params={"fid": "1"})

    assert first.json()["fid"] == by_name.json()["fid"] == by_fid.json()["fid"] == 1
    assert len(calls) == 1


@pytest.mark.anyio
async def test_exact_username_match_is_preferred(mock_upstream):
    await mock_upstream(
        lambda request: httpx.Response(
            200,
            json={
                "result": {
                    "users": [
                        neynar_user(10, "alice2", custody=V_CUSTODY, verified=[V_VERIFIED]),
                        neynar_user(11, "Alice", custody=DWR_CUSTODY, verified=[V_VERIFIED]),
                    ]
                }
            },
        )
    )

    profile = await social_resolver.resolve(Handle.for_username("alice"))
    assert profile.fid == 11


@pytest.mark.anyio
async def test_custody_only_profiles_get_verified_addresses(mock_upstream):
    def handler(request):
        if request.url.path == "/v2/farcaster/user/bulk":
            assert request.url.params["fids"] == "2"
            return httpx.Response(200, json={"users": [neynar_user(2, "v", custody=V_CUSTODY)]})
        if request.url.path == "/v2/farcaster/user/verified-addresses":
            return httpx.Response(
                200, json={"verified_addresses": [{"addr": V_VERIFIED.upper().replace("0X", "0x"), "type": "ethereum"}]}
            )
        raise AssertionError(f"unexpected call {request.url}")

    await mock_upstream(handler)

    profile = await social_resolver.resolve(Handle.for_fid(2))
    assert profile.connected_addresses == [V_CUSTODY, V_VERIFIED]


def test_profile_from_user_understands_v1_records():
    profile = profile_from_user(
        {
            "fid": 5,
            "username": "five",
            "displayName": "Five",
            "pfp": {"url": "https://img.example/5.png"},
            "profile": {"bio": {"text": "hello"}},
            "custodyAddress": V_CUSTODY,
            "followerCount": 7,
        }
    )
    assert profile.display_name == "Five"
    assert profile.image_url == "https://img.example/5.png"
    assert profile.bio == "hello"
    assert profile.follower_count == 7
    assert profile_from_user({"username": "nofid"}) is None


@pytest.mark.anyio
async def test_following_walks_cursor_pages(mock_upstream):
    pages = {
        None: {"users": [{"object": "follow", "user": neynar_user(10, "a")}, {"object": "follow", "user": neynar_user(11, "b")}], "next": {"cursor": "c1"}},
        "c1": {"users": [{"object": "follow", "user": neynar_user(11, "b")}, {"object": "follow", "user": neynar_user(12, "c")}], "next": {"cursor": None}},
    }

    def handler(request):
        assert request.url.path == "/v2/farcaster/following"
        return httpx.Response(200, json=pages[request.url.params.get("cursor")])

    calls = await mock_upstream(handler)

    following = await social_resolver.list_following(7, page_size=2)

    assert [user.fid for user in following.users] == [10, 11, 12]
    assert following.pages == 2
    assert following.partial is False

    again = await social_resolver.list_following(7, page_size=2)
    assert again == following
    assert len(calls) == 2


@pytest.mark.anyio
async def test_following_falls_back_to_v1_endpoint(mock_upstream):
    def handler(request):
        if request.url.path == "/v2/farcaster/following":
            return httpx.Response(400, json={"message": "bad request"})
        return httpx.Response(200, json={"result": {"users": [{"fid": 10, "username": "a"}], "next": {"cursor": None}}})

    calls = await mock_upstream(handler)

    following = await social_resolver.list_following(7)

    assert [user.fid for user in following.users] == [10]
    assert [call.url.path for call in calls] == ["/v2/farcaster/following", "/v1/farcaster/following"]


@pytest.mark.anyio
async def test_following_failure_after_first_page_is_partial(mock_upstream):
    def handler(request):
        if request.url.params.get("cursor") == "c1":
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"users": [neynar_user(10, "a")], "next": {"cursor": "c1"}})

    calls = await mock_upstream(handler)

    following = await social_resolver.list_following(7)
    assert following.partial is True
    assert [user.fid for user in following.users] == [10]

    # Partial lists are not cached
    await social_resolver.list_following(7)
    assert len(calls) == 4


@pytest.mark.anyio
async def test_following_failure_on_first_page_propagates(mock_upstream):
    await mock_upstream(lambda request: httpx.Response(500, text="down"))

    with pytest.raises(UpstreamHTTPError):
        await social_resolver.list_following(7)
