"""Tests for the Jellyseerr client and request payloads."""

from __future__ import annotations

import json
from typing import cast

import httpx
import pytest

from app.models import RequestRecord
from app.services.jellyseerr import (
    JellyseerrClient,
    JellyseerrError,
    build_request_payload,
    match_request,
)


def _client(handler, make_settings, **overrides) -> tuple[httpx.AsyncClient, JellyseerrClient]:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://seerr.test/api/v1"
    )
    return http_client, JellyseerrClient(make_settings(**overrides), http_client)


@pytest.mark.parametrize(
    "body",
    [
        [{"id": 4, "media": {"tmdbId": 278, "mediaType": "movie"}}],
        {"pageInfo": {}, "results": [{"id": 4, "media": {"tmdbId": "278", "mediaType": "movie"}}]},
    ],
)
@pytest.mark.anyio("asyncio")
async def test_list_requests_accepts_both_shapes(body, make_settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=body)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        records = await client.list_requests()

    assert records is not None
    assert [(r.request_id, r.tmdb_id, r.media_type) for r in records] == [(4, 278, "movie")]
    assert seen[0].url.path == "/api/v1/request"
    assert seen[0].url.params["take"] == "100"
    assert seen[0].headers["X-Api-Key"] == "seerr-key"


@pytest.mark.anyio("asyncio")
async def test_list_requests_skips_incomplete_entries(make_settings) -> None:
    body = {
        "results": [
            {"id": 1},
            {"id": 2, "media": None},
            "junk",
            {"id": 3, "media": {"tmdbId": None}},
            {"id": 5, "media": {"tmdbId": 603, "mediaType": "movie"}},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        records = await client.list_requests()
        found = await client.find_request(603)
        missing = await client.find_request(1)

    assert records is not None
    assert [record.request_id for record in records] == [5]
    assert found is not None and found.request_id == 5
    assert missing is None


@pytest.mark.anyio("asyncio")
async def test_find_request_respects_media_type(make_settings) -> None:
    body = {
        "results": [
            {"id": 8, "media": {"tmdbId": 1396, "mediaType": "movie"}},
            {"id": 9, "media": {"tmdbId": 1396, "mediaType": "tv"}},
            {"id": 10, "media": {"tmdbId": 603}},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        tv = await client.find_request(1396, "tv")
        movie = await client.find_request(1396, "movie")
        untyped = await client.find_request(603, "movie")
        untyped_tv = await client.find_request(603, "tv")

    assert tv is not None and tv.request_id == 9
    assert movie is not None and movie.request_id == 8
    assert untyped is not None and untyped.request_id == 10
    assert untyped_tv is not None and untyped_tv.request_id == 10


def test_match_request_skips_other_media_type() -> None:
    records = [RequestRecord(8, 1396, "movie")]

    assert match_request(records, 1396, "tv") is None
    assert match_request(records, 1396, "movie") is records[0]
    assert match_request(records, 1396) is records[0]


@pytest.mark.parametrize(
    ("status", "body"),
    [
        (500, {"text": "boom"}),
        (200, {"text": "<html>"}),
        (200, {"json": {"unexpected": True}}),
    ],
)
@pytest.mark.anyio("asyncio")
async def test_list_requests_failure_is_none(status, body, make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, **body)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        assert await client.list_requests() is None
        assert await client.find_request(278) is None


@pytest.mark.anyio("asyncio")
async def test_get_request_normalizes_detail(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/request/4"
        return httpx.Response(
            200,
            json={
                "id": 4,
                "media": {
                    "tmdbId": 278,
                    "mediaType": "movie",
                    "status": 3,
                    "downloadStatus": [{"status": "downloading", "size": 4, "sizeLeft": 1}],
                },
            },
        )

    http_client, client = _client(handler, make_settings)
    async with http_client:
        detail = await client.get_request(4)

    assert detail is not None
    assert detail.progress.status_label == "Downloading"
    assert detail.progress.percent == 75


@pytest.mark.anyio("asyncio")
async def test_get_request_not_found_is_none(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Request not found."})

    http_client, client = _client(handler, make_settings)
    async with http_client:
        assert await client.get_request(4) is None


@pytest.mark.anyio("asyncio")
async def test_create_request_posts_payload(make_settings) -> None:
    posted: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        posted.append(json.loads(request.content))
        return httpx.Response(201, json={"id": 12})

    http_client, client = _client(handler, make_settings)
    payload = build_request_payload(make_settings(), 278, "movie")
    async with http_client:
        body = await client.create_request(payload)

    assert body == {"id": 12}
    assert posted == [payload]


@pytest.mark.parametrize(
    ("status", "body", "message"),
    [
        (409, {"json": {"message": "Request already exists"}}, "409"),
        (500, {"text": "Internal"}, "Invalid JSON"),
    ],
)
@pytest.mark.anyio("asyncio")
async def test_create_request_rejections_raise(status, body, message, make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, **body)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        with pytest.raises(JellyseerrError, match=message):
            await client.create_request({"mediaType": "movie", "mediaId": 1})


@pytest.mark.anyio("asyncio")
async def test_create_request_network_error_raises(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    http_client, client = _client(handler, make_settings)
    async with http_client:
        with pytest.raises(JellyseerrError, match="unreachable"):
            await client.create_request({"mediaType": "movie", "mediaId": 1})


def test_movie_payload_uses_configured_defaults(make_settings) -> None:
    payload = build_request_payload(make_settings(), 278, "movie")

    assert payload == {
        "mediaType": "movie",
        "mediaId": 278,
        "serverId": 0,
        "is4k": False,
        "profileId": 3,
        "rootFolder": "/movies",
        "userId": 1,
    }


def test_tv_payload_requests_the_season(make_settings) -> None:
    settings = make_settings(JELLYSEERR_TV_ROOT="/shows", JELLYSEERR_IS_4K=True)

    payload = build_request_payload(settings, 1396, "tv", season=2, episode=5)

    assert payload["mediaType"] == "tv"
    assert payload["seasons"] == [2]
    assert payload["rootFolder"] == "/shows"
    assert payload["is4k"] is True


def test_tv_payload_requires_season(make_settings) -> None:
    with pytest.raises(ValueError, match="Missing or invalid season for TV"):
        build_request_payload(make_settings(), 1396, "tv")


def test_client_requires_api_key(make_settings) -> None:
    with pytest.raises(ValueError, match="API key is required"):
        JellyseerrClient(
            make_settings(JELLYSEERR_API_KEY=""), cast(httpx.AsyncClient, object())
        )
