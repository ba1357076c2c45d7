"""Pytest configuration and test helpers."""

from __future__ import annotations

import json
import sys
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
import pytest

# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.services.jellyfin import JellyfinClient  # noqa: E402
from app.services.jellyseerr import JellyseerrClient  # noqa: E402
from app.services.library import LibraryItemLocator  # noqa: E402
from app.services.streams import StreamDecisionEngine, StreamService  # noqa: E402
from app.services.title_mapping import CrossReferenceResolver, TitleMappingCache  # noqa: E402
from app.services.tmdb import TMDBClient  # noqa: E402

JELLYFIN_HOST = "jellyfin.test"
TMDB_HOST = "tmdb.test"
JELLYSEERR_HOST = "seerr.test"
USER_ID = "user-1"
ACCESS_TOKEN = "token-abc"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with every upstream configured."""

    base: dict[str, Any] = {
        "JELLYFIN_SERVER": f"http://{JELLYFIN_HOST}",
        "JELLYFIN_USERNAME": "addon",
        "JELLYFIN_PW": "secret",
        "TMDB_API_KEY": "tmdb-key",
        "TMDB_API_URL": f"http://{TMDB_HOST}/3",
        "JELLYSEERR_SERVER": f"http://{JELLYSEERR_HOST}",
        "JELLYSEERR_API_KEY": "seerr-key",
        "ADDON_SERVER": "http://addon.test",
        "FRONTEND_URL": "",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[call-arg]


@dataclass
class FakeUpstreams:
    """In-memory stand-ins for TMDB, Jellyfin and Jellyseerr."""

    tmdb_movies: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    tmdb_series: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    tmdb_details: dict[int, dict[str, Any]] = field(default_factory=dict)
    library: list[dict[str, Any]] = field(default_factory=list)
    seasons: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    episodes: dict[tuple[str, str], list[dict[str, Any]]] = field(default_factory=dict)
    items: dict[str, dict[str, Any]] = field(default_factory=dict)
    requests: list[dict[str, Any]] = field(default_factory=list)
    request_details: dict[int, dict[str, Any]] = field(default_factory=dict)
    failing_hosts: set[str] = field(default_factory=set)
    calls: Counter[str] = field(default_factory=Counter)
    created: list[dict[str, Any]] = field(default_factory=list)
    log: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls[host] += 1
        self.log.append(request)
        if host in self.failing_hosts:
            raise httpx.ConnectError("upstream down", request=request)
        if host == TMDB_HOST:
            return self._tmdb(request)
        if host == JELLYFIN_HOST:
            return self._jellyfin(request)
        if host == JELLYSEERR_HOST:
            return self._jellyseerr(request)
        return httpx.Response(404)

    def _tmdb(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/3/find/"):
            imdb_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={
                    "movie_results": self.tmdb_movies.get(imdb_id, []),
                    "tv_results": self.tmdb_series.get(imdb_id, []),
                },
            )
        tmdb_id = path.rsplit("/", 1)[-1]
        if tmdb_id.isdigit() and int(tmdb_id) in self.tmdb_details:
            return httpx.Response(200, json=self.tmdb_details[int(tmdb_id)])
        return httpx.Response(404, json={"status_message": "not found"})

    def _jellyfin(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = request.url.params
        if path == "/Users/AuthenticateByName":
            return httpx.Response(
                200,
                json={
                    "AccessToken": ACCESS_TOKEN,
                    "User": {"Id": USER_ID, "Name": "addon"},
                    "SessionInfo": {"Id": "session-1"},
                },
            )
        if path == "/Items":
            wanted = params.get("IncludeItemTypes")
            term = (params.get("searchTerm") or params.get("SearchTerm") or "").lower()
            matches = [
                item
                for item in self.library
                if item.get("Type") == wanted
                and (not term or term in item.get("Name", "").lower())
            ]
            return httpx.Response(
                200, json={"Items": matches, "TotalRecordCount": len(matches)}
            )
        if path.startswith("/Shows/") and path.endswith("/Seasons"):
            series_id = path.split("/")[2]
            return httpx.Response(200, json={"Items": self.seasons.get(series_id, [])})
        if path.startswith("/Shows/") and path.endswith("/Episodes"):
            series_id = path.split("/")[2]
            key = (series_id, params.get("seasonId", ""))
            return httpx.Response(200, json={"Items": self.episodes.get(key, [])})
        if path.startswith(f"/Users/{USER_ID}/Items/"):
            item_id = path.rsplit("/", 1)[-1]
            if item_id in self.items:
                return httpx.Response(200, json=self.items[item_id])
            return httpx.Response(404)
        if path == "/Sessions/Logout":
            return httpx.Response(204)
        return httpx.Response(404)

    def _jellyseerr(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v1/request" and request.method == "GET":
            return httpx.Response(
                200,
                json={"pageInfo": {"results": len(self.requests)}, "results": self.requests},
            )
        if path == "/api/v1/request" and request.method == "POST":
            body = json.loads(request.content)
            self.created.append(body)
            return httpx.Response(201, json={"id": 99, **body})
        if path.startswith("/api/v1/request/"):
            request_id = int(path.rsplit("/", 1)[-1])
            if request_id in self.request_details:
                return httpx.Response(200, json=self.request_details[request_id])
            return httpx.Response(404, json={"message": "Request not found."})
        return httpx.Response(404)


@dataclass
class Pipeline:
    settings: Settings
    jellyfin: JellyfinClient
    tmdb: TMDBClient
    requests: JellyseerrClient | None
    resolver: CrossReferenceResolver
    locator: LibraryItemLocator
    engine: StreamDecisionEngine
    service: StreamService


@asynccontextmanager
async def open_pipeline(
    upstreams: FakeUpstreams, settings: Settings | None = None
) -> AsyncIterator[Pipeline]:
    """Wire the full resolution pipeline against ``upstreams``."""

    settings = settings or build_settings()
    transport = httpx.MockTransport(upstreams.handler)
    async with httpx.AsyncClient(
        transport=transport, base_url=f"http://{JELLYFIN_HOST}"
    ) as jellyfin_http, httpx.AsyncClient(
        transport=transport, base_url=f"http://{TMDB_HOST}/3"
    ) as tmdb_http, httpx.AsyncClient(
        transport=transport, base_url=f"http://{JELLYSEERR_HOST}/api/v1"
    ) as seerr_http:
        jellyfin = JellyfinClient(settings, jellyfin_http)
        await jellyfin.authenticate()
        tmdb = TMDBClient(settings, tmdb_http)
        requests = (
            JellyseerrClient(settings, seerr_http) if settings.jellyseerr_enabled else None
        )
        resolver = CrossReferenceResolver(tmdb, TitleMappingCache())
        locator = LibraryItemLocator(jellyfin, resolver)
        engine = StreamDecisionEngine(settings, jellyfin, requests)
        upstreams.calls.clear()
        yield Pipeline(
            settings=settings,
            jellyfin=jellyfin,
            tmdb=tmdb,
            requests=requests,
            resolver=resolver,
            locator=locator,
            engine=engine,
            service=StreamService(resolver, locator, engine),
        )


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def pipeline():
    return open_pipeline
