"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from urllib.parse import parse_qs

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from .config import settings
from .manifest import build_manifest, find_catalog
from .services.catalog import CatalogService
from .services.jellyfin import JellyfinClient
from .services.jellyseerr import (
    JellyseerrClient,
    JellyseerrError,
    build_request_payload,
    match_request,
)
from .services.library import LibraryItemLocator
from .services.streams import StreamDecisionEngine, StreamService
from .services.title_mapping import CrossReferenceResolver, TitleMappingCache
from .services.tmdb import TMDBClient

logging.basicConfig(
    level=logging.DEBUG if settings.environment == "development" else logging.INFO
)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    missing = settings.missing_jellyfin_settings()
    if missing:
        raise RuntimeError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    exit_stack = AsyncExitStack()
    jellyfin_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.jellyfin_base_url or "",
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    tmdb_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.tmdb_base_url,
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    request_client: JellyseerrClient | None = None
    if settings.jellyseerr_enabled:
        jellyseerr_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=settings.jellyseerr_api_base_url or "",
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        request_client = JellyseerrClient(settings, jellyseerr_http)
    else:
        logger.info("Jellyseerr is not configured; request links are disabled")

    jellyfin = JellyfinClient(settings, jellyfin_http)
    try:
        tmdb = TMDBClient(settings, tmdb_http)
        await jellyfin.authenticate()
    except Exception:
        logger.error("Failed to initialise upstream clients; the addon cannot start")
        await exit_stack.aclose()
        raise

    resolver = CrossReferenceResolver(tmdb, TitleMappingCache())
    locator = LibraryItemLocator(jellyfin, resolver)
    engine = StreamDecisionEngine(settings, jellyfin, request_client)

    fastapi_app.state.stream_service = StreamService(resolver, locator, engine)
    fastapi_app.state.catalog_service = CatalogService(jellyfin, tmdb)
    fastapi_app.state.request_client = request_client
    fastapi_app.state.tmdb_client = tmdb
    logger.info("Jellyfin client authenticated; addon is ready")

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        logger.info("Server shutting down; ending Jellyfin session")
        await jellyfin.end_session()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Stremio addon streaming from Jellyfin with Jellyseerr requests",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_stream_service(app: FastAPI) -> StreamService:
    service = getattr(app.state, "stream_service", None)
    if not isinstance(service, StreamService):
        raise RuntimeError("Stream service not initialised")
    return service


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


def get_request_client(app: FastAPI) -> JellyseerrClient:
    client = getattr(app.state, "request_client", None)
    if not isinstance(client, JellyseerrClient):
        raise HTTPException(status_code=404, detail="Jellyseerr is not configured")
    return client


def _parse_extra(raw_extra: str) -> dict[str, str]:
    parsed = parse_qs(raw_extra, keep_blank_values=False)
    return {key: values[0] for key, values in parsed.items() if values}


def _parse_query_int(value: Any, *, default: int | None = None) -> int | None:
    """Strictly parse an integer query value; anything else yields ``default``."""

    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def register_routes(fastapi_app: FastAPI) -> None:
    async def _catalog_endpoint(
        content_type: str, catalog_id: str, extra: dict[str, str]
    ) -> JSONResponse:
        if content_type not in {"movie", "series"}:
            raise HTTPException(status_code=400, detail="Unsupported content type")
        if find_catalog(content_type, catalog_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown catalog {catalog_id}")
        service = get_catalog_service(fastapi_app)
        skip = max(_parse_query_int(extra.get("skip"), default=0) or 0, 0)
        search = (extra.get("search") or "").strip() or None
        try:
            metas = await service.list_metas(content_type, skip=skip, search=search)
        except Exception:
            logger.exception(
                "Error in catalog handler for type=%s, id=%s", content_type, catalog_id
            )
            metas = []
        return JSONResponse({"metas": metas})

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        return build_manifest(settings)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    async def catalog(content_type: str, catalog_id: str) -> JSONResponse:
        return await _catalog_endpoint(content_type, catalog_id, {})

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(content_type, catalog_id, _parse_extra(extra))

    @fastapi_app.get("/stream/{content_type}/{stream_id}.json")
    async def stream(content_type: str, stream_id: str) -> JSONResponse:
        service = get_stream_service(fastapi_app)
        result = await service.get_streams(content_type, stream_id)
        return JSONResponse(result.to_payload())

    @fastapi_app.get("/jellyseerr/request")
    async def jellyseerr_request(
        tmdbid: str | None = None,
        media_type: str | None = Query(default=None, alias="type"),
        season: str | None = None,
        episode: str | None = None,
    ) -> RedirectResponse:
        client = get_request_client(fastapi_app)
        tmdb_id = _parse_query_int(tmdbid)
        if tmdb_id is None or tmdb_id <= 0:
            raise HTTPException(status_code=400, detail="Invalid or missing tmdbid")
        if media_type not in {"movie", "tv"}:
            raise HTTPException(status_code=400, detail="type must be 'movie' or 'tv'")

        redirect = RedirectResponse(
            f"{settings.frontend_url}/request/{tmdb_id}", status_code=302
        )
        existing = await client.find_request(tmdb_id, media_type)  # type: ignore[arg-type]
        if existing is not None:
            logger.info("TMDB id %s already requested (%s)", tmdb_id, existing.request_id)
            return redirect

        season_number = _parse_query_int(season) if season else None
        episode_number = _parse_query_int(episode) if episode else None
        if (season and season_number is None) or (episode and episode_number is None):
            raise HTTPException(status_code=400, detail="Invalid season or episode")
        try:
            payload = build_request_payload(
                settings,
                tmdb_id,
                media_type,  # type: ignore[arg-type]
                season=season_number,
                episode=episode_number,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        try:
            await client.create_request(payload)
        except JellyseerrError as exc:
            logger.error("Jellyseerr request for %s failed: %s", tmdb_id, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return redirect

    @fastapi_app.get("/jellyseerr/request/{tmdb_id}")
    async def jellyseerr_request_status(
        tmdb_id: int, media_type: str | None = Query(default=None, alias="type")
    ) -> JSONResponse:
        client = get_request_client(fastapi_app)
        if media_type is not None and media_type not in {"movie", "tv"}:
            raise HTTPException(status_code=400, detail="type must be 'movie' or 'tv'")
        records = await client.list_requests()
        if records is None:
            raise HTTPException(status_code=502, detail="Bad response from Jellyseerr.")
        record = match_request(records, tmdb_id, media_type)  # type: ignore[arg-type]
        if record is None:
            raise HTTPException(
                status_code=404, detail=f"No request found for tmdbid {tmdb_id}"
            )
        detail = await client.get_request(record.request_id)
        if detail is None:
            raise HTTPException(status_code=502, detail="Bad response from Jellyseerr.")

        payload = detail.to_payload()
        tmdb = getattr(fastapi_app.state, "tmdb_client", None)
        if isinstance(tmdb, TMDBClient):
            content_type = "movie" if detail.media_type == "movie" else "series"
            details = await tmdb.fetch_details(tmdb_id, content_type)
            if details is not None:
                payload.update(
                    {
                        "title": details.title,
                        "overview": details.overview,
                        "posterPath": details.poster,
                        "backdropPath": details.background,
                        "year": details.year,
                    }
                )
        return JSONResponse(payload)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
