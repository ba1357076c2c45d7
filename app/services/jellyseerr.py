"""Utilities for communicating with the Jellyseerr request tracker."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import RequestDetail, RequestMediaType, RequestRecord
from ..utils import coerce_int
from .progress import normalize_request_detail

logger = logging.getLogger(__name__)


class JellyseerrError(RuntimeError):
    """Raised when Jellyseerr rejects or fails to record a new request."""


def build_request_payload(
    settings: Settings,
    tmdb_id: int,
    media_type: RequestMediaType,
    *,
    season: int | None = None,
    episode: int | None = None,
) -> dict[str, Any]:
    """Return the ``POST /request`` body for a movie or a TV season.

    Jellyseerr tracks TV requests per season, so ``episode`` only narrows the
    log message; the whole season is requested.
    """

    payload: dict[str, Any] = {
        "mediaType": media_type,
        "mediaId": tmdb_id,
        "serverId": settings.jellyseerr_server_id,
        "is4k": settings.jellyseerr_is_4k,
        "profileId": settings.jellyseerr_profile_id,
        "rootFolder": (
            settings.jellyseerr_movie_root
            if media_type == "movie"
            else settings.jellyseerr_tv_root
        ),
        "userId": settings.jellyseerr_user_id,
    }
    if media_type == "tv":
        if season is None:
            raise ValueError("Missing or invalid season for TV")
        payload["seasons"] = [season]
        if episode is not None:
            logger.debug(
                "Requesting season %s of %s for episode %s", season, tmdb_id, episode
            )
    return payload


class JellyseerrClient:
    """Thin wrapper around the Jellyseerr ``/api/v1`` endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.jellyseerr_api_key:
            raise ValueError("Jellyseerr API key is required when initialising JellyseerrClient")
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Api-Key": self._settings.jellyseerr_api_key or "",
        }

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("Jellyseerr request to %s failed: %s", path, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "Bad response from Jellyseerr for %s (%s): %s",
                path,
                response.status_code,
                response.text,
            )
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON Jellyseerr response for %s", path)
            return None

    async def list_requests(self) -> list[RequestRecord] | None:
        """Return current requests, or ``None`` when Jellyseerr is unavailable."""

        payload = await self._get_json(
            "/request",
            params={"take": self._settings.jellyseerr_request_page_size, "skip": 0},
        )
        if payload is None:
            return None
        if isinstance(payload, list):
            raw_entries = payload
        elif isinstance(payload, dict) and isinstance(payload.get("results"), list):
            raw_entries = payload["results"]
        else:
            logger.warning("Unexpected Jellyseerr request list structure")
            return None

        records: list[RequestRecord] = []
        for entry in raw_entries:
            if not isinstance(entry, dict):
                continue
            media = entry.get("media")
            if not isinstance(media, dict):
                continue
            request_id = coerce_int(entry.get("id"))
            tmdb_id = coerce_int(media.get("tmdbId"))
            if request_id <= 0 or tmdb_id <= 0:
                continue
            records.append(
                RequestRecord(
                    request_id=request_id,
                    tmdb_id=tmdb_id,
                    media_type=str(media.get("mediaType") or ""),
                )
            )
        logger.debug("Jellyseerr reports %d requests", len(records))
        return records

    async def find_request(
        self, tmdb_id: int, media_type: RequestMediaType | None = None
    ) -> RequestRecord | None:
        """Return the request tracking ``tmdb_id`` of the given media type.

        TMDB numbers movies and TV shows independently, so a record whose
        media type differs from ``media_type`` never matches.
        """

        records = await self.list_requests()
        if not records:
            return None
        return match_request(records, tmdb_id, media_type)


    async def get_request(self, request_id: int) -> RequestDetail | None:
        """Fetch and normalize a single request, or ``None`` on failure."""

        payload = await self._get_json(f"/request/{request_id}")
        if payload is None:
            return None
        detail = normalize_request_detail(payload, request_id)
        if detail is None:
            logger.warning("No request found for id %s", request_id)
        return detail

    async def create_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit a new request; raises :class:`JellyseerrError` on failure."""

        try:
            response = await self._client.post(
                "/request", json=payload, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise JellyseerrError(f"Jellyseerr unreachable: {exc}") from exc
        try:
            body = response.json()
        except ValueError as exc:
            raise JellyseerrError(
                f"Invalid JSON from /request: {response.text[:200]}"
            ) from exc
        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise JellyseerrError(
                f"Request failed: {response.status_code} {message or response.reason_phrase}"
            )
        logger.info("%s has been successfully added to Jellyseerr", payload.get("mediaId"))
        return body if isinstance(body, dict) else {"result": body}


def match_request(
    records: list[RequestRecord],
    tmdb_id: int,
    media_type: RequestMediaType | None = None,
) -> RequestRecord | None:
    for record in records:
        if record.tmdb_id != tmdb_id:
            continue
        if media_type and record.media_type and record.media_type != media_type:
            continue
        return record
    return None
