"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings
from ..models import TitleMapping

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w780"


@dataclass(slots=True)
class TMDBDetails:
    """Normalized view of a TMDB movie or TV record."""

    tmdb_id: int
    title: str
    overview: str | None
    poster: str | None
    background: str | None
    year: int | None


class TMDBClient:
    """Client responsible for mapping IMDb ids onto TMDB records."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def find_by_external_id(
        self, imdb_id: str, content_type: str
    ) -> TitleMapping | None:
        """Return the TMDB id and canonical title for an IMDb id.

        Failures and empty results both yield ``None``.
        """

        params = {
            "api_key": self._settings.tmdb_api_key,
            "external_source": "imdb_id",
        }
        payload = await self._get_json(f"/find/{imdb_id}", params)
        if payload is None:
            return None

        if content_type == "movie":
            results = payload.get("movie_results") or []
            title_key = "title"
        else:
            results = payload.get("tv_results") or []
            title_key = "name"

        for candidate in results:
            if not isinstance(candidate, dict):
                continue
            try:
                tmdb_id = int(candidate["id"])
            except (KeyError, TypeError, ValueError):
                continue
            title = candidate.get(title_key) or candidate.get("original_" + title_key)
            if not title:
                continue
            logger.info(
                "TMDB: found %s %r (%s) for IMDb id %s",
                content_type,
                title,
                tmdb_id,
                imdb_id,
            )
            return TitleMapping(tmdb_id=tmdb_id, title=str(title))

        logger.warning("TMDB: no %s results for IMDb id %s", content_type, imdb_id)
        return None

    async def fetch_details(
        self, tmdb_id: int, content_type: str
    ) -> TMDBDetails | None:
        """Fetch title, overview and artwork for a TMDB entity."""

        endpoint = f"/{'movie' if content_type == 'movie' else 'tv'}/{tmdb_id}"
        payload = await self._get_json(
            endpoint, {"api_key": self._settings.tmdb_api_key}
        )
        if payload is None:
            return None

        title = payload.get("title") or payload.get("name") or ""
        return TMDBDetails(
            tmdb_id=tmdb_id,
            title=str(title),
            overview=payload.get("overview") or None,
            poster=self._build_image_url(payload.get("poster_path"), POSTER_BASE_URL),
            background=self._build_image_url(
                payload.get("backdrop_path"), BACKDROP_BASE_URL
            ),
            year=self._extract_year(payload, content_type),
        )

    async def _get_json(
        self, endpoint: str, params: dict[str, Any]
    ) -> dict[str, Any] | None:
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s failed (%s): %s",
                endpoint,
                response.status_code,
                response.text,
            )
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON TMDB response for %s", endpoint)
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def _extract_year(result: dict[str, Any], content_type: str) -> int | None:
        date_key = "release_date" if content_type == "movie" else "first_air_date"
        date_value = result.get(date_key)
        if not isinstance(date_value, str) or len(date_value) < 4:
            return None
        try:
            return int(date_value[:4])
        except ValueError:
            return None

    @staticmethod
    def _build_image_url(path: str | None, base_url: str) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{base_url}{path}"
