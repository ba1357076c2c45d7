"""Jellyfin library catalogs rendered as Stremio meta previews."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..models import LibraryItem
from .jellyfin import JellyfinClient
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class CatalogService:
    """Build Stremio catalog payloads from the Jellyfin library."""

    def __init__(
        self,
        jellyfin: JellyfinClient,
        tmdb: TMDBClient | None = None,
        *,
        max_concurrency: int = 8,
    ):
        self._jellyfin = jellyfin
        self._tmdb = tmdb
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def list_metas(
        self,
        content_type: str,
        *,
        skip: int = 0,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        items = await self._jellyfin.search_items(
            skip=skip, content_type=content_type, search_term=search
        )
        candidates = [item for item in items if item.imdb_id]
        if len(candidates) < len(items):
            logger.debug(
                "Skipping %d library items without an IMDb id",
                len(items) - len(candidates),
            )
        return list(await asyncio.gather(*(self._to_meta(item) for item in candidates)))

    async def _to_meta(self, item: LibraryItem) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "id": item.imdb_id,
            "type": item.content_type,
            "name": item.name,
            "poster": self._jellyfin.image_url(item.id, "Primary"),
            "background": self._jellyfin.image_url(item.id, "Backdrop"),
        }
        if item.genres:
            meta["genres"] = item.genres
        if item.production_year:
            meta["releaseInfo"] = str(item.production_year)
        if item.overview:
            meta["description"] = item.overview

        if self._tmdb is not None and item.tmdb_id is not None:
            async with self._semaphore:
                details = await self._tmdb.fetch_details(item.tmdb_id, item.content_type)
            if details is not None:
                if details.poster:
                    meta["poster"] = details.poster
                if details.background:
                    meta["background"] = details.background
        return meta
