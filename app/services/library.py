"""Locate Jellyfin library items for IMDb-keyed catalog ids."""

from __future__ import annotations

import logging
from typing import Iterable, TypeVar

from ..models import LibraryItem, SeasonRef, TitleMapping
from .jellyfin import JellyfinClient
from .title_mapping import CrossReferenceResolver

logger = logging.getLogger(__name__)

RefT = TypeVar("RefT", bound=SeasonRef)


def _by_index(refs: Iterable[RefT], index: int | None) -> RefT | None:
    if index is None:
        return None
    return next((ref for ref in refs if ref.index_number == index), None)


class LibraryItemLocator:
    """Find the Jellyfin item behind an IMDb id.

    Jellyfin cannot be queried by IMDb id directly, so the canonical TMDB
    title is used as a search term and the results are filtered on the
    embedded IMDb provider id. A title match without the exact id is never
    accepted.
    """

    def __init__(self, jellyfin: JellyfinClient, resolver: CrossReferenceResolver):
        self._jellyfin = jellyfin
        self._resolver = resolver

    async def locate_movie(self, title_id: str) -> LibraryItem | None:
        mapping = await self._resolver.resolve(title_id, "movie")
        return await self.match_movie(title_id, mapping)

    async def locate_episode(
        self, title_id: str, season: int | None, episode: int | None
    ) -> LibraryItem | None:
        mapping = await self._resolver.resolve(title_id, "series")
        return await self.match_episode(title_id, mapping, season, episode)

    async def match_movie(
        self, title_id: str, mapping: TitleMapping | None
    ) -> LibraryItem | None:
        return await self._find_by_imdb_id(title_id, mapping, "movie")

    async def match_episode(
        self,
        title_id: str,
        mapping: TitleMapping | None,
        season: int | None,
        episode: int | None,
    ) -> LibraryItem | None:
        """Walk series → season → episode; any missing link ends the chain."""

        if season is None or episode is None:
            logger.info("Episode id %s has no usable season/episode numbers", title_id)
            return None

        series = await self._find_by_imdb_id(title_id, mapping, "series")
        if series is None:
            return None

        target_season = _by_index(await self._jellyfin.get_seasons(series.id), season)
        if target_season is None:
            logger.info("Series %s has no season %s", series.name, season)
            return None

        episodes = await self._jellyfin.get_episodes(series.id, target_season.id)
        target_episode = _by_index(episodes, episode)
        if target_episode is None:
            logger.info(
                "Series %s season %s has no episode %s", series.name, season, episode
            )
            return None

        # List endpoints omit media sources.
        return await self._jellyfin.get_item(target_episode.id)

    async def _find_by_imdb_id(
        self, title_id: str, mapping: TitleMapping | None, content_type: str
    ) -> LibraryItem | None:
        if mapping is None:
            logger.warning(
                "No canonical title for %s; cannot search the library", title_id
            )
            return None

        candidates = await self._jellyfin.find_items(mapping.title, content_type)
        if not candidates:
            logger.info(
                "No library %s items for %r (%s)", content_type, mapping.title, title_id
            )
            return None

        for candidate in candidates:
            if candidate.imdb_id == title_id:
                logger.info(
                    "Matched %s to library item %r (%s)",
                    title_id,
                    candidate.name,
                    candidate.id,
                )
                return candidate

        logger.warning(
            "Library returned %d items for %r but none carry IMDb id %s",
            len(candidates),
            mapping.title,
            title_id,
        )
        return None
