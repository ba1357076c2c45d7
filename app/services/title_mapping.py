"""IMDb → TMDB cross-referencing with a process-wide cache."""

from __future__ import annotations

import logging

from ..models import TitleMapping
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class TitleMappingCache:
    """Unbounded in-memory map of IMDb id to :class:`TitleMapping`.

    Entries live for the whole process and are never invalidated.
    Reads and writes happen without a lock: values are immutable, so two
    concurrent misses for the same key simply store equal mappings.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TitleMapping] = {}

    def get(self, title_id: str) -> TitleMapping | None:
        return self._entries.get(title_id)

    def put(self, title_id: str, mapping: TitleMapping) -> None:
        self._entries[title_id] = mapping

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, title_id: object) -> bool:
        return title_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CrossReferenceResolver:
    """Resolve IMDb ids to TMDB ids, consulting the cache before TMDB."""

    def __init__(self, tmdb: TMDBClient, cache: TitleMappingCache | None = None):
        self._tmdb = tmdb
        self._cache = cache if cache is not None else TitleMappingCache()

    @property
    def cache(self) -> TitleMappingCache:
        return self._cache

    async def resolve(self, title_id: str, content_type: str) -> TitleMapping | None:
        cached = self._cache.get(title_id)
        if cached is not None:
            logger.debug("TMDB mapping cache hit for %s", title_id)
            return cached

        mapping = await self._tmdb.find_by_external_id(title_id, content_type)
        if mapping is None:
            # Not cached: the next call retries upstream.
            logger.info("No TMDB mapping for %s (%s)", title_id, content_type)
            return None

        self._cache.put(title_id, mapping)
        return mapping
