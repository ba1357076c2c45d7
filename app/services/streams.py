"""Stream-or-request decisions for Stremio stream requests."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings
from ..models import (
    ContentType,
    LibraryItem,
    ProgressRecord,
    StreamResult,
    StremioStream,
    request_media_type,
)
from ..utils import parse_catalog_id
from .jellyfin import JellyfinClient
from .jellyseerr import JellyseerrClient
from .library import LibraryItemLocator
from .title_mapping import CrossReferenceResolver

logger = logging.getLogger(__name__)

PLAYABLE_DESCRIPTION = 'Play "{name}" on Jellyfin'
REQUESTED_NAME = "Requested for Download"
REQUEST_NAME = "Request on Jellyseerr"


def describe_progress(progress: ProgressRecord) -> str:
    """Render progress lines for the Stremio stream description."""

    lines = ["Requested ✅", f"Status: {progress.status_label}"]
    if progress.time_left is not None:
        lines.append(f"Time Left: {progress.time_left}")
        lines.append(f"ETA: {progress.eta or 'n/a'}")
        lines.append(f"Percent Downloaded: {progress.percent}%")
    else:
        # No download slot yet: nothing meaningful to report as a percentage.
        lines.append("Currently being processed.")
    return "\n".join(lines)


class StreamDecisionEngine:
    """Choose between a Jellyfin stream, request progress, or a request link."""

    def __init__(
        self,
        settings: Settings,
        jellyfin: JellyfinClient,
        requests: JellyseerrClient | None = None,
    ):
        self._settings = settings
        self._jellyfin = jellyfin
        self._requests = requests if settings.jellyseerr_enabled else None

    def build_request_link(
        self,
        tmdb_id: int | None,
        content_type: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> str | None:
        """Return the addon's request URL, keyed only by the TMDB id."""

        addon_url = self._settings.addon_base_url
        if tmdb_id is None or self._requests is None or not addon_url:
            return None
        params: dict[str, str | int] = {
            "tmdbid": tmdb_id,
            "type": request_media_type(content_type),
        }
        if season is not None:
            params["season"] = season
        if episode is not None:
            params["episode"] = episode
        return f"{addon_url}/jellyseerr/request?{httpx.QueryParams(params)}"

    async def decide(
        self,
        item: LibraryItem | None,
        tmdb_id: int | None,
        title_id: str,
        content_type: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> StreamResult:
        playable = self._playable(item)
        if playable is not None:
            return playable

        if tmdb_id is not None and self._requests is not None:
            requested = await self._requested(
                self._requests, tmdb_id, content_type, season, episode
            )
            if requested is not None:
                return requested

        link = self.build_request_link(tmdb_id, content_type, season, episode)
        if link is None:
            logger.info("No stream or request link available for %s", title_id)
            return StreamResult.empty()

        label = title_id
        if season is not None and episode is not None:
            label = f"{title_id} S{season:02d}E{episode:02d}"
        return StreamResult(
            kind="request",
            streams=[
                StremioStream(
                    name=REQUEST_NAME,
                    description=f"Click to queue {label} in Jellyseerr",
                    external_url=link,
                )
            ],
        )

    def _playable(self, item: LibraryItem | None) -> StreamResult | None:
        if item is None or not item.is_playable:
            return None
        url = self._jellyfin.stream_url(item)
        if url is None:
            logger.warning(
                "Library item %r has an unusable id %r; skipping direct play",
                item.name,
                item.id,
            )
            return None
        return StreamResult(
            kind="playable",
            streams=[
                StremioStream(
                    name=item.name,
                    description=PLAYABLE_DESCRIPTION.format(name=item.name),
                    url=url,
                )
            ],
        )

    async def _requested(
        self,
        requests: JellyseerrClient,
        tmdb_id: int,
        content_type: str,
        season: int | None,
        episode: int | None,
    ) -> StreamResult | None:
        record = await requests.find_request(tmdb_id, request_media_type(content_type))
        if record is None:
            return None
        detail = await requests.get_request(record.request_id)
        if detail is None:
            return None

        progress = detail.progress
        link = self.build_request_link(tmdb_id, content_type, season, episode)
        if link is None:
            return None
        logger.info(
            "TMDB id %s already requested (request %s, %s%%)",
            tmdb_id,
            detail.request_id,
            progress.percent,
        )
        return StreamResult(
            kind="requested",
            streams=[
                StremioStream(
                    name=REQUESTED_NAME,
                    description=describe_progress(progress),
                    external_url=link,
                )
            ],
            progress=progress,
        )


class StreamService:
    """Resolve a raw Stremio id into a stream result.

    This is the error boundary of the pipeline: whatever happens, callers get
    a well-formed, possibly empty, result.
    """

    def __init__(
        self,
        resolver: CrossReferenceResolver,
        locator: LibraryItemLocator,
        engine: StreamDecisionEngine,
    ):
        self._resolver = resolver
        self._locator = locator
        self._engine = engine

    async def get_streams(self, content_type: str, raw_id: str) -> StreamResult:
        logger.info("Stream request received: type=%s id=%s", content_type, raw_id)
        try:
            return await self._resolve(content_type, raw_id)
        except Exception:
            logger.exception("Error resolving streams for id=%s", raw_id)
            return StreamResult.empty()

    async def _resolve(self, content_type: str, raw_id: str) -> StreamResult:
        catalog_id = parse_catalog_id(raw_id)
        if catalog_id is None:
            logger.info("Unrecognised catalog id %r", raw_id)
            return StreamResult.empty()
        if catalog_id.is_episode and not catalog_id.has_ordinals:
            logger.info("Episode id %r has non-numeric season/episode", raw_id)
            return StreamResult.empty()

        if not catalog_id.is_episode and content_type == "series":
            logger.info("Series id %r carries no episode data", raw_id)
            return StreamResult.empty()
        media_kind: ContentType = "series" if catalog_id.is_episode else "movie"

        mapping = await self._resolver.resolve(catalog_id.title_id, media_kind)
        if catalog_id.is_episode:
            item = await self._locator.match_episode(
                catalog_id.title_id, mapping, catalog_id.season, catalog_id.episode
            )
        else:
            item = await self._locator.match_movie(catalog_id.title_id, mapping)

        return await self._engine.decide(
            item,
            mapping.tmdb_id if mapping else None,
            catalog_id.title_id,
            media_kind,
            catalog_id.season,
            catalog_id.episode,
        )
