"""Utilities for communicating with the Jellyfin media server."""

from __future__ import annotations

import logging
import uuid
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..models import EpisodeRef, LibraryItem, SeasonRef
from ..utils import format_uuid

logger = logging.getLogger(__name__)

ITEM_FIELDS = (
    "ProviderIds,Overview,Genres,ProductionYear,RunTimeTicks,CommunityRating,"
    "OfficialRating,ImageTags,MediaSources,MediaStreams,Studios"
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JellyfinAuthError(RuntimeError):
    """Raised when the addon cannot obtain a Jellyfin access token."""


class JellyfinClient:
    """Thin wrapper around the Jellyfin HTTP API.

    The client authenticates once with a username and password and reuses the
    resulting bearer token for every call. Lookup helpers never raise on
    upstream failures; they log and return ``None`` or an empty list.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._device_id = f"{settings.jellyfin_device_name}-{uuid.uuid4()}"
        self._access_token: str | None = None
        self.user_id: str | None = None
        self.session_id: str | None = None

    @property
    def server_url(self) -> str:
        return self._settings.jellyfin_base_url or ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token and self.user_id)

    @property
    def access_token(self) -> str:
        if not self._access_token:
            raise RuntimeError("Access token not available. Call authenticate() first.")
        return self._access_token

    def _authorization(self, token: str | None = None) -> str:
        value = (
            f'MediaBrowser Client="{self._settings.jellyfin_client_name}", '
            f'Device="{self._settings.jellyfin_device_name}", '
            f'DeviceId="{self._device_id}", '
            f'Version="{self._settings.jellyfin_client_version}"'
        )
        if token:
            value += f', Token="{token}"'
        return value

    async def authenticate(self) -> None:
        """Exchange the configured credentials for an access token."""

        logger.info("Connecting to Jellyfin server %s", self.server_url)
        try:
            response = await self._client.post(
                "/Users/AuthenticateByName",
                json={
                    "Username": self._settings.jellyfin_username,
                    "Pw": self._settings.jellyfin_password,
                },
                headers={"X-Emby-Authorization": self._authorization()},
            )
        except httpx.HTTPError as exc:
            raise JellyfinAuthError(f"Could not reach Jellyfin: {exc}") from exc

        if response.status_code == 401:
            raise JellyfinAuthError("Authentication failed: invalid username or password")
        if response.status_code >= 400:
            raise JellyfinAuthError(
                f"Authentication failed: {response.status_code} {response.text}"
            )

        try:
            payload = response.json()
            token = str(payload["AccessToken"])
            user_id = str(payload["User"]["Id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise JellyfinAuthError("Unexpected authentication response") from exc

        self._access_token = token
        self.user_id = user_id
        self.session_id = (payload.get("SessionInfo") or {}).get("Id")
        logger.info(
            "Authenticated with Jellyfin as %s (%s)",
            (payload.get("User") or {}).get("Name"),
            user_id,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Perform an authenticated call; raises ``httpx.HTTPError`` on failure."""

        query = {key: value for key, value in (params or {}).items() if value is not None}
        logger.debug("Jellyfin %s %s %s", method, path, query)
        response = await self._client.request(
            method,
            path,
            params=query,
            json=json,
            headers={"X-Emby-Authorization": self._authorization(self.access_token)},
        )
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _parse_items(payload: Any, model: type[ModelT]) -> list[ModelT]:
        raw_items = payload.get("Items") if isinstance(payload, dict) else payload
        if not isinstance(raw_items, list):
            return []
        parsed: list[ModelT] = []
        for entry in raw_items:
            try:
                parsed.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.debug("Skipping malformed Jellyfin %s: %s", model.__name__, exc)
        return parsed

    async def search_items(
        self,
        *,
        skip: int = 0,
        content_type: str = "movie",
        search_term: str | None = None,
    ) -> list[LibraryItem]:
        """Return a page of top-level movies or series for catalog listings."""

        if not self.user_id:
            logger.error("Jellyfin user id is not set; cannot search items")
            return []
        params = {
            "userId": self.user_id,
            "Recursive": "true",
            "StartIndex": skip,
            "Limit": self._settings.catalog_page_size,
            "SortBy": "SortName",
            "SortOrder": "Ascending",
            "Fields": ITEM_FIELDS,
            "IncludeItemTypes": "Movie" if content_type == "movie" else "Series",
            "SearchTerm": search_term or None,
        }
        try:
            payload = await self._request("GET", "/Items", params=params)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Jellyfin catalog search failed: %s", exc)
            return []
        items = self._parse_items(payload, LibraryItem)
        logger.info(
            "Jellyfin returned %d %s items (skip=%s, search=%s)",
            len(items),
            content_type,
            skip,
            search_term or "none",
        )
        return items

    async def find_items(self, title: str, content_type: str) -> list[LibraryItem]:
        """Search the library for ``title`` among items carrying external ids."""

        if not self.user_id:
            logger.error("Jellyfin user id is not set; cannot find items")
            return []
        params = {
            "userId": self.user_id,
            "Recursive": "true",
            "IncludeItemTypes": "Movie" if content_type == "movie" else "Series",
            "Limit": self._settings.library_search_limit,
            "Fields": ITEM_FIELDS,
            "Filters": "HasExternalId",
            "searchTerm": title,
        }
        try:
            payload = await self._request("GET", "/Items", params=params)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Jellyfin search for %r failed: %s", title, exc)
            return []
        return self._parse_items(payload, LibraryItem)

    async def get_item(self, item_id: str) -> LibraryItem | None:
        """Fetch the full record for ``item_id``, including media sources."""

        if not self.user_id:
            logger.error("Jellyfin user id is not set; cannot fetch item %s", item_id)
            return None
        try:
            payload = await self._request("GET", f"/Users/{self.user_id}/Items/{item_id}")
            return LibraryItem.model_validate(payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Jellyfin item %s could not be fetched: %s", item_id, exc)
            return None

    async def get_seasons(self, series_id: str) -> list[SeasonRef]:
        try:
            payload = await self._request(
                "GET",
                f"/Shows/{series_id}/Seasons",
                params={"userId": self.user_id, "Fields": "ImageTags"},
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Seasons for series %s could not be fetched: %s", series_id, exc)
            return []
        return self._parse_items(payload, SeasonRef)

    async def get_episodes(self, series_id: str, season_id: str) -> list[EpisodeRef]:
        try:
            payload = await self._request(
                "GET",
                f"/Shows/{series_id}/Episodes",
                params={
                    "seasonId": season_id,
                    "userId": self.user_id,
                    "Fields": "ImageTags,Overview,RunTimeTicks",
                },
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Episodes for series %s season %s could not be fetched: %s",
                series_id,
                season_id,
                exc,
            )
            return []
        return self._parse_items(payload, EpisodeRef)

    async def get_sessions(self) -> list[dict[str, Any]]:
        if not self.is_authenticated:
            return []
        try:
            payload = await self._request("GET", "/Sessions")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Jellyfin sessions could not be listed: %s", exc)
            return []
        return [entry for entry in payload or [] if isinstance(entry, dict)]

    async def end_session(self) -> None:
        """Log the addon's own session out of Jellyfin."""

        if not self.is_authenticated:
            logger.warning("No Jellyfin session to end during shutdown")
            return
        try:
            await self._request("POST", "/Sessions/Logout")
        except httpx.HTTPError as exc:
            logger.error("Failed to end Jellyfin session %s: %s", self.session_id, exc)
            return
        logger.info("Ended Jellyfin session %s", self.session_id)
        self._access_token = None

    def stream_url(self, item: LibraryItem) -> str | None:
        """Return a direct-play URL for the item's first media source."""

        if not item.media_sources:
            return None
        item_uuid = format_uuid(item.id)
        if item_uuid is None:
            return None
        query = httpx.QueryParams(
            {
                "static": "true",
                "api_key": self.access_token,
                "mediaSourceId": item.media_sources[0].id,
            }
        )
        return f"{self.server_url}/videos/{item_uuid}/stream.mkv?{query}"

    def image_url(self, item_id: str, image_type: str = "Primary") -> str:
        return f"{self.server_url}/Items/{item_id}/Images/{image_type}"
