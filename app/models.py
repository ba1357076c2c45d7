"""Models shared by the catalog and stream resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .utils import compute_percent

ContentType = Literal["movie", "series"]
RequestMediaType = Literal["movie", "tv"]
StreamKind = Literal["playable", "requested", "request", "empty"]


def request_media_type(content_type: str) -> RequestMediaType:
    """Translate a Stremio content type into Jellyseerr's media type."""

    return "movie" if content_type == "movie" else "tv"


class _JellyfinModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MediaSource(_JellyfinModel):
    """A single encoded file backing a library item."""

    id: str = Field(alias="Id")
    path: str | None = Field(default=None, alias="Path")
    container: str | None = Field(default=None, alias="Container")
    size: int | None = Field(default=None, alias="Size")


class LibraryItem(_JellyfinModel):
    """Represents a Jellyfin movie, series or episode record."""

    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    type: str = Field(default="", alias="Type")
    provider_ids: dict[str, str | None] = Field(
        default_factory=dict, alias="ProviderIds"
    )
    media_sources: list[MediaSource] = Field(
        default_factory=list, alias="MediaSources"
    )
    index_number: int | None = Field(default=None, alias="IndexNumber")
    parent_index_number: int | None = Field(default=None, alias="ParentIndexNumber")
    series_id: str | None = Field(default=None, alias="SeriesId")
    season_id: str | None = Field(default=None, alias="SeasonId")
    overview: str | None = Field(default=None, alias="Overview")
    production_year: int | None = Field(default=None, alias="ProductionYear")
    genres: list[str] = Field(default_factory=list, alias="Genres")

    @field_validator("provider_ids", "media_sources", "genres", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "provider_ids" else []
        return value

    @property
    def imdb_id(self) -> str | None:
        return self.provider_ids.get("Imdb") or None

    @property
    def tmdb_id(self) -> int | None:
        raw = self.provider_ids.get("Tmdb")
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    @property
    def is_playable(self) -> bool:
        return bool(self.media_sources)

    @property
    def content_type(self) -> ContentType:
        return "movie" if self.type.lower() == "movie" else "series"


class SeasonRef(_JellyfinModel):
    """A season listed under a series."""

    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    index_number: int | None = Field(default=None, alias="IndexNumber")
    series_id: str | None = Field(default=None, alias="SeriesId")


class EpisodeRef(SeasonRef):
    """An episode listed under a season. List payloads omit media sources."""

    parent_index_number: int | None = Field(default=None, alias="ParentIndexNumber")
    season_id: str | None = Field(default=None, alias="SeasonId")


@dataclass(slots=True, frozen=True)
class TitleMapping:
    """TMDB identity of a title: numeric id plus canonical title."""

    tmdb_id: int
    title: str


@dataclass(slots=True)
class ProgressRecord:
    """Display-ready download progress for a tracked request."""

    status: int | str | None = None
    status_label: str = "Unknown"
    eta: str | None = None
    time_left: str | None = None
    size: int = 0
    size_left: int = 0

    @property
    def percent(self) -> int:
        return compute_percent(self.size, self.size_left)

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "statusLabel": self.status_label,
            "estimatedCompletionTime": self.eta,
            "timeLeft": self.time_left,
            "size": self.size,
            "sizeLeft": self.size_left,
            "percent": self.percent,
        }


@dataclass(slots=True)
class RequestRecord:
    """A Jellyseerr request as seen in the request list."""

    request_id: int
    tmdb_id: int
    media_type: str


@dataclass(slots=True)
class RequestDetail(RequestRecord):
    """A single request together with its normalized progress."""

    progress: ProgressRecord = field(default_factory=ProgressRecord)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.request_id,
            "media": {
                "tmdb": self.tmdb_id,
                "mediaType": self.media_type,
                **self.progress.to_payload(),
            },
        }


class StremioStream(BaseModel):
    """Stremio stream record: exactly one of ``url`` or ``externalUrl``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    url: str | None = None
    external_url: str | None = Field(default=None, alias="externalUrl")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(slots=True)
class StreamResult:
    """Outcome of resolving one catalog id into Stremio streams."""

    kind: StreamKind
    streams: list[StremioStream] = field(default_factory=list)
    progress: ProgressRecord | None = None

    @classmethod
    def empty(cls) -> "StreamResult":
        return cls(kind="empty")

    def to_payload(self) -> dict[str, Any]:
        return {"streams": [stream.to_payload() for stream in self.streams]}
