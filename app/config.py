"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _strip_url(value: HttpUrl | None) -> str | None:
    if value is None:
        return None
    return str(value).rstrip("/") or None


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Jellybridge", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=60421, alias="PORT")

    addon_server_url: HttpUrl | None = Field(default=None, alias="ADDON_SERVER")
    frontend_url: str = Field(default="", alias="FRONTEND_URL")

    jellyfin_server_url: HttpUrl | None = Field(default=None, alias="JELLYFIN_SERVER")
    jellyfin_username: str | None = Field(default=None, alias="JELLYFIN_USERNAME")
    jellyfin_password: str | None = Field(
        default=None,
        alias="JELLYFIN_PW",
        validation_alias=AliasChoices("JELLYFIN_PW", "JELLYFIN_PASSWORD"),
    )
    jellyfin_client_name: str = Field(
        default="Jellybridge", alias="JELLYFIN_CLIENT_NAME"
    )
    jellyfin_device_name: str = Field(
        default="jellybridge", alias="JELLYFIN_DEVICE_NAME"
    )
    jellyfin_client_version: str = Field(
        default="1.0.0", alias="JELLYFIN_CLIENT_VERSION"
    )
    catalog_page_size: int = Field(default=20, alias="ITEMS_LIMIT", ge=1, le=200)
    library_search_limit: int = Field(
        default=5, alias="LIBRARY_SEARCH_LIMIT", ge=1, le=50
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )

    jellyseerr_server_url: HttpUrl | None = Field(
        default=None, alias="JELLYSEERR_SERVER"
    )
    jellyseerr_api_key: str | None = Field(default=None, alias="JELLYSEERR_API_KEY")
    jellyseerr_server_id: int = Field(default=0, alias="JELLYSEERR_SERVER_ID", ge=0)
    jellyseerr_profile_id: int = Field(default=3, alias="JELLYSEERR_PROFILE_ID", ge=0)
    jellyseerr_user_id: int = Field(default=1, alias="JELLYSEERR_USER_ID", ge=1)
    jellyseerr_is_4k: bool = Field(default=False, alias="JELLYSEERR_IS_4K")
    jellyseerr_movie_root: str = Field(default="/movies", alias="JELLYSEERR_MOVIE_ROOT")
    jellyseerr_tv_root: str = Field(default="/tv", alias="JELLYSEERR_TV_ROOT")
    jellyseerr_request_page_size: int = Field(
        default=100, alias="JELLYSEERR_REQUEST_PAGE_SIZE", ge=1, le=1_000
    )

    environment: Literal["development", "production"] = Field(
        default="development",
        alias="ENVIRONMENT",
        validation_alias=AliasChoices("ENVIRONMENT", "DENO_ENV"),
    )

    @field_validator("frontend_url", mode="before")
    @classmethod
    def _normalise_frontend_url(cls, value: object) -> str:
        """Strip trailing slashes so redirects can append ``/request/<id>``."""

        if value is None:
            return ""
        return str(value).strip().rstrip("/")

    @property
    def jellyfin_base_url(self) -> str | None:
        return _strip_url(self.jellyfin_server_url)

    @property
    def addon_base_url(self) -> str | None:
        return _strip_url(self.addon_server_url)

    @property
    def tmdb_base_url(self) -> str:
        return str(self.tmdb_api_url).rstrip("/")

    @property
    def jellyseerr_api_base_url(self) -> str | None:
        """Return the Jellyseerr ``/api/v1`` root, if configured."""

        base = _strip_url(self.jellyseerr_server_url)
        if base is None:
            return None
        return f"{base}/api/v1"

    @property
    def jellyseerr_enabled(self) -> bool:
        """Request links only work when Jellyseerr and the public addon URL are set."""

        return bool(
            self.jellyseerr_server_url
            and self.jellyseerr_api_key
            and self.addon_server_url
        )

    def missing_jellyfin_settings(self) -> list[str]:
        """Return the names of Jellyfin variables that still need values."""

        missing: list[str] = []
        if self.jellyfin_server_url is None:
            missing.append("JELLYFIN_SERVER")
        if not self.jellyfin_username:
            missing.append("JELLYFIN_USERNAME")
        if not self.jellyfin_password:
            missing.append("JELLYFIN_PW")
        return missing

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
