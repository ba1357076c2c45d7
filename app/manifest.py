"""Stremio manifest and library catalog definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import Settings
from .models import ContentType

MANIFEST_ID = "community.stremiojellyfin"
MANIFEST_VERSION = "1.0.0"


@dataclass(frozen=True)
class LibraryCatalogDefinition:
    """Describes a Jellyfin library catalog shown in Stremio."""

    id: str
    name: str
    content_type: ContentType

    def to_manifest_entry(self) -> dict[str, Any]:
        return {
            "type": self.content_type,
            "id": self.id,
            "name": self.name,
            "extra": [
                {"name": "skip", "isRequired": True},
                {"name": "search", "isRequired": False},
            ],
        }


LIBRARY_CATALOGS: tuple[LibraryCatalogDefinition, ...] = (
    LibraryCatalogDefinition(
        id="jellyfin-movies", name="Jellyfin Movies", content_type="movie"
    ),
    LibraryCatalogDefinition(
        id="jellyfin-series", name="Jellyfin Series", content_type="series"
    ),
)


def find_catalog(content_type: str, catalog_id: str) -> LibraryCatalogDefinition | None:
    return next(
        (
            definition
            for definition in LIBRARY_CATALOGS
            if definition.id == catalog_id and definition.content_type == content_type
        ),
        None,
    )


def build_manifest(settings: Settings) -> dict[str, Any]:
    """Return the addon manifest served at ``/manifest.json``."""

    return {
        "id": MANIFEST_ID,
        "version": MANIFEST_VERSION,
        "name": "Jellyfin",
        "description": f"Stremio Jellyfin integration ({settings.app_name})",
        "catalogs": [definition.to_manifest_entry() for definition in LIBRARY_CATALOGS],
        "resources": ["catalog", "stream"],
        "types": ["movie", "series"],
        "idPrefixes": ["tt"],
    }
