"""Utility helpers for the Jellybridge service."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

HEX_ID_RE = re.compile(r"^[0-9a-fA-F]{32}$")


@dataclass(slots=True, frozen=True)
class CatalogId:
    """Decoded Stremio identifier: a title id plus optional episode ordinals."""

    title_id: str
    season: int | None = None
    episode: int | None = None
    is_episode: bool = False

    @property
    def has_ordinals(self) -> bool:
        return self.season is not None and self.episode is not None


def _parse_ordinal(value: str) -> int | None:
    text = value.strip()
    if not text.isdecimal():
        return None
    return int(text)


def parse_catalog_id(value: str) -> CatalogId | None:
    """Split ``tt123`` or ``tt123:season:episode`` into its parts.

    Returns ``None`` for any other shape. Non-numeric season or episode
    segments are kept as ``None`` so later matching simply finds nothing.
    """

    parts = (value or "").strip().split(":")
    title_id = parts[0].strip()
    if not title_id:
        return None
    if len(parts) == 1:
        return CatalogId(title_id=title_id)
    if len(parts) == 3:
        return CatalogId(
            title_id=title_id,
            season=_parse_ordinal(parts[1]),
            episode=_parse_ordinal(parts[2]),
            is_episode=True,
        )
    return None


def format_uuid(plain: str) -> str | None:
    """Return ``plain`` in 8-4-4-4-12 UUID punctuation, or ``None`` if malformed."""

    if not isinstance(plain, str) or not HEX_ID_RE.match(plain):
        logger.warning("Invalid UUID format received: %r", plain)
        return None
    return f"{plain[:8]}-{plain[8:12]}-{plain[12:16]}-{plain[16:20]}-{plain[20:]}"


def coerce_int(value: Any) -> int:
    """Best-effort conversion of sizes reported as numbers or strings."""

    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0
        return int(number) if math.isfinite(number) else 0
    return 0


def compute_percent(size: int, size_left: int) -> int:
    """Return the downloaded share of ``size`` as a whole percentage."""

    if size <= 0:
        return 0
    ratio = (size - size_left) / size * 100
    # Half-up rounding; ``round`` would round 0.5 to even.
    percent = math.floor(ratio + 0.5)
    return max(0, min(100, percent))
