"""Normalization of Jellyseerr request details into progress records.

Jellyseerr reports download progress in several shapes. ``media.downloadStatus``
may be an array of queue entries (only the first is used), a single object, or
missing entirely while no download slot has been assigned. Status values are
either the numeric media lifecycle code or a string phase reported by the
download client. Everything downstream only sees :class:`ProgressRecord`.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..models import ProgressRecord, RequestDetail
from ..utils import coerce_int

MEDIA_STATUS_LABELS: dict[int, str] = {
    1: "Unknown",
    2: "Pending",
    3: "Processing",
    4: "Partially Available",
    5: "Available",
    6: "Blacklisted",
    7: "Deleted",
}


def describe_status(status: Any) -> str:
    """Return a display label for a numeric code or string phase."""

    if status is None or isinstance(status, bool):
        return "Unknown"
    if isinstance(status, int):
        return MEDIA_STATUS_LABELS.get(status, f"Status {status}")
    text = str(status).strip()
    if not text:
        return "Unknown"
    if text.isdigit():
        return describe_status(int(text))
    words: list[str] = []
    current = ""
    for char in text.replace("_", " ").replace("-", " "):
        if char == " " or (char.isupper() and current and not current[-1].isupper()):
            if current:
                words.append(current)
            current = "" if char == " " else char
            continue
        current += char
    if current:
        words.append(current)
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _first_download_slot(media: Mapping[str, Any]) -> Mapping[str, Any] | None:
    slots = media.get("downloadStatus")
    if isinstance(slots, list):
        slots = slots[0] if slots else None
    if isinstance(slots, Mapping):
        return slots
    return None


def _media_of(raw: Any) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        return {}
    media = raw.get("media")
    return media if isinstance(media, Mapping) else {}


def normalize_progress(raw: Any) -> ProgressRecord:
    """Build a :class:`ProgressRecord` from a raw request detail. Never raises."""

    media = _media_of(raw)
    status: int | str | None = media.get("status")
    record = ProgressRecord(status=status)

    slot = _first_download_slot(media)
    if slot is not None:
        if slot.get("status") is not None:
            record.status = slot.get("status")
        record.eta = _optional_text(slot.get("estimatedCompletionTime"))
        record.time_left = _optional_text(slot.get("timeLeft"))
        record.size = max(coerce_int(slot.get("size")), 0)
        record.size_left = max(coerce_int(slot.get("sizeLeft")), 0)

    record.status_label = describe_status(record.status)
    return record


def unwrap_request(raw: Any, request_id: int | None = None) -> Mapping[str, Any] | None:
    """Return the single request object from a detail or paged payload."""

    if not isinstance(raw, Mapping):
        return None
    if isinstance(raw.get("results"), list):
        entries = [entry for entry in raw["results"] if isinstance(entry, Mapping)]
    elif raw.get("id") is not None:
        entries = [raw]
    else:
        entries = []
    if request_id is None:
        return entries[0] if entries else None
    return next((entry for entry in entries if entry.get("id") == request_id), None)


def normalize_request_detail(
    raw: Any, request_id: int | None = None
) -> RequestDetail | None:
    """Normalize a raw Jellyseerr request; ``None`` if it cannot be identified."""

    entry = unwrap_request(raw, request_id)
    if entry is None:
        return None
    media = _media_of(entry)
    try:
        resolved_id = int(entry["id"])
    except (KeyError, TypeError, ValueError):
        return None
    return RequestDetail(
        request_id=resolved_id,
        tmdb_id=coerce_int(media.get("tmdbId")),
        media_type=str(media.get("mediaType") or entry.get("type") or ""),
        progress=normalize_progress(entry),
    )
