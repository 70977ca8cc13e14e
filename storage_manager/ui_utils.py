from __future__ import annotations
"""UI-agnostic helpers for formatting, key composition and filtering."""
from datetime import datetime
from enum import Enum
from typing import Iterable

from .models import ObjectRecord


class MediaFilter(Enum):
    ALL = "All"
    IMAGES = "Images"
    VIDEOS = "Videos"
    AUDIO = "Audio"
    OTHER = "Other"


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_last_modified(last_modified: datetime | None) -> str:
    if not last_modified:
        return "-"
    return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or last_modified.isoformat()


def build_object_key(filename: str, destination_path: str = "") -> str:
    """Join an upload destination folder and a file name into an object key."""
    name = filename.strip()
    if not name:
        raise ValueError("Object name cannot be empty")
    folder = destination_path.strip("/")
    return f"{folder}/{name}" if folder else name


def matches_filter(record: ObjectRecord, media_filter: MediaFilter) -> bool:
    if media_filter is MediaFilter.IMAGES:
        return record.is_image
    if media_filter is MediaFilter.VIDEOS:
        return record.is_video
    if media_filter is MediaFilter.AUDIO:
        return record.is_audio
    if media_filter is MediaFilter.OTHER:
        return not record.is_media
    return True


def filter_files(
    records: Iterable[ObjectRecord],
    media_filter: MediaFilter = MediaFilter.ALL,
    search_text: str = "",
) -> list[ObjectRecord]:
    needle = search_text.strip().lower()
    return [
        record
        for record in records
        if matches_filter(record, media_filter) and (not needle or needle in record.name.lower())
    ]


def breadcrumbs(path: str) -> list[tuple[str, str]]:
    """Return ``(label, path)`` pairs from the bucket root down to ``path``."""
    crumbs = [("/", "")]
    current = ""
    for segment in path.strip("/").split("/"):
        if not segment:
            continue
        current = f"{current}{segment}/"
        crumbs.append((segment, current))
    return crumbs
