from __future__ import annotations
"""Parsing of ``ListObjectsV2`` responses into :class:`ObjectRecord` values."""
from datetime import datetime, timezone
import logging
from typing import Callable, Optional
from xml.etree import ElementTree

from .errors import ParseError
from .models import ObjectRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "pdf": "application/pdf",
    "json": "application/json",
    "txt": "text/plain",
}

_DATE_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def guess_content_type(filename: str) -> str:
    name = filename.rsplit("/", 1)[-1]
    stem, dot, suffix = name.rpartition(".")
    if not dot or not stem:
        return DEFAULT_CONTENT_TYPE
    return MIME_TYPES.get(suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_timestamp(value: str) -> datetime:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ParseError(f"Unrecognised timestamp {value!r}")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ElementTree.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return None


def _parse_document(body: bytes | str) -> ElementTree.Element:
    if not body or not body.strip():
        raise ParseError("Empty listing body")
    try:
        return ElementTree.fromstring(body)
    except ElementTree.ParseError as exc:
        raise ParseError(f"Malformed listing body: {exc}") from exc


def parse_list_response(
    body: bytes | str,
    *,
    url_for_key: Callable[[str], Optional[str]] | None = None,
    now: Callable[[], datetime] | None = None,
) -> list[ObjectRecord]:
    """Extract every ``<Contents>`` entry from a listing body.

    Malformed documents produce an empty list. Missing or invalid ``Size``
    values become 0, unreadable ``LastModified`` values become the call time.
    Keys ending in ``/`` are folder markers and are skipped.
    """
    try:
        root = _parse_document(body)
    except ParseError as exc:
        LOGGER.warning("Discarding listing response: %s", exc)
        return []

    clock = now or (lambda: datetime.now(timezone.utc))
    called_at = clock()
    records: list[ObjectRecord] = []
    for element in root.iter():
        if _local_name(element.tag) != "Contents":
            continue
        key = _child_text(element, "Key") or ""
        if not key or key.endswith("/"):
            continue

        size_text = _child_text(element, "Size")
        try:
            size = int(size_text) if size_text else 0
        except ValueError:
            LOGGER.warning("Invalid size %r for key %r", size_text, key)
            size = 0
        size = max(size, 0)

        modified_text = _child_text(element, "LastModified") or ""
        try:
            last_modified = parse_timestamp(modified_text)
        except ParseError as exc:
            LOGGER.warning("%s for key %r", exc, key)
            last_modified = called_at

        records.append(
            ObjectRecord(
                key=key,
                size=size,
                last_modified=last_modified,
                content_type=guess_content_type(key),
                url=url_for_key(key) if url_for_key else None,
            )
        )
    return records
