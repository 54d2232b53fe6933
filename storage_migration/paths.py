"""Path normalisation and object-key canonicalisation for storage assets."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote

ASCII_SAFE_SEGMENT = re.compile(r"[A-Za-z0-9._-]+")
STORAGE_PREFIXES = ("images/", "models/")
PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/{bucket}/"
THUMB_PREFIX = "images/thumb/"


def public_object_marker(bucket: str) -> str:
    return PUBLIC_OBJECT_MARKER.format(bucket=bucket)


def normalize_storage_path(raw_path: Optional[str], bucket: str) -> Optional[str]:
    """Convert a stored path reference into a storage-relative path.

    Accepts public object URLs for ``bucket``, ``/images/...`` and ``/models/...``
    paths, and paths that already start with ``images/`` or ``models/``. Returns
    ``None`` for anything else so callers can skip the value.
    """
    if not raw_path:
        return None

    if raw_path.startswith(("http://", "https://")):
        marker = public_object_marker(bucket)
        index = raw_path.find(marker)
        if index == -1:
            return None
        return unquote(raw_path[index + len(marker):])

    if raw_path.startswith(("/images/", "/models/")):
        return raw_path[1:]
    if raw_path.startswith(STORAGE_PREFIXES):
        return raw_path
    return None


def decode_segment(segment: str) -> str:
    """Percent-decode a path segment, returning it unchanged when decoding fails."""
    try:
        return unquote(segment, errors="strict")
    except UnicodeDecodeError:
        return segment


def to_ascii_safe_segment(segment: str) -> str:
    if ASCII_SAFE_SEGMENT.fullmatch(segment):
        return segment
    return "u" + segment.encode("utf-8").hex()


def to_object_key(storage_path: str) -> str:
    """Return the ASCII-safe object key for a storage-relative path.

    Already-safe keys map to themselves, so listing entries produced by this
    function can be fed back through it.
    """
    segments = [segment for segment in storage_path.split("/") if segment]
    return "/".join(to_ascii_safe_segment(decode_segment(segment)) for segment in segments)


def thumb_storage_path(storage_path: str) -> Optional[str]:
    if not storage_path.startswith("images/"):
        return None
    if storage_path.startswith(THUMB_PREFIX):
        return None
    return THUMB_PREFIX + storage_path[len("images/"):]


__all__ = [
    "ASCII_SAFE_SEGMENT",
    "decode_segment",
    "normalize_storage_path",
    "public_object_marker",
    "thumb_storage_path",
    "to_ascii_safe_segment",
    "to_object_key",
]
