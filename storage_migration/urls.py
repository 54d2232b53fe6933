"""Public and signed URL resolution for stored asset paths."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from storage_migration.config import clamp_signed_ttl
from storage_migration.paths import public_object_marker, to_object_key
from storage_migration.storage import ObjectStore, StorageError

LOGGER = logging.getLogger(__name__)

REFRESH_MARGIN_SECONDS = 5 * 60
_LOCAL_PREFIXES = ("/images/", "/models/", "images/", "models/")


def _strip_asset_prefix(path: str) -> Optional[str]:
    if path.startswith(_LOCAL_PREFIXES):
        return path[1:] if path.startswith("/") else path
    return None


def public_url(path: Optional[str], base_url: Optional[str], bucket: str) -> Optional[str]:
    """Build the URL an asset path is served from.

    Absolute URLs pass through. Asset paths are key-encoded under the bucket's
    public prefix; without a base URL they resolve to a site-local ``/path``.
    Other absolute paths are kept as local paths.
    """
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path

    storage_path = _strip_asset_prefix(path)
    if storage_path is None:
        if path.startswith("/"):
            return path
        storage_path = path
    if not base_url:
        return f"/{storage_path}"
    return f"{base_url.rstrip('/')}{public_object_marker(bucket)}{to_object_key(storage_path)}"


def object_key_for_reference(path: Optional[str], bucket: str) -> Optional[str]:
    """Return the object key a stored path reference points at, or ``None``."""
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        marker = public_object_marker(bucket)
        index = path.find(marker)
        if index == -1:
            return None
        return to_object_key(path[index + len(marker):])
    storage_path = _strip_asset_prefix(path)
    return to_object_key(storage_path) if storage_path else None


class SignedUrlResolver:
    """Resolve asset paths to signed URLs with an in-memory expiry cache."""

    def __init__(
        self,
        store: Optional[ObjectStore],
        *,
        base_url: Optional[str],
        bucket: str,
        ttl_seconds: int = 21600,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.base_url = base_url
        self.bucket = bucket
        self.ttl_seconds = clamp_signed_ttl(ttl_seconds)
        self._clock = clock
        self.logger = logger or LOGGER
        self._cache: Dict[str, Tuple[str, float]] = {}

    def resolve(self, path: Optional[str]) -> Optional[str]:
        fallback = public_url(path, self.base_url, self.bucket)
        key = object_key_for_reference(path, self.bucket)
        if key is None or self.store is None:
            return fallback

        now = self._clock()
        cached = self._cache.get(key)
        if cached and cached[1] - now > REFRESH_MARGIN_SECONDS:
            return cached[0]

        try:
            url = self.store.create_signed_url(key, self.ttl_seconds)
        except StorageError as exc:
            self.logger.warning("Signed URL failed for %s (%s); using public URL", key, exc.message)
            return fallback
        self._cache[key] = (url, now + self.ttl_seconds)
        return url


__all__ = ["SignedUrlResolver", "object_key_for_reference", "public_url"]
