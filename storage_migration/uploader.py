"""Idempotent upload of manifest items into the object store."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set

from storage_migration.models import AssetItem, UploadFailure, UploadSummary
from storage_migration.paths import to_object_key
from storage_migration.progress import ProgressReporter
from storage_migration.storage import (
    ErrorKind,
    ObjectStore,
    StorageError,
    list_all_objects,
    object_listed,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".obj": "model/obj",
    ".mtl": "text/plain",
    ".fbx": "model/fbx",
    ".glb": "model/gltf-binary",
    ".gltf": "model/gltf+json",
}
# Some buckets reject vendor model types, so FBX uploads fall back to generic types.
FBX_FALLBACK_TYPES = (DEFAULT_CONTENT_TYPE, "text/plain")

PROBE_ATTEMPTS = 3
PROBE_BACKOFF_SECONDS = 0.5


def detect_content_type(path: Path | str) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def content_type_candidates(path: Path | str) -> List[Optional[str]]:
    """Return the ordered content types to try for ``path``.

    ``None`` means "let the store infer the type" and is always the last resort.
    """
    primary = detect_content_type(path)
    ordered: List[Optional[str]] = [primary]
    if Path(path).suffix.lower() == ".fbx":
        ordered.extend(FBX_FALLBACK_TYPES)
    ordered.append(None)

    unique: List[Optional[str]] = []
    for candidate in ordered:
        if candidate not in unique:
            unique.append(candidate)
    return unique


class UploadError(RuntimeError):
    """Raised when an item cannot be uploaded and should not be retried."""

    def __init__(self, upload_key: str, message: str, last_error: Optional[StorageError] = None) -> None:
        super().__init__(f"{upload_key}: {message}")
        self.upload_key = upload_key
        self.last_error = last_error


class UploadOrchestrator:
    """Upload manifest items that are not yet present in the store.

    Parameters
    ----------
    store:
        Target object store. May be ``None`` for dry runs, which never touch it.
    keep_going:
        When ``True`` fatal item errors are collected in the summary instead of
        aborting the run.
    sleep:
        Injectable sleep function used for retry backoff.
    """

    def __init__(
        self,
        store: Optional[ObjectStore],
        *,
        bucket_public: bool = True,
        bucket_size_limit: Optional[str] = "1GB",
        max_attempts: int = 4,
        backoff_seconds: float = 1.0,
        progress_interval: int = 50,
        preview_limit: int = 20,
        keep_going: bool = False,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.bucket_public = bucket_public
        self.bucket_size_limit = bucket_size_limit
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = max(0.0, backoff_seconds)
        self.progress_interval = max(1, progress_interval)
        self.preview_limit = max(0, preview_limit)
        self.keep_going = keep_going
        self.logger = logger or LOGGER
        self._sleep = sleep
        self.existing_keys: Set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, items: Sequence[AssetItem], *, dry_run: bool = True) -> UploadSummary:
        summary = UploadSummary(planned=len(items), dry_run=dry_run)
        if dry_run:
            self.log_preview(items)
            return summary

        store = self._require_store()
        self.ensure_bucket()
        self.load_existing_keys()

        reporter = ProgressReporter(len(items), self.logger, interval=self.progress_interval)
        for item in items:
            if item.upload_key in self.existing_keys:
                summary.skipped += 1
            else:
                try:
                    self.upload_item(item)
                    summary.uploaded += 1
                except UploadError as exc:
                    if not self.keep_going:
                        raise
                    self.logger.error("Upload failed for %s: %s", item.upload_key, exc)
                    summary.failures.append(
                        UploadFailure(upload_key=item.upload_key, local_path=item.local_path, reason=str(exc))
                    )
            reporter.advance(summary.uploaded, summary.skipped)

        self.logger.info(
            "Upload finished for bucket %s: uploaded=%d skipped=%d failed=%d",
            store.bucket,
            summary.uploaded,
            summary.skipped,
            len(summary.failures),
        )
        return summary

    def log_preview(self, items: Sequence[AssetItem]) -> None:
        self.logger.info("Dry run: %d items planned, showing the first %d", len(items), self.preview_limit)
        for item in items[: self.preview_limit]:
            self.logger.info(
                "  %s (from %s) <- %s (%s/%s)",
                item.upload_key,
                item.storage_path,
                item.local_path,
                item.source,
                item.variant,
            )
        if len(items) > self.preview_limit:
            self.logger.info("  ... and %d more", len(items) - self.preview_limit)

    def ensure_bucket(self) -> None:
        """Create the bucket when it is missing; failures only produce warnings."""
        store = self._require_store()
        try:
            if store.bucket_exists():
                return
        except StorageError as exc:
            self.logger.warning(
                "Bucket listing failed (%s); assuming bucket %s exists and continuing",
                exc.message,
                store.bucket,
            )
            return

        try:
            store.create_bucket(public=self.bucket_public, file_size_limit=self.bucket_size_limit)
            self.logger.info("Created bucket %s", store.bucket)
        except StorageError as exc:
            self.logger.warning(
                "Bucket creation failed (%s); assuming bucket %s exists and continuing",
                exc.message,
                store.bucket,
            )

    def load_existing_keys(self) -> Set[str]:
        """Snapshot the remote listing once into the skip-cache."""
        store = self._require_store()
        try:
            keys = list_all_objects(store)
        except StorageError as exc:
            self.logger.warning("Existing object listing failed (%s); uploading without skip-cache", exc.message)
            keys = []
        self.existing_keys = {to_object_key(key) for key in keys}
        self.logger.info("Found %d existing objects in bucket %s", len(self.existing_keys), store.bucket)
        return self.existing_keys

    def upload_item(self, item: AssetItem) -> None:
        """Upload one item with retry/backoff for transient failures."""
        try:
            payload = item.local_path.read_bytes()
        except OSError as exc:
            raise UploadError(item.upload_key, f"cannot read {item.local_path}: {exc}") from exc
        last_error: Optional[StorageError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.upload_with_fallback(item.upload_key, payload, item.local_path)
                self.existing_keys.add(item.upload_key)
                return
            except StorageError as exc:
                last_error = exc
            if attempt < self.max_attempts:
                wait = attempt * self.backoff_seconds
                self.logger.warning(
                    "Transient error for %s (attempt %d/%d), retrying in %.1fs: %s",
                    item.upload_key,
                    attempt,
                    self.max_attempts,
                    wait,
                    last_error.message,
                )
                self._sleep(wait)

        if last_error is not None and last_error.kind is ErrorKind.AMBIGUOUS and self.object_exists(item.upload_key):
            self.logger.info("Accepted ambiguous upload response, object exists: %s", item.upload_key)
            self.existing_keys.add(item.upload_key)
            return
        raise UploadError(
            item.upload_key,
            f"gave up after {self.max_attempts} attempts: {last_error.message if last_error else 'unknown error'}",
            last_error,
        )

    def upload_with_fallback(self, key: str, payload: bytes, local_path: Path) -> None:
        """Single upload attempt walking the content-type candidates.

        Raises ``StorageError`` when the attempt may be retried and
        ``UploadError`` when it must not be.
        """
        store = self._require_store()
        candidates = content_type_candidates(local_path)

        for index, content_type in enumerate(candidates):
            try:
                store.upload(key, payload, content_type=content_type, upsert=True)
                return
            except StorageError as exc:
                if exc.kind is ErrorKind.AMBIGUOUS:
                    if self.object_exists(key):
                        self.logger.info("Upload response unparseable but object exists: %s", key)
                        return
                    raise
                if exc.kind is ErrorKind.CONTENT_TYPE and index + 1 < len(candidates):
                    self.logger.info(
                        "Retrying %s with fallback content type %s",
                        key,
                        candidates[index + 1] or "(store default)",
                    )
                    continue
                if exc.kind is ErrorKind.TRANSIENT:
                    raise
                raise UploadError(key, exc.message, exc) from exc

    def object_exists(self, key: str) -> bool:
        """Probe for ``key`` by listing its parent; unknown results count as absent."""
        store = self._require_store()
        for attempt in range(1, PROBE_ATTEMPTS + 1):
            try:
                return object_listed(store, key)
            except StorageError as exc:
                if exc.kind is not ErrorKind.TRANSIENT or attempt == PROBE_ATTEMPTS:
                    self.logger.debug("Existence probe failed for %s: %s", key, exc.message)
                    return False
                self._sleep(attempt * PROBE_BACKOFF_SECONDS)
        return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_store(self) -> ObjectStore:
        if self.store is None:
            raise RuntimeError("An object store is required for live uploads")
        return self.store


__all__ = [
    "CONTENT_TYPES",
    "UploadError",
    "UploadOrchestrator",
    "content_type_candidates",
    "detect_content_type",
]
