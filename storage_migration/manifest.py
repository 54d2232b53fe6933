"""Local asset discovery and manifest building for the storage migration."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from storage_migration.config import LocalRoots
from storage_migration.models import (
    SOURCE_LEGACY,
    SOURCE_PUBLIC,
    VARIANT_FULL,
    VARIANT_THUMB,
    AssetItem,
)
from storage_migration.paths import thumb_storage_path, to_object_key

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".svg"})
MODEL_EXTENSIONS = frozenset({".obj", ".mtl", ".fbx", ".glb", ".gltf"})

# Top-level directory under the legacy images root -> storage category.
LEGACY_IMAGE_CATEGORIES = {
    "city_images": "images/cities",
    "genre_images": "images/genres",
    "spot_images": "images/spots",
}
LEGACY_IMAGE_EXCEPTIONS = {"wanko.png": "images/other/wanko.png"}
LEGACY_FALLBACK_CATEGORY = "images/other"


def walk_files(directory: Path) -> List[Path]:
    """Return every regular file below ``directory`` in sorted depth-first order."""
    files: List[Path] = []
    for entry in sorted(directory.iterdir(), key=lambda item: item.name):
        if entry.is_symlink():
            continue
        if entry.is_dir():
            files.extend(walk_files(entry))
        elif entry.is_file():
            files.append(entry)
    return files


def is_image(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def is_model(path: Path) -> bool:
    return path.suffix.lower() in MODEL_EXTENSIONS


def relative_posix(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def map_legacy_image(path: Path, legacy_images_root: Path) -> str:
    """Map a legacy image file to its canonical storage path."""
    rel = relative_posix(path, legacy_images_root)
    if rel in LEGACY_IMAGE_EXCEPTIONS:
        return LEGACY_IMAGE_EXCEPTIONS[rel]
    top, _, rest = rel.partition("/")
    category = LEGACY_IMAGE_CATEGORIES.get(top) if rest else None
    return f"{category or LEGACY_FALLBACK_CATEGORY}/{path.name}"


def merge_item(target: Dict[str, AssetItem], item: AssetItem) -> bool:
    """Insert ``item`` unless an entry of equal or higher priority already exists.

    Legacy assets replace public ones at the same storage path; otherwise the
    first entry seen is kept. Returns ``True`` when ``item`` was stored.
    """
    current = target.get(item.storage_path)
    if current is None or (current.source == SOURCE_PUBLIC and item.source == SOURCE_LEGACY):
        target[item.storage_path] = item
        return True
    return False


class ManifestBuilder:
    """Scan the local asset roots and produce a deduplicated, sorted manifest."""

    def __init__(self, roots: LocalRoots, *, logger: Optional[logging.Logger] = None) -> None:
        self.roots = roots
        self.logger = logger or LOGGER

    def build(self) -> List[AssetItem]:
        items_by_path: Dict[str, AssetItem] = {}

        for local_path in self._scan(self.roots.legacy_images, "legacy images"):
            if is_image(local_path):
                storage_path = map_legacy_image(local_path, self.roots.legacy_images)
                self._add_image(items_by_path, local_path, storage_path, SOURCE_LEGACY)

        for local_path in self._scan(self.roots.legacy_models, "legacy models"):
            if is_model(local_path):
                storage_path = f"models/{relative_posix(local_path, self.roots.legacy_models)}"
                self._add_model(items_by_path, local_path, storage_path, SOURCE_LEGACY)

        for local_path in self._scan(self.roots.public_images, "public images"):
            if is_image(local_path):
                storage_path = f"images/{relative_posix(local_path, self.roots.public_images)}"
                self._add_image(items_by_path, local_path, storage_path, SOURCE_PUBLIC)

        for local_path in self._scan(self.roots.public_models, "public models"):
            if is_model(local_path):
                storage_path = f"models/{relative_posix(local_path, self.roots.public_models)}"
                self._add_model(items_by_path, local_path, storage_path, SOURCE_PUBLIC)

        return sorted(items_by_path.values(), key=lambda item: item.storage_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _scan(self, root: Path, label: str) -> List[Path]:
        if not root.is_dir():
            self.logger.debug("Skipping %s root (not found): %s", label, root)
            return []
        files = walk_files(root)
        self.logger.debug("Found %d files under %s root %s", len(files), label, root)
        return files

    @staticmethod
    def _make_item(local_path: Path, storage_path: str, size: int, source: str, variant: str) -> AssetItem:
        return AssetItem(
            local_path=local_path,
            storage_path=storage_path,
            upload_key=to_object_key(storage_path),
            byte_size=size,
            source=source,
            variant=variant,
        )

    def _add_image(self, target: Dict[str, AssetItem], local_path: Path, storage_path: str, source: str) -> None:
        size = local_path.stat().st_size
        merge_item(target, self._make_item(local_path, storage_path, size, source, VARIANT_FULL))

        # Thumbnails mirror the original bytes until real downscaling exists.
        thumb_path = thumb_storage_path(storage_path)
        if thumb_path is not None:
            merge_item(target, self._make_item(local_path, thumb_path, size, source, VARIANT_THUMB))

    def _add_model(self, target: Dict[str, AssetItem], local_path: Path, storage_path: str, source: str) -> None:
        size = local_path.stat().st_size
        merge_item(target, self._make_item(local_path, storage_path, size, source, VARIANT_FULL))


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def total_bytes(items: Sequence[AssetItem]) -> int:
    return sum(item.byte_size for item in items)


def write_manifest(
    items: Sequence[AssetItem],
    manifest_path: Path,
    bucket: str,
    *,
    generated_at: Optional[datetime] = None,
) -> Path:
    """Persist the manifest snapshot in a single atomic replace."""
    payload = {
        "generated_at": format_timestamp(generated_at or datetime.now(timezone.utc)),
        "bucket": bucket,
        "count": len(items),
        "items": [item.to_dict() for item in items],
    }
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = manifest_path.with_name(f".tmp_{uuid.uuid4().hex}_{manifest_path.name}")
    try:
        temp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        temp_path.replace(manifest_path)
    finally:
        temp_path.unlink(missing_ok=True)
    return manifest_path


def load_manifest(manifest_path: Path) -> Tuple[Dict[str, object], List[AssetItem]]:
    """Read a manifest snapshot back into header fields and items."""
    with manifest_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    items = [AssetItem.from_dict(entry) for entry in data.get("items", [])]
    header = {key: data.get(key) for key in ("generated_at", "bucket", "count")}
    return header, items


__all__ = [
    "IMAGE_EXTENSIONS",
    "MODEL_EXTENSIONS",
    "ManifestBuilder",
    "is_image",
    "is_model",
    "load_manifest",
    "map_legacy_image",
    "merge_item",
    "total_bytes",
    "walk_files",
    "write_manifest",
]
