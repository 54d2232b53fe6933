"""Data models shared by the manifest builder, uploader and verifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

SOURCE_LEGACY = "legacy"
SOURCE_PUBLIC = "public"
VARIANT_FULL = "full"
VARIANT_THUMB = "thumb"


@dataclass(frozen=True)
class AssetItem:
    """A single local file scheduled for a storage path."""

    local_path: Path
    storage_path: str
    upload_key: str
    byte_size: int
    source: str
    variant: str = VARIANT_FULL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_path": str(self.local_path),
            "storage_path": self.storage_path,
            "upload_key": self.upload_key,
            "byte_size": self.byte_size,
            "source": self.source,
            "variant": self.variant,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetItem":
        return cls(
            local_path=Path(data["local_path"]),
            storage_path=str(data["storage_path"]),
            upload_key=str(data["upload_key"]),
            byte_size=int(data.get("byte_size") or 0),
            source=str(data.get("source", SOURCE_PUBLIC)),
            variant=str(data.get("variant", VARIANT_FULL)),
        )


@dataclass(frozen=True)
class MissingAssetRecord:
    """A path reference that does not resolve to a stored object."""

    table: str
    record_id: str
    field: str
    canonical_path: str
    consuming_pages: str

    def describe(self) -> str:
        return (
            f"{self.table}[{self.record_id}].{self.field}: "
            f"{self.canonical_path} (pages: {self.consuming_pages})"
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "table": self.table,
            "record_id": self.record_id,
            "field": self.field,
            "canonical_path": self.canonical_path,
            "consuming_pages": self.consuming_pages,
        }


@dataclass(frozen=True)
class UploadFailure:
    upload_key: str
    local_path: Path
    reason: str


@dataclass
class UploadSummary:
    """Counters emitted by an upload run."""

    planned: int = 0
    uploaded: int = 0
    skipped: int = 0
    failures: List[UploadFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def processed(self) -> int:
        return self.uploaded + self.skipped + len(self.failures)

    def as_dict(self) -> Dict[str, object]:
        return {
            "planned": self.planned,
            "uploaded": self.uploaded,
            "skipped": self.skipped,
            "failures": [
                {"upload_key": failure.upload_key, "reason": failure.reason}
                for failure in self.failures
            ],
            "dry_run": self.dry_run,
        }


@dataclass
class VerificationResult:
    bucket: str
    object_count: int = 0
    checked: Dict[str, int] = field(default_factory=dict)
    missing: List[MissingAssetRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing

    def as_dict(self) -> Dict[str, object]:
        return {
            "bucket": self.bucket,
            "objects": self.object_count,
            "checked": dict(self.checked),
            "missing_count": len(self.missing),
            "missing": [record.to_dict() for record in self.missing],
        }


@dataclass(frozen=True)
class ObjectEntry:
    """Listing entry returned by an object store; ``metadata`` is ``None`` for folders."""

    name: str
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_folder(self) -> bool:
        return self.metadata is None


__all__ = [
    "AssetItem",
    "MissingAssetRecord",
    "ObjectEntry",
    "SOURCE_LEGACY",
    "SOURCE_PUBLIC",
    "UploadFailure",
    "UploadSummary",
    "VARIANT_FULL",
    "VARIANT_THUMB",
    "VerificationResult",
]
