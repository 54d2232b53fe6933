"""Read-only audit of database and catalog path references against the store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from storage_migration.catalog import CatalogAsset
from storage_migration.models import MissingAssetRecord, VerificationResult
from storage_migration.paths import normalize_storage_path, to_object_key
from storage_migration.storage import ObjectStore, list_all_objects

LOGGER = logging.getLogger(__name__)

REPORT_LIMIT = 50
CATALOG_TABLE = "characters"
CATALOG_PAGES = "/camera, /character"


class TableReader(Protocol):
    def fetch_rows(self, table: str, columns: Sequence[str]) -> List[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class TableSpec:
    """A table whose columns hold asset paths, with the pages that consume each column."""

    name: str
    path_fields: Tuple[Tuple[str, str], ...]

    @property
    def columns(self) -> List[str]:
        return ["id", "name", *(field for field, _ in self.path_fields)]


DEFAULT_TABLES: Tuple[TableSpec, ...] = (
    TableSpec("cities", (("image_thumb_path", "/, /search"), ("image_path", "/, /search"))),
    TableSpec("genres", (("image_thumb_path", "/search"), ("image_path", "/search"))),
    TableSpec(
        "spots",
        (
            ("image_thumb_path", "/, /search, /spot"),
            ("image_path", "/, /search, /spot"),
            ("model_path", "/ar"),
        ),
    ),
)


class ConsistencyVerifier:
    """Compare every stored path reference with a single listing snapshot."""

    def __init__(
        self,
        store: ObjectStore,
        tables: TableReader,
        catalog: Sequence[CatalogAsset],
        bucket: str,
        *,
        table_specs: Sequence[TableSpec] = DEFAULT_TABLES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.tables = tables
        self.catalog = list(catalog)
        self.bucket = bucket
        self.table_specs = tuple(table_specs)
        self.logger = logger or LOGGER

    def run(self) -> VerificationResult:
        rows_by_table = {
            spec.name: self.tables.fetch_rows(spec.name, spec.columns) for spec in self.table_specs
        }
        object_keys = {to_object_key(key) for key in list_all_objects(self.store)}
        result = VerificationResult(bucket=self.bucket, object_count=len(object_keys))

        for spec in self.table_specs:
            rows = rows_by_table[spec.name]
            result.checked[spec.name] = len(rows)
            for row in rows:
                record_id = str(row.get("id"))
                for field, pages in spec.path_fields:
                    self._check(result, object_keys, spec.name, record_id, field, row.get(field), pages)

        result.checked[CATALOG_TABLE] = len(self.catalog)
        for asset in self.catalog:
            self._check(result, object_keys, CATALOG_TABLE, asset.record_id, asset.field, asset.path, CATALOG_PAGES)

        return result

    def _check(
        self,
        result: VerificationResult,
        object_keys: Set[str],
        table: str,
        record_id: str,
        field: str,
        raw_value: Any,
        pages: str,
    ) -> None:
        if not isinstance(raw_value, str):
            return
        normalized = normalize_storage_path(raw_value, self.bucket)
        if normalized is None:
            return
        canonical = to_object_key(normalized)
        if canonical in object_keys:
            return
        result.missing.append(
            MissingAssetRecord(
                table=table,
                record_id=record_id,
                field=field,
                canonical_path=canonical,
                consuming_pages=pages,
            )
        )


def log_report(result: VerificationResult, logger: Optional[logging.Logger] = None, *, limit: int = REPORT_LIMIT) -> None:
    log = logger or LOGGER
    log.info("bucket: %s", result.bucket)
    log.info("storage objects: %d", result.object_count)
    for table, count in result.checked.items():
        log.info("checked %s: %d", table, count)

    if result.ok:
        log.info("OK: all referenced assets exist in storage")
        return

    log.error("NG: %d missing assets", len(result.missing))
    for record in result.missing[:limit]:
        log.error("  - %s", record.describe())
    if len(result.missing) > limit:
        log.error("  ... and %d more", len(result.missing) - limit)


def write_report(result: VerificationResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.as_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    return path


__all__ = [
    "CATALOG_PAGES",
    "ConsistencyVerifier",
    "DEFAULT_TABLES",
    "TableSpec",
    "log_report",
    "write_report",
]
