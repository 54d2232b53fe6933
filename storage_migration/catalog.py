"""Asset references declared in the static character catalog source file."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

LOGGER = logging.getLogger(__name__)

CATALOG_FIELDS = ("model_path", "mtl_path", "thumbnail")

_RECORD_PATTERN = re.compile(r'\{\s*id:\s*"([^"]+)"[\s\S]*?\}')
_FIELD_PATTERNS = {name: re.compile(rf'{name}:\s*"([^"]+)"') for name in CATALOG_FIELDS}


@dataclass(frozen=True)
class CatalogAsset:
    record_id: str
    field: str
    path: str


def parse_catalog_assets(source: str) -> List[CatalogAsset]:
    """Extract ``(id, field, path)`` triples from object literals in ``source``."""
    assets: List[CatalogAsset] = []
    for block in _RECORD_PATTERN.finditer(source):
        record_id = block.group(1)
        body = block.group(0)
        for name in CATALOG_FIELDS:
            match = _FIELD_PATTERNS[name].search(body)
            if match:
                assets.append(CatalogAsset(record_id=record_id, field=name, path=match.group(1)))
    return assets


def load_catalog_assets(path: Path, *, logger: Optional[logging.Logger] = None) -> List[CatalogAsset]:
    log = logger or LOGGER
    if not path.is_file():
        log.warning("Character catalog not found at %s; skipping catalog checks", path)
        return []
    assets = parse_catalog_assets(path.read_text(encoding="utf-8"))
    log.debug("Loaded %d catalog asset references from %s", len(assets), path)
    return assets


__all__ = ["CATALOG_FIELDS", "CatalogAsset", "load_catalog_assets", "parse_catalog_assets"]
