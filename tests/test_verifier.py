import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fake_store import FakeStore  # noqa: E402
from storage_migration.catalog import CatalogAsset  # noqa: E402
from storage_migration.paths import to_object_key  # noqa: E402
from storage_migration.verifier import ConsistencyVerifier, log_report, write_report  # noqa: E402

BUCKET = "iwate150data"


class FakeTables:
    def __init__(self, rows):
        self.rows = rows
        self.requests = []

    def fetch_rows(self, table, columns):
        self.requests.append((table, list(columns)))
        return self.rows.get(table, [])


def _verifier(store, rows, catalog=()):
    return ConsistencyVerifier(
        store,
        FakeTables(rows),
        list(catalog),
        BUCKET,
        logger=logging.getLogger("verifier-tests"),
    )


def test_single_dangling_reference_is_reported_once() -> None:
    store = FakeStore(keys=["images/spots/a.jpg", "images/thumb/spots/a.jpg"])
    rows = {
        "spots": [
            {
                "id": 7,
                "name": "Spot",
                "image_thumb_path": "/images/thumb/spots/a.jpg",
                "image_path": "images/spots/a.jpg",
                "model_path": "models/missing.glb",
            }
        ]
    }

    result = _verifier(store, rows).run()

    assert not result.ok
    assert len(result.missing) == 1
    record = result.missing[0]
    assert (record.table, record.record_id, record.field) == ("spots", "7", "model_path")
    assert record.canonical_path == "models/missing.glb"
    assert record.consuming_pages == "/ar"


def test_urls_and_non_ascii_keys_resolve() -> None:
    key = to_object_key("images/spots/かっこうだんご.jpg")
    store = FakeStore(keys=[key])
    url = "https://x.supabase.co/storage/v1/object/public/iwate150data/images/spots/%E3%81%8B%E3%81%A3%E3%81%93%E3%81%86%E3%81%A0%E3%82%93%E3%81%94.jpg"
    rows = {
        "cities": [{"id": 1, "name": "A", "image_thumb_path": None, "image_path": url}],
        "genres": [{"id": 2, "name": "B", "image_thumb_path": "", "image_path": "/images/spots/かっこうだんご.jpg"}],
    }

    result = _verifier(store, rows).run()

    assert result.ok
    assert result.checked == {"cities": 1, "genres": 1, "spots": 0, "characters": 0}
    assert result.object_count == 1


def test_null_and_non_asset_values_are_skipped() -> None:
    store = FakeStore()
    rows = {
        "cities": [
            {"id": 1, "name": "A", "image_thumb_path": None, "image_path": ""},
            {"id": 2, "name": "B", "image_thumb_path": "static/old.png", "image_path": "https://cdn.example/x.png"},
        ]
    }

    assert _verifier(store, rows).run().missing == []


def test_catalog_and_pages_are_attached() -> None:
    store = FakeStore(keys=["models/bear.obj"])
    catalog = [
        CatalogAsset("bear", "model_path", "/models/bear.obj"),
        CatalogAsset("bear", "thumbnail", "/images/characters/bear.png"),
    ]
    rows = {"genres": [{"id": 3, "name": "G", "image_thumb_path": "images/genres/g.png", "image_path": None}]}

    result = _verifier(store, rows, catalog).run()

    described = {(record.table, record.field): record.consuming_pages for record in result.missing}
    assert described == {
        ("genres", "image_thumb_path"): "/search",
        ("characters", "thumbnail"): "/camera, /character",
    }


def test_requested_columns() -> None:
    tables = FakeTables({})
    ConsistencyVerifier(FakeStore(), tables, [], BUCKET).run()

    assert tables.requests == [
        ("cities", ["id", "name", "image_thumb_path", "image_path"]),
        ("genres", ["id", "name", "image_thumb_path", "image_path"]),
        ("spots", ["id", "name", "image_thumb_path", "image_path", "model_path"]),
    ]


def test_report_truncates_after_limit(tmp_path: Path, caplog) -> None:
    store = FakeStore()
    rows = {
        "cities": [
            {"id": index, "name": "c", "image_thumb_path": None, "image_path": f"images/cities/{index}.jpg"}
            for index in range(53)
        ]
    }
    result = _verifier(store, rows).run()
    logger = logging.getLogger("verifier-tests")

    with caplog.at_level(logging.INFO, logger="verifier-tests"):
        log_report(result, logger)

    assert "NG: 53 missing assets" in caplog.text
    assert "... and 3 more" in caplog.text

    report = write_report(result, tmp_path / "reports" / "verify.json")
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["missing_count"] == 53
    assert data["bucket"] == BUCKET


def test_report_ok_line(caplog) -> None:
    result = _verifier(FakeStore(), {}).run()
    with caplog.at_level(logging.INFO, logger="verifier-tests"):
        log_report(result, logging.getLogger("verifier-tests"))
    assert "OK" in caplog.text
