import json
import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage_migration.storage import ErrorKind, StorageError, list_all_objects  # noqa: E402
from storage_migration.supabase_client import (  # noqa: E402
    SupabaseError,
    SupabaseStorageClient,
    SupabaseTableReader,
)

API = "https://x.supabase.co"


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=None, url="https://x.supabase.co/stub"):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.reason = "stub"
        self.url = url

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class StubSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self):
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._next()

    def get(self, url, params=None, timeout=None):
        self.calls.append(("GET", url, {"params": params}))
        return self._next()


def _client(responses):
    session = StubSession(responses)
    return SupabaseStorageClient(API, "key", "iwate150data", session=session), session


def test_upload_sends_upsert_and_content_type() -> None:
    client, session = _client([StubResponse(200, {"Key": "iwate150data/images/a.jpg"})])

    client.upload("images/a.jpg", b"data", content_type="image/jpeg")

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://x.supabase.co/storage/v1/object/iwate150data/images/a.jpg"
    assert kwargs["headers"]["x-upsert"] == "true"
    assert kwargs["headers"]["Content-Type"] == "image/jpeg"
    assert kwargs["data"] == b"data"


def test_upload_without_content_type_omits_header() -> None:
    client, session = _client([StubResponse(200, {"Key": "k"})])
    client.upload("models/a.fbx", b"x", content_type=None)
    assert "Content-Type" not in session.calls[0][2]["headers"]


@pytest.mark.parametrize(
    "response, kind",
    [
        (StubResponse(503, {"message": "Service Unavailable"}), ErrorKind.TRANSIENT),
        (StubResponse(400, {"statusCode": "415", "error": "invalid_mime_type", "message": "mime type model/fbx is not supported"}), ErrorKind.CONTENT_TYPE),
        (StubResponse(400, {"statusCode": "404", "error": "not_found", "message": "Object not found"}), ErrorKind.NOT_FOUND),
        (StubResponse(403, {"message": "new row violates row-level security policy"}), ErrorKind.FATAL),
        (StubResponse(200, None, text="<html>"), ErrorKind.AMBIGUOUS),
        (requests.ConnectionError("reset"), ErrorKind.TRANSIENT),
        (requests.Timeout("slow"), ErrorKind.TRANSIENT),
    ],
)
def test_upload_error_classification(response, kind) -> None:
    client, _ = _client([response])
    with pytest.raises(StorageError) as excinfo:
        client.upload("images/a.jpg", b"data", content_type="image/jpeg")
    assert excinfo.value.kind is kind


def test_list_and_recursive_listing() -> None:
    client, session = _client(
        [
            StubResponse(200, [{"name": "images", "metadata": None}, {"name": "root.txt", "metadata": {"size": 1}}]),
            StubResponse(200, [{"name": "a.jpg", "metadata": {"size": 3}}]),
        ]
    )

    keys = list_all_objects(client)

    assert keys == ["images/a.jpg", "root.txt"]
    body = session.calls[1][2]["json"]
    assert body["prefix"] == "images"
    assert body["limit"] == 100
    assert body["sortBy"] == {"column": "name", "order": "asc"}


def test_bucket_exists_and_create() -> None:
    client, session = _client([StubResponse(200, [{"id": "other", "name": "other"}]), StubResponse(200, {"name": "iwate150data"})])

    assert client.bucket_exists() is False
    client.create_bucket(public=True, file_size_limit="1GB")

    assert session.calls[1][2]["json"] == {
        "id": "iwate150data",
        "name": "iwate150data",
        "public": True,
        "file_size_limit": "1GB",
    }


def test_signed_url_is_absolute() -> None:
    client, session = _client([StubResponse(200, {"signedURL": "/object/sign/iwate150data/images/a.jpg?token=t"})])

    url = client.create_signed_url("images/a.jpg", 3600)

    assert url == "https://x.supabase.co/storage/v1/object/sign/iwate150data/images/a.jpg?token=t"
    assert session.calls[0][2]["json"] == {"expiresIn": 3600}


def test_table_reader_paginates() -> None:
    session = StubSession(
        [
            StubResponse(200, [{"id": 1}, {"id": 2}]),
            StubResponse(200, [{"id": 3}]),
        ]
    )
    reader = SupabaseTableReader(API, "key", page_size=2, session=session)

    rows = reader.fetch_rows("cities", ["id", "image_path"])

    assert [row["id"] for row in rows] == [1, 2, 3]
    assert session.calls[0][1] == "https://x.supabase.co/rest/v1/cities"
    assert session.calls[0][2]["params"]["select"] == "id,image_path"
    assert session.calls[1][2]["params"]["offset"] == "2"


def test_table_reader_raises_on_error() -> None:
    session = StubSession([StubResponse(400, {"message": "column does not exist"})])
    reader = SupabaseTableReader(API, "key", session=session)

    with pytest.raises(SupabaseError, match="cities query failed: column does not exist"):
        reader.fetch_rows("cities", ["id"])
