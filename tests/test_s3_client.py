import sys
from pathlib import Path

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage_migration.s3_client import S3StorageClient  # noqa: E402
from storage_migration.storage import ErrorKind, StorageError, list_all_objects  # noqa: E402


def _client_error(code: str, status: int, operation: str = "PutObject") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakePaginator:
    def __init__(self, keys, calls):
        self.keys = keys
        self.calls = calls

    def paginate(self, Bucket, Prefix, Delimiter):
        self.calls.append(Prefix)
        contents = []
        prefixes = set()
        for key in sorted(self.keys):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter in rest:
                prefixes.add(Prefix + rest.split(Delimiter, 1)[0] + Delimiter)
            else:
                contents.append({"Key": key, "Size": 1, "ETag": '"etag"'})
        yield {"Contents": contents, "CommonPrefixes": [{"Prefix": prefix} for prefix in sorted(prefixes)]}


class FakeS3:
    def __init__(self, keys=()):
        self.keys = set(keys)
        self.put_calls = []
        self.put_error = None
        self.head_bucket_error = None
        self.created = []
        self.paginate_calls = []

    def head_bucket(self, Bucket):
        if self.head_bucket_error is not None:
            raise self.head_bucket_error

    def create_bucket(self, **kwargs):
        self.created.append(kwargs)

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self.keys, self.paginate_calls)

    def put_object(self, **kwargs):
        self.put_calls.append(kwargs)
        if self.put_error is not None:
            raise self.put_error
        self.keys.add(kwargs["Key"])

    def head_object(self, Bucket, Key):
        if Key not in self.keys:
            raise _client_error("404", 404, "HeadObject")

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://s3.example/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


def test_listing_maps_common_prefixes_to_folders() -> None:
    fake = FakeS3(["images/spots/a.jpg", "images/spots/b.jpg", "models/x.obj"])
    client = S3StorageClient(bucket="assets", client=fake)

    root = client.list("")
    assert [(entry.name, entry.is_folder) for entry in root] == [("images", True), ("models", True)]
    assert list_all_objects(client) == ["images/spots/a.jpg", "images/spots/b.jpg", "models/x.obj"]
    assert [entry.name for entry in client.list("images/spots", search="b.jpg")] == ["b.jpg"]


def test_upload_sets_content_type() -> None:
    fake = FakeS3()
    client = S3StorageClient(bucket="assets", client=fake)

    client.upload("images/a.jpg", b"data", content_type="image/jpeg")
    client.upload("models/a.fbx", b"data", content_type=None)

    assert fake.put_calls[0]["ContentType"] == "image/jpeg"
    assert "ContentType" not in fake.put_calls[1]


@pytest.mark.parametrize(
    "error, kind",
    [
        (_client_error("SlowDown", 503), ErrorKind.TRANSIENT),
        (_client_error("InvalidContentType", 400), ErrorKind.CONTENT_TYPE),
        (_client_error("AccessDenied", 403), ErrorKind.FATAL),
        (EndpointConnectionError(endpoint_url="https://s3.example"), ErrorKind.TRANSIENT),
    ],
)
def test_upload_errors_are_classified(error, kind) -> None:
    fake = FakeS3()
    fake.put_error = error
    client = S3StorageClient(bucket="assets", client=fake)

    with pytest.raises(StorageError) as excinfo:
        client.upload("images/a.jpg", b"data", content_type="image/jpeg")
    assert excinfo.value.kind is kind


def test_bucket_exists_and_create_with_region() -> None:
    fake = FakeS3()
    fake.head_bucket_error = _client_error("404", 404, "HeadBucket")
    client = S3StorageClient(bucket="assets", region="ap-northeast-1", client=fake)

    assert client.bucket_exists() is False
    client.create_bucket(public=True, file_size_limit="1GB")

    assert fake.created == [
        {"Bucket": "assets", "CreateBucketConfiguration": {"LocationConstraint": "ap-northeast-1"}}
    ]


def test_signed_url() -> None:
    client = S3StorageClient(bucket="assets", client=FakeS3())
    assert client.create_signed_url("images/a.jpg", 3600) == "https://s3.example/assets/images/a.jpg?expires=3600"


def test_offset_pages_reuse_one_prefix_listing() -> None:
    fake = FakeS3([f"images/spots/{index:02d}.jpg" for index in range(5)])
    client = S3StorageClient(bucket="assets", client=fake)

    keys = list_all_objects(client, page_size=2)

    assert keys == [f"images/spots/{index:02d}.jpg" for index in range(5)]
    assert fake.paginate_calls == ["", "images/", "images/spots/"]


def test_first_page_refreshes_the_listing() -> None:
    fake = FakeS3(["images/a.jpg"])
    client = S3StorageClient(bucket="assets", client=fake)

    assert [entry.name for entry in client.list("images")] == ["a.jpg"]
    fake.keys.add("images/b.jpg")

    assert [entry.name for entry in client.list("images", search="b.jpg")] == ["b.jpg"]
