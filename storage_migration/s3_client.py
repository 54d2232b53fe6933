"""Object store backed by any S3-compatible endpoint (Supabase S3 gateway, R2, MinIO, ...)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.client import BaseClient
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from botocore.parsers import ResponseParserError

from storage_migration.models import ObjectEntry
from storage_migration.storage import (
    LIST_PAGE_SIZE,
    ErrorKind,
    ObjectStore,
    StorageError,
    classify_message,
)

LOGGER = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_TRANSIENT_CODES = {
    "InternalError",
    "RequestTimeout",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
}
_CONTENT_TYPE_CODES = {"InvalidContentType", "UnsupportedMediaType", "invalid_mime_type"}
_TRANSIENT_ERRORS = (ConnectionClosedError, ConnectTimeoutError, EndpointConnectionError, ReadTimeoutError)


def _to_storage_error(exc: Exception) -> StorageError:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = str(error.get("Message") or exc)
        if code in _NOT_FOUND_CODES:
            kind = ErrorKind.NOT_FOUND
        elif code in _TRANSIENT_CODES or (status is not None and status >= 500):
            kind = ErrorKind.TRANSIENT
        elif code in _CONTENT_TYPE_CODES or status == 415:
            kind = ErrorKind.CONTENT_TYPE
        else:
            kind = classify_message(message)
        return StorageError(f"{code or 'ClientError'}: {message}", kind, status)
    if isinstance(exc, _TRANSIENT_ERRORS):
        return StorageError(f"network error: {exc}", ErrorKind.TRANSIENT)
    if isinstance(exc, ResponseParserError):
        return StorageError(f"failed to parse JSON/XML response: {exc}", ErrorKind.AMBIGUOUS)
    return StorageError.from_message(str(exc))


class S3StorageClient(ObjectStore):
    def __init__(
        self,
        *,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Optional[BaseClient] = None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        self._listing_cache: Dict[str, List[ObjectEntry]] = {}

    def bucket_exists(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError, ResponseParserError) as exc:
            error = _to_storage_error(exc)
            if error.kind is ErrorKind.NOT_FOUND:
                return False
            raise error from exc

    def create_bucket(self, *, public: bool, file_size_limit: Optional[str] = None) -> None:
        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
        except (BotoCoreError, ClientError, ResponseParserError) as exc:
            raise _to_storage_error(exc) from exc
        if public or file_size_limit:
            LOGGER.debug(
                "Bucket %s created without public/size-limit policy; configure these on the provider",
                self.bucket,
            )

    def list(
        self,
        prefix: str = "",
        *,
        limit: int = LIST_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
    ) -> List[ObjectEntry]:
        # S3 has no offset paging: the first page fetches the whole prefix and later pages reuse it.
        entries = self._listing_cache.get(prefix) if offset else None
        if entries is None:
            entries = self._fetch_prefix(prefix)
            self._listing_cache[prefix] = entries

        if search:
            needle = search.lower()
            entries = [entry for entry in entries if needle in entry.name.lower()]
        return entries[offset:offset + limit]

    def _fetch_prefix(self, prefix: str) -> List[ObjectEntry]:
        base = f"{prefix.rstrip('/')}/" if prefix else ""
        entries: List[ObjectEntry] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=base, Delimiter="/"):
                for common in page.get("CommonPrefixes", []):
                    name = common["Prefix"][len(base):].rstrip("/")
                    if name:
                        entries.append(ObjectEntry(name=name, metadata=None))
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(base):]
                    if not name:
                        continue
                    entries.append(
                        ObjectEntry(
                            name=name,
                            metadata={"size": obj.get("Size"), "eTag": obj.get("ETag")},
                        )
                    )
        except (BotoCoreError, ClientError, ResponseParserError) as exc:
            raise _to_storage_error(exc) from exc
        entries.sort(key=lambda entry: entry.name)
        return entries

    def upload(
        self,
        key: str,
        payload: bytes,
        *,
        content_type: Optional[str] = None,
        upsert: bool = True,
    ) -> None:
        if not upsert and self._object_exists(key):
            raise StorageError(f"object already exists: {key}", ErrorKind.FATAL, 409)
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": payload}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            self.client.put_object(**kwargs)
        except (BotoCoreError, ClientError, ResponseParserError) as exc:
            raise _to_storage_error(exc) from exc

    def create_signed_url(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as exc:
            raise _to_storage_error(exc) from exc

    def _object_exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            error = _to_storage_error(exc)
            if error.kind is ErrorKind.NOT_FOUND:
                return False
            raise error from exc


__all__ = ["S3StorageClient"]
