"""Object-store abstraction, tagged storage errors and listing helpers."""

from __future__ import annotations

import re
from enum import Enum
from typing import List, Optional

from storage_migration.models import ObjectEntry

LIST_PAGE_SIZE = 100
SEARCH_LIMIT = 1000

_AMBIGUOUS_PATTERN = re.compile(r"(failed to parse json|not valid json|unexpected token .* json|json ?decode)", re.I)
_CONTENT_TYPE_PATTERN = re.compile(r"(mime type .* is not supported|invalid_mime_type)", re.I)
_TRANSIENT_PATTERN = re.compile(
    r"(unable to connect|fetch failed|network|timeout|timed out|temporarily|\b5\d\d\b"
    r"|internal server error|connection (?:reset|aborted|refused))",
    re.I,
)
_NOT_FOUND_PATTERN = re.compile(r"(\bnot[ _]found\b|nosuchkey|nosuchbucket)", re.I)


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    CONTENT_TYPE = "content_type"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"
    FATAL = "fatal"


class StorageError(RuntimeError):
    """Raised by object-store clients; ``kind`` tells callers how to recover."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.FATAL, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.TRANSIENT, ErrorKind.AMBIGUOUS)

    @classmethod
    def from_message(cls, message: str, status: Optional[int] = None) -> "StorageError":
        return cls(message, classify_message(message), status)


def classify_message(message: str) -> ErrorKind:
    """Classify an unstructured error message.

    Clients only fall back to this when the underlying library offers no
    status code or error code to inspect.
    """
    if _AMBIGUOUS_PATTERN.search(message):
        return ErrorKind.AMBIGUOUS
    if _CONTENT_TYPE_PATTERN.search(message):
        return ErrorKind.CONTENT_TYPE
    if _TRANSIENT_PATTERN.search(message):
        return ErrorKind.TRANSIENT
    if _NOT_FOUND_PATTERN.search(message):
        return ErrorKind.NOT_FOUND
    return ErrorKind.FATAL


class ObjectStore:
    """Primitives the migration needs from a bucket-oriented object store."""

    bucket: str

    def bucket_exists(self) -> bool:
        raise NotImplementedError

    def create_bucket(self, *, public: bool, file_size_limit: Optional[str] = None) -> None:
        raise NotImplementedError

    def list(
        self,
        prefix: str = "",
        *,
        limit: int = LIST_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
    ) -> List[ObjectEntry]:
        """Return direct children of ``prefix`` sorted by name."""
        raise NotImplementedError

    def upload(
        self,
        key: str,
        payload: bytes,
        *,
        content_type: Optional[str] = None,
        upsert: bool = True,
    ) -> None:
        raise NotImplementedError

    def create_signed_url(self, key: str, expires_in: int) -> str:
        raise NotImplementedError


def list_all_objects(store: ObjectStore, prefix: str = "", *, page_size: int = LIST_PAGE_SIZE) -> List[str]:
    """Recursively collect every object key below ``prefix``."""
    objects: List[str] = []
    offset = 0

    while True:
        try:
            entries = store.list(prefix, limit=page_size, offset=offset)
        except StorageError as exc:
            raise StorageError(
                f"storage list failed ({prefix or '/'}) {exc.message}",
                exc.kind,
                exc.status,
            ) from exc
        if not entries:
            break

        for entry in entries:
            child = f"{prefix}/{entry.name}" if prefix else entry.name
            if entry.is_folder:
                objects.extend(list_all_objects(store, child, page_size=page_size))
            else:
                objects.append(child)

        if len(entries) < page_size:
            break
        offset += page_size

    return objects


def split_key(key: str) -> tuple[str, str]:
    """Split an object key into its parent prefix and file name."""
    prefix, _, name = key.rpartition("/")
    return prefix, name


def object_listed(store: ObjectStore, key: str) -> bool:
    """Return ``True`` when ``key`` appears in a name-filtered listing of its parent."""
    prefix, name = split_key(key)
    entries = store.list(prefix, limit=SEARCH_LIMIT, search=name)
    return any(entry.name == name for entry in entries)


__all__ = [
    "ErrorKind",
    "ObjectStore",
    "StorageError",
    "classify_message",
    "list_all_objects",
    "object_listed",
    "split_key",
]
