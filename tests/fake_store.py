"""In-memory object store used by the uploader, verifier and URL tests."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from storage_migration.models import ObjectEntry
from storage_migration.storage import ObjectStore, StorageError


class FakeStore(ObjectStore):
    def __init__(self, bucket: str = "iwate150data", keys: Optional[List[str]] = None) -> None:
        self.bucket = bucket
        self.objects: Dict[str, Tuple[bytes, Optional[str]]] = {key: (b"", None) for key in keys or []}
        self.exists = True
        self.created: List[Tuple[bool, Optional[str]]] = []
        self.upload_calls: List[Tuple[str, Optional[str]]] = []
        self.list_calls = 0
        self.signed_calls: List[Tuple[str, int]] = []
        # Errors raised by successive upload calls for a key; ``None`` means succeed.
        self.upload_script: Dict[str, List[Optional[StorageError]]] = {}
        # Store the object even when the scripted error is raised.
        self.store_on_error: set = set()
        self.list_errors: List[StorageError] = []
        self.bucket_error: Optional[StorageError] = None

    def bucket_exists(self) -> bool:
        if self.bucket_error is not None:
            raise self.bucket_error
        return self.exists

    def create_bucket(self, *, public: bool, file_size_limit: Optional[str] = None) -> None:
        self.created.append((public, file_size_limit))
        self.exists = True

    def list(self, prefix="", *, limit=100, offset=0, search=None) -> List[ObjectEntry]:
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        base = f"{prefix}/" if prefix else ""
        names: Dict[str, Optional[dict]] = {}
        for key in self.objects:
            if not key.startswith(base):
                continue
            head, sep, _ = key[len(base):].partition("/")
            names[head] = None if sep else {"size": len(self.objects[key][0])}
        entries = [ObjectEntry(name=name, metadata=meta) for name, meta in sorted(names.items())]
        if search:
            entries = [entry for entry in entries if search in entry.name]
        return entries[offset:offset + limit]

    def upload(self, key, payload, *, content_type=None, upsert=True) -> None:
        self.upload_calls.append((key, content_type))
        script = self.upload_script.get(key)
        if script:
            error = script.pop(0)
            if error is not None:
                if key in self.store_on_error:
                    self.objects[key] = (payload, content_type)
                raise error
        self.objects[key] = (payload, content_type)

    def create_signed_url(self, key: str, expires_in: int) -> str:
        self.signed_calls.append((key, expires_in))
        return f"https://signed.example/{key}?ttl={expires_in}&n={len(self.signed_calls)}"
