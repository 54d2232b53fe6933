"""
Supabase REST helpers: Storage API access and read-only PostgREST table queries.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from storage_migration.models import ObjectEntry
from storage_migration.storage import (
    LIST_PAGE_SIZE,
    ErrorKind,
    ObjectStore,
    StorageError,
    classify_message,
)

LOGGER = logging.getLogger(__name__)

USER_AGENT = "iwate150-storage-migration"
TABLE_PAGE_SIZE = 1000


def _build_session(service_key: str) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "User-Agent": USER_AGENT,
        }
    )
    return session


def _error_from_response(response: requests.Response) -> StorageError:
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None

    code = ""
    body_status = ""
    if isinstance(body, dict):
        message = str(body.get("message") or body.get("error") or response.reason or f"HTTP {status}")
        code = str(body.get("error") or "")
        body_status = str(body.get("statusCode") or "")
    else:
        message = (response.text or "").strip() or response.reason or f"HTTP {status}"

    if status >= 500 or status in (408, 429) or body_status.startswith("5"):
        kind = ErrorKind.TRANSIENT
    elif status == 415 or body_status == "415" or code == "invalid_mime_type":
        kind = ErrorKind.CONTENT_TYPE
    elif status == 404 or body_status == "404" or code in ("not_found", "Not found"):
        kind = ErrorKind.NOT_FOUND
    else:
        kind = classify_message(message)
    return StorageError(message, kind, status)


class SupabaseStorageClient(ObjectStore):
    """Object store backed by the Supabase Storage REST API."""

    def __init__(
        self,
        api_url: str,
        service_key: str,
        bucket: str,
        *,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.storage_url = f"{self.api_url}/storage/v1"
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or _build_session(service_key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _object_path(self, key: str) -> str:
        return f"{quote(self.bucket, safe='')}/{quote(key, safe='/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.storage_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise StorageError(f"request timeout: {exc}", ErrorKind.TRANSIENT) from exc
        except requests.ConnectionError as exc:
            raise StorageError(f"network error: {exc}", ErrorKind.TRANSIENT) from exc
        except requests.RequestException as exc:
            raise StorageError.from_message(str(exc)) from exc

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise StorageError(
                f"failed to parse JSON response from {response.url}",
                ErrorKind.AMBIGUOUS,
                response.status_code,
            ) from exc

    # ------------------------------------------------------------------
    # ObjectStore API
    # ------------------------------------------------------------------

    def bucket_exists(self) -> bool:
        payload = self._json(self._request("GET", "bucket"))
        if not isinstance(payload, list):
            raise StorageError("unexpected bucket listing payload", ErrorKind.FATAL)
        return any(
            isinstance(entry, dict) and self.bucket in (entry.get("id"), entry.get("name"))
            for entry in payload
        )

    def create_bucket(self, *, public: bool, file_size_limit: Optional[str] = None) -> None:
        body: Dict[str, Any] = {"id": self.bucket, "name": self.bucket, "public": public}
        if file_size_limit:
            body["file_size_limit"] = file_size_limit
        self._request("POST", "bucket", json=body)

    def list(
        self,
        prefix: str = "",
        *,
        limit: int = LIST_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
    ) -> List[ObjectEntry]:
        body: Dict[str, Any] = {
            "prefix": prefix,
            "limit": limit,
            "offset": offset,
            "sortBy": {"column": "name", "order": "asc"},
        }
        if search:
            body["search"] = search
        payload = self._json(self._request("POST", f"object/list/{quote(self.bucket, safe='')}", json=body))
        if not isinstance(payload, list):
            raise StorageError(f"unexpected listing payload for prefix '{prefix}'", ErrorKind.FATAL)
        return [
            ObjectEntry(name=str(entry.get("name", "")), metadata=entry.get("metadata"))
            for entry in payload
            if isinstance(entry, dict) and entry.get("name")
        ]

    def upload(
        self,
        key: str,
        payload: bytes,
        *,
        content_type: Optional[str] = None,
        upsert: bool = True,
    ) -> None:
        headers = {
            "x-upsert": "true" if upsert else "false",
            "cache-control": "max-age=3600",
        }
        if content_type:
            headers["Content-Type"] = content_type
        response = self._request("POST", f"object/{self._object_path(key)}", data=payload, headers=headers)
        self._json(response)

    def create_signed_url(self, key: str, expires_in: int) -> str:
        response = self._request(
            "POST",
            f"object/sign/{self._object_path(key)}",
            json={"expiresIn": int(expires_in)},
        )
        payload = self._json(response)
        signed = None
        if isinstance(payload, dict):
            signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise StorageError(f"signed URL missing in response for {key}", ErrorKind.FATAL)
        if signed.startswith(("http://", "https://")):
            return signed
        return f"{self.storage_url}/{signed.lstrip('/')}"


class SupabaseError(RuntimeError):
    """Raised when a PostgREST table query fails."""


class SupabaseTableReader:
    """Read-only access to path-bearing tables through PostgREST."""

    def __init__(
        self,
        api_url: str,
        service_key: str,
        *,
        timeout: float = 60.0,
        page_size: int = TABLE_PAGE_SIZE,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.rest_url = f"{api_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.page_size = max(1, page_size)
        self.session = session or _build_session(service_key)

    def fetch_rows(self, table: str, columns: Sequence[str]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            params = {
                "select": ",".join(columns),
                "order": "id.asc",
                "limit": str(self.page_size),
                "offset": str(offset),
            }
            try:
                response = self.session.get(f"{self.rest_url}/{table}", params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                raise SupabaseError(f"{table} query failed: {exc}") from exc
            if response.status_code >= 400:
                raise SupabaseError(f"{table} query failed: {_error_from_response(response).message}")
            try:
                payload = response.json()
            except ValueError as exc:
                raise SupabaseError(f"{table} query returned a non-JSON payload") from exc
            if not isinstance(payload, list):
                raise SupabaseError(f"{table} query returned an unexpected payload")

            rows.extend(row for row in payload if isinstance(row, dict))
            if len(payload) < self.page_size:
                break
            offset += self.page_size

        LOGGER.debug("Fetched %d rows from %s", len(rows), table)
        return rows


__all__ = ["SupabaseError", "SupabaseStorageClient", "SupabaseTableReader"]
