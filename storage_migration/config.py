"""Configuration dataclasses and loading helpers for the storage migration tools."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_BUCKET = "iwate150data"
DEFAULT_BACKEND = "supabase"
SUPPORTED_BACKENDS = ("supabase", "s3")
DEFAULT_SIGNED_TTL_SECONDS = 21600
MIN_SIGNED_TTL_SECONDS = 3600
MAX_SIGNED_TTL_SECONDS = 86400


class ConfigError(RuntimeError):
    """Raised when required connection settings are missing or invalid."""


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a non-negative floating point number with fallback to default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _first_env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value and value.strip():
            return value.strip()
    return None


def clamp_signed_ttl(value: Any) -> int:
    """Clamp a signed URL lifetime to the supported 1h-24h window."""
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_SIGNED_TTL_SECONDS
    return min(MAX_SIGNED_TTL_SECONDS, max(MIN_SIGNED_TTL_SECONDS, seconds))


@dataclass(frozen=True)
class LocalRoots:
    """Local directory layout scanned for assets."""

    project_root: Path
    legacy_images: Path
    legacy_models: Path
    public_images: Path
    public_models: Path
    manifest_path: Path
    catalog_path: Path

    @staticmethod
    def from_project_root(root: Path) -> "LocalRoots":
        root = Path(root).resolve()
        legacy_static = root / "legacy" / "flask_app" / "static"
        public_dir = root / "public"
        return LocalRoots(
            project_root=root,
            legacy_images=legacy_static / "images",
            legacy_models=legacy_static / "models",
            public_images=public_dir / "images",
            public_models=public_dir / "models",
            manifest_path=root / "supabase" / "storage-manifest.json",
            catalog_path=root / "src" / "lib" / "characters.ts",
        )


@dataclass(frozen=True)
class StorageSettings:
    """Connection settings for the object store and the REST database."""

    bucket: str = DEFAULT_BUCKET
    backend: str = DEFAULT_BACKEND
    api_url: Optional[str] = None
    service_key: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    http_timeout: float = 60.0
    signed_url_ttl: int = DEFAULT_SIGNED_TTL_SECONDS
    bucket_public: bool = True
    bucket_size_limit: str = "1GB"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_url and self.service_key)


@dataclass(frozen=True)
class UploadSettings:
    """Retry and reporting knobs for upload runs."""

    max_attempts: int = 4
    backoff_seconds: float = 1.0
    progress_interval: int = 50
    preview_limit: int = 20


@dataclass(frozen=True)
class MigrationConfig:
    """Root configuration object for migration and verification runs."""

    roots: LocalRoots
    storage: StorageSettings = field(default_factory=StorageSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def require_credentials(self) -> None:
        """Raise ``ConfigError`` unless the API endpoint and privileged key are set."""
        if not self.storage.has_credentials:
            raise ConfigError(
                "Set SUPABASE_URL (or NEXT_PUBLIC_SUPABASE_URL) and SUPABASE_SERVICE_ROLE_KEY and retry."
            )


def _parse_storage_settings(env: Mapping[str, str]) -> StorageSettings:
    backend = (env.get("STORAGE_BACKEND") or DEFAULT_BACKEND).strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigError(
            f"Unsupported STORAGE_BACKEND '{backend}' (expected one of: {', '.join(SUPPORTED_BACKENDS)})"
        )

    api_url = _first_env(env, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    return StorageSettings(
        bucket=_first_env(env, "SUPABASE_STORAGE_BUCKET", "NEXT_PUBLIC_SUPABASE_STORAGE_BUCKET") or DEFAULT_BUCKET,
        backend=backend,
        api_url=api_url.rstrip("/") if api_url else None,
        service_key=_first_env(env, "SUPABASE_SERVICE_ROLE_KEY"),
        s3_endpoint_url=_first_env(env, "STORAGE_S3_ENDPOINT_URL"),
        s3_region=_first_env(env, "STORAGE_S3_REGION"),
        http_timeout=_parse_float(env.get("STORAGE_HTTP_TIMEOUT"), 60.0) or 60.0,
        signed_url_ttl=clamp_signed_ttl(
            env.get("SUPABASE_SIGNED_URL_EXPIRES_IN")
            or env.get("NEXT_PUBLIC_SUPABASE_SIGNED_URL_EXPIRES_IN")
            or DEFAULT_SIGNED_TTL_SECONDS
        ),
        bucket_public=_parse_bool(env.get("STORAGE_BUCKET_PUBLIC"), True),
        bucket_size_limit=_first_env(env, "STORAGE_BUCKET_SIZE_LIMIT") or "1GB",
    )


def _parse_upload_settings(env: Mapping[str, str]) -> UploadSettings:
    default = UploadSettings()
    return UploadSettings(
        max_attempts=_parse_positive_int(env.get("STORAGE_UPLOAD_MAX_ATTEMPTS"), default.max_attempts),
        backoff_seconds=_parse_float(env.get("STORAGE_RETRY_BACKOFF_SECONDS"), default.backoff_seconds),
        progress_interval=_parse_positive_int(env.get("STORAGE_PROGRESS_INTERVAL"), default.progress_interval),
        preview_limit=_parse_positive_int(env.get("STORAGE_PREVIEW_LIMIT"), default.preview_limit),
    )


def load_config(project_root: Path | str, env: Mapping[str, str] | None = None) -> MigrationConfig:
    """Build configuration from the project root and environment variables."""
    source_env = os.environ if env is None else env
    log_file = _first_env(source_env, "STORAGE_LOG_FILE")
    return MigrationConfig(
        roots=LocalRoots.from_project_root(Path(project_root)),
        storage=_parse_storage_settings(source_env),
        upload=_parse_upload_settings(source_env),
        log_level=(source_env.get("STORAGE_LOG_LEVEL") or "INFO").upper(),
        log_file=Path(log_file) if log_file else None,
    )


__all__ = [
    "ConfigError",
    "DEFAULT_BUCKET",
    "LocalRoots",
    "MigrationConfig",
    "StorageSettings",
    "UploadSettings",
    "clamp_signed_ttl",
    "load_config",
]
