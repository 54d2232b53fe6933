"""Asset migration to object storage and storage link verification."""

from .config import ConfigError, MigrationConfig, load_config
from .manifest import ManifestBuilder, load_manifest, write_manifest
from .models import AssetItem, MissingAssetRecord, UploadSummary, VerificationResult
from .paths import normalize_storage_path, to_object_key
from .storage import ErrorKind, ObjectStore, StorageError
from .uploader import UploadError, UploadOrchestrator
from .verifier import ConsistencyVerifier

__all__ = [
    "AssetItem",
    "ConfigError",
    "ConsistencyVerifier",
    "ErrorKind",
    "ManifestBuilder",
    "MigrationConfig",
    "MissingAssetRecord",
    "ObjectStore",
    "StorageError",
    "UploadError",
    "UploadOrchestrator",
    "UploadSummary",
    "VerificationResult",
    "load_config",
    "load_manifest",
    "normalize_storage_path",
    "to_object_key",
    "write_manifest",
]
