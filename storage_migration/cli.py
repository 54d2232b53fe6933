"""
Command line entry points for the storage migration and verification tools.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .catalog import load_catalog_assets
from .config import ConfigError, MigrationConfig, load_config
from .logging_setup import configure_logging
from .manifest import ManifestBuilder, total_bytes, write_manifest
from .s3_client import S3StorageClient
from .storage import ObjectStore, StorageError
from .supabase_client import SupabaseError, SupabaseStorageClient, SupabaseTableReader
from .uploader import UploadError, UploadOrchestrator
from .urls import SignedUrlResolver, public_url
from .verifier import ConsistencyVerifier, log_report, write_report

LOGGER_NAME = "storage_migration"


def build_store(config: MigrationConfig) -> ObjectStore:
    """Create the object store client selected by ``STORAGE_BACKEND``."""
    storage = config.storage
    if storage.backend == "s3":
        return S3StorageClient(
            bucket=storage.bucket,
            region=storage.s3_region,
            endpoint_url=storage.s3_endpoint_url,
        )
    config.require_credentials()
    return SupabaseStorageClient(
        storage.api_url or "",
        storage.service_key or "",
        storage.bucket,
        timeout=storage.http_timeout,
    )


def build_table_reader(config: MigrationConfig) -> SupabaseTableReader:
    config.require_credentials()
    return SupabaseTableReader(
        config.storage.api_url or "",
        config.storage.service_key or "",
        timeout=config.storage.http_timeout,
    )


def run_migrate(config: MigrationConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    dry_run = not args.run
    store = build_store(config) if not dry_run else None

    items = ManifestBuilder(config.roots, logger=logger).build()
    write_manifest(items, config.roots.manifest_path, config.storage.bucket)
    logger.info(
        "Manifest written to %s (%d items, %.1f MiB)",
        config.roots.manifest_path,
        len(items),
        total_bytes(items) / (1024 * 1024),
    )

    orchestrator = UploadOrchestrator(
        store,
        bucket_public=config.storage.bucket_public,
        bucket_size_limit=config.storage.bucket_size_limit,
        max_attempts=config.upload.max_attempts,
        backoff_seconds=config.upload.backoff_seconds,
        progress_interval=config.upload.progress_interval,
        preview_limit=config.upload.preview_limit,
        keep_going=args.keep_going,
        logger=logger,
    )
    try:
        summary = orchestrator.run(items, dry_run=dry_run)
    except UploadError as exc:
        logger.error("Upload aborted: %s", exc)
        return 1

    if dry_run:
        logger.info("Dry run complete. Re-run with --run to upload %d items.", summary.planned)
        return 0
    if summary.failures:
        logger.error("%d uploads failed; re-run to retry the remaining items", len(summary.failures))
        return 1
    return 0


def run_verify(config: MigrationConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    store = build_store(config)
    tables = build_table_reader(config)
    catalog = load_catalog_assets(config.roots.catalog_path, logger=logger)

    verifier = ConsistencyVerifier(store, tables, catalog, config.storage.bucket, logger=logger)
    try:
        result = verifier.run()
    except (StorageError, SupabaseError) as exc:
        logger.error("Verification failed: %s", exc)
        return 1

    log_report(result, logger)
    if args.report:
        write_report(result, args.report)
        logger.info("Report written to %s", args.report)
    return 0 if result.ok else 1


def run_resolve_url(config: MigrationConfig, args: argparse.Namespace, logger: logging.Logger) -> int:
    storage = config.storage
    if args.signed:
        resolver = SignedUrlResolver(
            build_store(config),
            base_url=storage.api_url,
            bucket=storage.bucket,
            ttl_seconds=storage.signed_url_ttl,
            logger=logger,
        )
        resolve = resolver.resolve
    else:
        def resolve(path: str) -> Optional[str]:
            return public_url(path, storage.api_url, storage.bucket)

    for path in args.paths:
        print(resolve(path) or "")
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser, *, suppress: bool = False) -> None:
    # Subcommands repeat the global options so wrapper scripts can pass them after the command.
    parser.add_argument(
        "--root",
        type=Path,
        default=argparse.SUPPRESS if suppress else Path.cwd(),
        help="Project root containing legacy/, public/ and src/ (default: current working directory).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress else False,
        help="Enable verbose logging.",
    )
    parser.add_argument(
        "--log-level",
        default=argparse.SUPPRESS if suppress else None,
        help="Logging verbosity (default: STORAGE_LOG_LEVEL or INFO).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Migrate local media assets to object storage and verify stored path references.",
    )
    _add_common_arguments(parser)
    common = argparse.ArgumentParser(add_help=False)
    _add_common_arguments(common, suppress=True)

    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate_parser = subparsers.add_parser(
        "migrate",
        parents=[common],
        help="Build the asset manifest and upload missing objects (dry run by default).",
    )
    migrate_parser.add_argument(
        "--run",
        action="store_true",
        help="Upload for real instead of previewing.",
    )
    migrate_parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Record failed items and continue instead of aborting on the first one.",
    )

    verify_parser = subparsers.add_parser(
        "verify",
        parents=[common],
        help="Check that every database and catalog asset path exists in storage.",
    )
    verify_parser.add_argument(
        "--report",
        type=Path,
        help="Also write the verification result as JSON to this path.",
    )

    resolve_parser = subparsers.add_parser(
        "resolve-url",
        parents=[common],
        help="Print the URL each asset path is served from.",
    )
    resolve_parser.add_argument("paths", nargs="+", help="Stored path values or URLs.")
    resolve_parser.add_argument(
        "--signed",
        action="store_true",
        help="Issue signed URLs instead of public ones.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.root)
    except ConfigError as exc:
        configure_logging(LOGGER_NAME)
        logging.getLogger(LOGGER_NAME).error("%s", exc)
        return 1

    level = "DEBUG" if args.verbose else (args.log_level or config.log_level)
    logger = configure_logging(LOGGER_NAME, level=level, log_file=config.log_file)

    commands = {
        "migrate": run_migrate,
        "verify": run_verify,
        "resolve-url": run_resolve_url,
    }
    try:
        return commands[args.command](config, args, logger)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; re-run the same command to resume from the existing objects")
        return 1


if __name__ == "__main__":
    sys.exit(main())
