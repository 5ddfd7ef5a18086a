#!/usr/bin/env python3
"""
Command-line front end.

Usage:
    python -m photovault.cli upload ~/Pictures/trip --email me@example.com --identity-id eu-central-1:abc
    python -m photovault.cli upload photo.jpg --email me@example.com --id-token "$GOOGLE_ID_TOKEN"
    python -m photovault.cli stats --email me@example.com --identity-id eu-central-1:abc
    python -m photovault.cli sign-out

Settings come from the environment or .env (see photovault.config.settings).
With S3_MOCK_MODE=true nothing leaves the process.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config.settings import Settings, get_settings
from .core.media.accounting import StorageAccountingService
from .core.media.batch import BatchCoordinator
from .core.media.engine import UploadEngine
from .core.media.errors import PhotoVaultError
from .core.media.identity import AuthProvider, IdentityResolver, PrefixStore
from .core.media.keys import identity_from_prefix
from .core.media.models import BatchProgress, CallerIdentity, Identity, Session, StorageStats
from .core.media.sources import FileMediaSource, MediaSource, directory_sources
from .core.media.timestamps import TimestampExtractor
from .infrastructure.accounting.client import SignedStatsClient
from .infrastructure.auth import (
    CognitoAuthError,
    CognitoAuthProvider,
    InMemoryPrefixStore,
    JsonFilePrefixStore,
    StaticAuthProvider,
)
from .infrastructure.exif.reader import PillowExifReader
from .infrastructure.storage.client import StorageConfig, create_object_store

logger = logging.getLogger(__name__)


def collect_sources(paths: list[str]) -> list[MediaSource]:
    """Expand directories into their photos; keep files as given, in order."""
    sources: list[MediaSource] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            sources.extend(directory_sources(path))
        elif path.is_file():
            sources.append(FileMediaSource(path))
        else:
            print(f"WARNING: skipping {raw} (not found)")
    return sources


def build_auth_provider(settings: Settings, args: argparse.Namespace) -> AuthProvider:
    if args.id_token:
        provider = CognitoAuthProvider(
            identity_pool_id=settings.cognito_identity_pool_id,
            region=settings.s3_region,
            login_provider=settings.cognito_login_provider,
        )
        provider.sign_in(args.id_token, args.email)
        return provider
    return StaticAuthProvider(identity=Identity(identity_id=args.identity_id, label=args.email))


def build_prefix_store(settings: Settings) -> PrefixStore:
    if settings.s3_mock_mode:
        return InMemoryPrefixStore()
    return JsonFilePrefixStore(settings.account_state_path)


def build_store(settings: Settings, session: Session):
    config = StorageConfig(
        bucket_name=settings.s3_bucket_name,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
    )
    return create_object_store(
        config=config,
        mock_mode=settings.s3_mock_mode,
        credentials=session.credentials,
    )


def open_session(settings: Settings, args: argparse.Namespace) -> Session:
    resolver = IdentityResolver(build_auth_provider(settings, args), build_prefix_store(settings))
    return resolver.open_session()


def print_progress(update: BatchProgress) -> None:
    position = f"[{update.current_index + 1}/{update.total_count}]"
    if update.item_progress is None:
        print(f"{position} {update.current_identifier}")
    elif update.item_progress.progress is not None:
        print(f"{position}   {update.item_progress.progress}%", end="\r")


async def run_upload(settings: Settings, session: Session, sources: list[MediaSource]):
    engine = UploadEngine(
        build_store(settings, session),
        chunk_size=settings.upload_chunk_size_bytes,
        staging_dir=settings.staging_dir,
        extension=settings.object_extension,
    )
    coordinator = BatchCoordinator(
        engine,
        TimestampExtractor(PillowExifReader()),
        timeout_seconds=settings.upload_timeout_seconds,
    )
    try:
        return await coordinator.upload_batch(sources, session, on_progress=print_progress)
    finally:
        await engine.wait_for_cleanup()


def cmd_upload(settings: Settings, args: argparse.Namespace) -> int:
    sources = collect_sources(args.paths)
    if not sources:
        print("ERROR: No photos to upload")
        return 1

    session = open_session(settings, args)
    print(f"Uploading {len(sources)} photos to {session.prefix}")

    try:
        result = asyncio.run(run_upload(settings, session, sources))
    except KeyboardInterrupt:
        print("\nCancelled")
        return 130

    print("\n=== Upload Complete ===")
    print(f"Uploaded: {result.uploaded_count}")
    print(f"Skipped (already stored): {result.skipped_count}")
    print(f"Failed: {result.failed_count}")
    for source in result.failed_items:
        print(f"  [ERR] {source.identifier}")
    if result.aborted_reason is not None:
        print(f"Aborted: {result.aborted_reason.message}")
    if result.pending_items:
        print(f"Not attempted: {len(result.pending_items)}")

    return 0 if result.is_complete_success else 1


def fetch_stats(settings: Settings, session: Session) -> StorageStats:
    """Use the signed endpoint when configured, else count the bucket directly."""
    if settings.stats_endpoint_url and session.credentials is not None:
        client = SignedStatsClient(settings.stats_endpoint_url, settings.s3_region)
        return client.fetch_stats(session)

    service = StorageAccountingService(
        build_store(settings, session),
        page_size=settings.list_page_size,
    )
    caller = CallerIdentity(identity_id=_prefix_owner(session))
    return asyncio.run(service.get_stats(session.prefix, caller))


def cmd_stats(settings: Settings, args: argparse.Namespace) -> int:
    session = open_session(settings, args)
    stats = fetch_stats(settings, session)
    print(f"Prefix: {session.prefix}")
    print(f"Objects: {stats.object_count}")
    print(f"Total size: {stats.formatted_size}")
    return 0


def cmd_sign_out(settings: Settings, args: argparse.Namespace) -> int:
    IdentityResolver(StaticAuthProvider(), JsonFilePrefixStore(settings.account_state_path)).sign_out()
    print("Signed out")
    return 0


def _prefix_owner(session: Session) -> Optional[str]:
    # the local caller is whoever owns the prefix we just resolved
    return identity_from_prefix(session.prefix)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="photovault", description="Upload photos to per-user object storage")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_identity_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--email", required=True, help="Account label used in the storage prefix")
        group = sub.add_mutually_exclusive_group()
        group.add_argument("--identity-id", default=None, help="Cognito identity id, if already known")
        group.add_argument("--id-token", default=None, help="Federated ID token to exchange with Cognito")

    upload = subparsers.add_parser("upload", help="Upload files or directories")
    upload.add_argument("paths", nargs="+", help="Photos or directories of photos")
    add_identity_arguments(upload)
    upload.set_defaults(func=cmd_upload)

    stats = subparsers.add_parser("stats", help="Show storage statistics")
    add_identity_arguments(stats)
    stats.set_defaults(func=cmd_stats)

    sign_out = subparsers.add_parser("sign-out", help="Forget the cached account and prefix")
    sign_out.set_defaults(func=cmd_sign_out)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=(args.log_level or settings.log_level).upper(),
    )

    try:
        return args.func(settings, args)
    except PhotoVaultError as e:
        print(f"ERROR: {e.message}")
        return 2
    except CognitoAuthError as e:
        print(f"ERROR: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
