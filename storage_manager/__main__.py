"""Command-line entry point for browsing and transferring objects."""
import argparse
import asyncio
from datetime import datetime, timezone
import getpass
import logging
import os
import sys
from typing import Awaitable, Callable, Optional, Sequence

from .controller import StorageManager
from .models import Credentials, EndpointConfig, FolderNode, ObjectRecord, ProviderType
from .profiles import SourceStorage, StorageSource
from .services import object_url
from .settings import AppSettings, SettingsStorage
from .ui_utils import MediaFilter, filter_files, format_last_modified, format_size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="object-storage-manager",
        description="Browse, upload and delete objects in S3-compatible buckets.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--sources-file", help="path to the saved sources catalogue")
    parser.add_argument("--settings-file", help="path to the settings file")
    commands = parser.add_subparsers(dest="command", required=True)

    sources = commands.add_parser("sources", help="list saved sources")
    sources.add_argument("--tag", help="only show sources carrying this tag")

    add = commands.add_parser("add-source", help="save a new source")
    add.add_argument("name")
    add.add_argument("--provider", choices=[p.name.lower() for p in ProviderType], default="s3")
    add.add_argument("--endpoint", help="defaults to the provider's endpoint")
    add.add_argument("--bucket", required=True)
    add.add_argument("--region", default="")
    add.add_argument("--no-ssl", action="store_true")
    add.add_argument("--path-style", action="store_true")
    add.add_argument("--note")
    add.add_argument("--cdn-url")
    add.add_argument("--tag", action="append", default=[], dest="tags")
    add.add_argument("--access-key", default=os.environ.get("OSM_ACCESS_KEY"))

    remove = commands.add_parser("remove-source", help="delete a saved source and its credentials")
    remove.add_argument("source")

    ls = commands.add_parser("ls", help="list one folder level")
    ls.add_argument("source")
    ls.add_argument("path", nargs="?", default="")
    ls.add_argument("--filter", choices=[f.name.lower() for f in MediaFilter], default="all")
    ls.add_argument("--search", default="")

    put = commands.add_parser("put", help="upload files")
    put.add_argument("source")
    put.add_argument("files", nargs="+")
    put.add_argument("--dest", default="", help="destination folder inside the bucket")

    rm = commands.add_parser("rm", help="delete an object")
    rm.add_argument("source")
    rm.add_argument("key")

    url = commands.add_parser("url", help="print the direct URL of an object")
    url.add_argument("source")
    url.add_argument("key")
    return parser


def _print_listing(manager: StorageManager, media_filter: MediaFilter, search: str) -> None:
    snapshot = manager.snapshot()
    print(f"/{snapshot.current_path}")
    for node in snapshot.nodes:
        if isinstance(node, FolderNode):
            print(f"  {node.name}/  ({node.file_count} files, {format_size(node.total_size)})")
    records = [node.record for node in snapshot.nodes if not node.is_folder]
    for record in filter_files(records, media_filter, search):
        print(f"  {record.name}  {format_size(record.size)}  {format_last_modified(record.last_modified)}")


async def _with_connection(
    source: StorageSource,
    storage: SourceStorage,
    settings: AppSettings,
    operation: Callable[[StorageManager], Awaitable[bool]],
) -> int:
    manager = StorageManager(storage.credentials, settings=settings)
    try:
        if not await manager.connect(source.config):
            print(manager.snapshot().error_message, file=sys.stderr)
            return 1
        storage.mark_used(source.id)
        ok = await operation(manager)
        error = manager.snapshot().error_message
        if error:
            print(error, file=sys.stderr)
        return 0 if ok else 1
    finally:
        await manager.disconnect()


def _add_source(args: argparse.Namespace, storage: SourceStorage) -> int:
    provider = ProviderType[args.provider.upper()]
    access_key = args.access_key or input("Access key: ")
    secret_key = os.environ.get("OSM_SECRET_KEY") or getpass.getpass("Secret key: ")
    config = EndpointConfig(
        provider=provider,
        endpoint=args.endpoint or provider.default_endpoint,
        bucket=args.bucket,
        region=args.region,
        use_ssl=not args.no_ssl,
        path_style=args.path_style,
        note=args.note,
        cdn_url=args.cdn_url,
        name=args.name,
    )
    source = storage.upsert(
        StorageSource.create(config, args.tags),
        Credentials(access_key=access_key, secret_key=secret_key),
    )
    print(source.id)
    return 0


def run(args: argparse.Namespace) -> int:
    settings_storage = SettingsStorage(args.settings_file)
    settings = settings_storage.load()
    storage = SourceStorage(args.sources_file)

    if args.command == "sources":
        sources = storage.sources_with_tag(args.tag) if args.tag else storage.load()
        for source in sources:
            config = source.config
            tags = ", ".join(source.tags)
            print(f"{source.id}  {source.name}  [{config.provider.value}] {config.endpoint}/{config.bucket}  {tags}")
        return 0
    if args.command == "add-source":
        return _add_source(args, storage)

    try:
        source = storage.get(args.source)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    if args.command == "remove-source":
        storage.delete(source.id)
        return 0
    if args.command == "url":
        print(object_url(source.config.normalized(), args.key))
        return 0
    if args.command == "ls":
        media_filter = MediaFilter[args.filter.upper()]

        async def list_path(manager: StorageManager) -> bool:
            ok = await manager.navigate_to_folder(args.path)
            if ok:
                _print_listing(manager, media_filter, args.search)
            return ok

        return asyncio.run(_with_connection(source, storage, settings, list_path))
    if args.command == "put":
        async def upload(manager: StorageManager) -> bool:
            await manager.navigate_to_folder(args.dest.strip("/"))
            result = await manager.upload_batch(args.files, args.dest)
            print(result.summary)
            return not result.failures

        return asyncio.run(_with_connection(source, storage, settings, upload))
    if args.command == "rm":
        async def delete(manager: StorageManager) -> bool:
            parent = args.key.rsplit("/", 1)[0] if "/" in args.key else ""
            await manager.navigate_to_folder(parent)
            record = ObjectRecord(key=args.key, size=0, last_modified=datetime.now(timezone.utc))
            return await manager.delete_file(record)

        return asyncio.run(_with_connection(source, storage, settings, delete))
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else SettingsStorage(args.settings_file).load().logging_level
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
