"""Command-line interface for catalog-archiver."""

import argparse
import logging
import sys
from pathlib import Path

from catalog_archiver.clients import CatalogClient
from catalog_archiver.errors import ArchiveError
from catalog_archiver.pipeline import (
    CancellationToken,
    IngestStatus,
    install_signal_handlers,
    restore_signal_handlers,
)
from catalog_archiver.settings import BASE_DIR_ENV, BASE_URL_ENV, Settings
from catalog_archiver.storage import FIELDS, ArchiveStore, ViewKind
from schemas.record import Record

NOTHING_FOUND = "Nothing found :("

OUTPUT_FORMATS = ("data_id_path", "data_path", "id_path", "path", "id", "url", "name")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def load_settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(base_dir=args.base_dir, base_url=args.base_url)


def format_record(record: Record, output_as: str, store: ArchiveStore) -> str:
    """Render one record as a single output line.

    Args:
        record: Record to print
        output_as: One of OUTPUT_FORMATS
        store: Store used to resolve paths

    Returns:
        The line to print
    """
    if output_as == "data_id_path":
        return str(store.canonical_dir_of_id(record.id))
    if output_as == "data_path":
        return str(store.alias_path_for(ViewKind.CREATOR, record.creator, record))
    if output_as == "id_path":
        return str(store.rendered_file_of_id(record.id))
    if output_as == "path":
        return str(store.rendered_file_for(ViewKind.CREATOR, record.creator, record))
    if output_as == "id":
        return str(record.id)
    if output_as == "url":
        return record.origin_url
    if output_as == "name":
        return record.name
    raise ValueError(f"Unknown output format: {output_as}")


def fetch(args: argparse.Namespace) -> int:
    """Execute the fetch command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)
    settings = load_settings(args)

    try:
        config = settings.client_config()
    except ValueError as e:
        logger.error(str(e))
        return 1

    token = CancellationToken()
    previous = install_signal_handlers(token)
    try:
        with ArchiveStore.open(settings.base_dir) as store, CatalogClient(config) as client:
            if args.target == "id":
                return _fetch_id(args, store, client)
            return _fetch_tag(args, store, client, token)
    except ArchiveError as e:
        logger.error(f"Fetch failed: {e}")
        return 1
    finally:
        restore_signal_handlers(previous)


def _fetch_id(args: argparse.Namespace, store: ArchiveStore, client: CatalogClient) -> int:
    if not args.force and store.is_archived(args.id):
        print("Archive was already downloaded", file=sys.stderr)
        return 0

    entry = client.fetch_by_id(args.id)
    item = client.ingest_item(entry.record)
    outcome = store.add_archive(item.record, item.open_payload, args.force)

    if outcome.status is IngestStatus.SKIPPED:
        print("Archive was already downloaded", file=sys.stderr)
        return 0
    if outcome.failed:
        print(f"Failed to add archive {args.id}: {outcome.error}", file=sys.stderr)
        return 1

    print("Added the following new archive:", file=sys.stderr)
    print(entry.record.name)
    return 0


def _fetch_tag(
    args: argparse.Namespace,
    store: ArchiveStore,
    client: CatalogClient,
    token: CancellationToken,
) -> int:
    skip = None if args.force else store.is_archived
    items = client.iter_tag(args.tag, skip=skip)
    report = store.add_archives(items, force=args.force, cancel=token)

    if report.added:
        print("Added the following new archives:", file=sys.stderr)
        for record in report.added:
            print(record.name)
    else:
        print("Added no new archives", file=sys.stderr)

    if report.failed:
        print(f"{len(report.failed)} archives failed:", file=sys.stderr)
        for outcome in report.failed:
            print(f"  {outcome.id}: {outcome.error}", file=sys.stderr)
    if report.source_error:
        print(f"Stopped listing the tag early: {report.source_error}", file=sys.stderr)
    if report.cancelled:
        print("Interrupted before the tag was exhausted", file=sys.stderr)
        return 130
    return 1 if report.failed or report.source_error else 0


def get(args: argparse.Namespace) -> int:
    """Execute the get command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)
    settings = load_settings(args)

    try:
        with ArchiveStore.open(settings.base_dir) as store:
            if args.target == "id":
                records = [store.fetch_by_id(args.id)]
            elif args.target == "tag":
                records = store.with_all_tags(args.tags)
            else:
                records = store.search(args.query, args.fields, args.max)

            if not records:
                print(NOTHING_FOUND, file=sys.stderr)
            for record in records:
                print(format_record(record, args.output_as, store))
    except (ArchiveError, ValueError) as e:
        logger.error(str(e))
        return 1

    return 0


def show_dir(args: argparse.Namespace) -> int:
    """Print one of the archive's directories."""
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)
    settings = load_settings(args)

    try:
        with ArchiveStore.open(settings.base_dir) as store:
            paths = {
                "tag": store.view_root(ViewKind.TAG),
                "creator": store.view_root(ViewKind.CREATOR),
                "data": store.layout.data_dir,
                "meta": store.layout.meta_dir,
            }
            print(paths[args.which])
    except ArchiveError as e:
        logger.error(str(e))
        return 1

    return 0


def reindex(args: argparse.Namespace) -> int:
    """Rebuild the search index and alias views from stored records."""
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)
    settings = load_settings(args)

    token = CancellationToken()
    previous = install_signal_handlers(token)
    try:
        with ArchiveStore.open(settings.base_dir) as store:
            report = store.reindex(cancel=token)
    except ArchiveError as e:
        logger.error(f"Reindex failed: {e}")
        return 1
    finally:
        restore_signal_handlers(previous)

    for outcome in report.failed:
        logger.warning(f"  Dropped record {outcome.id}: {outcome.error}")
    if report.cancelled:
        logger.warning("Reindex interrupted; run it again to finish")
        return 130
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="catalog-archiver",
        description="Download catalog items into a local, searchable archive",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=None,
        help=f"Archive base directory (default: ${BASE_DIR_ENV} or ~/Documents/catalog-archiver)",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help=f"Catalog base URL (default: ${BASE_URL_ENV})",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    fetch_parser = subparsers.add_parser(
        "fetch",
        help="Download items from the catalog",
        description="Download a single item, or every item carrying a tag, into the archive.",
    )
    fetch_targets = fetch_parser.add_subparsers(dest="target", required=True)
    fetch_id = fetch_targets.add_parser("id", help="Fetch one item by id")
    fetch_id.add_argument("id", type=int, help="Catalog id")
    fetch_tag = fetch_targets.add_parser("tag", help="Fetch every item with a tag")
    fetch_tag.add_argument("tag", help="Tag slug as used by the catalog")
    for target in (fetch_id, fetch_tag):
        target.add_argument(
            "--force",
            action="store_true",
            help="Download again even if already archived",
        )
    fetch_parser.set_defaults(func=fetch)

    get_parser = subparsers.add_parser(
        "get",
        help="Look up archived items",
        description="Look up archived items by id, by tags, or by full-text search.",
    )
    get_parser.add_argument(
        "--output-as",
        choices=OUTPUT_FORMATS,
        default="data_id_path",
        help="What to print for each item (default: data_id_path)",
    )
    get_targets = get_parser.add_subparsers(dest="target", required=True)
    get_id = get_targets.add_parser("id", help="Get one item by id")
    get_id.add_argument("id", type=int, help="Catalog id")
    get_tag = get_targets.add_parser("tag", help="Get items carrying every given tag")
    get_tag.add_argument("tags", nargs="+", help="Tag names")
    get_search = get_targets.add_parser("search", help="Full-text search")
    get_search.add_argument("query", help="Search query, e.g. 'creator:someone +tag:\"a tag\"'")
    get_search.add_argument(
        "--fields",
        nargs="+",
        choices=FIELDS,
        default=list(FIELDS),
        help="Fields searched by terms without a field prefix (default: all)",
    )
    get_search.add_argument(
        "--max",
        type=int,
        default=None,
        help="Maximum number of results",
    )
    get_parser.set_defaults(func=get)

    dir_parser = subparsers.add_parser(
        "dir",
        help="Print an archive directory",
        description="Print the path of one of the archive's directories.",
    )
    dir_parser.add_argument("which", choices=("tag", "creator", "data", "meta"))
    dir_parser.set_defaults(func=show_dir)

    reindex_parser = subparsers.add_parser(
        "reindex",
        help="Rebuild the search index and alias views",
        description="Rebuild the search index and the tag and creator views from stored records.",
    )
    reindex_parser.set_defaults(func=reindex)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
