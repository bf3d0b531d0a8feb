# =============================================================================
# knowledge_pipeline/cli/ingest.py - Operator CLI
# =============================================================================
#
# Command-line front end for the ingestion pipeline. Everything here is a
# thin wrapper over the components assembled by main.build_components():
# the CLI parses arguments, calls one orchestrator/service method, and
# prints the result.
#
# Supported subcommands:
#
#   upload  - Store a local file as a new record and (optionally) process it
#   process - Run PENDING records through the pipeline
#   retry   - Re-run FAILED records (bounded by max_retry_count)
#   status  - Show one record, or status counts for the current actor
#   crawl   - Crawl a site via Firecrawl and ingest every page
#   clear   - Delete every object in a vector-store collection
#   health  - Vector store connectivity and per-collection object counts
#   search  - Embed a query and run a nearest-neighbour search
#
# Records are owned by an actor. By default the CLI acts anonymously;
# pass --user ID to act as (and only see records of) a specific user.
#
# Usage examples:
#   python -m knowledge_pipeline.cli upload notes.md --title "Notes"
#   python -m knowledge_pipeline.cli process 3f2a... 9bc1...
#   python -m knowledge_pipeline.cli crawl https://docs.example.com --limit 25
#   python -m knowledge_pipeline.cli search "vector databases" --limit 5
#   python -m knowledge_pipeline.cli clear KnowledgeFragment --yes
# =============================================================================

"""Operator CLI for the knowledge ingestion pipeline.

Usage::

    python -m knowledge_pipeline.cli upload /path/to/file.txt
    python -m knowledge_pipeline.cli status
    python -m knowledge_pipeline.cli crawl https://example.com --max-depth 1
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

from knowledge_pipeline.models.crawl import CrawlOptions
from knowledge_pipeline.models.ingestion import AnonymousActor, UserActor
from knowledge_pipeline.models.pipeline import ProcessingReport
from knowledge_pipeline.utils.errors import KnowledgePipelineError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _actor(args: argparse.Namespace) -> AnonymousActor | UserActor:
    if getattr(args, "user", None):
        return UserActor(user_id=args.user)
    return AnonymousActor()


def _print_report(report: ProcessingReport | BaseException, record_id: str = "") -> bool:
    """Print one processing outcome; return True if the record completed."""
    if isinstance(report, BaseException):
        print(f"  {record_id}: not processed ({report})")
        return False
    line = f"  {report.record_id}: {report.status.value}"
    if report.error_message:
        line += f" ({report.error_message})"
    elif report.tag_count:
        line += f" [{report.tag_count} tags{', fallback' if report.tagging_fallback else ''}]"
    print(line)
    return report.status.value == "completed"


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Store a local file as a PENDING record, then process it unless --no-process."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    mime_type = args.mime_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    orchestrator = components["orchestrator"]
    record = await orchestrator.submit_upload(
        _actor(args),
        file_name=path.name,
        mime_type=mime_type,
        data=path.read_bytes(),
        title=args.title,
    )
    print(f"Created record {record.id} ({mime_type}, {record.byte_size} bytes)")
    if args.no_process:
        return 0
    report = await orchestrator.process(record.id)
    return 0 if _print_report(report) else 1


async def _handle_process(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Process the given records, or every PENDING record with --pending."""
    orchestrator = components["orchestrator"]
    if args.pending:
        reports = await orchestrator.process_pending(limit=args.limit)
        ids = ["" for _ in reports]
    else:
        if not args.ids:
            print("Error: pass record ids or --pending", file=sys.stderr)
            return 1
        reports = await orchestrator.process_many(args.ids)
        ids = args.ids

    print(f"Processed {len(reports)} record(s)")
    completed = sum(_print_report(report, record_id) for report, record_id in zip(reports, ids))
    return 0 if completed == len(reports) else 1


async def _handle_retry(args: argparse.Namespace, components: dict[str, Any]) -> int:
    result = await components["orchestrator"].bulk_retry(args.ids, _actor(args))
    print(f"Retried {result.requested} record(s): {len(result.succeeded)} completed")
    for record_id, reason in result.failed.items():
        print(f"  {record_id}: {reason}")
    return 0 if not result.failed else 1


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Show one record in detail, or status counts plus the newest records."""
    orchestrator = components["orchestrator"]
    actor = _actor(args)

    if args.id:
        record = await orchestrator.get(args.id, actor)
        progress = await orchestrator.get_progress(args.id, actor)
        print(f"Record {record.id}")
        print("=" * 40)
        print(f"  Title:        {record.title}")
        print(f"  Source:       {record.source_kind.value} {record.source_locator}")
        print(f"  Status:       {record.status.value}")
        print(f"  Extraction:   {record.extraction_status.value}")
        if progress is not None:
            print(f"  Progress:     {progress.progress}%")
        print(f"  Retries:      {record.retry_count}")
        if record.smart_tags:
            print(f"  Tags:         {', '.join(tag.name for tag in record.smart_tags)}")
        if record.error_message:
            print(f"  Error:        {record.error_message}")
        return 0

    counts = await orchestrator.status_counts(actor)
    print("Ingestion Status")
    print("=" * 40)
    for status, count in counts.items():
        print(f"  {status.value:<12} {count}")

    records = await orchestrator.list_records(actor, limit=args.limit)
    if records:
        print("\n  Newest records:")
        for record in records:
            print(f"    {record.id}  {record.status.value:<11} {record.title}")
    return 0


async def _handle_crawl(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Crawl a site and embed/upload every page into the collection."""
    if components.get("crawler") is None:
        print("Error: FIRECRAWL_API_KEY is not configured.", file=sys.stderr)
        return 1

    options = CrawlOptions(limit=args.limit, max_depth=args.max_depth)
    collection = args.collection or components["settings"].default_collection
    print(f"Crawling {args.url} (limit={options.limit}, depth={options.max_depth})")

    report = await components["batch_service"].crawl_and_ingest(args.url, collection, options)
    print(f"  Pages:            {report.total}")
    print(f"  Embedded:         {report.embedded}")
    print(f"  Embedding failed: {report.embedding_failed}")
    print(f"  Uploaded:         {report.uploaded} -> {collection}")
    for index, error in sorted(report.errors.items()):
        print(f"    page {index}: {error}")
    if report.upload is not None:
        for failed in report.upload.failed_batches:
            print(f"    batch {failed.index} ({failed.size} objects): {failed.error}")
    return 0 if report.embedding_failed == 0 and report.uploaded == report.embedded else 1


async def _handle_clear(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Delete every object in a collection.  Requires confirmation unless --yes."""
    if not args.yes:
        confirm = input(f"  Delete every object in '{args.collection}'? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    result = await components["uploader"].clear(args.collection)
    print(f"Deleted {result.deleted_count} of {result.total_objects} objects from {args.collection}")
    for object_id in result.failed_ids:
        print(f"  failed: {object_id}")
    return 0 if not result.failed_ids else 1


async def _handle_health(args: argparse.Namespace, components: dict[str, Any]) -> int:
    health = await components["uploader"].health_check()
    if not health.connected:
        print(f"Vector store ({health.provider}) unreachable: {health.error}")
        return 1

    stats = health.stats
    print(f"Vector store ({health.provider}) connected")
    print("=" * 40)
    if stats is not None:
        print(f"  Nodes:          {stats.nodes}")
        print(f"  Total objects:  {stats.total_objects}")
        for name, count in sorted(stats.collections.items()):
            print(f"    {name:<24} {count}")
    return 0


async def _handle_search(args: argparse.Namespace, components: dict[str, Any]) -> int:
    settings = components["settings"]
    collection = args.collection or settings.default_collection
    limit = args.limit or settings.search_default_limit
    distance = args.distance if args.distance is not None else settings.search_default_distance

    vector = await components["embedder"].embed_text(args.query)
    hits = await components["uploader"].search(collection, vector, limit=limit, distance=distance)

    print(f"{len(hits)} result(s) in {collection}")
    for hit in hits:
        title = hit.properties.get("title") or hit.properties.get("url") or hit.id
        print(f"  {hit.distance:.4f}  {title}")
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "process": _handle_process,
    "retry": _handle_retry,
    "status": _handle_status,
    "crawl": _handle_crawl,
    "clear": _handle_clear,
    "health": _handle_health,
    "search": _handle_search,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the operator CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m knowledge_pipeline.cli",
        description="Operate the knowledge ingestion pipeline.",
    )
    parser.add_argument("--user", default=None, help="Act as this user id (default: anonymous)")
    parser.add_argument("--config", default="config/config.yaml", help="YAML config path")
    subparsers = parser.add_subparsers(dest="command", help="Pipeline commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload a local file as a new record")
    upload_parser.add_argument("file", help="Path to the file")
    upload_parser.add_argument("--title", default=None, help="Record title (default: file name)")
    upload_parser.add_argument(
        "--mime-type", dest="mime_type", default=None, help="Override the guessed MIME type"
    )
    upload_parser.add_argument(
        "--no-process",
        action="store_true",
        dest="no_process",
        help="Only create the record; do not run the pipeline",
    )

    # -- process --
    process_parser = subparsers.add_parser("process", help="Process pending records")
    process_parser.add_argument("ids", nargs="*", help="Record ids")
    process_parser.add_argument(
        "--pending", action="store_true", help="Process every pending record"
    )
    process_parser.add_argument("--limit", type=int, default=100, help="Max records with --pending")

    # -- retry --
    retry_parser = subparsers.add_parser("retry", help="Retry failed records")
    retry_parser.add_argument("ids", nargs="+", help="Record ids")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show record status")
    status_parser.add_argument("id", nargs="?", default=None, help="Record id (omit for counts)")
    status_parser.add_argument("--limit", type=int, default=10, help="Newest records to list")

    # -- crawl --
    crawl_parser = subparsers.add_parser("crawl", help="Crawl a site and ingest its pages")
    crawl_parser.add_argument("url", help="Start URL")
    crawl_parser.add_argument("--limit", type=int, default=10, help="Max pages (default: 10)")
    crawl_parser.add_argument(
        "--max-depth", dest="max_depth", type=int, default=2, help="Link depth (default: 2)"
    )
    crawl_parser.add_argument("--collection", default=None, help="Target collection")

    # -- clear --
    clear_parser = subparsers.add_parser("clear", help="Delete every object in a collection")
    clear_parser.add_argument("collection", help="Collection name")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- health --
    subparsers.add_parser("health", help="Check vector store connectivity")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Nearest-neighbour search")
    search_parser.add_argument("query", help="Query text")
    search_parser.add_argument("--collection", default=None, help="Collection to search")
    search_parser.add_argument("--limit", type=int, default=None, help="Max results")
    search_parser.add_argument("--distance", type=float, default=None, help="Distance threshold")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from knowledge_pipeline.main import close_components

    try:
        await components["record_store"].initialize()
        return await _HANDLERS[args.command](args, components)
    except KnowledgePipelineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await close_components(components)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, assembles every component from config + env,
    and dispatches to the handler.  Configuration errors (missing API keys
    or vector store URL) exit with status 2 before any work starts.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from knowledge_pipeline.main import build_components, load_settings

    try:
        components = build_components(load_settings(args.config))
    except KnowledgePipelineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    sys.exit(asyncio.run(_run(args, components)))


if __name__ == "__main__":
    main()
