"""Command-line interface for Gmail Exporter.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import structlog

from gmail_exporter import __version__
from gmail_exporter.config import Settings, get_settings
from gmail_exporter.exceptions import GmailExporterError, ValidationError
from gmail_exporter.filters import parse_date, parse_duration, parse_size, validate
from gmail_exporter.gmail.client import GmailClient
from gmail_exporter.models import (
    BatchResult,
    CleanupAction,
    CleanupConfig,
    ExportConfig,
    ExportFormat,
    FilterSpecification,
    ImportConfig,
    SearchScope,
)
from gmail_exporter.operations import (
    MANIFEST_FILENAME,
    Cleaner,
    Exporter,
    Importer,
    load_manifest,
    save_manifest,
    scan_exports_directory,
)
from gmail_exporter.operations.cleaner import resolve_action
from gmail_exporter.operations.exporter import resolve_format
from gmail_exporter.pool import RichProgressReporter
from gmail_exporter.utils import format_bytes

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gmail-exporter",
        description="Export, import and clean up Gmail messages",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Write logs to this file instead of stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("auth", help="Run the OAuth flow and store a token")

    status_parser = subparsers.add_parser("status", help="Show authentication status")
    status_parser.add_argument("--manifest", type=Path, default=None, help="Also summarize this manifest")

    # Export
    export_parser = subparsers.add_parser("export", help="Export messages matching a filter")
    filters = export_parser.add_argument_group("filters")
    filters.add_argument("--to", default=None, help="Recipient email address")
    filters.add_argument("--from", dest="from_", default=None, help="Sender email address")
    filters.add_argument("--subject", default=None, help="Subject contains text")
    filters.add_argument("--includes-words", default=None, help="Message contains words")
    filters.add_argument("--excludes-words", default=None, help="Message excludes words (space-separated)")
    filters.add_argument("--size-greater-than", default=None, help="Minimum size, e.g. 5MB")
    filters.add_argument("--size-less-than", default=None, help="Maximum size, e.g. 10MB")
    filters.add_argument("--date-within", default=None, help="Relative window, e.g. 30d, 2w, 6m, 1y")
    filters.add_argument("--date-after", default=None, help="After date (YYYY-MM-DD)")
    filters.add_argument("--date-before", default=None, help="Before date (YYYY-MM-DD)")
    attachment = filters.add_mutually_exclusive_group()
    attachment.add_argument(
        "--has-attachment", dest="has_attachment", action="store_const", const=True, default=None
    )
    attachment.add_argument(
        "--no-attachment", dest="has_attachment", action="store_const", const=False, default=None
    )
    filters.add_argument(
        "--exclude-chats",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Exclude chat messages (default: settings exclude_chats)",
    )
    filters.add_argument("--labels", default=None, help="Comma-separated label names")
    filters.add_argument(
        "--search-scope",
        default=None,
        help=f"Search scope ({', '.join(s.value for s in SearchScope)})",
    )
    export_parser.add_argument("-o", "--output-dir", type=Path, default=None, help="Output directory")
    export_parser.add_argument(
        "--format",
        default=None,
        help=f"Export format ({', '.join(f.value for f in ExportFormat)}; default: settings export_format)",
    )
    export_parser.add_argument(
        "--organize-by-labels",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Write into one subdirectory per first label",
    )
    _add_batch_arguments(export_parser)

    # Import
    import_parser = subparsers.add_parser("import", help="Import exported files into a mailbox")
    import_parser.add_argument("-i", "--input-dir", type=Path, required=True, help="Directory of exported files")
    import_parser.add_argument("--import-credentials", type=Path, default=None, help="Client secrets of the destination account")
    import_parser.add_argument("--import-token", type=Path, default=None, help="Token file of the destination account")
    import_parser.add_argument(
        "--preserve-dates",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Use the Date header as the imported message's date",
    )
    _add_batch_arguments(import_parser)

    # Cleanup
    cleanup_parser = subparsers.add_parser("cleanup", help="Archive or delete exported messages")
    cleanup_parser.add_argument("--manifest", type=Path, required=True, help=f"Manifest file ({MANIFEST_FILENAME})")
    cleanup_parser.add_argument(
        "--action",
        default=CleanupAction.ARCHIVE.value,
        help="Action to perform (archive, delete)",
    )
    cleanup_parser.add_argument("--dry-run", action="store_true", help="Log what would happen without doing it")
    _add_batch_arguments(cleanup_parser)

    # Manifest regeneration
    generate_parser = subparsers.add_parser(
        "generate-manifest",
        help="Rebuild a manifest from an exports directory",
    )
    generate_parser.add_argument("-i", "--input-dir", type=Path, required=True, help="Exports directory")
    generate_parser.add_argument(
        "-o",
        "--output-file",
        type=Path,
        default=None,
        help=f"Manifest path (default: <input-dir>/{MANIFEST_FILENAME})",
    )

    return parser


def _add_batch_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--parallel-workers",
        type=int,
        default=None,
        help="Number of concurrent workers (default: settings parallel_workers)",
    )
    parser.add_argument("-l", "--limit", type=int, default=None, help="Process at most this many messages")
    parser.add_argument("--timeout", type=float, default=None, help="Stop starting new items after N seconds")


def _configure_logging(settings: Settings, verbose: bool, log_file: Path | None) -> None:
    level_name = "DEBUG" if verbose or settings.debug else settings.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    target = log_file or settings.log_file
    if target is not None:
        target.parent.mkdir(parents=True, exist_ok=True)
        logger_factory: Any = structlog.WriteLoggerFactory(file=target.open("a", encoding="utf-8"))
    else:
        logger_factory = structlog.PrintLoggerFactory(file=sys.stderr)

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=logger_factory,
    )


def build_filter(args: argparse.Namespace, settings: Settings) -> FilterSpecification:
    """Translate export flags into a :class:`FilterSpecification`.

    Raises:
        ValidationError: If a size, duration or date flag cannot be parsed.
    """

    try:
        return FilterSpecification(
            to=args.to,
            from_=args.from_,
            subject=args.subject,
            includes_words=args.includes_words,
            excludes_words=args.excludes_words,
            size_greater_than=parse_size(args.size_greater_than) if args.size_greater_than else None,
            size_less_than=parse_size(args.size_less_than) if args.size_less_than else None,
            date_within=parse_duration(args.date_within) if args.date_within else None,
            date_after=parse_date(args.date_after) if args.date_after else None,
            date_before=parse_date(args.date_before) if args.date_before else None,
            has_attachment=args.has_attachment,
            exclude_chats=settings.exclude_chats if args.exclude_chats is None else args.exclude_chats,
            labels=args.labels,
            search_scope=args.search_scope or settings.search_scope,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _exit_code(result: BatchResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    return EXIT_FAILURE if result.total_failed else EXIT_OK


def _print_failures(result: BatchResult, noun: str) -> None:
    if result.total_failed:
        print(f"Failed {noun}: {result.total_failed} (see log for details)")
    if result.cancelled:
        print("Run was cancelled before every item was processed.")


def _cmd_auth(args: argparse.Namespace, settings: Settings) -> int:
    client = GmailClient(settings)
    client.authenticate()
    print(f"Authenticated. Token stored in {client.token_path}")
    return EXIT_OK


def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    status = GmailClient(settings, allow_interactive=False).credential_status()
    print(f"Token: {status['token_path']}")
    print(f"Status: {status['status']}")
    if status.get("expiry"):
        print(f"Expires: {status['expiry'].isoformat()}")

    if args.manifest is not None:
        records = load_manifest(args.manifest)
        total_size = sum(r.size for r in records)
        print(f"Manifest: {args.manifest} ({len(records)} messages, {format_bytes(total_size)})")

    return EXIT_OK if status["status"] == "valid" else EXIT_FAILURE


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    spec = build_filter(args, settings)
    config = ExportConfig(
        output_dir=args.output_dir or settings.output_dir,
        format=args.format or settings.export_format,
        organize_by_labels=(
            settings.organize_by_labels if args.organize_by_labels is None else args.organize_by_labels
        ),
        limit=args.limit,
        parallel_workers=args.parallel_workers or settings.parallel_workers,
        metrics_enabled=settings.metrics_enabled,
        timeout=args.timeout,
    )

    # Reject bad input before OAuth can open a browser or refresh a token.
    resolve_format(config.format)
    validate(spec)

    client = GmailClient(settings)
    client.authenticate()

    with RichProgressReporter("Exporting") as progress:
        result = Exporter(client, config, progress=progress).export(spec)

    print("Export completed.")
    print(f"Total emails matched: {result.total_matched}")
    print(f"Total emails exported: {result.total_exported}")
    print(f"Total size: {format_bytes(result.total_size)}")
    print(f"Duration: {result.duration:.1f}s")
    print(f"Output directory: {config.output_dir}")
    _print_failures(result, "exports")
    return _exit_code(result)


def _cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    config = ImportConfig(
        input_dir=args.input_dir,
        limit=args.limit,
        parallel_workers=args.parallel_workers or settings.parallel_workers,
        preserve_dates=args.preserve_dates,
        metrics_enabled=settings.metrics_enabled,
        timeout=args.timeout,
    )

    client = GmailClient(
        settings,
        credentials_path=args.import_credentials or settings.import_credentials_path,
        token_path=args.import_token or settings.import_token_path,
    )
    client.authenticate()

    with RichProgressReporter("Importing") as progress:
        result = Importer(client, config, progress=progress).import_messages()

    print("Import completed.")
    print(f"Total files found: {result.total_found}")
    print(f"Total emails imported: {result.total_imported}")
    print(f"Total size: {format_bytes(result.total_size)}")
    print(f"Duration: {result.duration:.1f}s")
    _print_failures(result, "imports")
    return _exit_code(result)


def _cmd_cleanup(args: argparse.Namespace, settings: Settings) -> int:
    config = CleanupConfig(
        manifest_path=args.manifest,
        action=args.action,
        dry_run=args.dry_run,
        limit=args.limit,
        parallel_workers=args.parallel_workers or settings.parallel_workers,
        metrics_enabled=settings.metrics_enabled,
        timeout=args.timeout,
    )

    resolve_action(config.action)

    client = GmailClient(settings)
    if not config.dry_run:
        client.authenticate()

    with RichProgressReporter("Cleaning up") as progress:
        result = Cleaner(client, config, progress=progress).cleanup()

    print("DRY RUN - cleanup simulation completed." if config.dry_run else "Cleanup completed.")
    print(f"Total emails found: {result.total_found}")
    print(f"Total emails processed ({config.action}): {result.total_processed}")
    print(f"Duration: {result.duration:.1f}s")
    _print_failures(result, "operations")
    return _exit_code(result)


def _cmd_generate_manifest(args: argparse.Namespace, settings: Settings) -> int:
    output_file: Path = args.output_file or args.input_dir / MANIFEST_FILENAME
    records = scan_exports_directory(args.input_dir)
    if not records:
        logger.error("no_exported_messages_found", input_dir=str(args.input_dir))
        print(f"No exported messages found in {args.input_dir}", file=sys.stderr)
        return EXIT_FAILURE

    save_manifest(output_file, records)
    print(f"Manifest written to {output_file} ({len(records)} messages)")
    print(f"Next: gmail-exporter cleanup --manifest {output_file} --action archive --dry-run")
    return EXIT_OK


_COMMANDS = {
    "auth": _cmd_auth,
    "status": _cmd_status,
    "export": _cmd_export,
    "import": _cmd_import,
    "cleanup": _cmd_cleanup,
    "generate-manifest": _cmd_generate_manifest,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Gmail Exporter CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    parsed = parser.parse_args(args)

    settings = get_settings()
    _configure_logging(settings, parsed.verbose, parsed.log_file)

    logger.info("gmail_exporter_started", version=__version__, command=parsed.command)

    handler = _COMMANDS.get(parsed.command)
    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return EXIT_USAGE

    try:
        return handler(parsed, settings)
    except ValidationError as exc:
        logger.error("validation_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except GmailExporterError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
