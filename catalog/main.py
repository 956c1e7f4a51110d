"""Command-line entrypoints for the S3 dataset catalog."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import orjson
from dotenv import load_dotenv

from catalog.fetch.store import ObjectStoreError
from catalog.observability.log import configure_logging
from catalog.orchestrator.service import CatalogService
from catalog.orchestrator.settings import CatalogSettings, build_settings, load_settings_file
from catalog.quality.config import ConfigurationError
from catalog.render.text import render_browse, render_search
from catalog.storage.writers import render_csv, render_json, write_csv, write_json

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_LOGGING = Path("config/logging.yaml")


def load_settings(args: argparse.Namespace) -> CatalogSettings:
    """Merge the TOML file, ``S3_*`` environment variables and CLI flags."""
    raw = load_settings_file(Path(args.settings))
    overrides: Dict[str, Dict[str, Any]] = {
        "store": {"endpoint": args.endpoint, "bucket": args.bucket},
        "deduplication": {
            "enabled": True if args.deduplicate else None,
            "case_sensitive": True if args.case_sensitive else None,
        },
    }
    if getattr(args, "date_format", None):
        overrides["date_display"] = {"format": args.date_format}
    return build_settings(raw, overrides=overrides)


def create_service(settings: CatalogSettings) -> CatalogService:
    return CatalogService(settings)


def _add_view_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-d", "--show-dates", action="store_true", help="Show object last-modified timestamps")
    parser.add_argument("-D", "--deduplicate", action="store_true", help="Hide datasets sharing a title")
    parser.add_argument(
        "--date-format",
        choices=["relative", "absolute", "both"],
        help="How timestamps are displayed (default from settings)",
    )
    parser.add_argument("-c", "--case-sensitive", action="store_true", help="Compare titles case-sensitively")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("--compact", action="store_true", help="Single-line JSON output")


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="catalog", description="Browse datasets stored in an S3 bucket")
    parser.add_argument("-e", "--endpoint", help="S3 endpoint (overrides S3_ENDPOINT)")
    parser.add_argument("-b", "--bucket", help="Bucket name (overrides S3_BUCKET_NAME)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Detailed statistics and debug logs")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS), help="Path to settings TOML")
    sub = parser.add_subparsers(dest="command", required=True)

    browse = sub.add_parser("browse", help="List every dataset grouped by section")
    _add_view_options(browse)

    search = sub.add_parser("search", help="Find datasets whose title or description contains QUERY")
    search.add_argument("query", help="Case-insensitive substring to look for")
    _add_view_options(search)

    export = sub.add_parser("export", help="Export datasets as JSON or CSV")
    export.add_argument("--format", choices=["json", "csv"], default="json", help="Export format")
    export.add_argument("--output", help="Destination file (stdout when omitted)")
    export.add_argument("--query", help="Only export datasets matching this query")
    export.add_argument("-D", "--deduplicate", action="store_true", help="Hide datasets sharing a title")
    export.add_argument("-c", "--case-sensitive", action="store_true", help="Compare titles case-sensitively")

    return parser


def _dump(payload: Dict[str, Any], *, compact: bool) -> str:
    option = 0 if compact else orjson.OPT_INDENT_2
    return orjson.dumps(payload, option=option).decode()


def _report_lines(report: Optional[Dict[str, Any]]) -> List[str]:
    if not report or not report["duplicateGroups"]:
        return []
    lines = ["", "Duplicate groups"]
    for group in report["duplicateGroups"]:
        lines.append(f'  "{group["normalizedTitle"]}" x{group["count"]} -> kept {group["keptId"]}')
        for removed in group["removed"]:
            lines.append(f"    - removed {removed['id']} ({removed['lastModified'] or 'unknown date'})")
    return lines


async def run_browse(args: argparse.Namespace, service: CatalogService) -> str:
    response = await service.load_catalog()
    if args.format == "json":
        return _dump(response.to_json_dict(), compact=args.compact)
    text = render_browse(
        response.sections,
        response.metadata,
        date_config=service.date_display_config if args.show_dates else None,
        verbose=args.verbose,
    )
    if args.verbose:
        text = "\n".join([text, *_report_lines(service.deduplication_report())])
    return text


async def run_search(args: argparse.Namespace, service: CatalogService) -> str:
    catalog = await service.load_catalog()
    response = service.search(args.query)
    if args.format == "json":
        payload = {
            "query": args.query,
            "results": response.to_json_dict(),
            "catalog": catalog.metadata,
            "searchOptions": {
                "showDates": args.show_dates,
                "deduplicate": args.deduplicate,
                "dateFormat": service.date_display_config.format,
                "caseSensitive": args.case_sensitive,
            },
        }
        return _dump(payload, compact=args.compact)
    return render_search(
        args.query,
        response.sections,
        response.total_results,
        response.metadata,
        date_config=service.date_display_config if args.show_dates else None,
        verbose=args.verbose,
    )


async def run_export(args: argparse.Namespace, service: CatalogService) -> str:
    await service.load_catalog()
    datasets = service.export_datasets(query=args.query)
    metadata = {
        "bucket": service.settings.store.bucket,
        "query": args.query,
        "deduplicationEnabled": service.deduplication_config.enabled,
    }
    if args.output:
        path = Path(args.output)
        if args.format == "csv":
            write_csv(datasets, path)
        else:
            write_json(datasets, path, metadata=metadata)
        return f"Exported {len(datasets)} datasets to {path}"
    if args.format == "csv":
        return render_csv(datasets).rstrip("\n")
    return render_json(datasets, metadata=metadata).decode()


COMMANDS = {
    "browse": run_browse,
    "search": run_search,
    "export": run_export,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(DEFAULT_LOGGING, verbose=args.verbose)

    try:
        settings = load_settings(args)
        service = create_service(settings)
        output = asyncio.run(COMMANDS[args.command](args, service))
    except (ConfigurationError, ObjectStoreError, httpx.HTTPError) as exc:
        raise SystemExit(f"Error: {exc}")
    if output:
        sys.stdout.write(output + "\n")


if __name__ == "__main__":
    main()
