"""CLI entry point for speaking practice."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from speakdrill import __version__
from speakdrill.cli.practice import build_controller, run_auto, run_interactive
from speakdrill.lib.config import get_practice_config
from speakdrill.lib.exceptions import (
    CatalogError,
    ConfigError,
    ExportError,
    NavigationError,
    PracticeError,
)
from speakdrill.lib.messages import (
    CATALOG_IMPORT_FAILED,
    CATALOG_LOADED,
    CATALOG_NEED_IMPORT,
    EMPTY_SESSION,
    SELECTED_COUNT,
    SHOWING_COUNT,
)
from speakdrill.models.item import PracticeItem
from speakdrill.services.catalog.loader import CatalogLoader, CatalogResult
from speakdrill.services.catalog.merge import merge_files
from speakdrill.services.catalog.selection import FilterCriteria, SelectionStore, facets
from speakdrill.services.export.service import ExportService

logger = logging.getLogger(__name__)


# Exit codes per CLI contract
EXIT_SUCCESS = 0
EXIT_USAGE_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_VALIDATION_ERROR = 3
EXIT_EXPORT_ERROR = 4
EXIT_INTERNAL_ERROR = 5


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.WARNING
    format_str = "[%(asctime)s] %(levelname)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    for name in ("date", "set", "scene", "type"):
        parser.add_argument(
            f"--{name}",
            action="append",
            default=[],
            metavar="VALUE",
            help=f"Keep items whose {name} matches (repeatable)",
        )
    for name in ("time", "length", "difficulty"):
        parser.add_argument(f"--{name}-min", type=float, default=None, metavar="N")
        parser.add_argument(f"--{name}-max", type=float, default=None, metavar="N")


def criteria_from_args(args: argparse.Namespace) -> FilterCriteria:
    """Build filter criteria from parsed arguments."""
    return FilterCriteria(
        date=args.date,
        set=args.set,
        scene=args.scene,
        type=args.type,
        time_min=args.time_min,
        time_max=args.time_max,
        length_min=args.length_min,
        length_max=args.length_max,
        difficulty_min=args.difficulty_min,
        difficulty_max=args.difficulty_max,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="speakdrill",
        description="Timed speaking practice with prompted recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  speakdrill catalog --type simple --time-max 30
  speakdrill select add 01-01 01-02
  speakdrill practice --auto --mock-device
  speakdrill merge TestData.json new_rows.tsv
        """,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed logging",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    catalog = subparsers.add_parser("catalog", help="List catalogue items")
    catalog.add_argument("--import", dest="import_file", default=None, metavar="FILE",
                         help="Import a catalogue JSON file and cache it")
    catalog.add_argument("--facets", action="store_true", help="Show available filter values")
    _add_filter_arguments(catalog)

    select = subparsers.add_parser("select", help="Manage the practice selection")
    select.add_argument("action", choices=["add", "remove", "clear", "show", "filtered"],
                        help="'filtered' selects every item matching the filters")
    select.add_argument("ids", nargs="*", help="Item identifiers")
    _add_filter_arguments(select)

    practice = subparsers.add_parser("practice", help="Practice the selected items")
    practice.add_argument("--auto", action="store_true",
                          help="Run unattended: prompt, record and export every item")
    practice.add_argument("--mock-device", action="store_true",
                          help="Use simulated audio instead of the sound card")
    practice.add_argument("-o", "--output-dir", default=None,
                          help="Directory for exported recordings")

    merge = subparsers.add_parser("merge", help="Merge new sheet rows into a catalogue")
    merge.add_argument("base", help="Base catalogue JSON (left unmodified)")
    merge.add_argument("sheet", help="New rows (.tsv or .xlsx)")

    return parser


def _load_catalog(loader: CatalogLoader, import_file: Optional[str] = None) -> CatalogResult:
    if import_file:
        try:
            return loader.import_file(Path(import_file))
        except CatalogError:
            print(CATALOG_IMPORT_FAILED.format(path=import_file), file=sys.stderr)
            raise
    result = loader.load()
    if not result.ok:
        raise CatalogError(CATALOG_NEED_IMPORT)
    return result


def _describe(item: PracticeItem) -> str:
    meta = item.metadata
    text = meta.get("script") or meta.get("prompt") or "(No script)"
    time = item.duration_seconds if item.duration_seconds is not None else ""
    details = " / ".join(
        str(value if value is not None else "")
        for value in (meta.get("scene"), meta.get("type"), meta.get("length"), meta.get("difficulty"), time)
    )
    return f"{item.id}  {text}\n    {details}"


def cmd_catalog(args: argparse.Namespace) -> int:
    result = _load_catalog(CatalogLoader(), args.import_file)
    print(CATALOG_LOADED.format(count=len(result.items), source=result.source.value))

    if args.facets:
        found = facets(result.items)
        for name, values in found.choices.items():
            print(f"{name}: {', '.join(values)}")
        for name, (low, high) in found.ranges.items():
            print(f"{name}: {low:g} - {high:g}")
        return EXIT_SUCCESS

    shown = criteria_from_args(args).apply(result.items)
    selection = SelectionStore()
    for item in shown:
        mark = "*" if item.id in selection else " "
        print(f"{mark} {_describe(item)}")
    print(SHOWING_COUNT.format(shown=len(shown), total=len(result.items)))
    return EXIT_SUCCESS


def cmd_select(args: argparse.Namespace) -> int:
    selection = SelectionStore()

    if args.action == "clear":
        selection.clear()
    elif args.action == "add":
        if not args.ids:
            print("Error: no item ids given", file=sys.stderr)
            return EXIT_USAGE_ERROR
        selection.add(args.ids)
    elif args.action == "remove":
        selection.remove(args.ids)
    elif args.action == "filtered":
        result = _load_catalog(CatalogLoader())
        selection.add(item.id for item in criteria_from_args(args).apply(result.items))

    if args.action == "show":
        for item_id in selection.ids:
            print(item_id)
    print(SELECTED_COUNT.format(count=len(selection)))
    return EXIT_SUCCESS


def cmd_practice(args: argparse.Namespace) -> int:
    result = _load_catalog(CatalogLoader())
    selection = SelectionStore()
    selection.prune(result.items)
    try:
        queue = selection.build_queue(result.items)
    except NavigationError:
        print(EMPTY_SESSION, file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    practice_config = get_practice_config()
    out_dir = Path(args.output_dir) if args.output_dir else practice_config.export_path
    controller = build_controller(queue, mock_device=args.mock_device, practice_config=practice_config)
    exporter = ExportService(practice_config)

    if args.auto:
        saved = asyncio.run(run_auto(controller, exporter, out_dir))
        logger.info(f"Exported {len(saved)} files to {out_dir}")
    else:
        asyncio.run(run_interactive(controller, exporter, out_dir))
    return EXIT_SUCCESS


def cmd_merge(args: argparse.Namespace) -> int:
    result = merge_files(Path(args.base), Path(args.sheet))
    print(f"Source items: {result.base_count}")
    print(f"New rows: {result.new_count}")
    print(f"Merged items: {result.merged_count}")
    print(f"Copy output: {result.copy_path}")
    print(f"Merged output: {result.merged_path}")
    print(f"Original {Path(args.base).name} was NOT modified.")
    return EXIT_SUCCESS


COMMANDS = {
    "catalog": cmd_catalog,
    "select": cmd_select,
    "practice": cmd_practice,
    "merge": cmd_merge,
}


def run(args: argparse.Namespace) -> int:
    """
    Run a subcommand.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    handler = COMMANDS.get(args.command)
    if handler is None:
        print("Error: a command is required (catalog, select, practice, merge)", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        return handler(args)

    except ValidationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    except CatalogError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    except ExportError as e:
        print(f"Error: Export failed: {e.message}", file=sys.stderr)
        return EXIT_EXPORT_ERROR

    except PracticeError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR

    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: Unexpected error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
