"""Command-line interface for metricpurge."""

import argparse
import asyncio
import os
import sys
from typing import Optional, Sequence

from . import __version__, operations
from .config import DEFAULT_JOBS, DEFAULT_OBSOLETE_THRESHOLD, RunOptions
from .logging import disable_logging, setup_logging
from .models import parse_rollup
from .stores import FileMetricStore, FilePathStore

METRIC_COMMANDS = ("remove-metrics", "list-metrics", "remove-obsolete-data", "list-obsolete-data")
PATH_COMMANDS = ("remove-paths", "list-paths", "list-empty-paths", "remove-empty-paths")
INSPECT_COMMANDS = ("list-metrics", "list-paths", "list-obsolete-data", "list-empty-paths")

COMMAND_HELP = {
    "remove-metrics": "Remove metrics (whole series, or points within --from/--to)",
    "list-metrics": "List metrics",
    "remove-obsolete-data": "Remove obsolete metrics and their leaf paths",
    "list-obsolete-data": "List paths with obsolete metrics",
    "remove-paths": "Remove paths matching the patterns",
    "list-paths": "List paths matching the patterns",
    "list-empty-paths": "List paths with no leaf below them",
    "remove-empty-paths": "Remove paths with no leaf below them",
}


def _common_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument(
        "tenant",
        help="Tenant to operate on",
    )

    parser.add_argument(
        "-p",
        "--paths",
        nargs="+",
        required=True,
        help="Path patterns (wildcards: * ? [abc] {a,b})",
    )

    parser.add_argument(
        "--path-store",
        default=os.getenv("METRICPURGE_PATH_STORE"),
        help="Path store snapshot file",
    )

    parser.add_argument(
        "-e",
        "--exclude-paths",
        nargs="+",
        default=[],
        help="Path patterns to exclude",
    )

    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=int(os.getenv("METRICPURGE_JOBS", str(DEFAULT_JOBS))),
        help="Number of units processed concurrently",
    )

    parser.add_argument(
        "--sort",
        action="store_true",
        help="Sort paths and output",
    )

    parser.add_argument(
        "--run",
        action="store_true",
        help="Actually remove data; without it only report what would be removed",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("METRICPURGE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--log-file",
        default=os.getenv("METRICPURGE_LOG_FILE"),
        help="Write logs to this file instead of stdout",
    )

    return parser


def _metric_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument(
        "-r",
        "--rollups",
        nargs="+",
        type=parse_rollup,
        required=True,
        help="Rollup definitions <rollup>:<period>, finest first",
    )

    parser.add_argument(
        "--metric-store",
        default=os.getenv("METRICPURGE_METRIC_STORE"),
        help="Metric store snapshot file",
    )

    parser.add_argument(
        "--from",
        dest="from_",
        type=int,
        default=None,
        help="Start of the time window (epoch seconds)",
    )

    parser.add_argument(
        "--to",
        type=int,
        default=None,
        help="End of the time window (epoch seconds)",
    )

    parser.add_argument(
        "--threshold",
        type=int,
        default=int(os.getenv("METRICPURGE_THRESHOLD", str(DEFAULT_OBSOLETE_THRESHOLD))),
        help="Obsolescence threshold in seconds",
    )

    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metricpurge",
        description="metricpurge - Garbage collector for hierarchical time-series metric stores",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"metricpurge {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _common_parser()
    metric = _metric_parser()

    for command in METRIC_COMMANDS + PATH_COMMANDS:
        parents = [common, metric] if command in METRIC_COMMANDS else [common]
        subparsers.add_parser(
            command,
            parents=parents,
            help=COMMAND_HELP[command],
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.path_store:
        parser.error("--path-store is required (or set METRICPURGE_PATH_STORE)")
    if args.command in METRIC_COMMANDS and not args.metric_store:
        parser.error("--metric-store is required (or set METRICPURGE_METRIC_STORE)")

    return args


def build_options(args: argparse.Namespace, command_line: Optional[Sequence[str]] = None) -> RunOptions:
    return RunOptions(
        jobs=args.jobs,
        from_=getattr(args, "from_", None),
        to=getattr(args, "to", None),
        exclude_paths=tuple(args.exclude_paths),
        sort=args.sort,
        threshold=getattr(args, "threshold", DEFAULT_OBSOLETE_THRESHOLD),
        run=args.run,
        command_line=list(command_line) if command_line else None,
    )


async def run_command(args: argparse.Namespace, options: RunOptions) -> dict:
    """
    Open the stores and run the selected operation.

    The operation shuts the stores down. A store already opened when opening
    the next one fails is shut down here.
    """
    if args.command in METRIC_COMMANDS:
        metric_store = await FileMetricStore.load(args.metric_store)
        try:
            path_store = await FilePathStore.load(args.path_store)
        except Exception:
            metric_store.shutdown()
            raise
        metric_operation = {
            "remove-metrics": operations.remove_metrics,
            "list-metrics": operations.list_metrics,
            "remove-obsolete-data": operations.remove_obsolete_data,
            "list-obsolete-data": operations.list_obsolete_data,
        }[args.command]
        return await metric_operation(args.tenant, args.rollups, args.paths, metric_store, path_store, options)

    path_operation = {
        "remove-paths": operations.remove_paths,
        "list-paths": operations.list_paths,
        "list-empty-paths": operations.list_empty_paths,
        "remove-empty-paths": operations.remove_empty_paths,
    }[args.command]
    path_store = await FilePathStore.load(args.path_store)
    return await path_operation(args.tenant, args.paths, path_store, options)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    if args.command in INSPECT_COMMANDS:
        logger = disable_logging("metricpurge")
    else:
        logger = setup_logging("metricpurge", args.log_level, args.log_file)

    try:
        options = build_options(args, sys.argv if argv is None else ["metricpurge", *argv])
        asyncio.run(run_command(args, options))

        # Exit with success
        sys.exit(0)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        logger.error("Unhandled error", exc_info=True, extra={"extra_fields": {"command": args.command}})
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
