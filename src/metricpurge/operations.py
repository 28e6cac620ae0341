"""
Top-level operations.

Each operation resolves path patterns through the path store, works out its
units, runs them, releases the stores it was given and reports stats.
Removal operations log a start banner, warn in dry mode and print a stats
block. Listing operations run in inspect mode and only emit their listing
through ``output``.
"""

import logging
import time
from typing import Any, Callable, Optional, Sequence

from . import __version__
from .config import DRY_MODE_WARNING, RunOptions
from .logging import log_with_context
from .models import Rollup, paths_for_rollup, split_path
from .orchestrator import JobOrchestrator, run_blocking
from .processors import (
    ListMetricsProcessor,
    ListPathsProcessor,
    PathProcessor,
    RemoveExactPathsProcessor,
    RemoveMetricsProcessor,
    RemoveObsoleteMetricsProcessor,
    RemovePathsProcessor,
    UnitProcessor,
    collect_paths,
)
from .progress import LogProgress, NullProgress, ProgressSink
from .scanner import ObsolescenceScanner
from .stats import show_duration, show_stats
from .stores import MetricStore, PathStore, is_excluded
from .tree import EmptyPathPruner, PathTree, walk_tree

STARTING_STR = "==================== Starting ===================="

Output = Callable[[str], Any]


def _get_logger() -> logging.Logger:
    return logging.getLogger("metricpurge")


def _start_run(logger: logging.Logger, operation: str, options: RunOptions, **params: Any) -> None:
    log_with_context(
        logger,
        "info",
        STARTING_STR,
        {
            "version": __version__,
            "operation": operation,
            "jobs": options.jobs,
            "from": options.from_,
            "to": options.to,
            "exclude_paths": list(options.exclude_paths),
            "sort": options.sort,
            "dry_run": options.dry_run,
            **params,
        },
    )
    if options.command_line:
        logger.info(f"Command line: {' '.join(options.command_line)}")
    if options.dry_run:
        print()
        print(DRY_MODE_WARNING)
        logger.warning(DRY_MODE_WARNING)


def _require_rollups(rollups: Sequence[Rollup]) -> None:
    if not rollups:
        raise ValueError("At least one rollup is required")


def _store_errors(*stores: Any) -> int:
    return sum(store.stats().get("errors", 0) for store in stores)


async def _shutdown(store: Any) -> None:
    await run_blocking(store.shutdown)


async def _process_metrics(
    processor: UnitProcessor, orchestrator: JobOrchestrator, options: RunOptions
) -> tuple[list, list]:
    units = await processor.resolve_units()

    def process(unit):
        return processor.process_unit(unit.rollup.rollup, unit.rollup.period, unit.path, options.from_, options.to)

    results = await orchestrator.run(processor.title, units, process)
    return units, results


async def _process_paths(
    paths: Sequence[str], processor: PathProcessor, progress: ProgressSink, logger: logging.Logger
) -> list:
    """Run a path processor over each path in turn; a failing path is logged and counted."""
    results = []
    progress.start(processor.title, len(paths))
    for path in paths:
        try:
            results.append(await run_blocking(processor.process_path, path))
        except Exception as e:
            log_with_context(
                logger,
                "error",
                "Path processing error",
                {"path": path, "error": str(e), "error_type": type(e).__name__},
            )
            processor.stats.update(errors=1)
            results.append(None)
        finally:
            progress.tick()
    progress.done()
    return results


def _report(logger: logging.Logger, stats: dict, start_time: float) -> dict:
    duration = time.time() - start_time
    show_stats(logger, stats["processed"], stats["errors"])
    show_duration(logger, duration)
    return {**stats, "duration_seconds": round(duration, 2)}


async def remove_metrics(
    tenant: str,
    rollups: Sequence[Rollup],
    paths: Sequence[str],
    metric_store: MetricStore,
    path_store: PathStore,
    options: RunOptions,
) -> dict:
    """Remove metric series, or only the points inside ``from``/``to``."""
    start_time = time.time()
    logger = _get_logger()
    _require_rollups(rollups)
    _start_run(logger, "remove-metrics", options, tenant=tenant, rollups=[str(r) for r in rollups], paths=list(paths))

    orchestrator = JobOrchestrator(options.jobs, LogProgress(logger), logger)
    processor = RemoveMetricsProcessor(metric_store, path_store, tenant, rollups, paths, options, logger)
    try:
        try:
            units, _ = await _process_metrics(processor, orchestrator, options)
        finally:
            orchestrator.close()
            await _shutdown(metric_store)
    finally:
        await _shutdown(path_store)

    stats = processor.final_stats(orchestrator.stats.errors + _store_errors(metric_store, path_store))
    return {**_report(logger, stats, start_time), "units": units}


async def list_metrics(
    tenant: str,
    rollups: Sequence[Rollup],
    paths: Sequence[str],
    metric_store: MetricStore,
    path_store: PathStore,
    options: RunOptions,
    output: Output = print,
) -> dict:
    """Print every sample of the matching series, unit by unit in input order."""
    start_time = time.time()
    logger = _get_logger()
    _require_rollups(rollups)

    orchestrator = JobOrchestrator(options.jobs, NullProgress(), logger)
    processor = ListMetricsProcessor(metric_store, path_store, tenant, rollups, paths, options, logger)
    try:
        try:
            units, results = await _process_metrics(processor, orchestrator, options)
        finally:
            orchestrator.close()
            await _shutdown(metric_store)
    finally:
        await _shutdown(path_store)

    lines = [line for unit_lines in results if unit_lines for line in unit_lines]
    for line in lines:
        output(line)

    return {
        "processed": orchestrator.stats.processed,
        "errors": orchestrator.stats.errors + _store_errors(metric_store, path_store),
        "duration_seconds": round(time.time() - start_time, 2),
        "units": units,
        "lines": lines,
    }


async def remove_paths(
    tenant: str,
    paths: Sequence[str],
    path_store: PathStore,
    options: RunOptions,
) -> dict:
    """Remove every path entry matching the patterns, descendants included."""
    start_time = time.time()
    logger = _get_logger()
    _start_run(logger, "remove-paths", options, tenant=tenant, paths=list(paths))

    processor = RemovePathsProcessor(path_store, tenant, options, logger)
    try:
        await _process_paths(list(paths), processor, LogProgress(logger), logger)
    finally:
        await _shutdown(path_store)

    stats = processor.final_stats(_store_errors(path_store))
    return _report(logger, stats, start_time)


async def list_paths(
    tenant: str,
    paths: Sequence[str],
    path_store: PathStore,
    options: RunOptions,
    output: Output = print,
) -> dict:
    """Print the paths matching each pattern."""
    start_time = time.time()
    logger = _get_logger()

    processor = ListPathsProcessor(path_store, tenant, options, logger)
    try:
        results = await _process_paths(list(paths), processor, NullProgress(), logger)
    finally:
        await _shutdown(path_store)

    found = [path for matches in results if matches for path in matches]
    for path in found:
        output(path)

    return {
        "processed": len(paths),
        "errors": processor.stats.errors + _store_errors(path_store),
        "duration_seconds": round(time.time() - start_time, 2),
        "paths": found,
    }


async def remove_obsolete_data(
    tenant: str,
    rollups: Sequence[Rollup],
    paths: Sequence[str],
    metric_store: MetricStore,
    path_store: PathStore,
    options: RunOptions,
    clock: Callable[[], float] = time.time,
) -> dict:
    """
    Remove series with no data newer than the threshold, then their leaf paths.

    Obsolescence is decided on the first rollup and applied to all of them.
    Only paths the path store reported as leaves are removed from the index.
    """
    start_time = time.time()
    logger = _get_logger()
    _require_rollups(rollups)
    _start_run(
        logger,
        "remove-obsolete-data",
        options,
        tenant=tenant,
        rollups=[str(r) for r in rollups],
        paths=list(paths),
        threshold=options.threshold,
    )

    orchestrator = JobOrchestrator(options.jobs, LogProgress(logger), logger)
    scanner = ObsolescenceScanner(
        metric_store, orchestrator, tenant, options.threshold, clock=clock, logger=logger
    )
    processor = RemoveObsoleteMetricsProcessor(
        metric_store, path_store, tenant, rollups, paths, options, logger, scanner=scanner
    )
    path_processor = RemoveExactPathsProcessor(path_store, tenant, options, logger, title="Removing obsolete paths")
    try:
        try:
            units, _ = await _process_metrics(processor, orchestrator, options)
        finally:
            orchestrator.close()
            await _shutdown(metric_store)

        metric_stats = processor.final_stats(orchestrator.stats.errors + _store_errors(metric_store, path_store))
        show_stats(logger, metric_stats["processed"], metric_stats["errors"])

        obsolete_paths = [p for p in paths_for_rollup(rollups[0], units) if processor.collection.is_leaf(p)]
        await _process_paths(obsolete_paths, path_processor, LogProgress(logger), logger)
    finally:
        await _shutdown(path_store)

    path_stats = path_processor.final_stats(_store_errors(path_store))
    report = _report(logger, path_stats, start_time)
    errors = (
        orchestrator.stats.errors
        + processor.stats.errors
        + path_processor.stats.errors
        + _store_errors(metric_store, path_store)
    )
    return {
        "processed": metric_stats["processed"],
        "paths_processed": path_stats["processed"],
        "errors": errors,
        "duration_seconds": report["duration_seconds"],
        "units": units,
        "removed_paths": obsolete_paths,
    }


async def list_obsolete_data(
    tenant: str,
    rollups: Sequence[Rollup],
    paths: Sequence[str],
    metric_store: MetricStore,
    path_store: PathStore,
    options: RunOptions,
    output: Output = print,
    clock: Callable[[], float] = time.time,
) -> dict:
    """Print the paths whose first rollup has no data newer than the threshold."""
    start_time = time.time()
    logger = _get_logger()
    _require_rollups(rollups)

    orchestrator = JobOrchestrator(options.jobs, NullProgress(), logger)
    scanner = ObsolescenceScanner(
        metric_store,
        orchestrator,
        tenant,
        options.threshold,
        clock=clock,
        inspecting=True,
        logger=logger,
    )
    try:
        try:
            collection = await collect_paths(
                path_store, tenant, paths, options.exclude_paths, options.sort, logger
            )
            leaves = [path for path in collection.paths if collection.is_leaf(path)]
            obsolete = await scanner.find_obsolete_paths(leaves, rollups)
        finally:
            orchestrator.close()
            await _shutdown(metric_store)
    finally:
        await _shutdown(path_store)

    for path in obsolete:
        output(path)

    return {
        "processed": orchestrator.stats.processed,
        "errors": orchestrator.stats.errors + _store_errors(metric_store, path_store),
        "duration_seconds": round(time.time() - start_time, 2),
        "paths": obsolete,
    }


async def _find_empty_paths(
    tenant: str,
    paths: Sequence[str],
    path_store: PathStore,
    options: RunOptions,
    progress: ProgressSink,
    logger: logging.Logger,
) -> list[str]:
    """
    Build a tree from the matching paths and prune it bottom-up.

    The tree holds excluded paths too, so a branch whose only descendants
    are excluded is not empty. Excluded paths are never reported.
    """
    collection = await collect_paths(path_store, tenant, paths, (), False, logger)
    tree = PathTree()
    for entry in collection.entries():
        tree.add_entry(entry)

    eligible = {
        path for path in collection.paths if not is_excluded(split_path(path), options.exclude_paths)
    }
    pruner = EmptyPathPruner(tree, progress, logger, eligible=eligible)
    progress.start(pruner.title, len(collection.paths))
    walk_tree(tree, pruner)
    progress.done()
    return pruner.removed_paths


async def list_empty_paths(
    tenant: str,
    paths: Sequence[str],
    path_store: PathStore,
    options: RunOptions,
    output: Output = print,
) -> dict:
    """Print branches that have no leaf below them."""
    start_time = time.time()
    logger = _get_logger()
    try:
        empty_paths = await _find_empty_paths(tenant, paths, path_store, options, NullProgress(), logger)
    finally:
        await _shutdown(path_store)

    if options.sort:
        empty_paths = sorted(empty_paths)
    for path in empty_paths:
        output(path)

    return {
        "processed": len(empty_paths),
        "errors": _store_errors(path_store),
        "duration_seconds": round(time.time() - start_time, 2),
        "paths": empty_paths,
    }


async def remove_empty_paths(
    tenant: str,
    paths: Sequence[str],
    path_store: PathStore,
    options: RunOptions,
    progress: Optional[ProgressSink] = None,
) -> dict:
    """Remove branches that have no leaf below them, deepest first."""
    start_time = time.time()
    logger = _get_logger()
    _start_run(logger, "remove-empty-paths", options, tenant=tenant, paths=list(paths))
    progress = progress or LogProgress(logger)

    path_processor = RemoveExactPathsProcessor(path_store, tenant, options, logger, title="Removing empty paths")
    try:
        empty_paths = await _find_empty_paths(tenant, paths, path_store, options, progress, logger)
        await _process_paths(empty_paths, path_processor, progress, logger)
    finally:
        await _shutdown(path_store)

    stats = path_processor.final_stats(_store_errors(path_store))
    report = _report(logger, stats, start_time)
    return {**report, "removed_paths": sorted(empty_paths) if options.sort else empty_paths}
