"""
Processor policies plugged into the orchestrator and the path loop.

Unit processors work on (path, rollup/period) units and run on the worker
pool. Path processors work on single paths or patterns and run
sequentially. Removal processors honour dry mode: they perform every read
but skip the mutating store call.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from .config import RunOptions
from .logging import log_with_context
from .models import PathCollection, PathEntry, Rollup, WorkUnit, combine_paths_rollups
from .orchestrator import run_blocking
from .scanner import ObsolescenceScanner
from .stats import Stats
from .stores import MetricStore, PathStore

LIST_METRICS_FORMAT = "Path: {path}, rollup: {rollup}, period: {period}, time: {time}, data: {data}"


async def collect_paths(
    path_store: PathStore,
    tenant: str,
    patterns: Sequence[str],
    exclude_paths: Sequence[str] = (),
    sort: bool = False,
    logger: Optional[logging.Logger] = None,
) -> PathCollection:
    """
    Resolve path patterns to concrete paths.

    Every pattern is looked up with descendants included. A path matched by
    more than one pattern is kept once, in first-seen order unless ``sort``.
    """
    logger = logger or logging.getLogger("metricpurge")
    logger.info("Getting paths...")

    info: dict[str, PathEntry] = {}
    for pattern in patterns:
        entries = await run_blocking(path_store.lookup, tenant, False, False, pattern, tuple(exclude_paths))
        for entry in entries:
            info.setdefault(entry.path, entry)

    paths = list(info)
    if sort:
        paths.sort()

    log_with_context(logger, "info", f"Found {len(paths)} paths", {"paths": len(paths)})
    return PathCollection(paths=paths, info=info)


class UnitProcessor(ABC):
    """Policy for metric-level work dispatched through the orchestrator."""

    title = ""

    def __init__(
        self,
        metric_store: MetricStore,
        path_store: PathStore,
        tenant: str,
        rollups: Sequence[Rollup],
        paths: Sequence[str],
        options: RunOptions,
        logger: Optional[logging.Logger] = None,
    ):
        self.metric_store = metric_store
        self.path_store = path_store
        self.tenant = tenant
        self.rollups = list(rollups)
        self.paths = list(paths)
        self.options = options
        self.logger = logger or logging.getLogger("metricpurge")
        self.stats = Stats()
        self.collection: Optional[PathCollection] = None

    async def resolve_paths(self) -> list[str]:
        self.collection = await collect_paths(
            self.path_store, self.tenant, self.paths, self.options.exclude_paths, self.options.sort, self.logger
        )
        return self.collection.paths

    async def resolve_units(self) -> list[WorkUnit]:
        return combine_paths_rollups(await self.resolve_paths(), self.rollups)

    @abstractmethod
    def process_unit(self, rollup: int, period: int, path: str, from_: Optional[int], to: Optional[int]) -> Any:
        """Process one unit. Called on a worker thread."""

    def final_stats(self, external_errors: int) -> dict:
        counts = self.stats.snapshot()
        return {"processed": counts["processed"], "errors": counts["errors"] + external_errors}


class RemoveMetricsProcessor(UnitProcessor):
    """Delete series, or only the points inside the time window when one is set."""

    title = "Removing metrics"

    def process_unit(self, rollup, period, path, from_, to):
        self.stats.update(processed=1)
        context = {"path": path, "rollup": rollup, "period": period}

        if from_ is None and to is None:
            if self.options.dry_run:
                log_with_context(self.logger, "info", "Would remove metrics", context)
                return None
            log_with_context(self.logger, "info", "Removing metrics", context)
            self.metric_store.delete(self.tenant, rollup, period, path)
            return None

        samples = self.metric_store.fetch(self.tenant, rollup, period, path, from_, to, None)
        times = [sample["time"] for sample in samples]
        context.update({"from": from_, "to": to, "points": len(times)})
        if not times:
            self.logger.debug(f"No metrics in time window: {path}")
            return times
        if self.options.dry_run:
            log_with_context(self.logger, "info", "Would remove metrics", context)
            return times
        log_with_context(self.logger, "info", "Removing metrics", context)
        self.metric_store.delete_times(self.tenant, rollup, period, path, times)
        return times


class ListMetricsProcessor(UnitProcessor):
    """Format every fetched sample, in fetch order."""

    title = "Metrics"

    def process_unit(self, rollup, period, path, from_, to):
        samples = self.metric_store.fetch(self.tenant, rollup, period, path, from_, to, None)
        return [
            LIST_METRICS_FORMAT.format(path=path, rollup=rollup, period=period, time=s["time"], data=s["data"])
            for s in samples
        ]


class RemoveObsoleteMetricsProcessor(UnitProcessor):
    """Delete whole series of paths the scanner found obsolete."""

    title = "Removing obsolete metrics"

    def __init__(self, *args, scanner: ObsolescenceScanner, **kwargs):
        super().__init__(*args, **kwargs)
        self.scanner = scanner

    async def resolve_units(self) -> list[WorkUnit]:
        paths = await self.resolve_paths()
        # Only leaves carry series
        leaves = [path for path in paths if self.collection.is_leaf(path)]
        return await self.scanner.scan(leaves, self.rollups)

    def process_unit(self, rollup, period, path, from_, to):
        self.stats.update(processed=1)
        context = {"path": path, "rollup": rollup, "period": period}
        if self.options.dry_run:
            log_with_context(self.logger, "info", "Would remove obsolete metrics", context)
            return None
        log_with_context(self.logger, "info", "Removing obsolete metrics", context)
        self.metric_store.delete(self.tenant, rollup, period, path)
        return None


class PathProcessor(ABC):
    """Policy for path-level work, run one path at a time."""

    title = ""

    def __init__(
        self,
        path_store: PathStore,
        tenant: str,
        options: RunOptions,
        logger: Optional[logging.Logger] = None,
    ):
        self.path_store = path_store
        self.tenant = tenant
        self.options = options
        self.logger = logger or logging.getLogger("metricpurge")
        self.stats = Stats()

    @abstractmethod
    def process_path(self, path: str) -> Any:
        """Process one path or pattern."""

    def final_stats(self, external_errors: int) -> dict:
        counts = self.stats.snapshot()
        return {"processed": counts["processed"], "errors": counts["errors"] + external_errors}


class RemovePathsProcessor(PathProcessor):
    """Remove every index entry matching a pattern, descendants included."""

    title = "Removing paths"

    def process_path(self, path):
        self.stats.update(processed=1)
        if self.options.dry_run:
            matches = [e.path for e in self.path_store.lookup(self.tenant, False, False, path, ())]
            log_with_context(self.logger, "info", "Would remove path", {"path": path, "matches": len(matches)})
            for match in matches:
                self.logger.debug(f"Would remove path: {match}")
            return matches
        log_with_context(self.logger, "info", "Removing path", {"path": path})
        return self.path_store.delete_query(self.tenant, False, False, path)


class ListPathsProcessor(PathProcessor):
    """Resolve a pattern to the matching paths."""

    title = "Paths"

    def process_path(self, path):
        entries = self.path_store.lookup(self.tenant, False, False, path, self.options.exclude_paths)
        paths = [e.path for e in entries]
        if self.options.sort:
            paths.sort()
        return paths


class RemoveExactPathsProcessor(PathProcessor):
    """Remove single index entries by exact path."""

    def __init__(self, *args, title: str = "Removing paths", **kwargs):
        super().__init__(*args, **kwargs)
        self.title = title

    def process_path(self, path):
        self.stats.update(processed=1)
        if self.options.dry_run:
            log_with_context(self.logger, "info", "Would remove path", {"path": path})
            return None
        log_with_context(self.logger, "info", "Removing path", {"path": path})
        self.path_store.delete(self.tenant, path)
        return None
