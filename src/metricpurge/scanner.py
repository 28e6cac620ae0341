"""Classify paths as obsolete when they have no recent data."""

import logging
import time
from typing import Callable, Optional, Sequence

from .config import DEFAULT_OBSOLETE_THRESHOLD
from .logging import log_with_context
from .models import Rollup, WorkUnit, combine_paths_rollups
from .orchestrator import JobOrchestrator
from .stores import MetricStore


class ObsolescenceScanner:
    """
    Probe the metric store for the most recent sample of each path.

    Only the first rollup is probed: the finest granularity decides, and a
    path found obsolete there is treated as obsolete for every requested
    rollup. A probe that fails counts as an error and leaves the path live.
    Obsolete paths are reported in sorted order.
    """

    title = "Checking metrics"

    def __init__(
        self,
        metric_store: MetricStore,
        orchestrator: JobOrchestrator,
        tenant: str,
        threshold: int = DEFAULT_OBSOLETE_THRESHOLD,
        clock: Callable[[], float] = time.time,
        inspecting: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        if threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {threshold}")
        self.metric_store = metric_store
        self.orchestrator = orchestrator
        self.tenant = tenant
        self.threshold = threshold
        self.clock = clock
        self.inspecting = inspecting
        self.logger = logger or logging.getLogger("metricpurge")

    def cutoff(self) -> int:
        """Oldest sample time that still makes a path live."""
        return int(self.clock()) - self.threshold

    def _probe(self, unit: WorkUnit, from_: int) -> Optional[str]:
        if not self.inspecting:
            log_with_context(self.logger, "info", "Checking metrics", unit.log_context())
        data = self.metric_store.fetch(
            self.tenant, unit.rollup.rollup, unit.rollup.period, unit.path, from_, None, 1
        )
        if data:
            return None
        self.logger.debug(f"Metrics on path '{unit.path}' are obsolete")
        return unit.path

    async def find_obsolete_paths(self, paths: Sequence[str], rollups: Sequence[Rollup]) -> list[str]:
        """Paths with no sample at or after the cutoff on the first rollup."""
        if not rollups:
            raise ValueError("At least one rollup is required")

        from_ = self.cutoff()
        probe_rollup = rollups[0]
        units = combine_paths_rollups(paths, [probe_rollup])

        if not self.inspecting:
            log_with_context(
                self.logger,
                "info",
                "Obsolescence threshold",
                {
                    "threshold": self.threshold,
                    "from": from_,
                    "from_time": time.strftime("%a, %d %b %Y %H:%M:%S %z", time.localtime(from_)),
                    "rollup": probe_rollup.rollup,
                    "period": probe_rollup.period,
                },
            )

        results = await self.orchestrator.run(self.title, units, lambda unit: self._probe(unit, from_))
        obsolete = sorted(path for path in results if path is not None)

        log_with_context(self.logger, "info", f"Found obsolete metrics on {len(obsolete)} paths", {"paths": len(obsolete)})
        return obsolete

    async def scan(self, paths: Sequence[str], rollups: Sequence[Rollup]) -> list[WorkUnit]:
        """Obsolete paths crossed with every requested rollup."""
        obsolete = await self.find_obsolete_paths(paths, rollups)
        return combine_paths_rollups(obsolete, rollups)
