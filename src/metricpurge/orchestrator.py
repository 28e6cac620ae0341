"""Bounded-concurrency dispatcher for work units."""

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Sequence, TypeVar

from .config import DEFAULT_JOBS
from .logging import log_with_context
from .progress import NullProgress, ProgressSink
from .stats import Stats

T = TypeVar("T")
R = TypeVar("R")


async def run_blocking(func: Callable[..., R], *args: Any, executor: Optional[ThreadPoolExecutor] = None) -> R:
    """Run a blocking store call off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, functools.partial(func, *args))


def describe_unit(unit: Any) -> dict:
    """Identity of a unit for log records."""
    log_context = getattr(unit, "log_context", None)
    if callable(log_context):
        return log_context()
    return {"unit": str(unit)}


class JobOrchestrator:
    """
    Dispatch work units to a fixed-size worker pool.

    - At most ``jobs`` units are in flight at any time
    - A unit that raises is logged, counted as one error and skipped
    - Results come back in input order whatever the completion order was
    """

    def __init__(
        self,
        jobs: int = DEFAULT_JOBS,
        progress: Optional[ProgressSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            jobs: Worker pool size (1 = sequential)
            progress: Sink receiving one tick per completed unit
            logger: Logger for unit errors

        Raises:
            ValueError: If jobs < 1
        """
        if jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {jobs}")

        self.jobs = jobs
        self.progress = progress or NullProgress()
        self.logger = logger or logging.getLogger("metricpurge")
        self.stats = Stats()
        self.start_time = time.time()
        self.executor = ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="metricpurge")
        self.semaphore = asyncio.Semaphore(jobs)

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def close(self) -> None:
        self.executor.shutdown(wait=True)

    async def _run_unit(self, unit: T, process: Callable[[T], R], describe: Callable[[T], dict]) -> Optional[R]:
        async with self.semaphore:
            self.stats.update(processed=1)
            try:
                return await run_blocking(process, unit, executor=self.executor)
            except Exception as e:
                log_with_context(
                    self.logger,
                    "error",
                    "Unit processing error",
                    {**describe(unit), "error": str(e), "error_type": type(e).__name__},
                )
                self.stats.update(errors=1)
                return None
            finally:
                self.progress.tick()

    async def run(
        self,
        title: str,
        units: Sequence[T],
        process: Callable[[T], R],
        describe: Callable[[T], dict] = describe_unit,
    ) -> list[Optional[R]]:
        """
        Process every unit and return the results in input order.

        Tasks are created as slots free up, so no more than ``jobs`` tasks
        exist at once regardless of how many units there are.

        Args:
            title: Name of the batch for progress reporting
            units: Work units to process
            process: Blocking function called with one unit
            describe: Log identity of a unit

        Returns:
            One result per unit, ``None`` where processing failed
        """
        results: list[Optional[R]] = [None] * len(units)
        self.progress.start(title, len(units))

        remaining = iter(enumerate(units))
        active: dict[asyncio.Task, int] = {}
        exhausted = False

        while not exhausted or active:
            while not exhausted and len(active) < self.jobs:
                try:
                    index, unit = next(remaining)
                except StopIteration:
                    exhausted = True
                    break
                task = asyncio.create_task(self._run_unit(unit, process, describe))
                active[task] = index

            if active:
                done, _ = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    index = active.pop(task)
                    # _run_unit handles unit errors; anything else is fatal
                    results[index] = task.result()

        self.progress.done()
        return results
