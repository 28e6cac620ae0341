"""Progress sinks fed by the orchestrator and the tree walker."""

import logging
import threading
import time
from typing import Optional, Protocol

from .logging import log_with_context


class ProgressSink(Protocol):
    def start(self, title: str, total: int) -> None: ...

    def tick(self, count: int = 1) -> None: ...

    def done(self) -> None: ...


class NullProgress:
    """Progress sink that discards every update."""

    def start(self, title: str, total: int) -> None:
        pass

    def tick(self, count: int = 1) -> None:
        pass

    def done(self) -> None:
        pass


class LogProgress:
    """
    Progress sink that logs structured progress updates.

    Ticks may arrive from any thread. An update is logged at most once per
    ``interval`` seconds, plus one completion event from ``done()``.
    """

    def __init__(self, logger: logging.Logger, interval: float = 30.0):
        self.logger = logger
        self.interval = interval
        self.title = ""
        self.total = 0
        self.completed = 0
        self.start_time: Optional[float] = None
        self.last_progress_log = 0.0
        self._lock = threading.Lock()

    def start(self, title: str, total: int) -> None:
        with self._lock:
            self.title = title
            self.total = total
            self.completed = 0
            self.start_time = time.time()
            self.last_progress_log = self.start_time
        log_with_context(self.logger, "info", f"{title}:", {"total": total})

    def tick(self, count: int = 1) -> None:
        with self._lock:
            self.completed += count
            now = time.time()
            if now - self.last_progress_log < self.interval:
                return
            self.last_progress_log = now
            progress_data = self._progress_data(now)
        log_with_context(self.logger, "info", "Progress update", progress_data)

    def done(self) -> None:
        with self._lock:
            progress_data = self._progress_data(time.time())
        log_with_context(self.logger, "info", f"{self.title} completed", progress_data)

    def _progress_data(self, now: float) -> dict:
        elapsed = now - self.start_time if self.start_time is not None else 0.0
        rate = self.completed / elapsed if elapsed > 0 else 0.0
        progress_data = {
            "title": self.title,
            "done": self.completed,
            "total": self.total,
            "percent": round(self.completed / self.total * 100, 1) if self.total > 0 else 100.0,
            "elapsed_seconds": round(elapsed, 1),
            "per_second": round(rate, 1),
        }
        remaining = self.total - self.completed
        if rate > 0 and remaining > 0:
            progress_data["eta_seconds"] = round(remaining / rate, 1)
        return progress_data
