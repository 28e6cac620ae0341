"""Run statistics and the final report block."""

import logging
import threading

import psutil

from .logging import log_with_context


def get_memory_usage_mb() -> float:
    """Get current memory usage in MB."""
    process = psutil.Process()
    return process.memory_info().rss / 1024 / 1024  # Convert bytes to MB


class Stats:
    """Counters updated from worker threads."""

    FIELDS = ("processed", "errors")

    def __init__(self):
        self._lock = threading.Lock()
        self._values = {name: 0 for name in self.FIELDS}

    def update(self, **kwargs: int) -> None:
        """Thread-safe increment of one or more counters."""
        with self._lock:
            for key, value in kwargs.items():
                if key not in self._values:
                    raise KeyError(f"Unknown stats field: {key}")
                self._values[key] += value

    @property
    def processed(self) -> int:
        with self._lock:
            return self._values["processed"]

    @property
    def errors(self) -> int:
        with self._lock:
            return self._values["errors"]

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._values)


def format_duration(seconds: float) -> str:
    """
    Render a duration the way the final report shows it.

    ``Duration: 42s`` for short runs, ``Duration: 3725s (1h 2m 5s)`` once the
    run took longer than a minute.
    """
    total = int(seconds)
    if total <= 59:
        return f"Duration: {total}s"

    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    return f"Duration: {total}s ({' '.join(parts)})"


def show_stats(logger: logging.Logger, processed: int, errors: int) -> None:
    """Log and print the processed/errors block."""
    log_with_context(logger, "info", "Stats", {"processed": processed, "errors": errors})
    print()
    print("Stats:")
    print(f"  Processed:  {processed}")
    print(f"  Errors:     {errors}")


def show_duration(logger: logging.Logger, seconds: float) -> None:
    """Log and print the run duration together with the process memory footprint."""
    duration_str = format_duration(seconds)
    log_with_context(
        logger,
        "info",
        duration_str,
        {"duration_seconds": round(seconds, 2), "memory_mb": round(get_memory_usage_mb(), 1)},
    )
    print()
    print(duration_str)
