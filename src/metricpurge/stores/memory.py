"""In-memory store implementations."""

import logging
import threading
from typing import Any, Iterable, Optional, Sequence

from ..models import PathEntry, split_path
from .base import StoreError
from .patterns import compile_pattern, is_excluded

logger = logging.getLogger("metricpurge.stores")

SeriesKey = tuple[str, int, int, str]


class InMemoryMetricStore:
    """Thread-safe metric store keeping every series in a dict."""

    def __init__(self):
        self._series: dict[SeriesKey, dict[int, Any]] = {}
        self._lock = threading.Lock()
        self._errors = 0
        self.closed = False
        self.modified = False

    def _check_open(self) -> None:
        if self.closed:
            with self._lock:
                self._errors += 1
            raise StoreError("Metric store is shut down")

    def insert(self, tenant: str, rollup: int, period: int, path: str, time: int, data: Any) -> None:
        """Add one sample to a series, creating the series if needed."""
        self._check_open()
        with self._lock:
            self._series.setdefault((tenant, rollup, period, path), {})[int(time)] = data
            self.modified = True

    def has_series(self, tenant: str, rollup: int, period: int, path: str) -> bool:
        with self._lock:
            return (tenant, rollup, period, path) in self._series

    def series_keys(self) -> list[SeriesKey]:
        with self._lock:
            return sorted(self._series)

    def fetch(
        self,
        tenant: str,
        rollup: int,
        period: int,
        path: str,
        from_: Optional[int] = None,
        to: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._check_open()
        with self._lock:
            points = self._series.get((tenant, rollup, period, path), {})
            times = sorted(
                t for t in points if (from_ is None or t >= from_) and (to is None or t <= to)
            )
            if limit is not None:
                times = times[:limit]
            return [{"time": t, "data": points[t]} for t in times]

    def delete_times(self, tenant: str, rollup: int, period: int, path: str, times: Iterable[int]) -> None:
        self._check_open()
        key = (tenant, rollup, period, path)
        with self._lock:
            points = self._series.get(key)
            if points is None:
                return
            for t in times:
                points.pop(t, None)
            if not points:
                del self._series[key]
            self.modified = True

    def delete(self, tenant: str, rollup: int, period: int, path: str) -> None:
        self._check_open()
        with self._lock:
            if self._series.pop((tenant, rollup, period, path), None) is not None:
                self.modified = True

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"errors": self._errors}

    def shutdown(self) -> None:
        self.closed = True

    def _count_error(self) -> None:
        with self._lock:
            self._errors += 1


class InMemoryPathStore:
    """Thread-safe path index keyed by tenant."""

    def __init__(self):
        self._paths: dict[str, dict[str, bool]] = {}
        self._lock = threading.Lock()
        self._errors = 0
        self.closed = False
        self.modified = False

    def _check_open(self) -> None:
        if self.closed:
            with self._lock:
                self._errors += 1
            raise StoreError("Path store is shut down")

    def add(self, tenant: str, path: str, leaf: bool) -> None:
        """Add one exact entry."""
        self._check_open()
        with self._lock:
            self._paths.setdefault(tenant, {})[path] = leaf
            self.modified = True

    def index(self, tenant: str, path: str) -> None:
        """Add a leaf together with every ancestor branch not yet indexed."""
        segments = split_path(path)
        with self._lock:
            tenant_paths = self._paths.setdefault(tenant, {})
            for depth in range(1, len(segments)):
                tenant_paths.setdefault(".".join(segments[:depth]), False)
        self.add(tenant, path, True)

    def has_path(self, tenant: str, path: str) -> bool:
        with self._lock:
            return path in self._paths.get(tenant, {})

    def _match(
        self,
        tenant: str,
        leafs_only: bool,
        limit_depth: bool,
        path_pattern: str,
        exclude_patterns: Sequence[str],
    ) -> list[PathEntry]:
        pattern = compile_pattern(path_pattern)
        matches = []
        for path, leaf in self._paths.get(tenant, {}).items():
            if leafs_only and not leaf:
                continue
            segments = split_path(path)
            if not pattern.matches(segments, limit_depth):
                continue
            if exclude_patterns and is_excluded(segments, exclude_patterns):
                continue
            matches.append(PathEntry(path, leaf))
        matches.sort(key=lambda e: e.path)
        return matches

    def lookup(
        self,
        tenant: str,
        leafs_only: bool,
        limit_depth: bool,
        path_pattern: str,
        exclude_patterns: Sequence[str] = (),
    ) -> list[PathEntry]:
        self._check_open()
        with self._lock:
            return self._match(tenant, leafs_only, limit_depth, path_pattern, exclude_patterns)

    def delete(self, tenant: str, path: str) -> None:
        self._check_open()
        with self._lock:
            if self._paths.get(tenant, {}).pop(path, None) is not None:
                self.modified = True

    def delete_query(self, tenant: str, leafs_only: bool, limit_depth: bool, path_pattern: str) -> int:
        self._check_open()
        with self._lock:
            matches = self._match(tenant, leafs_only, limit_depth, path_pattern, ())
            tenant_paths = self._paths.get(tenant, {})
            for entry in matches:
                del tenant_paths[entry.path]
            if matches:
                self.modified = True
            return len(matches)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"errors": self._errors}

    def shutdown(self) -> None:
        self.closed = True

    def _count_error(self) -> None:
        with self._lock:
            self._errors += 1
