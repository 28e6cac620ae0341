"""Pytest configuration and shared store fixtures."""

import logging
import sys
from pathlib import Path

import pytest

# Add src directory to Python path to ensure tests use local source code
# instead of installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from metricpurge.stores import InMemoryMetricStore, InMemoryPathStore, StoreError  # noqa: E402

MUTATING_CALLS = {"delete", "delete_times", "delete_query"}


class RecordingMetricStore(InMemoryMetricStore):
    """In-memory metric store that records every call and can fail chosen paths."""

    def __init__(self, fail_paths=()):
        super().__init__()
        self.calls = []
        self.fail_paths = set(fail_paths)
        self.shutdown_calls = 0

    def _maybe_fail(self, path):
        if path in self.fail_paths:
            self._count_error()
            raise StoreError(f"Backend failure for {path}")

    def fetch(self, tenant, rollup, period, path, from_=None, to=None, limit=None):
        self.calls.append(("fetch", path, rollup, period, from_, to, limit))
        self._maybe_fail(path)
        return super().fetch(tenant, rollup, period, path, from_, to, limit)

    def delete_times(self, tenant, rollup, period, path, times):
        times = list(times)
        self.calls.append(("delete_times", path, rollup, period, times))
        self._maybe_fail(path)
        super().delete_times(tenant, rollup, period, path, times)

    def delete(self, tenant, rollup, period, path):
        self.calls.append(("delete", path, rollup, period))
        self._maybe_fail(path)
        super().delete(tenant, rollup, period, path)

    def shutdown(self):
        self.shutdown_calls += 1
        super().shutdown()

    def call_names(self):
        return [call[0] for call in self.calls]


class RecordingPathStore(InMemoryPathStore):
    """In-memory path store that records every call."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.shutdown_calls = 0

    def lookup(self, tenant, leafs_only, limit_depth, path_pattern, exclude_patterns=()):
        self.calls.append(("lookup", path_pattern, leafs_only, limit_depth, tuple(exclude_patterns)))
        return super().lookup(tenant, leafs_only, limit_depth, path_pattern, exclude_patterns)

    def delete(self, tenant, path):
        self.calls.append(("delete", path))
        super().delete(tenant, path)

    def delete_query(self, tenant, leafs_only, limit_depth, path_pattern):
        self.calls.append(("delete_query", path_pattern, leafs_only, limit_depth))
        return super().delete_query(tenant, leafs_only, limit_depth, path_pattern)

    def shutdown(self):
        self.shutdown_calls += 1
        super().shutdown()

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def reset_metricpurge_logger():
    """Undo logger state changed by CLI runs so caplog sees every record."""
    logger = logging.getLogger("metricpurge")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.disabled = False
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def metric_store():
    return RecordingMetricStore()


@pytest.fixture
def path_store():
    return RecordingPathStore()
