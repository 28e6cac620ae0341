"""Metric store and path store collaborators."""

from .base import MetricStore, PathStore, StoreError
from .file import FileMetricStore, FilePathStore
from .memory import InMemoryMetricStore, InMemoryPathStore
from .patterns import PathPattern, compile_pattern, is_excluded

__all__ = [
    "FileMetricStore",
    "FilePathStore",
    "InMemoryMetricStore",
    "InMemoryPathStore",
    "MetricStore",
    "PathPattern",
    "PathStore",
    "StoreError",
    "compile_pattern",
    "is_excluded",
]
