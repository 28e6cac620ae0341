"""Contracts for the metric store and the path store."""

from typing import Any, Iterable, Optional, Protocol, Sequence

from ..models import PathEntry


class StoreError(Exception):
    """Raised by a store when an operation against the backend fails."""


class MetricStore(Protocol):
    """Append-only time-series records keyed by tenant/rollup/period/path."""

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
        """Return ``{"time", "data"}`` samples in ascending time order."""
        ...

    def delete_times(self, tenant: str, rollup: int, period: int, path: str, times: Iterable[int]) -> None: ...

    def delete(self, tenant: str, rollup: int, period: int, path: str) -> None: ...

    def stats(self) -> dict[str, int]: ...

    def shutdown(self) -> None: ...


class PathStore(Protocol):
    """Searchable index of dotted path names."""

    def lookup(
        self,
        tenant: str,
        leafs_only: bool,
        limit_depth: bool,
        path_pattern: str,
        exclude_patterns: Sequence[str] = (),
    ) -> list[PathEntry]: ...

    def delete(self, tenant: str, path: str) -> None: ...

    def delete_query(self, tenant: str, leafs_only: bool, limit_depth: bool, path_pattern: str) -> int: ...

    def stats(self) -> dict[str, int]: ...

    def shutdown(self) -> None: ...
