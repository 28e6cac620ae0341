"""Value types shared by the stores, the scanner and the processors."""

from dataclasses import dataclass
from typing import Iterable


def split_path(path: str) -> tuple[str, ...]:
    """Convert a dotted path to its segments. The empty string is the root."""
    if not path:
        return ()
    return tuple(path.split("."))


def join_path(segments: Iterable[str]) -> str:
    """Convert path segments back to the dotted form."""
    return ".".join(segments)


@dataclass(frozen=True)
class PathEntry:
    """One match returned by a path store lookup."""

    path: str
    leaf: bool

    @property
    def segments(self) -> tuple[str, ...]:
        return split_path(self.path)


@dataclass(frozen=True)
class Rollup:
    """A retention tier: sampling interval and retention duration, in seconds."""

    rollup: int
    period: int

    def __str__(self) -> str:
        return f"{self.rollup}:{self.period}"


def parse_rollup(value: str) -> Rollup:
    """
    Parse a rollup definition of the form ``<rollup>:<period>``.

    Raises:
        ValueError: If the definition is malformed or not positive
    """
    parts = value.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid rollup definition '{value}', expected <rollup>:<period>")
    try:
        rollup, period = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid rollup definition '{value}', rollup and period must be integers") from None
    if rollup <= 0 or period <= 0:
        raise ValueError(f"Invalid rollup definition '{value}', rollup and period must be > 0")
    return Rollup(rollup, period)


@dataclass(frozen=True)
class WorkUnit:
    """One (path, rollup/period) target to fetch, delete or inspect."""

    path: str
    rollup: Rollup

    def log_context(self) -> dict:
        return {"path": self.path, "rollup": self.rollup.rollup, "period": self.rollup.period}

    def __str__(self) -> str:
        return f"{self.path} ({self.rollup})"


def combine_paths_rollups(paths: Iterable[str], rollups: Iterable[Rollup]) -> list[WorkUnit]:
    """Cartesian product of paths and rollups, path-major, rollup order preserved."""
    rollups = list(rollups)
    return [WorkUnit(path, rollup) for path in paths for rollup in rollups]


def paths_for_rollup(rollup: Rollup, units: Iterable[WorkUnit]) -> list[str]:
    """Project work units back to their paths, keeping those for one rollup."""
    return [unit.path for unit in units if unit.rollup == rollup]


@dataclass
class PathCollection:
    """Paths resolved from the path store, with the lookup metadata for each."""

    paths: list[str]
    info: dict[str, PathEntry]

    def is_leaf(self, path: str) -> bool:
        entry = self.info.get(path)
        return entry is not None and entry.leaf

    def entries(self) -> list[PathEntry]:
        return [self.info[path] for path in self.paths]
