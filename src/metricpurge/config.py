"""Run options shared by every operation."""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_JOBS = 1
DEFAULT_OBSOLETE_THRESHOLD = 2678400  # 31 days

DRY_MODE_WARNING = "DRY MODE IS ON! To run in the normal mode use the '--run' option."


@dataclass
class RunOptions:
    """
    Options for one top-level operation.

    Attributes:
        jobs: Maximum units processed concurrently
        from_: Start of the time window (epoch seconds), inclusive
        to: End of the time window (epoch seconds), inclusive
        exclude_paths: Path patterns dropped from lookups
        sort: Sort resolved paths and listing output
        threshold: Obsolescence window in seconds
        run: Perform mutations; when False only report what would be removed
        command_line: Raw command line, logged in the start banner
    """

    jobs: int = DEFAULT_JOBS
    from_: Optional[int] = None
    to: Optional[int] = None
    exclude_paths: tuple[str, ...] = ()
    sort: bool = False
    threshold: int = DEFAULT_OBSOLETE_THRESHOLD
    run: bool = False
    command_line: Optional[list[str]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {self.jobs}")
        if self.threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {self.threshold}")
        if self.from_ is not None and self.to is not None and self.from_ > self.to:
            raise ValueError(f"from must be <= to, got from={self.from_}, to={self.to}")
        self.exclude_paths = tuple(self.exclude_paths)

    @property
    def dry_run(self) -> bool:
        return not self.run
