"""
JSON snapshot-backed stores.

Snapshots are loaded asynchronously when the store is opened and written
back on ``shutdown()`` when the run changed them.

Metric snapshot::

    {"series": [{"tenant": "t", "rollup": 60, "period": 5356800,
                 "path": "a.b.c", "points": [[1700000000, 1.5], ...]}]}

Path snapshot::

    {"paths": [{"tenant": "t", "path": "a.b.c", "leaf": true}, ...]}
"""

import json
import os
from pathlib import Path
from typing import Any, Union

import aiofiles
import aiofiles.os

from ..logging import log_with_context
from .base import StoreError
from .memory import InMemoryMetricStore, InMemoryPathStore, logger


async def _read_snapshot(snapshot_path: Path) -> dict[str, Any]:
    if not await aiofiles.os.path.exists(snapshot_path):
        error_msg = f"Snapshot does not exist: {snapshot_path}"
        log_with_context(logger, "error", error_msg, {"snapshot": str(snapshot_path)})
        raise FileNotFoundError(error_msg)

    async with aiofiles.open(snapshot_path, "r", encoding="utf-8") as f:
        raw = await f.read()
    try:
        document = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        raise StoreError(f"Invalid snapshot {snapshot_path}: {e}") from e
    if not isinstance(document, dict):
        raise StoreError(f"Invalid snapshot {snapshot_path}: expected a JSON object")
    return document


def _write_snapshot(snapshot_path: Path, document: dict[str, Any]) -> None:
    tmp_path = snapshot_path.with_name(snapshot_path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    os.replace(tmp_path, snapshot_path)


class FileMetricStore(InMemoryMetricStore):
    """Metric store persisted to a JSON snapshot."""

    def __init__(self, snapshot_path: Union[str, Path]):
        super().__init__()
        self.snapshot_path = Path(snapshot_path)

    @classmethod
    async def load(cls, snapshot_path: Union[str, Path]) -> "FileMetricStore":
        store = cls(snapshot_path)
        document = await _read_snapshot(store.snapshot_path)
        try:
            for series in document.get("series", []):
                for time, data in series["points"]:
                    store.insert(
                        series["tenant"], int(series["rollup"]), int(series["period"]), series["path"], time, data
                    )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Invalid metric snapshot {store.snapshot_path}: {e}") from e
        store.modified = False
        return store

    def to_document(self) -> dict[str, Any]:
        with self._lock:
            series = [
                {
                    "tenant": tenant,
                    "rollup": rollup,
                    "period": period,
                    "path": path,
                    "points": [[t, points[t]] for t in sorted(points)],
                }
                for (tenant, rollup, period, path), points in sorted(self._series.items())
            ]
        return {"series": series}

    def shutdown(self) -> None:
        if self.closed:
            return
        try:
            if self.modified:
                _write_snapshot(self.snapshot_path, self.to_document())
                self.modified = False
        except OSError as e:
            self._count_error()
            log_with_context(
                logger,
                "error",
                "Could not write metric snapshot",
                {"snapshot": str(self.snapshot_path), "error": str(e), "error_type": type(e).__name__},
            )
        finally:
            super().shutdown()


class FilePathStore(InMemoryPathStore):
    """Path store persisted to a JSON snapshot."""

    def __init__(self, snapshot_path: Union[str, Path]):
        super().__init__()
        self.snapshot_path = Path(snapshot_path)

    @classmethod
    async def load(cls, snapshot_path: Union[str, Path]) -> "FilePathStore":
        store = cls(snapshot_path)
        document = await _read_snapshot(store.snapshot_path)
        try:
            for entry in document.get("paths", []):
                store.add(entry["tenant"], entry["path"], bool(entry["leaf"]))
        except (KeyError, TypeError) as e:
            raise StoreError(f"Invalid path snapshot {store.snapshot_path}: {e}") from e
        store.modified = False
        return store

    def to_document(self) -> dict[str, Any]:
        with self._lock:
            paths = [
                {"tenant": tenant, "path": path, "leaf": leaf}
                for tenant in sorted(self._paths)
                for path, leaf in sorted(self._paths[tenant].items())
            ]
        return {"paths": paths}

    def shutdown(self) -> None:
        if self.closed:
            return
        try:
            if self.modified:
                _write_snapshot(self.snapshot_path, self.to_document())
                self.modified = False
        except OSError as e:
            self._count_error()
            log_with_context(
                logger,
                "error",
                "Could not write path snapshot",
                {"snapshot": str(self.snapshot_path), "error": str(e), "error_type": type(e).__name__},
            )
        finally:
            super().shutdown()
