"""Tests for obsolescence scanning."""

import pytest
from conftest import RecordingMetricStore

from metricpurge.models import Rollup, WorkUnit
from metricpurge.orchestrator import JobOrchestrator
from metricpurge.scanner import ObsolescenceScanner

T0 = 1_700_000_000
FINE = Rollup(60, 5356800)
COARSE = Rollup(900, 62208000)


@pytest.fixture
def orchestrator():
    orchestrator = JobOrchestrator(jobs=2)
    yield orchestrator
    orchestrator.close()


def make_scanner(store, orchestrator, threshold=100, **kwargs):
    return ObsolescenceScanner(store, orchestrator, "tenant", threshold, clock=lambda: T0, **kwargs)


@pytest.mark.asyncio
async def test_recent_sample_is_live(orchestrator):
    store = RecordingMetricStore()
    store.insert("tenant", 60, 5356800, "a.live", T0 - 50, 1.0)
    scanner = make_scanner(store, orchestrator)

    assert await scanner.find_obsolete_paths(["a.live"], [FINE]) == []


@pytest.mark.asyncio
async def test_no_sample_after_cutoff_is_obsolete(orchestrator):
    store = RecordingMetricStore()
    store.insert("tenant", 60, 5356800, "a.old", T0 - 101, 1.0)
    scanner = make_scanner(store, orchestrator)

    assert await scanner.find_obsolete_paths(["a.old"], [FINE]) == ["a.old"]


@pytest.mark.asyncio
async def test_sample_exactly_at_cutoff_is_live(orchestrator):
    store = RecordingMetricStore()
    store.insert("tenant", 60, 5356800, "a.edge", T0 - 100, 1.0)
    scanner = make_scanner(store, orchestrator)

    assert await scanner.find_obsolete_paths(["a.edge"], [FINE]) == []


@pytest.mark.asyncio
async def test_probe_is_single_sample_fetch_from_cutoff(orchestrator):
    store = RecordingMetricStore()
    scanner = make_scanner(store, orchestrator)

    await scanner.find_obsolete_paths(["a.x"], [FINE, COARSE])

    assert store.calls == [("fetch", "a.x", 60, 5356800, T0 - 100, None, 1)]


@pytest.mark.asyncio
async def test_failed_probe_is_live_and_counted(orchestrator):
    """A path that cannot be checked is never classified obsolete."""
    store = RecordingMetricStore(fail_paths={"a.broken"})
    scanner = make_scanner(store, orchestrator)

    obsolete = await scanner.find_obsolete_paths(["a.broken", "a.gone"], [FINE])

    assert obsolete == ["a.gone"]
    assert orchestrator.stats.errors == 1


@pytest.mark.asyncio
async def test_scan_expands_obsolete_paths_to_all_rollups(orchestrator):
    """Only the first rollup is probed; the verdict applies to every rollup."""
    store = RecordingMetricStore()
    store.insert("tenant", 60, 5356800, "a.live", T0, 1.0)
    # Recent data on the coarse rollup alone does not keep a path alive
    store.insert("tenant", 900, 62208000, "a.stale", T0, 1.0)
    scanner = make_scanner(store, orchestrator)

    units = await scanner.scan(["a.live", "a.stale"], [FINE, COARSE])

    assert units == [WorkUnit("a.stale", FINE), WorkUnit("a.stale", COARSE)]


@pytest.mark.asyncio
async def test_obsolete_paths_are_sorted(orchestrator):
    """Obsolete paths come back sorted whatever the input order."""
    store = RecordingMetricStore()
    store.insert("tenant", 60, 5356800, "b", T0, 1.0)
    scanner = make_scanner(store, orchestrator)

    assert await scanner.find_obsolete_paths(["c", "b", "a", "d"], [FINE]) == ["a", "c", "d"]


@pytest.mark.asyncio
async def test_requires_rollups(orchestrator):
    scanner = make_scanner(RecordingMetricStore(), orchestrator)

    with pytest.raises(ValueError):
        await scanner.find_obsolete_paths(["a"], [])


def test_cutoff_uses_clock_and_threshold():
    orchestrator = JobOrchestrator()
    try:
        scanner = make_scanner(RecordingMetricStore(), orchestrator, threshold=2678400)
        assert scanner.cutoff() == T0 - 2678400
    finally:
        orchestrator.close()


def test_negative_threshold_rejected():
    orchestrator = JobOrchestrator()
    try:
        with pytest.raises(ValueError):
            make_scanner(RecordingMetricStore(), orchestrator, threshold=-1)
    finally:
        orchestrator.close()
