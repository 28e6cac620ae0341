"""Tests for run options, rollup parsing and run statistics."""

import threading
from unittest.mock import Mock

import pytest

from metricpurge.config import DEFAULT_OBSOLETE_THRESHOLD, RunOptions
from metricpurge.models import PathCollection, PathEntry, Rollup, WorkUnit, combine_paths_rollups, parse_rollup
from metricpurge.stats import Stats, format_duration, get_memory_usage_mb, show_duration, show_stats


def test_defaults_are_dry_run():
    options = RunOptions()

    assert options.dry_run
    assert options.jobs == 1
    assert options.threshold == DEFAULT_OBSOLETE_THRESHOLD == 31 * 86400


@pytest.mark.parametrize(
    "kwargs",
    [{"jobs": 0}, {"threshold": -1}, {"from_": 10, "to": 5}],
)
def test_invalid_options_rejected(kwargs):
    with pytest.raises(ValueError):
        RunOptions(**kwargs)


def test_excludes_are_stored_as_tuple():
    options = RunOptions(from_=5, exclude_paths=["a.b"])

    assert options.exclude_paths == ("a.b",)


def test_parse_rollup():
    assert parse_rollup("60:5356800") == Rollup(60, 5356800)
    assert str(parse_rollup(" 900:62208000 ")) == "900:62208000"


@pytest.mark.parametrize("value", ["60", "60:", "a:b", "60:0", "-60:100", "1:2:3"])
def test_parse_rollup_rejects_bad_definitions(value):
    with pytest.raises(ValueError):
        parse_rollup(value)


def test_combine_paths_rollups_is_path_major():
    r1, r2 = Rollup(60, 600), Rollup(900, 9000)

    assert combine_paths_rollups(["a", "b"], [r1, r2]) == [
        WorkUnit("a", r1),
        WorkUnit("a", r2),
        WorkUnit("b", r1),
        WorkUnit("b", r2),
    ]
    assert combine_paths_rollups([], [r1]) == []


def test_path_collection_entries_follow_path_order():
    info = {"b": PathEntry("b", True), "a": PathEntry("a", False)}
    collection = PathCollection(paths=["a", "b"], info=info)

    assert collection.entries() == [PathEntry("a", False), PathEntry("b", True)]


def test_stats_updates_from_threads():
    stats = Stats()

    def work():
        for _ in range(1000):
            stats.update(processed=1)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    stats.update(errors=2)

    assert stats.snapshot() == {"processed": 4000, "errors": 2}


def test_stats_rejects_unknown_fields():
    with pytest.raises(KeyError):
        Stats().update(files_scanned=1)


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (0, "Duration: 0s"),
        (59.9, "Duration: 59s"),
        (60, "Duration: 60s (1m)"),
        (3725, "Duration: 3725s (1h 2m 5s)"),
        (90061, "Duration: 90061s (1d 1h 1m 1s)"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_show_stats_prints_block(capsys):
    import logging

    show_stats(logging.getLogger("metricpurge"), 12, 1)

    out = capsys.readouterr().out
    assert "Stats:\n  Processed:  12\n  Errors:     1\n" in out


def test_memory_usage_is_positive():
    assert get_memory_usage_mb() > 0


def test_show_duration_logs_current_memory(capsys):
    logger = Mock()

    show_duration(logger, 75)

    logger.info.assert_called_once()
    message = logger.info.call_args.args[0]
    fields = logger.info.call_args.kwargs["extra"]["extra_fields"]
    assert message == "Duration: 75s (1m 15s)"
    assert fields["duration_seconds"] == 75
    assert fields["memory_mb"] > 0
    assert "Duration: 75s (1m 15s)" in capsys.readouterr().out
