from datetime import datetime, timezone

import pytest

from courtwatch.diff import diff
from courtwatch.models import ScheduleSnapshot


def snap(days):
    return ScheduleSnapshot(captured_at=datetime(2026, 10, 18, tzinfo=timezone.utc), days=days)


def test_example_from_two_runs():
    previous = snap({"11": ["07:00", "22:00"]})
    current = snap({"11": ["22:00", "08:00"], "12": ["07:00"]})

    result = diff(previous, current)

    assert result.has_change
    assert not result.baseline
    day11 = result.per_day["11"]
    assert day11.added == {"08:00"}
    assert day11.removed == {"07:00"}
    assert day11.kept == {"22:00"}
    day12 = result.per_day["12"]
    assert day12.added == {"07:00"}
    assert day12.removed == set()
    assert day12.kept == set()


PAIRS = [
    ({}, {}),
    ({"1": ["07:00"]}, {}),
    ({}, {"1": ["07:00"], "2": []}),
    ({"3": ["07:00", "08:00"], "4": []}, {"3": ["08:00", "09:00"], "5": ["10:00"]}),
    ({"30": ["21:00"], "31": ["22:00"]}, {"1": ["21:00"], "31": ["22:00"]}),
]


@pytest.mark.parametrize(("before", "after"), PAIRS)
def test_added_removed_kept_partition_union(before, after):
    previous, current = snap(before), snap(after)
    result = diff(previous, current)
    for label in set(previous.days) | set(current.days):
        d = result.per_day[label]
        union = previous.days.get(label, frozenset()) | current.days.get(label, frozenset())
        assert d.added | d.removed | d.kept == union
        assert not (d.added & d.removed)
        assert not (d.added & d.kept)
        assert not (d.removed & d.kept)


@pytest.mark.parametrize(("before", "_after"), PAIRS)
def test_same_snapshot_has_no_change(before, _after):
    s = snap(before)
    assert diff(s, s).has_change is False


def test_first_run_is_a_baseline():
    current = snap({"12": ["07:00"], "11": []})
    result = diff(None, current)
    assert result.baseline
    assert result.has_change
    assert result.per_day["12"].added == {"07:00"}
    assert result.per_day["12"].removed == set()
    assert result.per_day["11"].added == set()


def test_first_run_with_nothing_observed():
    assert diff(None, snap({})).has_change is False


def test_day_that_disappears_counts_as_removed():
    result = diff(snap({"11": ["07:00"]}), snap({}))
    assert result.per_day["11"].removed == {"07:00"}
    assert result.has_change


def test_emptied_day_is_not_a_change_when_it_was_empty():
    result = diff(snap({"11": []}), snap({}))
    assert not result.has_change


def test_days_ordered_numerically():
    result = diff(snap({"9": [], "10": []}), snap({"2": [], "31": []}))
    assert list(result.per_day) == ["2", "9", "10", "31"]
