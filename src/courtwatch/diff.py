"""Snapshot comparison: added / removed / kept per day."""

from __future__ import annotations

from typing import Dict, Optional

from .models import DayDiff, ScheduleDiff, ScheduleSnapshot, day_sort_key


def diff(previous: Optional[ScheduleSnapshot], current: ScheduleSnapshot) -> ScheduleDiff:
    """
    Compare two snapshots. A day missing from one side counts as an empty set.

    Without a previous snapshot every current slot is "added" and the diff is
    a baseline, so the first report lists everything.
    """
    if previous is None:
        per_day = {
            label: DayDiff(added=current.days[label])
            for label in sorted(current.days, key=day_sort_key)
        }
        return ScheduleDiff(
            per_day=per_day,
            has_change=bool(current.days),
            baseline=True,
            captured_at=current.captured_at,
        )

    per_day: Dict[str, DayDiff] = {}
    for label in sorted(set(previous.days) | set(current.days), key=day_sort_key):
        before = previous.days.get(label, frozenset())
        after = current.days.get(label, frozenset())
        per_day[label] = DayDiff(
            added=after - before,
            removed=before - after,
            kept=after & before,
        )
    return ScheduleDiff(
        per_day=per_day,
        has_change=any(d.changed for d in per_day.values()),
        captured_at=current.captured_at,
    )


__all__ = ["diff"]
