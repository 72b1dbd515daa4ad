"""
Operating hours resolution: weekly template + date overrides -> open intervals.

Pure functions over rule records; no I/O. Overrides for a date always take
precedence over the weekly template. A day without any rule is closed.
"""
from datetime import date
from typing import Iterable

from clinic_agenda.modules.operating_hours.schemas import OpenInterval, OperatingHoursRuleOut, day_of_week


def normalize(windows: Iterable[tuple[int, int]]) -> list[OpenInterval]:
    """Sort and coalesce overlapping or adjacent windows, dropping empty ones."""
    merged: list[list[int]] = []
    for start, end in sorted(w for w in windows if w[1] > w[0]):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return [OpenInterval(start_minute=s, end_minute=e) for s, e in merged]


def subtract(intervals: list[OpenInterval], start: int, end: int) -> list[OpenInterval]:
    out: list[OpenInterval] = []
    for iv in intervals:
        if end <= iv.start_minute or start >= iv.end_minute:
            out.append(iv)
            continue
        if iv.start_minute < start:
            out.append(OpenInterval(start_minute=iv.start_minute, end_minute=start))
        if end < iv.end_minute:
            out.append(OpenInterval(start_minute=end, end_minute=iv.end_minute))
    return out


def resolve(weekly_rules: Iterable[OperatingHoursRuleOut], overrides: Iterable[OperatingHoursRuleOut], on: date) -> list[OpenInterval]:
    dow = day_of_week(on)
    base = [r.window() for r in weekly_rules
            if not r.is_override and not r.blocked and r.day_of_week == dow]
    todays = [o for o in overrides if o.specific_date == on]
    if not todays:
        return normalize(base)

    blocks = [o for o in todays if o.blocked]
    if any(b.is_full_day for b in blocks):
        return []

    intervals = normalize(base + [o.window() for o in todays if not o.blocked])
    for b in blocks:
        intervals = subtract(intervals, *b.window())
    return intervals


def overlapping_override(candidate_window: tuple[int, int], existing: Iterable[OperatingHoursRuleOut]) -> OperatingHoursRuleOut | None:
    start, end = candidate_window
    for o in existing:
        o_start, o_end = o.window()
        if start < o_end and o_start < end:
            return o
    return None
