from typing import Iterable
from clinic_agenda.core.errors import InvalidRequestError
from clinic_agenda.modules.operating_hours.schemas import OpenInterval


def generate_slots(intervals: Iterable[OpenInterval], duration_minutes: int, granularity_minutes: int) -> list[int]:
    """
    Enumerate valid start minutes on a grid anchored at each interval's start.

    A candidate `s` is kept while `s + duration_minutes <= interval.end`, so a
    90 minute appointment may start every 30 minutes. Times off the grid are
    never snapped; use `fits_within` to validate an arbitrary start.
    """
    if duration_minutes <= 0:
        raise InvalidRequestError("duration_minutes must be positive")
    if granularity_minutes <= 0:
        raise InvalidRequestError("granularity_minutes must be positive")
    out: list[int] = []
    for iv in intervals:
        cur = iv.start_minute
        while cur + duration_minutes <= iv.end_minute:
            out.append(cur)
            cur += granularity_minutes
    return out


def fits_within(intervals: Iterable[OpenInterval], start_minute: int, duration_minutes: int) -> bool:
    """Exact half-open containment: some [s, e) with s <= start and start + duration <= e."""
    return any(iv.contains(start_minute, duration_minutes) for iv in intervals)
