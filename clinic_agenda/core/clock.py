from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo
from .config import settings

def now() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(dt: datetime) -> datetime:
    # naive values come back from drivers without tz support; they are stored as UTC
    if dt.tzinfo is None: return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

@lru_cache(maxsize=8)
def practice_tz(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.PRACTICE_TIMEZONE)

def local_datetime(day: date, minute: int, tz: ZoneInfo | None = None) -> datetime:
    """Wall-clock `minute` past midnight of `day` in the practice timezone."""
    tz = tz or practice_tz()
    return datetime(day.year, day.month, day.day, tzinfo=tz) + timedelta(minutes=minute)

def day_bounds(day: date, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    return local_datetime(day, 0, tz), local_datetime(day + timedelta(days=1), 0, tz)

def minute_of_day(dt: datetime, day: date, tz: ZoneInfo | None = None) -> int:
    """Minutes between local midnight of `day` and `dt` (negative or past 1440 when off that day)."""
    local = dt.astimezone(tz or practice_tz())
    delta = local.replace(tzinfo=None) - datetime(day.year, day.month, day.day)
    return int(delta.total_seconds() // 60)
