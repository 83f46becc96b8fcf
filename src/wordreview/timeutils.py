"""Epoch millisecond and calendar day helpers."""
from datetime import UTC, date, datetime, time, timedelta
from typing import List, Tuple
from zoneinfo import ZoneInfo

MS_PER_DAY = 24 * 60 * 60 * 1000
DATE_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_millis(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return int(moment.timestamp() * 1000)


def days_between(start_ms: int, end_ms: int) -> float:
    """Fractional number of days from start to end."""
    return (end_ms - start_ms) / MS_PER_DAY


def local_date(moment: datetime, tz: ZoneInfo) -> str:
    """Calendar day of a moment in the given timezone, as YYYY-MM-DD."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def day_bounds_ms(day: str, tz: ZoneInfo) -> Tuple[int, int]:
    """Return [start, end) epoch millis of a calendar day in the given timezone."""
    start = datetime.combine(parse_date(day), time.min, tzinfo=tz)
    # Go through the calendar rather than adding 24h so DST days stay whole
    end = datetime.combine(parse_date(day) + timedelta(days=1), time.min, tzinfo=tz)
    return to_millis(start), to_millis(end)


def trailing_days(end_day: str, count: int) -> List[str]:
    """The `count` calendar days ending with `end_day`, oldest first."""
    end = parse_date(end_day)
    return [
        (end - timedelta(days=offset)).strftime(DATE_FORMAT)
        for offset in range(count - 1, -1, -1)
    ]
