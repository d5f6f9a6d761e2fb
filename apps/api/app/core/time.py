import datetime as dt
import math
from typing import Optional

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def next_trading_day_rollover(now: dt.datetime, hour: int) -> dt.datetime:
    """Next `hour`:00 UTC strictly after `now` (today if not yet reached)."""
    now = as_utc(now)
    rollover = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if rollover <= now:
        rollover += dt.timedelta(days=1)
    return rollover


def days_remaining(deadline: dt.datetime, now: dt.datetime) -> int:
    seconds = (as_utc(deadline) - as_utc(now)).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def same_utc_day(a: Optional[dt.datetime], b: dt.datetime) -> bool:
    if a is None:
        return False
    return as_utc(a).date() == as_utc(b).date()


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """'HH:MM' -> minutes after midnight, None when blank or malformed."""
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":")
        total = int(hours) * 60 + int(minutes)
    except ValueError:
        return None
    if total < 0 or total >= 24 * 60:
        return None
    return total


def trading_day(now: dt.datetime, hour: int) -> dt.date:
    """The trading day `now` belongs to; a new day starts at `hour`:00 UTC."""
    return (as_utc(now) + dt.timedelta(hours=(24 - hour) % 24)).date()


def trading_day_start(now: dt.datetime, hour: int) -> dt.datetime:
    return next_trading_day_rollover(now, hour) - dt.timedelta(days=1)
