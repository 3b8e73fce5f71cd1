"""Timestamp parsing and calendar-day helpers."""

import logging
from datetime import date, datetime, time, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)

DateLike = Union[datetime, date, str, None]


def parse_timestamp(value: DateLike) -> Optional[datetime]:
    """Parse a datetime, date or string into a timezone-aware UTC datetime.

    Naive values are treated as UTC. Strings may be ISO 8601 or RFC 822
    (the format RSS feeds use for pubDate).

    Returns:
        Aware datetime in UTC, or None if value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                logger.debug(f"Could not parse timestamp: {text!r}")
                return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date_bound(value: DateLike, end_of_day: bool = False) -> Optional[datetime]:
    """Parse a filter bound. End bounds are widened to the end of their day."""
    parsed = parse_timestamp(value)
    if parsed is None or not end_of_day:
        return parsed
    return datetime.combine(parsed.date(), time.max, tzinfo=timezone.utc)


def _bare_date(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def parse_local_date_bound(
    value: DateLike, tz: tzinfo, end_of_day: bool = False
) -> Optional[datetime]:
    """Parse a filter bound where bare dates name calendar days in tz.

    "2025-03-11" as a start bound is local midnight; as an end bound it is
    the last instant of that local day. Full timestamps keep their instant,
    except end bounds are widened to the end of their local day.

    Returns:
        Aware datetime in UTC, or None if value is empty or unparseable
    """
    if value is None or value == "":
        return None

    day = _bare_date(value)
    if day is None:
        parsed = parse_timestamp(value)
        if parsed is None or not end_of_day:
            return parsed
        day = parsed.astimezone(tz).date()

    bound = datetime.combine(day, time.max if end_of_day else time.min, tzinfo=tz)
    return bound.astimezone(timezone.utc)


def start_of_day(now: datetime, tz: tzinfo) -> datetime:
    """Midnight of now's calendar day in tz, as a UTC datetime."""
    local_midnight = datetime.combine(now.astimezone(tz).date(), time.min, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


def same_day(moment: datetime, now: datetime, tz: tzinfo) -> bool:
    """Whether moment falls on now's calendar day in tz."""
    return moment.astimezone(tz).date() == now.astimezone(tz).date()
