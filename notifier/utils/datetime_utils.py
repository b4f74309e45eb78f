from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from notifier.config.settings import settings

MINUTES_PER_DAY = 24 * 60

ClockValue = Union[str, time, None]


class DateRange(NamedTuple):
    """Half-open UTC interval [start, end) covering whole business-local days."""

    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return to_business(self.start).date()

    @property
    def last_day(self) -> date:
        return to_business(self.end - timedelta(microseconds=1)).date()


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: UTC timezone-aware datetime
    """
    if dt.tzinfo is None:
        # Assume naive datetime is in UTC
        return dt.replace(tzinfo=timezone.utc)
    else:
        # Convert to UTC
        return dt.astimezone(timezone.utc)


def business_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def to_business(dt: datetime) -> datetime:
    """Express an instant as wall-clock time in the business timezone."""
    return to_utc(dt).astimezone(business_timezone())


def business_now(now: Optional[datetime] = None) -> datetime:
    """
    Resolve "now" in the business timezone.

    Args:
        now: Instant to resolve instead of the current clock (used by tests and replays)

    Returns:
        datetime: Timezone-aware datetime in the business timezone
    """
    return to_business(now or utc_now())


def local_to_utc(day: date, at: time) -> datetime:
    """Convert a business-local wall-clock date and time to a UTC instant."""
    local = datetime.combine(day, at.replace(tzinfo=None), tzinfo=business_timezone())
    return local.astimezone(timezone.utc)


def parse_clock(value: ClockValue, default: Optional[str] = None) -> Optional[time]:
    """
    Parse an "HH:MM" or "HH:MM:SS" time-of-day.

    Args:
        value: Stored time-of-day, a time object, or None
        default: Fallback used when value is empty

    Returns:
        Optional[time]: Parsed time, or None when neither value nor default is set
    """
    if isinstance(value, time):
        return value
    raw = value or default
    if not raw:
        return None
    parts = [int(part) for part in raw.strip().split(":")]
    if len(parts) < 2 or len(parts) > 3:
        raise ValueError(f"Invalid time of day: {raw!r}")
    return time(*parts)


def minutes_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def sunday_based_weekday(day: date) -> int:
    """Weekday where 0 is Sunday and 6 is Saturday, as stored in notification settings."""
    return (day.weekday() + 1) % 7


def is_within_scheduled_time(
    configured: ClockValue,
    now: Optional[datetime] = None,
    tolerance_minutes: Optional[int] = None,
) -> bool:
    """
    Check whether the business-local time of day falls in the configured slot.

    The slot is the half-open window [configured, configured + tolerance), wrapping
    at midnight. With a tolerance equal to the invocation interval, exactly one
    invocation per day matches a given configured time.

    Args:
        configured: Configured time of day; None always matches
        now: Instant to evaluate (defaults to the current clock)
        tolerance_minutes: Window width (defaults to DIGEST_TOLERANCE_MINUTES)
    """
    clock = parse_clock(configured)
    if clock is None:
        return True

    tolerance = (
        settings.DIGEST_TOLERANCE_MINUTES
        if tolerance_minutes is None
        else tolerance_minutes
    )
    current = minutes_of_day(business_now(now))
    target = clock.hour * 60 + clock.minute
    return (current - target) % MINUTES_PER_DAY < tolerance


def is_in_quiet_hours(
    start: ClockValue, end: ClockValue, now: Optional[datetime] = None
) -> bool:
    """
    Evaluate quiet-hours membership for an instant.

    Windows crossing midnight (e.g. 22:00-07:00) suppress [start, 24:00) and
    [00:00, end); other windows suppress [start, end). Equal bounds suppress nothing.
    """
    start_clock = parse_clock(start, default="22:00")
    end_clock = parse_clock(end, default="07:00")

    current = minutes_of_day(business_now(now))
    start_minutes = start_clock.hour * 60 + start_clock.minute
    end_minutes = end_clock.hour * 60 + end_clock.minute

    if start_minutes > end_minutes:
        return current >= start_minutes or current < end_minutes
    return start_minutes <= current < end_minutes


def _day_range(first: date, end_exclusive: date) -> DateRange:
    return DateRange(
        start=local_to_utc(first, time.min), end=local_to_utc(end_exclusive, time.min)
    )


def get_date_range_for_period(period: str, now: Optional[datetime] = None) -> DateRange:
    """
    Resolve a named reporting period to UTC bounds of whole business-local days.

    Supported periods:
        today, this_week, last_week, this_month, last_month, month_before_last

    Weeks run Monday to Sunday. ``last_week`` is always the most recent fully
    completed week, whatever weekday the run happens on.
    """
    today = business_now(now).date()
    monday = today - timedelta(days=today.weekday())
    first_of_month = today.replace(day=1)

    if period == "today":
        return _day_range(today, today + timedelta(days=1))
    if period == "this_week":
        return _day_range(monday, monday + timedelta(days=7))
    if period == "last_week":
        return _day_range(monday - timedelta(days=7), monday)
    if period == "this_month":
        return _day_range(first_of_month, first_of_month + relativedelta(months=1))
    if period == "last_month":
        return _day_range(first_of_month - relativedelta(months=1), first_of_month)
    if period == "month_before_last":
        return _day_range(
            first_of_month - relativedelta(months=2),
            first_of_month - relativedelta(months=1),
        )
    raise ValueError(f"Unknown reporting period: {period}")
