import calendar
import re
from datetime import date, datetime, timedelta, timezone


def seconds_to_hhmmss(total_seconds: float) -> str:
    """
    Convert total seconds -> 'H:MM:SS' (or 'M:SS' under an hour).
    Example: 2732 -> '45:32', 3725 -> '1:02:05'
    """
    total = int(round(total_seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    seconds = total % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_pace(pace_minutes: float) -> str:
    """
    Format a pace in decimal minutes per unit as 'M:SS'.
    Example: 7.5 -> '7:30'
    """
    if pace_minutes <= 0:
        return "0:00"
    total_seconds = int(round(pace_minutes * 60))
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


_FRACTION_RE = re.compile(r"\.(\d+)")


def _normalize_fraction(value: str) -> str:
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    return _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)


def parse_iso8601(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp ('Z' suffix allowed). Returns None if unparseable."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(_normalize_fraction(value.strip().replace("Z", "+00:00"))))
    except ValueError:
        return None


def _zone(tz_name: str | None):
    """tzinfo for an IANA name; None means system local time."""
    if not tz_name or tz_name == "local":
        return None
    if tz_name.upper() in ("UTC", "Z"):
        return timezone.utc
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        return None


def to_local_datetime(dt, tz_name: str | None = None):
    """Convert a datetime from source tz (assume UTC if naive) to local or given tz.

    - If `tz_name` is 'local' or None: use system local timezone.
    - If `tz_name` is IANA tz name (e.g., 'America/New_York'): use that.
    - If `dt` has no tzinfo, assume UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(_zone(tz_name))


def local_date(dt: datetime, tz_name: str | None = None) -> date:
    """Calendar day a timestamp falls on in the given timezone."""
    return to_local_datetime(dt, tz_name).date()


def start_of_day(d: date, tz_name: str | None = None) -> datetime:
    """Midnight of `d` in the given timezone, as an aware datetime."""
    midnight = datetime(d.year, d.month, d.day)
    zone = _zone(tz_name)
    if zone is not None:
        return midnight.replace(tzinfo=zone)
    return midnight.astimezone()


def monday_of(d: date) -> date:
    # Monday = 0, Sunday = 6
    return d - timedelta(days=d.weekday())


def months_ago(d: date, months: int) -> date:
    """Same day `months` calendar months earlier, clamped to month length."""
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def daterange(start: date, end: date):
    """Yield every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
