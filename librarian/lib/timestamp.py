"""
EXIF date/time parsing and formatting.

All parsed values are returned as timezone-aware datetimes in UTC. Formatting
helpers render an instant in a named zone for the metadata write-back.
"""
from datetime import datetime, timezone, timedelta
from zoneinfo import ZoneInfo
from typing import Optional
import re

EXIF_DATETIME_REGEX = re.compile(r'^(\d{4}:\d{2}:\d{2}) (\d{2}:\d{2}:\d{2})$')
EXIF_DATETIME_OFFSET_REGEX = re.compile(r'^(\d{4}:\d{2}:\d{2}) (\d{2}:\d{2}:\d{2})([+-]\d{2}:\d{2})$')
EXIF_DATETIME_OPTIONAL_OFFSET_REGEX = re.compile(
    r'^(\d{4}:\d{2}:\d{2}) (\d{2}:\d{2}:\d{2})([+-]\d{2}:\d{2})?$'
)
EXIF_OFFSET_REGEX = re.compile(r'^([+-])(\d{2}):(\d{2})$')
GPS_COORDINATES_REGEX = re.compile(
    r'^([+-]?\d{1,2}(?:\.\d+)?) ([+-]?\d{1,3}(?:\.\d*)?)(?: ([+-]?\d+(?:\.\d+)?))?$'
)

# Cameras write this when the clock was never set
ZERO_DATETIME = '0000:00:00 00:00:00'


def is_zero_datetime(value: str) -> bool:
    """Check for the all-zero EXIF date, with or without an offset suffix."""
    return value.startswith(ZERO_DATETIME)


def parse_offset(offset: str) -> Optional[timezone]:
    """
    Convert a '+hh:mm' offset string into a fixed-offset tzinfo.

    Returns:
        datetime.timezone, or None if the string is not a valid offset
    """
    match = EXIF_OFFSET_REGEX.match(offset) if isinstance(offset, str) else None
    if not match:
        return None

    sign = -1 if match.group(1) == '-' else 1
    hours = int(match.group(2))
    minutes = int(match.group(3))
    if hours > 23 or minutes > 59:
        return None
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def parse_exif_datetime(
    value: str,
    offset: Optional[str] = None,
    default_tz: str = 'UTC'
) -> Optional[datetime]:
    """
    Parse an EXIF 'yyyy:MM:dd HH:mm:ss[+hh:mm]' string.

    Args:
        value: EXIF date/time string
        offset: Offset overriding whatever suffix the value carries
        default_tz: IANA zone used when neither offset nor suffix is available

    Returns:
        Timezone-aware datetime converted to UTC, or None if parsing fails
    """
    if not isinstance(value, str) or is_zero_datetime(value):
        return None

    match = EXIF_DATETIME_OPTIONAL_OFFSET_REGEX.match(value)
    if not match:
        return None

    date_part, time_part, suffix = match.groups()
    offset = offset or suffix

    if offset:
        tz = parse_offset(offset)
        if tz is None:
            return None
    else:
        tz = ZoneInfo(default_tz)

    try:
        dt = datetime.strptime(f"{date_part} {time_part}", '%Y:%m:%d %H:%M:%S')
    except ValueError:
        return None

    return dt.replace(tzinfo=tz).astimezone(timezone.utc)


def combine_date_time(date_str: str, time_str: str, zone: Optional[str]) -> datetime:
    """
    Combine a 'YYYY-MM-DD' date and 'HH:MM:SS' time entered in a zone.

    Raises:
        ValueError: If either part is malformed
    """
    dt = datetime.strptime(f"{date_str} {time_str}", '%Y-%m-%d %H:%M:%S')
    return dt.replace(tzinfo=ZoneInfo(zone or 'UTC')).astimezone(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, zone: str) -> datetime:
    """Render an instant as wall-clock time in the given zone."""
    return ensure_utc(dt).astimezone(ZoneInfo(zone))


def format_offset(dt: datetime) -> str:
    """Format the UTC offset of an aware datetime as '+hh:mm'."""
    raw = dt.strftime('%z')  # +hhmm
    return f"{raw[:3]}:{raw[3:5]}"


def format_exif_local(dt: datetime, zone: str) -> str:
    """'yyyy:MM:dd HH:mm:ss' wall-clock time in zone."""
    return to_local(dt, zone).strftime('%Y:%m:%d %H:%M:%S')


def format_offset_datetime(dt: datetime, zone: str) -> str:
    """'yyyy-MM-dd HH:mm:ss+hh:mm' wall-clock time in zone with its offset."""
    local = to_local(dt, zone)
    return local.strftime('%Y-%m-%d %H:%M:%S') + format_offset(local)


def format_utc(dt: datetime) -> str:
    """'yyyy-MM-dd HH:mm:ss' in UTC."""
    return ensure_utc(dt).strftime('%Y-%m-%d %H:%M:%S')
