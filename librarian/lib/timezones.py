"""
Timezone inference from a bare UTC offset.

Media files usually record an offset such as '+02:00' but never the zone
name. Several zones share every offset, so the zone picked here is a
plausible guess, not the zone the file was really captured in. Rendering the
stored instant in the guessed zone reproduces the recorded wall-clock time
except around DST transitions.
"""
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)

# Zone name -> standard (non-DST) UTC offset. Lookups scan in this order.
ZONE_TABLE: tuple[tuple[str, str], ...] = (
    ('Africa/Abidjan', '+00:00'),
    ('Africa/Accra', '+00:00'),
    ('Africa/Addis_Ababa', '+03:00'),
    ('Africa/Algiers', '+01:00'),
    ('Africa/Cairo', '+02:00'),
    ('Africa/Casablanca', '+01:00'),
    ('Africa/Johannesburg', '+02:00'),
    ('Africa/Lagos', '+01:00'),
    ('Africa/Nairobi', '+03:00'),
    ('Africa/Tripoli', '+02:00'),
    ('Africa/Tunis', '+01:00'),
    ('Africa/Windhoek', '+02:00'),
    ('America/Adak', '-10:00'),
    ('America/Anchorage', '-09:00'),
    ('America/Argentina/Buenos_Aires', '-03:00'),
    ('America/Bogota', '-05:00'),
    ('America/Caracas', '-04:00'),
    ('America/Chicago', '-06:00'),
    ('America/Denver', '-07:00'),
    ('America/Edmonton', '-07:00'),
    ('America/Halifax', '-04:00'),
    ('America/Havana', '-05:00'),
    ('America/La_Paz', '-04:00'),
    ('America/Lima', '-05:00'),
    ('America/Los_Angeles', '-08:00'),
    ('America/Mexico_City', '-06:00'),
    ('America/Montevideo', '-03:00'),
    ('America/New_York', '-05:00'),
    ('America/Noronha', '-02:00'),
    ('America/Phoenix', '-07:00'),
    ('America/Santiago', '-04:00'),
    ('America/Sao_Paulo', '-03:00'),
    ('America/St_Johns', '-03:30'),
    ('America/Toronto', '-05:00'),
    ('America/Vancouver', '-08:00'),
    ('America/Winnipeg', '-06:00'),
    ('Asia/Baghdad', '+03:00'),
    ('Asia/Baku', '+04:00'),
    ('Asia/Bangkok', '+07:00'),
    ('Asia/Colombo', '+05:30'),
    ('Asia/Dhaka', '+06:00'),
    ('Asia/Dubai', '+04:00'),
    ('Asia/Ho_Chi_Minh', '+07:00'),
    ('Asia/Hong_Kong', '+08:00'),
    ('Asia/Jakarta', '+07:00'),
    ('Asia/Jerusalem', '+02:00'),
    ('Asia/Kabul', '+04:30'),
    ('Asia/Kamchatka', '+12:00'),
    ('Asia/Karachi', '+05:00'),
    ('Asia/Kathmandu', '+05:45'),
    ('Asia/Kolkata', '+05:30'),
    ('Asia/Magadan', '+11:00'),
    ('Asia/Manila', '+08:00'),
    ('Asia/Riyadh', '+03:00'),
    ('Asia/Seoul', '+09:00'),
    ('Asia/Shanghai', '+08:00'),
    ('Asia/Singapore', '+08:00'),
    ('Asia/Taipei', '+08:00'),
    ('Asia/Tashkent', '+05:00'),
    ('Asia/Tehran', '+03:30'),
    ('Asia/Tokyo', '+09:00'),
    ('Asia/Vladivostok', '+10:00'),
    ('Asia/Yangon', '+06:30'),
    ('Asia/Yekaterinburg', '+05:00'),
    ('Atlantic/Azores', '-01:00'),
    ('Atlantic/Cape_Verde', '-01:00'),
    ('Atlantic/Reykjavik', '+00:00'),
    ('Atlantic/South_Georgia', '-02:00'),
    ('Australia/Adelaide', '+09:30'),
    ('Australia/Brisbane', '+10:00'),
    ('Australia/Darwin', '+09:30'),
    ('Australia/Eucla', '+08:45'),
    ('Australia/Lord_Howe', '+10:30'),
    ('Australia/Perth', '+08:00'),
    ('Australia/Sydney', '+10:00'),
    ('Etc/GMT+12', '-12:00'),
    ('Europe/Amsterdam', '+01:00'),
    ('Europe/Athens', '+02:00'),
    ('Europe/Berlin', '+01:00'),
    ('Europe/Dublin', '+00:00'),
    ('Europe/Helsinki', '+02:00'),
    ('Europe/Istanbul', '+03:00'),
    ('Europe/Kyiv', '+02:00'),
    ('Europe/Lisbon', '+00:00'),
    ('Europe/London', '+00:00'),
    ('Europe/Madrid', '+01:00'),
    ('Europe/Moscow', '+03:00'),
    ('Europe/Paris', '+01:00'),
    ('Europe/Rome', '+01:00'),
    ('Europe/Stockholm', '+01:00'),
    ('Europe/Warsaw', '+01:00'),
    ('Europe/Zurich', '+01:00'),
    ('Pacific/Apia', '+13:00'),
    ('Pacific/Auckland', '+12:00'),
    ('Pacific/Chatham', '+12:45'),
    ('Pacific/Fiji', '+12:00'),
    ('Pacific/Guam', '+10:00'),
    ('Pacific/Honolulu', '-10:00'),
    ('Pacific/Kiritimati', '+14:00'),
    ('Pacific/Marquesas', '-09:30'),
    ('Pacific/Noumea', '+11:00'),
    ('Pacific/Pago_Pago', '-11:00'),
    ('Pacific/Tongatapu', '+13:00'),
    ('UTC', '+00:00'),
)


def format_offset_delta(delta: timedelta) -> str:
    minutes = int(delta.total_seconds()) // 60
    sign = '-' if minutes < 0 else '+'
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def standard_offset(zone: str, table=ZONE_TABLE) -> Optional[str]:
    """
    Standard offset of a zone.

    Listed zones use the table value. Any other zone is looked up in the tz
    database (UTC offset minus DST at a fixed instant); unknown names give None.
    """
    for name, offset in table:
        if name == zone:
            return offset

    try:
        local = datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo(zone))
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return format_offset_delta(local.utcoffset() - (local.dst() or timedelta(0)))


class TimezoneResolver:
    """
    Map an offset string to a zone name.

    Args:
        local_zone: Zone treated as the current local zone (from TIMEZONE config)
        table: Ordered (zone, standard offset) pairs
    """

    def __init__(self, local_zone: str, table=ZONE_TABLE):
        self.local_zone = local_zone
        self.table = table

    def resolve(self, offset: Optional[str]) -> str:
        """
        Return the most plausible zone for an offset.

        - no offset: the local zone
        - offset equals the local zone's standard offset: the local zone
        - otherwise the first zone in table order with that standard offset
        - no zone matches: the local zone, although it does not represent
          the offset
        """
        if not offset:
            return self.local_zone

        if standard_offset(self.local_zone, self.table) == offset:
            return self.local_zone

        for name, std_offset in self.table:
            if std_offset == offset:
                return name

        logger.warning(f"No zone with standard offset {offset}, falling back to {self.local_zone}")
        return self.local_zone
