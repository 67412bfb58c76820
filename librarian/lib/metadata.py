"""
Metadata property resolution.

ExifTool reports the same semantic value under several redundant tags
(a video may carry TrackCreateDate, MediaCreateDate and CreateDate at once).
Each category below lists its candidate tags in priority order; the first
candidate holding a valid value wins. A malformed candidate counts as absent
and resolution falls through to the next one.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import logging

from librarian.lib.errors import ExtractionError
from librarian.lib.timestamp import (
    EXIF_DATETIME_REGEX,
    EXIF_DATETIME_OFFSET_REGEX,
    EXIF_OFFSET_REGEX,
    GPS_COORDINATES_REGEX,
    is_zero_datetime,
    parse_exif_datetime,
)

logger = logging.getLogger(__name__)

# Tags to check for capture datetime, in priority order
DATETIME_TAGS = (
    'DateTimeCreated',             # yyyy:mm:dd HH:MM:SS+hh:mm (images)
    'Quicktime:CreationDate',      # yyyy:mm:dd HH:MM:SS+hh:mm (videos)
    'Quicktime:DateTimeOriginal',  # yyyy:mm:dd HH:MM:SS+hh:mm (videos)
    'DateTimeOriginal',            # local time, no offset (images)
    'TrackCreateDate',             # UTC (videos)
    'MediaCreateDate',             # UTC (videos)
    'CreateDate',                  # local time for images, UTC for videos
)

# Datetime tags that must carry an offset suffix
OFFSET_DATETIME_TAGS = frozenset({
    'DateTimeCreated',
    'Quicktime:CreationDate',
    'Quicktime:DateTimeOriginal',
})

QUICKTIME_DATETIME_TAGS = frozenset({
    'Quicktime:CreationDate',
    'Quicktime:DateTimeOriginal',
})

OFFSET_TAGS = ('OffsetTime', 'OffsetTimeOriginal', 'OffsetTimeDigitized')

TITLE_TAGS = ('Title', 'Description', 'XPTitle', 'ImageDescription')

# XPKeywords is a single ';'-joined string, the others are a string or a list
KEYWORD_TAGS = ('Category', 'Keywords', 'Subject', 'XPKeywords')

GPS_TAGS = (
    'GPSLatitude',
    'GPSLatitudeRef',
    'GPSLongitude',
    'GPSLongitudeRef',
    'GPSAltitude',
    'GPSAltitudeRef',
    'GPSCoordinates',
)

MIME_TAG = 'MIMEType'


class PropertyCategory(str, Enum):
    """Semantic categories merged from redundant tags."""
    DATETIME = 'DateTime'
    OFFSET = 'OffsetTime'
    TITLE = 'Title'
    KEYWORDS = 'Keywords'


CANDIDATE_TAGS = {
    PropertyCategory.DATETIME: DATETIME_TAGS,
    PropertyCategory.OFFSET: OFFSET_TAGS,
    PropertyCategory.TITLE: TITLE_TAGS,
    PropertyCategory.KEYWORDS: KEYWORD_TAGS,
}

# Every tag requested from ExifTool on upload
EXTRACTED_TAGS = (MIME_TAG, *DATETIME_TAGS, *OFFSET_TAGS, *TITLE_TAGS, *KEYWORD_TAGS, *GPS_TAGS)


@dataclass
class ResolvedProperties:
    """One winner per category plus the untouched remaining properties."""
    mime_type: str
    datetime: Optional[datetime] = None
    offset: Optional[str] = None
    title: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    passthrough: dict[str, Any] = field(default_factory=dict)

def is_media_mime_type(mime_type: Any) -> bool:
    return isinstance(mime_type, str) and mime_type.startswith(('image/', 'video/'))


def expand_tags(tags) -> list[str]:
    """
    Expand requested tags with every related candidate tag.

    Asking for 'Title' also fetches Description, XPTitle and ImageDescription,
    so the resolver can fall through. MIMEType is always included.
    """
    expanded = []
    for tag in tags:
        related = [tag]
        for candidates in CANDIDATE_TAGS.values():
            if tag in candidates:
                related = list(candidates)
                break
        for name in related:
            if name not in expanded:
                expanded.append(name)

    if MIME_TAG not in expanded:
        expanded.append(MIME_TAG)
    return expanded


# ============================================================================
# Per-candidate validation. Each returns None when the value is unusable.
# ============================================================================

def _valid_datetime(tag: str, value: Any) -> Optional[str]:
    if not isinstance(value, str) or is_zero_datetime(value):
        return None
    pattern = EXIF_DATETIME_OFFSET_REGEX if tag in OFFSET_DATETIME_TAGS else EXIF_DATETIME_REGEX
    return value if pattern.match(value) else None


def _valid_offset(tag: str, value: Any) -> Optional[str]:
    if isinstance(value, str) and EXIF_OFFSET_REGEX.match(value):
        return value
    return None


def _valid_title(tag: str, value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _valid_keywords(tag: str, value: Any) -> Optional[list[str]]:
    if tag == 'XPKeywords':
        if not isinstance(value, str) or not value:
            return None
        keywords = value.split(';')
    elif isinstance(value, str):
        keywords = [value]
    elif isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        keywords = list(value)
    else:
        return None

    keywords = [kw.strip() for kw in keywords if kw.strip()]
    return keywords or None


_VALIDATORS = {
    PropertyCategory.DATETIME: _valid_datetime,
    PropertyCategory.OFFSET: _valid_offset,
    PropertyCategory.TITLE: _valid_title,
    PropertyCategory.KEYWORDS: _valid_keywords,
}


def select_candidate(bag: dict[str, Any], category: PropertyCategory) -> Optional[tuple[str, Any]]:
    """
    Pick the highest-priority valid candidate for a category.

    Returns:
        (tag, validated value), or None if no candidate is usable
    """
    validator = _VALIDATORS[category]
    for tag in CANDIDATE_TAGS[category]:
        if tag not in bag:
            continue
        value = validator(tag, bag[tag])
        if value is not None:
            return tag, value
        logger.debug(f"Ignoring malformed {tag}: {bag[tag]!r}")
    return None


def _valid_number(value: Any, low: Optional[float] = None, high: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if low is not None and value < low:
        return None
    if high is not None and value > high:
        return None
    return float(value)


def clean_gps(bag: dict[str, Any]) -> dict[str, Any]:
    """Keep only well-formed GPS properties."""
    gps = {
        'GPSLatitude': _valid_number(bag.get('GPSLatitude'), -90, 90),
        'GPSLatitudeRef': bag.get('GPSLatitudeRef') if bag.get('GPSLatitudeRef') in ('N', 'S') else None,
        'GPSLongitude': _valid_number(bag.get('GPSLongitude'), -180, 180),
        'GPSLongitudeRef': bag.get('GPSLongitudeRef') if bag.get('GPSLongitudeRef') in ('E', 'W') else None,
        'GPSAltitude': _valid_number(bag.get('GPSAltitude')),
        'GPSAltitudeRef': bag.get('GPSAltitudeRef') if bag.get('GPSAltitudeRef') in (0, 1) else None,
        'GPSCoordinates': None,
    }
    coordinates = bag.get('GPSCoordinates')
    if isinstance(coordinates, str) and GPS_COORDINATES_REGEX.match(coordinates.strip()):
        gps['GPSCoordinates'] = coordinates.strip()
    return {key: value for key, value in gps.items() if value is not None}


def resolve_properties(
    bag: dict[str, Any],
    mime_type: Optional[str] = None,
    default_tz: str = 'UTC'
) -> ResolvedProperties:
    """
    Merge redundant tags of a raw property bag into one value per category.

    Interpretation of the winning datetime:
    - images, and the two Quicktime tags, hold local wall-clock time. The
      winning offset tag is applied when present, otherwise the value's own
      suffix, otherwise default_tz.
    - any other video tag holds UTC.

    Args:
        bag: Raw tag -> value mapping from ExifTool
        mime_type: MIME type; read from the bag's MIMEType when omitted
        default_tz: Zone for local times that carry no offset at all

    Returns:
        ResolvedProperties

    Raises:
        ExtractionError: If the MIME type is missing or not image/video
    """
    mime_type = mime_type or bag.get(MIME_TAG)
    if not is_media_mime_type(mime_type):
        raise ExtractionError(f"File is neither an image nor a video (MIME type: {mime_type!r})")

    resolved = ResolvedProperties(mime_type=mime_type)

    offset_candidate = select_candidate(bag, PropertyCategory.OFFSET)
    if offset_candidate:
        resolved.offset = offset_candidate[1]

    datetime_candidate = select_candidate(bag, PropertyCategory.DATETIME)
    if datetime_candidate:
        tag, value = datetime_candidate
        if mime_type.startswith('image/') or tag in QUICKTIME_DATETIME_TAGS:
            resolved.datetime = parse_exif_datetime(value, resolved.offset, default_tz)
        else:
            resolved.datetime = parse_exif_datetime(value, '+00:00')

    title_candidate = select_candidate(bag, PropertyCategory.TITLE)
    if title_candidate:
        resolved.title = title_candidate[1]

    keywords_candidate = select_candidate(bag, PropertyCategory.KEYWORDS)
    if keywords_candidate:
        resolved.keywords = keywords_candidate[1]

    merged = {tag for tags in CANDIDATE_TAGS.values() for tag in tags}
    resolved.passthrough = {
        key: value for key, value in bag.items()
        if key not in merged and key not in GPS_TAGS
    }
    resolved.passthrough.update(clean_gps(bag))

    return resolved
