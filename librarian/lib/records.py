"""
Canonical metadata records and their mappings to and from ExifTool.

One record type describes a file's metadata. Three pure functions map it to
the shapes the outside world uses:

- from_exiftool_tags(): group-qualified ExifTool output -> raw property bag
- to_exiftool_write_shape(): record -> ExifTool JSON import document entry
- to_export_shape(): record -> portable JSON export
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
import logging

from librarian.lib.metadata import ResolvedProperties
from librarian.lib.timestamp import (
    GPS_COORDINATES_REGEX,
    combine_date_time,
    ensure_utc,
    format_exif_local,
    format_offset,
    format_offset_datetime,
    format_utc,
    to_local,
)

logger = logging.getLogger(__name__)

# QuickTime tags kept under their group-qualified name
QUICKTIME_QUALIFIED_TAGS = ('CreationDate', 'DateTimeOriginal')


# ============================================================================
# Record types
# ============================================================================

@dataclass
class CanonicalRecord:
    """Resolved metadata of one media file."""
    path: str
    mime_type: str
    capture_datetime: Optional[datetime] = None  # aware, UTC
    timezone: Optional[str] = None
    title: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    keywords: list[str] = field(default_factory=list)

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith('image/')

    @property
    def local_datetime(self) -> Optional[datetime]:
        """Capture instant as wall-clock time in the record's zone."""
        if self.capture_datetime is None or not self.timezone:
            return None
        return to_local(self.capture_datetime, self.timezone)


@dataclass(kw_only=True)
class QueueEntry(CanonicalRecord):
    """A file waiting in the queue. Every metadata field is optional until commit."""
    id: int
    name: str
    thumbnail_path: str
    keyword_ids: list[int] = field(default_factory=list)


@dataclass(kw_only=True)
class LibraryEntry(CanonicalRecord):
    """A committed file. `path` is the directory relative to the library root."""
    id: Optional[int] = None
    name: str
    keyword_ids: list[int] = field(default_factory=list)


@dataclass
class FileChange:
    """
    User edit of one queued file. Replaces every editable field.

    Date and time are kept as entered ('YYYY-MM-DD', 'HH:MM:SS') in `timezone`
    until validation has checked them.
    """
    id: int
    capture_date: Optional[str] = None
    capture_time: Optional[str] = None
    timezone: Optional[str] = None
    title: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    keyword_ids: list[int] = field(default_factory=list)

    @property
    def capture_datetime(self) -> Optional[datetime]:
        """Entered date and time as a UTC instant, or None if either is missing."""
        if not self.capture_date or not self.capture_time:
            return None
        return combine_date_time(self.capture_date, self.capture_time, self.timezone)


@dataclass
class KeywordLocation:
    country: str
    latitude: float
    longitude: float
    city: Optional[str] = None
    state: Optional[str] = None
    altitude: Optional[float] = None


@dataclass
class KeywordData:
    """Keyword with its category and, for Location keywords, its location."""
    id: Optional[int]
    name: str
    category: str
    is_folder_label: bool = False
    location: Optional[KeywordLocation] = None


# ============================================================================
# Builder
# ============================================================================

def _signed(value: Optional[float], ref: Optional[Any], negative_ref: Any) -> Optional[float]:
    """Apply a hemisphere/sea-level reference to an unsigned magnitude."""
    if value is None:
        return None
    if ref == negative_ref:
        return -abs(value)
    return value


def _parse_coordinates(coordinates: Optional[str]) -> tuple[Optional[float], Optional[float], Optional[float]]:
    """Split a QuickTime 'lat lon [alt]' string."""
    if not coordinates:
        return None, None, None
    match = GPS_COORDINATES_REGEX.match(coordinates)
    if not match:
        return None, None, None
    lat, lon, alt = match.groups()
    return float(lat), float(lon), float(alt) if alt is not None else None


def build_canonical_record(path: str, resolved: ResolvedProperties, zone: str) -> CanonicalRecord:
    """
    Assemble a canonical record from resolved properties and an inferred zone.

    Pure transform: no I/O. Altitude is discarded when latitude is absent.

    Args:
        path: Absolute path of the file
        resolved: Output of resolve_properties()
        zone: Output of TimezoneResolver.resolve()

    Returns:
        CanonicalRecord
    """
    gps = resolved.passthrough

    latitude = _signed(gps.get('GPSLatitude'), gps.get('GPSLatitudeRef'), 'S')
    longitude = _signed(gps.get('GPSLongitude'), gps.get('GPSLongitudeRef'), 'W')
    altitude = _signed(gps.get('GPSAltitude'), gps.get('GPSAltitudeRef'), 1)

    if latitude is None and longitude is None:
        # Videos often carry only the combined QuickTime string
        latitude, longitude, coord_altitude = _parse_coordinates(gps.get('GPSCoordinates'))
        if altitude is None:
            altitude = coord_altitude

    if latitude is None:
        altitude = None

    return CanonicalRecord(
        path=str(path),
        mime_type=resolved.mime_type,
        capture_datetime=resolved.datetime,
        timezone=zone,
        title=resolved.title,
        latitude=latitude,
        longitude=longitude,
        altitude=altitude,
        keywords=list(dict.fromkeys(resolved.keywords)),
    )


# ============================================================================
# ExifTool mappings
# ============================================================================

def from_exiftool_tags(tags: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten group-qualified ExifTool output ('EXIF:DateTimeOriginal') into a bag.

    The first group reporting a tag wins. QuickTime CreationDate and
    DateTimeOriginal keep a 'Quicktime:' prefix, because their meaning (local
    time with offset) differs from the same-named EXIF tag.
    """
    bag: dict[str, Any] = {}
    for key, value in tags.items():
        if ':' not in key:
            bag.setdefault(key, value)
            continue

        group, tag = key.split(':', 1)
        if group.lower() == 'quicktime' and tag in QUICKTIME_QUALIFIED_TAGS:
            bag.setdefault(f"Quicktime:{tag}", value)
        else:
            bag.setdefault(tag, value)
    return bag


def to_exiftool_write_shape(record: CanonicalRecord) -> dict[str, Any]:
    """
    Build the ExifTool JSON import entry for a record.

    Every redundant tag of a category is written with the same value, so any
    reader picks up the canonical one. Absent values are omitted.

    Raises:
        ValueError: If capture time or timezone is missing
    """
    if record.capture_datetime is None or not record.timezone:
        raise ValueError(f"Cannot write metadata without date/time and timezone: {record.path}")

    local = to_local(record.capture_datetime, record.timezone)
    datetime_str = format_exif_local(record.capture_datetime, record.timezone)
    datetime_offset_str = format_offset_datetime(record.capture_datetime, record.timezone)
    offset_str = format_offset(local)
    utc_str = format_utc(record.capture_datetime)

    keywords = [kw for kw in record.keywords if kw]

    latitude_ref = longitude_ref = altitude_ref = coordinates = None
    altitude = None
    if record.latitude is not None and record.longitude is not None:
        coordinates = f"{record.latitude} {record.longitude}"
        latitude_ref = 'N' if record.latitude >= 0 else 'S'
        longitude_ref = 'E' if record.longitude >= 0 else 'W'
        # Altitude only applies alongside both coordinates
        if record.altitude is not None:
            altitude = record.altitude
            coordinates += f" {record.altitude}"
            altitude_ref = 0 if record.altitude >= 0 else 1

    data = {
        'SourceFile': record.path,
        'MIMEType': record.mime_type,
        'OffsetTime': offset_str,
        'OffsetTimeOriginal': offset_str,
        'OffsetTimeDigitized': offset_str,
        'Title': record.title,
        'Description': record.title,
        'XPTitle': record.title,
        'ImageDescription': record.title,
        'GPSLatitude': record.latitude if latitude_ref else None,
        'GPSLatitudeRef': latitude_ref,
        'GPSLongitude': record.longitude if longitude_ref else None,
        'GPSLongitudeRef': longitude_ref,
        'GPSAltitude': altitude,
        'GPSAltitudeRef': altitude_ref,
    }

    if record.is_image:
        data.update({
            'DateTimeOriginal': datetime_str,
            'DateTimeCreated': datetime_offset_str,
            'CreateDate': datetime_str,
            'Keywords': keywords,
            'Subject': keywords,
            'XPKeywords': ';'.join(keywords),
        })
    else:
        data.update({
            'Quicktime:CreationDate': datetime_offset_str,
            'Quicktime:DateTimeOriginal': datetime_offset_str,
            'TrackCreateDate': utc_str,
            'MediaCreateDate': utc_str,
            'CreateDate': utc_str,
            'Category': keywords,
            'GPSCoordinates': coordinates,
        })

    return {key: value for key, value in data.items() if value is not None}


def to_export_shape(record: CanonicalRecord) -> dict[str, Any]:
    """Portable JSON view of a record."""
    return {
        'path': record.path,
        'mimeType': record.mime_type,
        'captureDateTime': ensure_utc(record.capture_datetime).isoformat() if record.capture_datetime else None,
        'timezone': record.timezone,
        'title': record.title,
        'latitude': record.latitude,
        'longitude': record.longitude,
        'altitude': record.altitude,
        'keywords': list(record.keywords),
    }
