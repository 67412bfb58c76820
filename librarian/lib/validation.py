"""
Request payload parsing and validation of queue edits, commits and keywords.

Every check collects FieldErrors instead of stopping at the first problem;
a non-empty list is raised as one ValidationError and the whole batch is
rejected.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import re

from librarian.lib.errors import FieldError, ValidationError
from librarian.lib.records import FileChange, KeywordData, KeywordLocation

logger = logging.getLogger(__name__)

DATE_REGEX = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_REGEX = re.compile(r'^\d{2}:\d{2}:\d{2}$')

KEYWORD_CATEGORIES = ('Album', 'Group', 'Location', 'Person', 'Animal', 'Other')

# Categories a file may carry at most one keyword of
SINGLE_KEYWORD_CATEGORIES = ('Album', 'Location')


def is_known_timezone(zone: Any) -> bool:
    if not isinstance(zone, str) or not zone:
        return False
    try:
        ZoneInfo(zone)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _dedupe(values: Iterable[Any]) -> list:
    return list(dict.fromkeys(values))


# ============================================================================
# Payload parsing
# ============================================================================

def parse_id_list(data: Any, field: str = 'ids') -> list[int]:
    """Parse a list of integer ids, dropping duplicates."""
    if data is None:
        return []
    if not isinstance(data, list) or not all(_is_int(v) for v in data):
        raise ValidationError([FieldError(field, 'Expected a list of integer IDs.')])
    return _dedupe(data)


def parse_file_change(data: Any) -> FileChange:
    """
    Parse one edit from its JSON form:
    {id, captureDate, captureTime, timezone, title, latitude, longitude,
    altitude, keywordIds}. Missing keys count as null.

    Raises:
        ValidationError: If a value has the wrong type
    """
    if not isinstance(data, dict):
        raise ValidationError([FieldError('fileChanges', 'Each file change must be an object.')])

    file_id = data.get('id')
    if not _is_int(file_id):
        raise ValidationError([FieldError('id', 'File ID must be an integer.')])

    errors = []

    def optional(key, check, message):
        value = data.get(key)
        if value is not None and not check(value):
            errors.append(FieldError(key, message, file_id))
            return None
        return value

    capture_date = optional('captureDate', _is_str, 'Date must be a string.')
    capture_time = optional('captureTime', _is_str, 'Time must be a string.')
    zone = optional('timezone', _is_str, 'Timezone must be a string.')
    title = optional('title', _is_str, 'Title must be a string.')
    latitude = optional('latitude', _is_number, 'Latitude must be a number.')
    longitude = optional('longitude', _is_number, 'Longitude must be a number.')
    altitude = optional('altitude', _is_number, 'Altitude must be a number.')

    keyword_ids = data.get('keywordIds') or []
    if not isinstance(keyword_ids, list) or not all(_is_int(v) for v in keyword_ids):
        errors.append(FieldError('keywordIds', 'Keyword IDs must be a list of integers.', file_id))
        keyword_ids = []

    if errors:
        raise ValidationError(errors)

    return FileChange(
        id=file_id,
        capture_date=capture_date or None,
        capture_time=capture_time or None,
        timezone=zone or None,
        title=title if title and title.strip() else None,
        latitude=float(latitude) if latitude is not None else None,
        longitude=float(longitude) if longitude is not None else None,
        altitude=float(altitude) if altitude is not None else None,
        keyword_ids=_dedupe(keyword_ids),
    )


def parse_file_changes(data: Any) -> list[FileChange]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationError([FieldError('fileChanges', 'Expected a list of file changes.')])

    changes = []
    errors = []
    for item in data:
        try:
            changes.append(parse_file_change(item))
        except ValidationError as e:
            errors.extend(e.errors)
    if errors:
        raise ValidationError(errors)
    return changes


# ============================================================================
# Queue edits
# ============================================================================

def _check_capture_time(change: FileChange) -> list[FieldError]:
    errors = []
    has_date = change.capture_date is not None
    has_time = change.capture_time is not None

    if has_date != has_time:
        return [FieldError('captureDate', 'Both date and time must be specified.', change.id)]
    if not has_date:
        return []

    if not DATE_REGEX.match(change.capture_date):
        errors.append(FieldError('captureDate', 'Date is expected in YYYY-MM-DD format.', change.id))
    if not TIME_REGEX.match(change.capture_time):
        errors.append(FieldError('captureTime', 'Time is expected in HH:MM:SS format.', change.id))
    if errors:
        return errors

    try:
        capture = change.capture_datetime
    except ValueError:
        return [FieldError('captureDate', 'Incorrect value provided for date/time.', change.id)]

    if capture > datetime.now(timezone.utc):
        errors.append(FieldError('captureDate', 'File date is in the future.', change.id))
    return errors


def _check_change(change: FileChange, store) -> list[FieldError]:
    errors = []

    if change.timezone is not None and not is_known_timezone(change.timezone):
        errors.append(FieldError('timezone', 'Provided timezone does not exist.', change.id))
    else:
        errors.extend(_check_capture_time(change))

    if change.latitude is not None and not -90 <= change.latitude <= 90:
        errors.append(FieldError('latitude', 'Latitude must be between -90 and 90.', change.id))
    if change.longitude is not None and not -180 <= change.longitude <= 180:
        errors.append(FieldError('longitude', 'Longitude must be between -180 and 180.', change.id))

    if change.keyword_ids:
        if store.count_keywords(change.keyword_ids) != len(change.keyword_ids):
            errors.append(FieldError('keywordIds', 'Provided keyword does not exist.', change.id))

        counts = store.count_keywords_by_category(SINGLE_KEYWORD_CATEGORIES, change.keyword_ids)
        if any(counts.get(category, 0) > 1 for category in SINGLE_KEYWORD_CATEGORIES):
            errors.append(FieldError(
                'keywordIds', 'Multiple albums/locations specified for the same file.', change.id
            ))

        has_coordinates = change.latitude is not None and change.longitude is not None
        if counts.get('Location', 0) and not has_coordinates:
            errors.append(FieldError(
                'latitude', 'GPS coordinates are missing for file with location keyword.', change.id
            ))

    return errors


def _check_batch_ids(changes: list[FileChange], store) -> list[FieldError]:
    errors = []
    ids = [change.id for change in changes]
    unique_ids = set(ids)
    if len(unique_ids) != len(ids):
        errors.append(FieldError('id', 'Duplicate files provided.'))
    if unique_ids and store.count_queue_entries(unique_ids) != len(unique_ids):
        errors.append(FieldError('id', 'Unknown file ID(s) provided.'))
    return errors


def validate_modifications(changes: list[FileChange], store) -> None:
    """
    Check user edits before they are saved to the queue.

    Raises:
        ValidationError: With every violation found
    """
    errors = _check_batch_ids(changes, store)
    for change in changes:
        errors.extend(_check_change(change, store))

    if errors:
        raise ValidationError(errors)


def validate_commit(changes: list[FileChange], store) -> None:
    """
    Check a commit batch. Adds the requirements of library files on top of
    the edit checks: date/time and timezone present, GPS coordinates paired,
    altitude only with both coordinates, coordinates only with a Location
    keyword.

    Raises:
        ValidationError: With every violation found
    """
    if not changes:
        raise ValidationError([FieldError('fileChanges', 'No files provided.')])

    errors = _check_batch_ids(changes, store)

    for change in changes:
        errors.extend(_check_change(change, store))

        if change.capture_date is None or change.capture_time is None:
            errors.append(FieldError('captureDate', 'Date/Time is missing.', change.id))
        if change.timezone is None:
            errors.append(FieldError('timezone', 'Timezone is missing.', change.id))

        if (change.latitude is None) != (change.longitude is None):
            errors.append(FieldError(
                'latitude',
                'Both latitude and longitude must be specified or neither should be specified.',
                change.id
            ))
        if change.altitude is not None and (change.latitude is None or change.longitude is None):
            errors.append(FieldError('altitude', 'Partial GPS coordinates specified.', change.id))

        if change.latitude is not None:
            location_count = 0
            if change.keyword_ids:
                location_count = store.count_keywords_by_category(['Location'], change.keyword_ids)['Location']
            if not location_count:
                errors.append(FieldError(
                    'keywordIds', 'Location keyword is missing for a file with GPS coordinates.', change.id
                ))

    if errors:
        raise ValidationError(errors)


def validate_deletions(ids: list[int], store) -> None:
    if ids and store.count_queue_entries(ids) != len(ids):
        raise ValidationError([FieldError('deletedFiles', 'Unknown file ID(s) provided.')])


# ============================================================================
# Uploads
# ============================================================================

def _upload_size(upload) -> int:
    stream = upload.stream
    position = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(position)
    return size


def validate_uploads(uploads: list) -> None:
    """
    Request-level checks on uploaded werkzeug FileStorage objects.

    Raises:
        ValidationError: If no file was sent, or any file is empty or not
            an image/video
    """
    if not uploads:
        raise ValidationError([FieldError('files', 'No file uploaded.')])

    errors = []
    if any(_upload_size(upload) == 0 for upload in uploads):
        errors.append(FieldError('files', 'Invalid file size.'))
    if not all((upload.mimetype or '').startswith(('image/', 'video/')) for upload in uploads):
        errors.append(FieldError('files', 'Selected file is not a valid image/video.'))
    if errors:
        raise ValidationError(errors)


# ============================================================================
# Keywords
# ============================================================================

def parse_keyword(data: Any, store) -> KeywordData:
    """
    Parse and validate a new keyword:
    {name, category, isFolderLabel, city?, state?, country?, latitude?,
    longitude?, altitude?}. Location data is only read for Location keywords.

    Raises:
        ValidationError: With every violation found
    """
    if not isinstance(data, dict):
        raise ValidationError([FieldError('keyword', 'Expected a keyword object.')])

    errors = []
    name = data.get('name')
    category = data.get('category')
    is_folder_label = data.get('isFolderLabel', False)

    if not isinstance(name, str) or not name.strip():
        errors.append(FieldError('name', 'Keyword cannot be empty.'))
    else:
        name = name.strip()
        if store.get_keywords([name]):
            errors.append(FieldError('name', f"Keyword '{name}' already exists."))

    if category not in KEYWORD_CATEGORIES:
        errors.append(FieldError('category', f"Category must be one of {', '.join(KEYWORD_CATEGORIES)}."))
    if not isinstance(is_folder_label, bool):
        errors.append(FieldError('isFolderLabel', 'Folder label flag must be a boolean.'))

    location: Optional[KeywordLocation] = None
    if category == 'Location':
        location, location_errors = _parse_location(data)
        errors.extend(location_errors)

    if errors:
        raise ValidationError(errors)

    return KeywordData(
        id=None,
        name=name,
        category=category,
        is_folder_label=is_folder_label,
        location=location,
    )


def _parse_location(data: dict) -> tuple[Optional[KeywordLocation], list[FieldError]]:
    errors = []

    def text(key):
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if not isinstance(value, str):
            errors.append(FieldError(key, f"{key.capitalize()} must be a string."))
            return None
        return value.strip()

    city, state, country = text('city'), text('state'), text('country')
    latitude, longitude, altitude = data.get('latitude'), data.get('longitude'), data.get('altitude')

    if country is None:
        errors.append(FieldError('country', 'Country is required for a location keyword.'))
    if city is not None and state is None:
        errors.append(FieldError('state', 'State is required when a city is given.'))
    if not _is_number(latitude) or not -90 <= latitude <= 90:
        errors.append(FieldError('latitude', 'Latitude must be a number between -90 and 90.'))
    if not _is_number(longitude) or not -180 <= longitude <= 180:
        errors.append(FieldError('longitude', 'Longitude must be a number between -180 and 180.'))
    if altitude is not None and not _is_number(altitude):
        errors.append(FieldError('altitude', 'Altitude must be a number.'))

    if errors:
        return None, errors

    return KeywordLocation(
        country=country,
        state=state,
        city=city,
        latitude=float(latitude),
        longitude=float(longitude),
        altitude=float(altitude) if altitude is not None else None,
    ), []
